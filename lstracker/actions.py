"""
Closed set of state-store actions.

Every mutation of AppState goes through one of these. Actions that can
arrive from the remote change feed carry `remote=True`; those update the
collections but are never queued for push (they are already persisted).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from lstracker.models import AppState, DeliveryEntry, ProductionEntry, Settings, UnsyncedChanges


@dataclass(frozen=True)
class InitializeState:
    state: AppState


@dataclass(frozen=True)
class UpdateSettings:
    settings: Settings
    remote: bool = False


@dataclass(frozen=True)
class AddProductionEntries:
    entries: tuple[ProductionEntry, ...]
    remote: bool = False


@dataclass(frozen=True)
class UpdateProductionEntry:
    entry: ProductionEntry
    remote: bool = False


@dataclass(frozen=True)
class DeleteProductionEntry:
    taka_number: str
    remote: bool = False


@dataclass(frozen=True)
class AddDeliveryEntry:
    entry: DeliveryEntry
    remote: bool = False


@dataclass(frozen=True)
class AddDeliveryEntries:
    entries: tuple[DeliveryEntry, ...]
    remote: bool = False


@dataclass(frozen=True)
class UpdateDeliveryEntry:
    entry: DeliveryEntry
    remote: bool = False


@dataclass(frozen=True)
class DeleteDeliveryEntry:
    entry_id: str
    remote: bool = False


@dataclass(frozen=True)
class SetProductionEntries:
    entries: tuple[ProductionEntry, ...]


@dataclass(frozen=True)
class SetDeliveryEntries:
    entries: tuple[DeliveryEntry, ...]


@dataclass(frozen=True)
class ClearUnsyncedChanges:
    # None clears everything; a snapshot clears only what that push covered.
    pushed: Optional[UnsyncedChanges] = None
    # Settings record that push sent; a later edit keeps the settings dirty.
    settings_record: Optional[dict] = None


@dataclass(frozen=True)
class SetConnectivity:
    is_online: bool


Action = Union[
    InitializeState,
    UpdateSettings,
    AddProductionEntries,
    UpdateProductionEntry,
    DeleteProductionEntry,
    AddDeliveryEntry,
    AddDeliveryEntries,
    UpdateDeliveryEntry,
    DeleteDeliveryEntry,
    SetProductionEntries,
    SetDeliveryEntries,
    ClearUnsyncedChanges,
    SetConnectivity,
]

# Actions whose effect must be written through to durable storage.
PERSISTED_ACTIONS = (
    InitializeState,
    UpdateSettings,
    AddProductionEntries,
    UpdateProductionEntry,
    DeleteProductionEntry,
    AddDeliveryEntry,
    AddDeliveryEntries,
    UpdateDeliveryEntry,
    DeleteDeliveryEntry,
    SetProductionEntries,
    SetDeliveryEntries,
    ClearUnsyncedChanges,
)
