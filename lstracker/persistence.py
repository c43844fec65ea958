from __future__ import annotations

import json
import logging
import sqlite3
from typing import Callable, Optional

from lstracker.actions import PERSISTED_ACTIONS
from lstracker.db import q, x
from lstracker.models import AppState, DeliveryEntry, ProductionEntry, Settings, UnsyncedChanges
from lstracker.store import Store
from lstracker.utils import iso_now

logger = logging.getLogger(__name__)

STATE_KEY = "ls-prod-tracker-state"


def state_to_blob(state: AppState) -> dict:
    return {
        "settings": state.settings.to_record(include_credentials=False),
        "productionEntries": [e.to_record() for e in state.production_entries],
        "deliveryEntries": [d.to_record() for d in state.delivery_entries],
        "unsyncedChanges": state.unsynced_changes.to_record(),
    }


def state_from_blob(blob: dict, *, base_settings: Optional[Settings] = None) -> AppState:
    """
    Rebuild state from a stored blob. Credentials are not in the blob;
    they come from `base_settings` (the configuration layer).
    """
    return AppState(
        settings=Settings.from_record(blob.get("settings"), base=base_settings),
        production_entries=tuple(ProductionEntry.from_record(r) for r in blob.get("productionEntries") or []),
        delivery_entries=tuple(DeliveryEntry.from_record(r) for r in blob.get("deliveryEntries") or []),
        unsynced_changes=UnsyncedChanges.from_record(blob.get("unsyncedChanges")),
    )


class LocalStateStorage:
    """Single keyed JSON blob in the local SQLite file, rewritten on every change."""

    def __init__(self, conn: sqlite3.Connection, *, key: str = STATE_KEY):
        self.conn = conn
        self.key = key

    def load(self, *, base_settings: Optional[Settings] = None) -> Optional[AppState]:
        rows = q(self.conn, "SELECT payload FROM app_state WHERE key=?", (self.key,))
        if not rows:
            return None
        try:
            return state_from_blob(json.loads(rows[0]["payload"]), base_settings=base_settings)
        except (ValueError, TypeError, AttributeError):
            logger.exception("Failed to load state from local storage; starting from defaults")
            return None

    def save(self, state: AppState) -> None:
        payload = json.dumps(state_to_blob(state), ensure_ascii=False)
        x(
            self.conn,
            """
            INSERT INTO app_state (key, payload, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET payload=excluded.payload, updated_at=excluded.updated_at
            """,
            (self.key, payload, iso_now()),
        )

    def clear(self) -> None:
        x(self.conn, "DELETE FROM app_state WHERE key=?", (self.key,))


def _persisted_fields_changed(previous: AppState, current: AppState) -> bool:
    return (
        previous.production_entries is not current.production_entries
        or previous.delivery_entries is not current.delivery_entries
        or previous.unsynced_changes != current.unsynced_changes
        or previous.settings.to_record() != current.settings.to_record()
    )


def attach_persistence(store: Store, storage: LocalStateStorage) -> Callable[[], None]:
    """Write-through observer: saves the whole blob after each persisted change."""

    def _on_change(previous: AppState, current: AppState, action) -> None:
        if not current.is_initialized or not isinstance(action, PERSISTED_ACTIONS):
            return
        if not _persisted_fields_changed(previous, current):
            return
        try:
            storage.save(current)
        except sqlite3.Error:
            logger.exception("Failed to save state to local storage")

    return store.subscribe(_on_change)
