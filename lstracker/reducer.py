"""
Pure reducer: (AppState, Action) -> AppState.

No I/O happens here. Persistence and sync signalling are post-dispatch
listeners on the Store.

Queue rules (UnsyncedChanges):
- add/update queues are last-write-wins per key.
- a delete drops any queued add/update for the same key and queues the key.
- remote-origin actions never queue; a remote delete still drops queued
  add/update for that key so a stale local edit cannot resurrect the row.
"""
from __future__ import annotations

from dataclasses import replace
from typing import Callable, Iterable

from lstracker.actions import (
    Action,
    AddDeliveryEntries,
    AddDeliveryEntry,
    AddProductionEntries,
    ClearUnsyncedChanges,
    DeleteDeliveryEntry,
    DeleteProductionEntry,
    InitializeState,
    SetConnectivity,
    SetDeliveryEntries,
    SetProductionEntries,
    UpdateDeliveryEntry,
    UpdateProductionEntry,
    UpdateSettings,
)
from lstracker.models import AppState, DeliveryEntry, EntityChanges, ProductionEntry, UnsyncedChanges


def _taka_key(e: ProductionEntry) -> str:
    return e.taka_number


def _delivery_key(e: DeliveryEntry) -> str:
    return e.id


def _unique_new(items: Iterable, existing_keys: set, key: Callable) -> list:
    """Drop items whose key is already known, including repeats inside `items`."""
    seen = set(existing_keys)
    out = []
    for item in items:
        k = key(item)
        if k in seen:
            continue
        seen.add(k)
        out.append(item)
    return out


def _queue_add(q: EntityChanges, items: list, key: Callable) -> EntityChanges:
    # A re-added key supersedes its queued delete: deletes are pushed after upserts.
    keys = {key(i) for i in items}
    return EntityChanges(
        add=tuple(i for i in q.add if key(i) not in keys) + tuple(items),
        update=q.update,
        delete=tuple(k for k in q.delete if k not in keys),
    )


def _queue_update(q: EntityChanges, item, key: Callable) -> EntityChanges:
    k = key(item)
    return EntityChanges(
        add=q.add,
        update=tuple(i for i in q.update if key(i) != k) + (item,),
        delete=tuple(d for d in q.delete if d != k),
    )


def _queue_delete(q: EntityChanges, keys: Iterable[str], key: Callable, *, record: bool) -> EntityChanges:
    keys = list(keys)
    if not keys:
        return q
    drop = set(keys)
    delete = q.delete
    if record:
        delete = delete + tuple(k for k in dict.fromkeys(keys) if k not in delete)
    return EntityChanges(
        add=tuple(i for i in q.add if key(i) not in drop),
        update=tuple(i for i in q.update if key(i) not in drop),
        delete=delete,
    )


def _subtract(q: EntityChanges, pushed: EntityChanges) -> EntityChanges:
    # Items are frozen dataclasses: equality means "the exact value that was pushed".
    return EntityChanges(
        add=tuple(i for i in q.add if i not in pushed.add),
        update=tuple(i for i in q.update if i not in pushed.update),
        delete=tuple(k for k in q.delete if k not in pushed.delete),
    )


def _with_queue(state: AppState, *, production: EntityChanges | None = None,
                delivery: EntityChanges | None = None) -> UnsyncedChanges:
    u = state.unsynced_changes
    return replace(
        u,
        production=production if production is not None else u.production,
        delivery=delivery if delivery is not None else u.delivery,
    )


def _known(entries: tuple, q: EntityChanges, k: str, key: Callable) -> bool:
    return any(key(e) == k for e in entries) or any(key(i) == k for i in q.add + q.update)


def _add_production(state: AppState, action: AddProductionEntries) -> AppState:
    new = _unique_new(action.entries, {e.taka_number for e in state.production_entries}, _taka_key)
    if not new:
        return state
    unsynced = state.unsynced_changes
    if not action.remote:
        unsynced = _with_queue(state, production=_queue_add(unsynced.production, new, _taka_key))
    return replace(state, production_entries=state.production_entries + tuple(new), unsynced_changes=unsynced)


def _update_production(state: AppState, action: UpdateProductionEntry) -> AppState:
    entry = action.entry
    if not any(e.taka_number == entry.taka_number for e in state.production_entries):
        return state
    entries = tuple(entry if e.taka_number == entry.taka_number else e for e in state.production_entries)
    unsynced = state.unsynced_changes
    if not action.remote:
        unsynced = _with_queue(state, production=_queue_update(unsynced.production, entry, _taka_key))
    return replace(state, production_entries=entries, unsynced_changes=unsynced)


def _delete_production(state: AppState, action: DeleteProductionEntry) -> AppState:
    taka = action.taka_number
    cascaded = [d.id for d in state.delivery_entries if d.taka_number == taka]
    if action.remote and not cascaded and not _known(state.production_entries, state.unsynced_changes.production, taka, _taka_key):
        return state
    record = not action.remote
    unsynced = _with_queue(
        state,
        production=_queue_delete(state.unsynced_changes.production, [taka], _taka_key, record=record),
        delivery=_queue_delete(state.unsynced_changes.delivery, cascaded, _delivery_key, record=record),
    )
    return replace(
        state,
        production_entries=tuple(e for e in state.production_entries if e.taka_number != taka),
        delivery_entries=tuple(d for d in state.delivery_entries if d.taka_number != taka),
        unsynced_changes=unsynced,
    )


def _add_deliveries(state: AppState, entries: Iterable[DeliveryEntry], remote: bool) -> AppState:
    new = _unique_new(entries, {d.id for d in state.delivery_entries}, _delivery_key)
    if not new:
        return state
    unsynced = state.unsynced_changes
    if not remote:
        unsynced = _with_queue(state, delivery=_queue_add(unsynced.delivery, new, _delivery_key))
    return replace(state, delivery_entries=state.delivery_entries + tuple(new), unsynced_changes=unsynced)


def _update_delivery(state: AppState, action: UpdateDeliveryEntry) -> AppState:
    entry = action.entry
    if not any(d.id == entry.id for d in state.delivery_entries):
        return state
    entries = tuple(entry if d.id == entry.id else d for d in state.delivery_entries)
    unsynced = state.unsynced_changes
    if not action.remote:
        unsynced = _with_queue(state, delivery=_queue_update(unsynced.delivery, entry, _delivery_key))
    return replace(state, delivery_entries=entries, unsynced_changes=unsynced)


def _delete_delivery(state: AppState, action: DeleteDeliveryEntry) -> AppState:
    if action.remote and not _known(state.delivery_entries, state.unsynced_changes.delivery, action.entry_id, _delivery_key):
        return state
    unsynced = _with_queue(
        state,
        delivery=_queue_delete(state.unsynced_changes.delivery, [action.entry_id], _delivery_key,
                               record=not action.remote),
    )
    return replace(
        state,
        delivery_entries=tuple(d for d in state.delivery_entries if d.id != action.entry_id),
        unsynced_changes=unsynced,
    )


def _update_settings(state: AppState, action: UpdateSettings) -> AppState:
    settings = action.settings
    unsynced = state.unsynced_changes
    if action.remote:
        # Remote rows never carry credentials: keep the live ones.
        settings = settings.with_credentials(**state.settings.credentials)
    elif settings.to_record() != state.settings.to_record():
        # Credentials are local only; changing just them leaves the shared row alone.
        unsynced = replace(unsynced, settings_dirty=True)
    return replace(state, settings=settings, unsynced_changes=unsynced)


def _clear_unsynced(state: AppState, action: ClearUnsyncedChanges) -> AppState:
    pushed = action.pushed
    if pushed is None:
        return replace(state, unsynced_changes=UnsyncedChanges())
    current = state.unsynced_changes
    settings_pushed = pushed.settings_dirty and (
        action.settings_record is None or action.settings_record == state.settings.to_record()
    )
    return replace(
        state,
        unsynced_changes=UnsyncedChanges(
            production=_subtract(current.production, pushed.production),
            delivery=_subtract(current.delivery, pushed.delivery),
            settings_dirty=current.settings_dirty and not settings_pushed,
        ),
    )


def reduce(state: AppState, action: Action) -> AppState:
    if isinstance(action, InitializeState):
        return replace(action.state, is_initialized=True)
    if isinstance(action, UpdateSettings):
        return _update_settings(state, action)
    if isinstance(action, AddProductionEntries):
        return _add_production(state, action)
    if isinstance(action, UpdateProductionEntry):
        return _update_production(state, action)
    if isinstance(action, DeleteProductionEntry):
        return _delete_production(state, action)
    if isinstance(action, AddDeliveryEntry):
        return _add_deliveries(state, [action.entry], action.remote)
    if isinstance(action, AddDeliveryEntries):
        return _add_deliveries(state, action.entries, action.remote)
    if isinstance(action, UpdateDeliveryEntry):
        return _update_delivery(state, action)
    if isinstance(action, DeleteDeliveryEntry):
        return _delete_delivery(state, action)
    if isinstance(action, SetProductionEntries):
        return replace(state, production_entries=tuple(action.entries))
    if isinstance(action, SetDeliveryEntries):
        return replace(state, delivery_entries=tuple(action.entries))
    if isinstance(action, ClearUnsyncedChanges):
        return _clear_unsynced(state, action)
    if isinstance(action, SetConnectivity):
        if state.is_online == action.is_online:
            return state
        return replace(state, is_online=action.is_online)
    raise TypeError(f"Unknown action: {action!r}")
