from __future__ import annotations

from conftest import make_production
from lstracker.actions import AddDeliveryEntry, AddProductionEntries, InitializeState, SetConnectivity, UpdateSettings
from lstracker.db import ensure_schema, connect, x
from lstracker.models import AppState, DeliveryEntry, Settings, TakaRange
from lstracker.persistence import STATE_KEY, LocalStateStorage, attach_persistence, state_to_blob
from lstracker.store import Store


def _storage(tmp_path) -> LocalStateStorage:
    conn = connect(tmp_path / "app.db")
    ensure_schema(conn)
    return LocalStateStorage(conn)


def test_load_returns_none_when_empty(tmp_path):
    assert _storage(tmp_path).load() is None


def test_round_trip_reproduces_collections_and_settings(tmp_path):
    storage = _storage(tmp_path)
    store = Store()
    attach_persistence(store, storage)
    settings = Settings(
        supabase_url="https://x.supabase.co",
        supabase_key="secret",
        production_tables=2,
        list_taka_ranges={"list1": TakaRange("1", "99"), "list2": TakaRange(), "list3": TakaRange()},
    )
    store.dispatch(InitializeState(AppState(settings=settings)))
    store.dispatch(AddProductionEntries((make_production("1"), make_production("2"))))
    d = DeliveryEntry.create(
        taka_number="1", party_name="P", lot_number="L", delivery_date="d", meter="100", machine_number="5", tp_number=2
    )
    store.dispatch(AddDeliveryEntry(d))

    loaded = storage.load()
    assert set(loaded.production_entries) == set(store.state.production_entries)
    assert set(loaded.delivery_entries) == {d}
    assert loaded.settings.to_record() == settings.to_record()
    assert loaded.unsynced_changes == store.state.unsynced_changes


def test_credentials_are_not_written(tmp_path):
    storage = _storage(tmp_path)
    state = AppState(settings=Settings(supabase_url="u", supabase_key="k"), is_initialized=True)
    storage.save(state)
    assert "supabaseKey" not in state_to_blob(state)["settings"]

    loaded = storage.load(base_settings=Settings(supabase_url="from-config", supabase_key="key2"))
    assert loaded.settings.supabase_url == "from-config"
    assert loaded.settings.supabase_key == "key2"


def test_corrupt_blob_loads_as_none(tmp_path):
    storage = _storage(tmp_path)
    x(storage.conn, "INSERT INTO app_state(key, payload, updated_at) VALUES (?, ?, ?)", (STATE_KEY, "{not json", "t"))
    assert storage.load() is None


def test_connectivity_changes_are_not_persisted(tmp_path):
    storage = _storage(tmp_path)
    store = Store()
    store.dispatch(InitializeState(AppState()))
    attach_persistence(store, storage)
    store.dispatch(SetConnectivity(True))
    assert storage.load() is None

    store.dispatch(UpdateSettings(Settings(production_tables=3)))
    assert storage.load().settings.production_tables == 3


def test_nothing_saved_before_initialization(tmp_path):
    storage = _storage(tmp_path)
    store = Store()
    attach_persistence(store, storage)
    store.dispatch(AddProductionEntries((make_production("1"),)))
    assert storage.load() is None


def test_clear_removes_blob(tmp_path):
    storage = _storage(tmp_path)
    storage.save(AppState(is_initialized=True))
    storage.clear()
    assert storage.load() is None
