from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest
import requests

from lstracker import rest_remote
from lstracker.remote import (
    DELIVERY_TABLE,
    PRODUCTION_TABLE,
    SETTINGS_TABLE,
    ChangeType,
    InMemoryRemoteStore,
    RelationNotFound,
    RemoteStoreError,
    RemoteUnavailable,
)
from lstracker.rest_remote import SupabaseRestStore, diff_snapshots
from lstracker.utils import camel_to_snake, from_remote_record, snake_to_camel, to_remote_record


def _response(status: int = 200, body=None) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = [] if body is None else body
    return resp


def _rest(*responses) -> tuple[SupabaseRestStore, MagicMock]:
    session = MagicMock()
    session.headers = {}
    session.request.side_effect = list(responses)
    return SupabaseRestStore("https://demo.supabase.co/", "anon-key", session=session), session


@pytest.mark.parametrize(
    "camel,snake",
    [("takaNumber", "taka_number"), ("tpNumber", "tp_number"), ("id", "id"), ("deliveryDate", "delivery_date")],
)
def test_field_name_translation(camel, snake):
    assert camel_to_snake(camel) == snake
    assert snake_to_camel(snake) == camel


def test_translation_leaves_nested_payload_alone():
    record = {"id": 1, "settings": {"listTakaRanges": {}}}
    assert to_remote_record(record) == record
    assert from_remote_record({"party_name": "P"}) == {"partyName": "P"}


def test_in_memory_upsert_and_pull_translate(remote):
    async def scenario():
        await remote.upsert(PRODUCTION_TABLE, [{"takaNumber": "1", "meter": "100"}], "taka_number")
        await remote.upsert(PRODUCTION_TABLE, [{"takaNumber": "1", "meter": "101"}], "taka_number")
        return await remote.pull_all(PRODUCTION_TABLE)

    assert asyncio.run(scenario()) == [{"takaNumber": "1", "meter": "101"}]
    assert remote.rows(PRODUCTION_TABLE) == [{"taka_number": "1", "meter": "101"}]


def test_in_memory_subscription_filters_rows(remote):
    async def scenario():
        stream = await remote.subscribe(SETTINGS_TABLE, ("id", 1))
        remote.apply_external(SETTINGS_TABLE, ChangeType.INSERT, {"id": 2, "settings": {}})
        remote.apply_external(SETTINGS_TABLE, ChangeType.INSERT, {"id": 1, "settings": {"productionTables": 2}})
        return await stream.__anext__()

    change = asyncio.run(scenario())
    assert change.table == SETTINGS_TABLE
    assert change.event_type is ChangeType.INSERT
    assert change.record == {"id": 1, "settings": {"productionTables": 2}}


def test_in_memory_missing_table_and_failure_injection():
    remote = InMemoryRemoteStore(tables=(DELIVERY_TABLE,))
    with pytest.raises(RelationNotFound):
        asyncio.run(remote.probe(PRODUCTION_TABLE))

    remote.fail_on("delete", "*", RemoteUnavailable("down"))
    with pytest.raises(RemoteUnavailable):
        asyncio.run(remote.delete(DELIVERY_TABLE, ["x"], "id"))
    remote.heal()
    asyncio.run(remote.delete(DELIVERY_TABLE, ["x"], "id"))


def test_empty_writes_skip_the_store(remote):
    asyncio.run(remote.upsert(PRODUCTION_TABLE, [], "taka_number"))
    asyncio.run(remote.delete(PRODUCTION_TABLE, [], "taka_number"))
    assert remote.calls == []


def test_rest_requires_credentials():
    with pytest.raises(ValueError):
        SupabaseRestStore("", "key")


def test_rest_sets_auth_headers():
    store, session = _rest()
    assert store.base_url == "https://demo.supabase.co/rest/v1"
    assert session.headers["apikey"] == "anon-key"
    assert session.headers["Authorization"] == "Bearer anon-key"


@pytest.mark.parametrize(
    "status,body",
    [(404, {"code": "42P01", "message": "relation does not exist"}), (404, {"code": "PGRST205"}), (404, {})],
)
def test_rest_probe_missing_relation(status, body):
    store, _ = _rest(_response(status, body))
    with pytest.raises(RelationNotFound) as err:
        asyncio.run(store.probe(PRODUCTION_TABLE))
    assert err.value.table == PRODUCTION_TABLE


def test_rest_probe_is_count_only():
    store, session = _rest(_response(200, []))
    asyncio.run(store.probe(PRODUCTION_TABLE))
    args, kwargs = session.request.call_args
    assert args == ("GET", "https://demo.supabase.co/rest/v1/production_entries")
    assert kwargs["params"]["limit"] == "0"
    assert kwargs["headers"] == {"Prefer": "count=exact"}


def test_rest_transport_errors_are_unavailable():
    store, session = _rest()
    session.request.side_effect = requests.ConnectionError("no route")
    with pytest.raises(RemoteUnavailable):
        asyncio.run(store.probe(PRODUCTION_TABLE))

    store, _ = _rest(_response(503, {}))
    with pytest.raises(RemoteUnavailable):
        asyncio.run(store.probe(PRODUCTION_TABLE))


def test_rest_other_http_errors():
    store, _ = _rest(_response(409, {"code": "23505", "message": "duplicate key"}))
    with pytest.raises(RemoteStoreError) as err:
        asyncio.run(store.upsert(DELIVERY_TABLE, [{"id": "1"}], "id"))
    assert not isinstance(err.value, (RelationNotFound, RemoteUnavailable))
    assert "23505" in str(err.value)


def test_rest_upsert_serializes_and_merges():
    store, session = _rest(_response(201))
    asyncio.run(store.upsert(PRODUCTION_TABLE, [{"takaNumber": "1", "machineNumber": "2"}], "taka_number"))
    args, kwargs = session.request.call_args
    assert args[0] == "POST"
    assert kwargs["params"] == {"on_conflict": "taka_number"}
    assert kwargs["json"] == [{"taka_number": "1", "machine_number": "2"}]
    assert kwargs["headers"]["Prefer"] == "resolution=merge-duplicates,return=minimal"


def test_rest_delete_uses_quoted_in_filter():
    store, session = _rest(_response(204))
    asyncio.run(store.delete(DELIVERY_TABLE, ["a-1", 'b"2'], "id"))
    _, kwargs = session.request.call_args
    assert kwargs["params"] == {"id": 'in.("a-1","b\\"2")'}


def test_rest_select_pages_and_deserializes(monkeypatch):
    monkeypatch.setattr(rest_remote, "PAGE_SIZE", 2)
    store, session = _rest(
        _response(200, [{"taka_number": "1"}, {"taka_number": "2"}]),
        _response(200, [{"taka_number": "3"}]),
    )
    rows = asyncio.run(store.pull_all(PRODUCTION_TABLE))
    assert rows == [{"takaNumber": "1"}, {"takaNumber": "2"}, {"takaNumber": "3"}]
    offsets = [c.kwargs["params"]["offset"] for c in session.request.call_args_list]
    assert offsets == [0, 2]


def test_diff_snapshots():
    before = {"1": {"id": "1", "v": 1}, "2": {"id": "2", "v": 1}}
    after = {"1": {"id": "1", "v": 2}, "3": {"id": "3", "v": 1}}
    changes = diff_snapshots(before, after, "id")
    assert (ChangeType.UPDATE, {"id": "1", "v": 2}) in changes
    assert (ChangeType.INSERT, {"id": "3", "v": 1}) in changes
    assert (ChangeType.DELETE, {"id": "2"}) in changes
    assert len(changes) == 3
