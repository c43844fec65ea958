"""
Remote store contract consumed by the sync coordinator.

Records cross this boundary in the app's camelCase shape; rows inside a
store are snake_case. The translation happens here, in exactly two places:
`_serialize` before any write and `_deserialize` after any read / change
event. Implementations only deal with snake_case rows.
"""
from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Optional

from lstracker.utils import from_remote_record, to_remote_record


PRODUCTION_TABLE = "production_entries"
DELIVERY_TABLE = "delivery_entries"
SETTINGS_TABLE = "app_settings"
SETTINGS_ROW_ID = 1

# Conflict / delete key column per table (snake_case, as stored).
KEY_COLUMNS = {
    PRODUCTION_TABLE: "taka_number",
    DELIVERY_TABLE: "id",
    SETTINGS_TABLE: "id",
}

RowFilter = Optional[tuple[str, Any]]


class RemoteStoreError(Exception):
    pass


class RelationNotFound(RemoteStoreError):
    """The table does not exist: the remote schema has not been set up."""

    def __init__(self, table: str):
        super().__init__(f"relation '{table}' does not exist")
        self.table = table


class RemoteUnavailable(RemoteStoreError):
    """Transport-level failure (network down, timeout, DNS...)."""


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class RemoteChange:
    table: str
    event_type: ChangeType
    record: dict  # camelCase; for DELETE at least the key field


def _serialize(record: dict) -> dict:
    return to_remote_record(record)


def _deserialize(row: dict) -> dict:
    return from_remote_record(row)


def _matches(row: dict, row_filter: RowFilter) -> bool:
    if row_filter is None:
        return True
    column, value = row_filter
    return str(row.get(column)) == str(value)


class RemoteStore(ABC):
    async def probe(self, table: str) -> None:
        """Count-only existence check. Raises RelationNotFound / RemoteStoreError."""
        await self._run(self._probe, table)

    async def pull_all(self, table: str) -> list[dict]:
        rows = await self._run(self._select_all, table, None)
        return [_deserialize(r) for r in rows]

    async def upsert(self, table: str, records: list[dict], conflict_key: str) -> None:
        if not records:
            return
        await self._run(self._upsert_rows, table, [_serialize(r) for r in records], conflict_key)

    async def delete(self, table: str, keys: list[str], key_column: str) -> None:
        if not keys:
            return
        await self._run(self._delete_keys, table, list(keys), key_column)

    async def subscribe(self, table: str, row_filter: RowFilter = None) -> AsyncIterator[RemoteChange]:
        """
        Complete the subscribe handshake, then return the change stream.
        Events are delivered in arrival order for this table only.
        """
        source = await self._open_changes(table, row_filter)
        return self._translate(table, source)

    async def _translate(self, table: str, source: AsyncIterator) -> AsyncIterator[RemoteChange]:
        async for event_type, row in source:
            yield RemoteChange(table=table, event_type=event_type, record=_deserialize(row))

    async def close(self) -> None:
        return None

    async def _run(self, fn, *args):
        # Blocking client calls run off the event loop.
        return await asyncio.to_thread(fn, *args)

    @abstractmethod
    def _probe(self, table: str) -> None: ...

    @abstractmethod
    def _select_all(self, table: str, row_filter: RowFilter) -> list[dict]: ...

    @abstractmethod
    def _upsert_rows(self, table: str, rows: list[dict], conflict_key: str) -> None: ...

    @abstractmethod
    def _delete_keys(self, table: str, keys: list[str], key_column: str) -> None: ...

    @abstractmethod
    async def _open_changes(self, table: str, row_filter: RowFilter) -> AsyncIterator[tuple[ChangeType, dict]]: ...


class InMemoryRemoteStore(RemoteStore):
    """
    In-process remote: tables of snake_case rows keyed by their key column,
    change fan-out to subscribers, and failure injection for tests/demo.
    """

    def __init__(self, *, tables: tuple[str, ...] = (PRODUCTION_TABLE, DELIVERY_TABLE, SETTINGS_TABLE)):
        self.tables: dict[str, dict[str, dict]] = {t: {} for t in tables}
        self.fail: dict[tuple[str, str], Exception] = {}
        self.calls: list[tuple[str, str]] = []
        self._subscribers: dict[str, list[tuple[asyncio.Queue, RowFilter]]] = {}

    # -- test helpers ------------------------------------------------------

    def fail_on(self, operation: str, table: str, error: Optional[Exception] = None) -> None:
        self.fail[(operation, table)] = error or RemoteStoreError(f"{operation} on {table} failed")

    def heal(self) -> None:
        self.fail.clear()

    def rows(self, table: str) -> list[dict]:
        return list(self._table(table).values())

    def apply_external(self, table: str, event_type: ChangeType, row: dict) -> None:
        """Simulate a write by another device (row is snake_case)."""
        key = str(row[KEY_COLUMNS[table]])
        data = self._table(table)
        if event_type is ChangeType.DELETE:
            data.pop(key, None)
        else:
            data[key] = dict(row)
        self._publish(table, event_type, dict(row))

    # -- RemoteStore -------------------------------------------------------

    async def _run(self, fn, *args):
        return fn(*args)

    def _check(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        err = self.fail.get((operation, table)) or self.fail.get((operation, "*"))
        if err is not None:
            raise err

    def _table(self, table: str) -> dict[str, dict]:
        if table not in self.tables:
            raise RelationNotFound(table)
        return self.tables[table]

    def _probe(self, table: str) -> None:
        self._check("probe", table)
        self._table(table)

    def _select_all(self, table: str, row_filter: RowFilter) -> list[dict]:
        self._check("select", table)
        return [dict(r) for r in self._table(table).values() if _matches(r, row_filter)]

    def _upsert_rows(self, table: str, rows: list[dict], conflict_key: str) -> None:
        self._check("upsert", table)
        data = self._table(table)
        for row in rows:
            key = str(row[conflict_key])
            event = ChangeType.UPDATE if key in data else ChangeType.INSERT
            data[key] = {**data.get(key, {}), **row}
            self._publish(table, event, data[key])

    def _delete_keys(self, table: str, keys: list[str], key_column: str) -> None:
        self._check("delete", table)
        data = self._table(table)
        for key in keys:
            row = data.pop(str(key), None)
            if row is not None:
                self._publish(table, ChangeType.DELETE, {key_column: row[key_column]})

    def _publish(self, table: str, event_type: ChangeType, row: dict) -> None:
        for queue, row_filter in self._subscribers.get(table, []):
            if event_type is ChangeType.DELETE or _matches(row, row_filter):
                queue.put_nowait((event_type, dict(row)))

    async def _open_changes(self, table: str, row_filter: RowFilter) -> AsyncIterator[tuple[ChangeType, dict]]:
        self._check("subscribe", table)
        self._table(table)
        queue: asyncio.Queue = asyncio.Queue()
        entry = (queue, row_filter)
        self._subscribers.setdefault(table, []).append(entry)
        return self._drain(table, entry)

    async def _drain(self, table: str, entry: tuple) -> AsyncIterator[tuple[ChangeType, dict]]:
        queue = entry[0]
        try:
            while True:
                item = await queue.get()
                if item is None:
                    return
                yield item
        finally:
            subs = self._subscribers.get(table, [])
            if entry in subs:
                subs.remove(entry)

    async def close(self) -> None:
        for subs in self._subscribers.values():
            for queue, _ in subs:
                queue.put_nowait(None)
