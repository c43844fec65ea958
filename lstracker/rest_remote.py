"""
Supabase (PostgREST) remote store over plain HTTPS with `requests`.

Change notifications are produced by polling: each subscription keeps the
last snapshot of its table (keyed by the key column) and emits
INSERT / UPDATE / DELETE for the differences on every poll.
"""
from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Optional

import requests

from lstracker.remote import (
    KEY_COLUMNS,
    ChangeType,
    RelationNotFound,
    RemoteStore,
    RemoteStoreError,
    RemoteUnavailable,
    RowFilter,
)

logger = logging.getLogger(__name__)

PAGE_SIZE = 1000
# PostgREST / Postgres codes for "relation does not exist".
MISSING_RELATION_CODES = {"42P01", "PGRST205", "PGRST106"}


def _in_filter(keys: list[str]) -> str:
    quoted = ",".join('"{}"'.format(str(k).replace('"', '\\"')) for k in keys)
    return f"in.({quoted})"


class SupabaseRestStore(RemoteStore):
    def __init__(
        self,
        url: str,
        key: str,
        *,
        timeout: float = 10.0,
        poll_interval: float = 5.0,
        session: Optional[requests.Session] = None,
    ):
        if not url or not key:
            raise ValueError("Supabase URL and key are required.")
        self.base_url = url.rstrip("/") + "/rest/v1"
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "apikey": key,
                "Authorization": f"Bearer {key}",
                "Content-Type": "application/json",
            }
        )
        self._closed = False

    # -- HTTP ----------------------------------------------------------------

    def _request(self, method: str, table: str, *, params=None, json=None, headers=None) -> requests.Response:
        try:
            resp = self.session.request(
                method,
                f"{self.base_url}/{table}",
                params=params,
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise RemoteUnavailable(str(e)) from e
        except requests.RequestException as e:
            raise RemoteStoreError(str(e)) from e

        if resp.status_code >= 400:
            self._raise_for(resp, table)
        return resp

    @staticmethod
    def _raise_for(resp: requests.Response, table: str) -> None:
        try:
            body = resp.json()
        except ValueError:
            body = {}
        code = str(body.get("code", "")) if isinstance(body, dict) else ""
        message = body.get("message", "") if isinstance(body, dict) else ""
        if code in MISSING_RELATION_CODES or (resp.status_code == 404 and not code):
            raise RelationNotFound(table)
        if resp.status_code in (502, 503, 504):
            raise RemoteUnavailable(f"HTTP {resp.status_code}")
        raise RemoteStoreError(f"HTTP {resp.status_code} {code} {message}".strip())

    # -- RemoteStore -----------------------------------------------------------

    def _probe(self, table: str) -> None:
        self._request(
            "GET",
            table,
            params={"select": "*", "limit": "0"},
            headers={"Prefer": "count=exact"},
        )

    def _select_all(self, table: str, row_filter: RowFilter) -> list[dict]:
        params = {"select": "*", "order": KEY_COLUMNS.get(table, "id") + ".asc"}
        if row_filter is not None:
            column, value = row_filter
            params[column] = f"eq.{value}"

        rows: list[dict] = []
        offset = 0
        while True:
            page = self._request("GET", table, params={**params, "limit": PAGE_SIZE, "offset": offset}).json()
            rows.extend(page)
            if len(page) < PAGE_SIZE:
                return rows
            offset += PAGE_SIZE

    def _upsert_rows(self, table: str, rows: list[dict], conflict_key: str) -> None:
        self._request(
            "POST",
            table,
            params={"on_conflict": conflict_key},
            json=rows,
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )
        logger.debug("Upserted %d row(s) into %s", len(rows), table)

    def _delete_keys(self, table: str, keys: list[str], key_column: str) -> None:
        self._request("DELETE", table, params={key_column: _in_filter(keys)})
        logger.debug("Deleted %d row(s) from %s", len(keys), table)

    async def _open_changes(self, table: str, row_filter: RowFilter) -> AsyncIterator[tuple[ChangeType, dict]]:
        key = KEY_COLUMNS.get(table, "id")
        rows = await self._run(self._select_all, table, row_filter)
        baseline = {str(r.get(key)): r for r in rows}
        return self._poll(table, row_filter, key, baseline)

    async def _poll(self, table: str, row_filter: RowFilter, key: str, snapshot: dict) -> AsyncIterator[tuple[ChangeType, dict]]:
        while not self._closed:
            await asyncio.sleep(self.poll_interval)
            if self._closed:
                return
            rows = await self._run(self._select_all, table, row_filter)
            current = {str(r.get(key)): r for r in rows}
            for change in diff_snapshots(snapshot, current, key):
                yield change
            snapshot = current

    async def close(self) -> None:
        self._closed = True
        self.session.close()


def diff_snapshots(before: dict[str, dict], after: dict[str, dict], key: str) -> list[tuple[ChangeType, dict]]:
    changes: list[tuple[ChangeType, dict]] = []
    for k, row in after.items():
        if k not in before:
            changes.append((ChangeType.INSERT, row))
        elif before[k] != row:
            changes.append((ChangeType.UPDATE, row))
    for k, row in before.items():
        if k not in after:
            changes.append((ChangeType.DELETE, {key: row.get(key)}))
    return changes
