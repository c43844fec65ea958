"""
Sync coordinator: connectivity state machine between the local store and the
remote store.

  UNINITIALIZED -> INITIALIZING -> {ONLINE, OFFLINE} x {IDLE, SYNCING}

- connect: probe -> full pull merged with the pending local queue -> subscribe
  to production / delivery / settings changes -> push if anything is pending.
- sync (push): production upserts, production deletes, delivery upserts,
  delivery deletes, settings. The queue is cleared only after every step
  succeeded; nothing already pushed is rolled back on failure.
- remote changes are applied as remote-origin actions (never re-queued).
- while OFFLINE a background task re-probes; coming back online reconnects.

All remote failures stop here: they become Notices and state transitions,
never exceptions for the caller.
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import replace
from enum import Enum
from typing import Optional

from lstracker.actions import (
    AddDeliveryEntries,
    AddProductionEntries,
    ClearUnsyncedChanges,
    DeleteDeliveryEntry,
    DeleteProductionEntry,
    SetConnectivity,
    SetDeliveryEntries,
    SetProductionEntries,
    UpdateDeliveryEntry,
    UpdateProductionEntry,
    UpdateSettings,
)
from lstracker.errors import (
    ConnectivityError,
    ConnectivitySetupError,
    DeliveryConflictError,
    Notice,
    SyncPushError,
    TrackerError,
)
from lstracker.models import DeliveryEntry, ProductionEntry, Settings, UnsyncedChanges
from lstracker.remote import (
    DELIVERY_TABLE,
    KEY_COLUMNS,
    PRODUCTION_TABLE,
    SETTINGS_ROW_ID,
    SETTINGS_TABLE,
    ChangeType,
    RelationNotFound,
    RemoteChange,
    RemoteStore,
    RemoteStoreError,
    RemoteUnavailable,
)
from lstracker.store import Store
from lstracker.utils import iso_now

logger = logging.getLogger(__name__)

CHANNELS = (
    (PRODUCTION_TABLE, None),
    (DELIVERY_TABLE, None),
    (SETTINGS_TABLE, ("id", SETTINGS_ROW_ID)),
)


class ConnectionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    ONLINE = "online"
    OFFLINE = "offline"


class SyncActivity(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"


def _records(entries, key) -> list[dict]:
    # Last value per key wins: one upsert statement cannot touch a row twice.
    latest = {}
    for e in entries:
        latest[key(e)] = e
    return [e.to_record() for e in latest.values()]


def _parse_all(rows: list[dict], factory, table: str) -> list:
    out = []
    for r in rows:
        try:
            out.append(factory(r))
        except ValueError:
            logger.warning("Skipping malformed %s row: %r", table, r)
    return out


class SyncCoordinator:
    def __init__(
        self,
        store: Store,
        remote: Optional[RemoteStore],
        *,
        reprobe_interval: float = 30.0,
        auto_sync_interval: Optional[float] = None,
        max_notices: int = 50,
    ):
        self.store = store
        self.remote = remote
        self.reprobe_interval = reprobe_interval
        self.auto_sync_interval = auto_sync_interval

        self.connection = ConnectionState.UNINITIALIZED
        self.activity = SyncActivity.IDLE
        self.setup_required = False
        self.last_error: Optional[TrackerError] = None
        self.last_synced_at: Optional[str] = None
        self.notices: deque[Notice] = deque(maxlen=max_notices)

        self._consumers: list[asyncio.Task] = []
        self._background: list[asyncio.Task] = []
        self._wake: Optional[asyncio.Event] = None

    # -- status ----------------------------------------------------------------

    @property
    def is_online(self) -> bool:
        return self.connection is ConnectionState.ONLINE

    @property
    def is_syncing(self) -> bool:
        return self.activity is SyncActivity.SYNCING

    @property
    def is_configured(self) -> bool:
        return self.remote is not None

    def drain_notices(self) -> list[Notice]:
        out = list(self.notices)
        self.notices.clear()
        return out

    # -- lifecycle ---------------------------------------------------------------

    async def start(self) -> ConnectionState:
        if not self.store.state.is_initialized:
            raise RuntimeError("Local state must be initialized before sync starts.")
        self.connection = ConnectionState.INITIALIZING
        self._wake = asyncio.Event()
        if self.remote is None:
            logger.info("No remote credentials: working offline")
            self._set_offline()
            return self.connection

        await self._connect()
        self._start_background()
        return self.connection

    async def stop(self) -> None:
        tasks = self._consumers + self._background
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._consumers, self._background = [], []
        if self.remote is not None:
            await self.remote.close()

    async def reconnect(self, remote: Optional[RemoteStore] = None) -> ConnectionState:
        """Manual retry, or switch to new credentials when `remote` is given."""
        await self._stop_consumers()
        if remote is not None and remote is not self.remote:
            if self.remote is not None:
                await self.remote.close()
            self.remote = remote
        self.setup_required = False
        if self._wake is None:
            self._wake = asyncio.Event()
        if self.remote is None:
            self._set_offline()
            return self.connection
        self.connection = ConnectionState.INITIALIZING
        await self._connect()
        self._start_background()
        return self.connection

    def notify_offline(self) -> None:
        """Platform reported loss of network."""
        if self.connection is not ConnectionState.OFFLINE:
            self._report(ConnectivityError("Network connection lost. Changes are kept locally."), level="warning")
        self._set_offline()

    def notify_online(self) -> None:
        """Platform reported network is back: re-probe now instead of waiting."""
        if self._wake is not None:
            self._wake.set()

    # -- connect / pull ---------------------------------------------------------------

    async def _probe(self, *, report: bool = True) -> bool:
        try:
            await self.remote.probe(PRODUCTION_TABLE)
        except RelationNotFound as e:
            self.setup_required = True
            self._report(ConnectivitySetupError(e.table))
            self._set_offline()
            return False
        except RemoteStoreError as e:
            if report:
                self._report(ConnectivityError(f"Could not reach the remote database: {e}"))
            else:
                logger.debug("Re-probe failed: %s", e)
            self._set_offline()
            return False
        self.setup_required = False
        return True

    async def _connect(self, *, report: bool = True) -> bool:
        if not await self._probe(report=report):
            return False
        self._set_online()
        try:
            await self._initial_load()
            await self._subscribe_all()
        except RemoteStoreError as e:
            self._report(ConnectivityError(f"Initial sync failed: {e}"))
            self._set_offline()
            return False

        if not self.store.state.unsynced_changes.is_empty:
            await self.sync()
        return self.is_online

    async def _initial_load(self) -> None:
        self.activity = SyncActivity.SYNCING
        try:
            settings_rows = await self.remote.pull_all(SETTINGS_TABLE)
            production_rows = await self.remote.pull_all(PRODUCTION_TABLE)
            delivery_rows = await self.remote.pull_all(DELIVERY_TABLE)
        finally:
            self.activity = SyncActivity.IDLE

        production = _parse_all(production_rows, ProductionEntry.from_record, PRODUCTION_TABLE)
        deliveries = _parse_all(delivery_rows, DeliveryEntry.from_record, DELIVERY_TABLE)
        remote_settings = next(
            (r.get("settings") for r in settings_rows if str(r.get("id")) == str(SETTINGS_ROW_ID)), None
        )

        with self.store.locked():
            pending = self.store.state.unsynced_changes
            self.store.dispatch(SetProductionEntries(tuple(production)))
            self.store.dispatch(SetDeliveryEntries(tuple(deliveries)))
            # Entity queues are rebuilt by the replay; dirty settings stay dirty.
            self.store.dispatch(ClearUnsyncedChanges(pushed=replace(pending, settings_dirty=False)))
            if isinstance(remote_settings, dict) and not pending.settings_dirty:
                merged = Settings.from_record(remote_settings, base=self.store.state.settings)
                self.store.dispatch(UpdateSettings(merged, remote=True))
            self._replay(pending)

        logger.info(
            "Pulled %d production / %d delivery entries; %d pending change(s) replayed",
            len(production), len(deliveries), pending.count,
        )

    def _replay(self, pending: UnsyncedChanges) -> None:
        """Re-apply offline edits on top of the pulled snapshot (they are queued again)."""
        p, d = pending.production, pending.delivery
        if p.add:
            self.store.dispatch(AddProductionEntries(tuple(p.add)))
        for e in p.update:
            self.store.dispatch(UpdateProductionEntry(e))
        for k in p.delete:
            self.store.dispatch(DeleteProductionEntry(k))
        delivered = {e.taka_number: e.id for e in self.store.state.delivery_entries}
        adds = []
        for e in d.add:
            if delivered.get(e.taka_number, e.id) != e.id:
                self._report(DeliveryConflictError(e.taka_number), level="warning")
                continue
            delivered[e.taka_number] = e.id
            adds.append(e)
        if adds:
            self.store.dispatch(AddDeliveryEntries(tuple(adds)))
        for e in d.update:
            self.store.dispatch(UpdateDeliveryEntry(e))
        for k in d.delete:
            self.store.dispatch(DeleteDeliveryEntry(k))

    # -- push -----------------------------------------------------------------------

    async def request_sync(self) -> bool:
        """User or timer asked for a sync. Offline: try to reconnect first."""
        if self.remote is None:
            self._report(ConnectivityError("Remote database is not configured."), level="warning")
            return False
        if self.connection is ConnectionState.OFFLINE:
            if self.setup_required:
                self._report(ConnectivitySetupError(PRODUCTION_TABLE))
                return False
            return await self._connect()
        return await self.sync()

    def _push_steps(self, snapshot: UnsyncedChanges, settings_record: dict) -> list[tuple]:
        p, d = snapshot.production, snapshot.delivery
        steps = [
            ("Upload production entries", self.remote.upsert, PRODUCTION_TABLE,
             _records(p.add + p.update, lambda e: e.taka_number), KEY_COLUMNS[PRODUCTION_TABLE]),
            ("Delete production entries", self.remote.delete, PRODUCTION_TABLE,
             list(p.delete), KEY_COLUMNS[PRODUCTION_TABLE]),
            ("Upload delivery entries", self.remote.upsert, DELIVERY_TABLE,
             _records(d.add + d.update, lambda e: e.id), KEY_COLUMNS[DELIVERY_TABLE]),
            ("Delete delivery entries", self.remote.delete, DELIVERY_TABLE,
             list(d.delete), KEY_COLUMNS[DELIVERY_TABLE]),
        ]
        if snapshot.settings_dirty:
            row = {"id": SETTINGS_ROW_ID, "settings": settings_record}
            steps.append(("Save settings", self.remote.upsert, SETTINGS_TABLE, [row], KEY_COLUMNS[SETTINGS_TABLE]))
        return steps

    async def sync(self) -> bool:
        if self.remote is None or not self.is_online:
            return False
        if self.is_syncing:
            logger.debug("Sync already running")
            return False

        with self.store.locked():
            snapshot = self.store.state.unsynced_changes
            settings_record = self.store.state.settings.to_record()
        if snapshot.is_empty:
            return True

        self.activity = SyncActivity.SYNCING
        logger.info("Pushing %d pending change(s)", snapshot.count)
        try:
            for operation, call, table, payload, key in self._push_steps(snapshot, settings_record):
                try:
                    await call(table, payload, key)
                except RemoteUnavailable as e:
                    self._report(SyncPushError(operation, str(e)))
                    self._set_offline()
                    return False
                except RemoteStoreError as e:
                    self._report(SyncPushError(operation, str(e)))
                    return False
        finally:
            self.activity = SyncActivity.IDLE

        self.store.dispatch(ClearUnsyncedChanges(pushed=snapshot, settings_record=settings_record))
        self.last_synced_at = iso_now()
        logger.info("Sync complete")
        return True

    # -- remote changes -----------------------------------------------------------------

    async def _subscribe_all(self) -> None:
        await self._stop_consumers()
        for table, row_filter in CHANNELS:
            stream = await self.remote.subscribe(table, row_filter)
            self._consumers.append(asyncio.create_task(self._consume(table, stream), name=f"sync:{table}"))

    async def _consume(self, table: str, stream) -> None:
        try:
            async for change in stream:
                self.apply_remote_change(change)
        except RemoteStoreError as e:
            logger.warning("Change feed for %s failed: %s", table, e)
            self._report(ConnectivityError(f"Live updates stopped: {e}"), level="warning")
            self._set_offline()

    def apply_remote_change(self, change: RemoteChange) -> None:
        try:
            if change.table == PRODUCTION_TABLE:
                self._apply_production(change)
            elif change.table == DELIVERY_TABLE:
                self._apply_delivery(change)
            elif change.table == SETTINGS_TABLE:
                self._apply_settings(change)
        except ValueError:
            logger.warning("Ignoring malformed %s change: %r", change.table, change.record)

    def _apply_production(self, change: RemoteChange) -> None:
        if change.event_type is ChangeType.DELETE:
            taka = str(change.record.get("takaNumber") or "")
            if taka:
                self.store.dispatch(DeleteProductionEntry(taka, remote=True))
            return
        entry = ProductionEntry.from_record(change.record)
        with self.store.locked():
            existing = next((e for e in self.store.state.production_entries if e.taka_number == entry.taka_number), None)
            if existing is None:
                self.store.dispatch(AddProductionEntries((entry,), remote=True))
            elif existing != entry:
                self.store.dispatch(UpdateProductionEntry(entry, remote=True))

    def _apply_delivery(self, change: RemoteChange) -> None:
        if change.event_type is ChangeType.DELETE:
            entry_id = str(change.record.get("id") or "")
            if entry_id:
                self.store.dispatch(DeleteDeliveryEntry(entry_id, remote=True))
            return
        entry = DeliveryEntry.from_record(change.record)
        with self.store.locked():
            state = self.store.state
            existing = next((d for d in state.delivery_entries if d.id == entry.id), None)
            if existing is None:
                clash = next((d for d in state.delivery_entries if d.taka_number == entry.taka_number), None)
                if clash is not None:
                    if all(d.id != clash.id for d in state.unsynced_changes.delivery.add):
                        logger.warning(
                            "Remote delivery %s ignored: taka %s already delivered as %s",
                            entry.id, entry.taka_number, clash.id,
                        )
                        return
                    # The other device got there first: its delivery replaces our unpushed one.
                    self.store.dispatch(DeleteDeliveryEntry(clash.id, remote=True))
                    self._report(DeliveryConflictError(entry.taka_number), level="warning")
                self.store.dispatch(AddDeliveryEntries((entry,), remote=True))
            elif existing != entry:
                self.store.dispatch(UpdateDeliveryEntry(entry, remote=True))

    def _apply_settings(self, change: RemoteChange) -> None:
        payload = change.record.get("settings")
        if change.event_type is ChangeType.DELETE or not isinstance(payload, dict):
            return
        with self.store.locked():
            state = self.store.state
            if state.unsynced_changes.settings_dirty:
                # Local edit not pushed yet: it wins on the next push.
                logger.info("Remote settings update ignored: local settings pending")
                return
            merged = Settings.from_record(payload, base=state.settings)
            if merged != state.settings:
                self.store.dispatch(UpdateSettings(merged, remote=True))

    # -- background -----------------------------------------------------------------------

    def _start_background(self) -> None:
        if self._background:
            return
        self._background.append(asyncio.create_task(self._reprobe_loop(), name="sync:reprobe"))
        if self.auto_sync_interval:
            self._background.append(asyncio.create_task(self._auto_sync_loop(), name="sync:auto"))

    async def _reprobe_loop(self) -> None:
        while True:
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.reprobe_interval)
            except asyncio.TimeoutError:
                pass
            self._wake.clear()
            if self.connection is ConnectionState.OFFLINE and self.remote is not None and not self.setup_required:
                if await self._connect(report=False):
                    self.notices.append(Notice("Back Online", "Connection to the remote database restored.", "success"))

    async def _auto_sync_loop(self) -> None:
        while True:
            await asyncio.sleep(self.auto_sync_interval)
            if self.is_online and not self.is_syncing and not self.store.state.unsynced_changes.is_empty:
                await self.sync()

    async def _stop_consumers(self) -> None:
        current = asyncio.current_task()
        tasks = [t for t in self._consumers if t is not current]
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._consumers = []

    # -- transitions ---------------------------------------------------------------------------

    def _set_online(self) -> None:
        if self.connection is not ConnectionState.ONLINE:
            logger.info("Sync state: online")
        self.connection = ConnectionState.ONLINE
        self.last_error = None
        self.store.dispatch(SetConnectivity(True))

    def _set_offline(self) -> None:
        if self.connection is not ConnectionState.OFFLINE:
            logger.info("Sync state: offline")
        self.connection = ConnectionState.OFFLINE
        self.store.dispatch(SetConnectivity(False))
        current = asyncio.current_task() if self._loop_running() else None
        for t in self._consumers:
            if t is not current:
                t.cancel()
        self._consumers = [t for t in self._consumers if t is current]

    @staticmethod
    def _loop_running() -> bool:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return False
        return True

    def _report(self, err: TrackerError, *, level: str = "error") -> None:
        self.last_error = err
        self.notices.append(Notice.from_error(err, level=level))
        log = logger.error if level == "error" else logger.warning
        log("%s: %s", err.title, err.description)
