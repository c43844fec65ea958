"""
Composition root for the Streamlit app.

One TrackerRuntime per process: the local store (loaded from SQLite and
written through on every change) plus the sync coordinator running on its
own asyncio loop in a daemon thread. Script runs talk to the coordinator
through `run_coroutine_threadsafe`.
"""
from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
from concurrent.futures import Future
from typing import Any, Coroutine, Optional

import streamlit as st

from lstracker.actions import InitializeState, UpdateSettings
from lstracker.config import AppConfig, get_config, persist_remote_credentials
from lstracker.db import ensure_schema, get_conn
from lstracker.logger import configure_logging
from lstracker.models import AppState, Settings
from lstracker.persistence import LocalStateStorage, attach_persistence
from lstracker.remote import RemoteStore
from lstracker.rest_remote import SupabaseRestStore
from lstracker.services.extraction import Extractor
from lstracker.store import Store
from lstracker.sync import SyncCoordinator

logger = logging.getLogger(__name__)


def make_remote(settings: Settings, config: AppConfig) -> Optional[RemoteStore]:
    if not settings.has_remote:
        return None
    return SupabaseRestStore(
        settings.supabase_url,
        settings.supabase_key,
        timeout=config.request_timeout,
        poll_interval=config.poll_interval,
    )


def load_initial_state(storage: LocalStateStorage, config: AppConfig) -> AppState:
    base = Settings(supabase_url=config.supabase_url, supabase_key=config.supabase_key)
    state = storage.load(base_settings=base)
    if state is None:
        logger.info("No stored state: starting with defaults")
        return AppState(settings=base)
    return state


class TrackerRuntime:
    def __init__(
        self,
        config: AppConfig,
        storage: LocalStateStorage,
        store: Store,
        coordinator: SyncCoordinator,
        *,
        extractor: Optional[Extractor] = None,
    ):
        self.config = config
        self.storage = storage
        self.store = store
        self.coordinator = coordinator
        self.extractor = extractor
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self.loop.run_forever, name="ls-tracker-sync", daemon=True)

    def start(self) -> Future:
        if not self._thread.is_alive():
            self._thread.start()
        return self.submit(self.coordinator.start())

    def submit(self, coro: Coroutine) -> Future:
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def run(self, coro: Coroutine, *, timeout: Optional[float] = None) -> Any:
        """Block the calling script until the coroutine finishes on the sync loop."""
        return self.submit(coro).result(timeout=timeout)

    @property
    def _wait(self) -> float:
        # Pull + push is several requests; give the whole operation room.
        return self.config.request_timeout * 6

    def request_sync(self) -> bool:
        return self.run(self.coordinator.request_sync(), timeout=self._wait)

    def update_credentials(self, supabase_url: str, supabase_key: str, *, persist: bool = True) -> None:
        """Store new connection details and reconnect with them."""
        supabase_url, supabase_key = supabase_url.strip(), supabase_key.strip()
        settings = self.store.state.settings.with_credentials(
            supabase_url=supabase_url,
            supabase_key=supabase_key,
            scan_api_key=self.store.state.settings.scan_api_key,
        )
        self.store.dispatch(UpdateSettings(settings))
        if persist:
            persist_remote_credentials(self.config.data_dir, supabase_url=supabase_url, supabase_key=supabase_key)
        remote = make_remote(settings, self.config)
        if remote is None:
            self.coordinator.remote = None
        self.run(self.coordinator.reconnect(remote), timeout=self._wait)

    def shutdown(self) -> None:
        if self._thread.is_alive():
            self.run(self.coordinator.stop(), timeout=self._wait)
            self.loop.call_soon_threadsafe(self.loop.stop)


def build_runtime(
    config: AppConfig,
    conn: sqlite3.Connection,
    *,
    remote: Optional[RemoteStore] = None,
    extractor: Optional[Extractor] = None,
) -> TrackerRuntime:
    ensure_schema(conn)
    storage = LocalStateStorage(conn)
    store = Store()
    attach_persistence(store, storage)
    store.dispatch(InitializeState(load_initial_state(storage, config)))

    if remote is None:
        remote = make_remote(store.state.settings, config)
    coordinator = SyncCoordinator(
        store,
        remote,
        reprobe_interval=config.reprobe_interval,
        auto_sync_interval=config.auto_sync_interval,
    )
    return TrackerRuntime(config, storage, store, coordinator, extractor=extractor)


@st.cache_resource
def get_runtime() -> TrackerRuntime:
    config = get_config()
    configure_logging(config.log_dir, config.log_level)
    runtime = build_runtime(config, get_conn(config.db_path))
    runtime.start()
    logger.info("Runtime started (data dir: %s, remote configured: %s)", config.data_dir, runtime.coordinator.is_configured)
    return runtime
