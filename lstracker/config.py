from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

import streamlit as st

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "settings.json"
SESSION_DATA_DIR = "ls_tracker_data_dir"

ENV_DATA_DIR = "LS_TRACKER_DATA_DIR"
ENV_SUPABASE_URL = "LS_TRACKER_SUPABASE_URL"
ENV_SUPABASE_KEY = "LS_TRACKER_SUPABASE_KEY"
ENV_LOG_LEVEL = "LS_TRACKER_LOG_LEVEL"
ENV_REPROBE_SECONDS = "LS_TRACKER_REPROBE_SECONDS"
ENV_POLL_SECONDS = "LS_TRACKER_POLL_SECONDS"
ENV_AUTO_SYNC_SECONDS = "LS_TRACKER_AUTO_SYNC_SECONDS"
ENV_REQUEST_TIMEOUT = "LS_TRACKER_REQUEST_TIMEOUT"


@dataclass(frozen=True)
class AppConfig:
    data_dir: Path
    db_path: Path
    log_dir: Path
    log_level: str = "INFO"
    supabase_url: str = ""
    supabase_key: str = ""
    reprobe_interval: float = 30.0
    poll_interval: float = 5.0
    auto_sync_interval: Optional[float] = None
    request_timeout: float = 10.0

    @property
    def has_remote(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


def _default_data_dir() -> Path:
    return Path.home() / ".ls_production_tracker"


def _load_persisted_settings(data_dir: Path) -> dict:
    cfg = data_dir / CONFIG_FILE_NAME
    if cfg.exists():
        try:
            data = json.loads(cfg.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable %s", cfg)
            return {}
        return data if isinstance(data, dict) else {}
    return {}


def _write_persisted_settings(data_dir: Path, updates: dict) -> None:
    data_dir.mkdir(parents=True, exist_ok=True)
    payload = {**_load_persisted_settings(data_dir), **updates}
    (data_dir / CONFIG_FILE_NAME).write_text(json.dumps(payload, indent=2), encoding="utf-8")


def _seconds(env: Mapping[str, str], name: str, default: Optional[float]) -> Optional[float]:
    raw = env.get(name)
    if raw in (None, ""):
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number of seconds, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive.")
    return value


def load_config(
    env: Optional[Mapping[str, str]] = None,
    *,
    data_dir: Optional[str] = None,
    default_dir: Optional[Path] = None,
) -> AppConfig:
    # Priority order for the data folder:
    # 1) Explicit argument (session state, set via the Settings page)
    # 2) Environment variable
    # 3) Persisted settings in default folder
    # 4) Default folder
    env = os.environ if env is None else env
    default_dir = default_dir or _default_data_dir()
    if data_dir:
        resolved = Path(data_dir).expanduser().resolve()
    elif env.get(ENV_DATA_DIR):
        resolved = Path(env[ENV_DATA_DIR]).expanduser().resolve()
    else:
        persisted = _load_persisted_settings(default_dir)
        resolved = Path(persisted.get("data_dir", default_dir)).expanduser().resolve()

    resolved.mkdir(parents=True, exist_ok=True)
    # Credentials: environment first, then settings.json in the data folder.
    stored = _load_persisted_settings(resolved)
    return AppConfig(
        data_dir=resolved,
        db_path=resolved / "app.db",
        log_dir=resolved / "logs",
        log_level=(env.get(ENV_LOG_LEVEL) or "INFO").upper(),
        supabase_url=env.get(ENV_SUPABASE_URL) or stored.get("supabase_url", ""),
        supabase_key=env.get(ENV_SUPABASE_KEY) or stored.get("supabase_key", ""),
        reprobe_interval=_seconds(env, ENV_REPROBE_SECONDS, 30.0),
        poll_interval=_seconds(env, ENV_POLL_SECONDS, 5.0),
        auto_sync_interval=_seconds(env, ENV_AUTO_SYNC_SECONDS, None),
        request_timeout=_seconds(env, ENV_REQUEST_TIMEOUT, 10.0),
    )


def persist_data_dir(data_dir_str: str, *, default_dir: Optional[Path] = None) -> None:
    data_dir = Path(data_dir_str).expanduser().resolve()
    data_dir.mkdir(parents=True, exist_ok=True)
    _write_persisted_settings(default_dir or _default_data_dir(), {"data_dir": str(data_dir)})

    # Update session for immediate effect
    st.session_state[SESSION_DATA_DIR] = str(data_dir)


def persist_remote_credentials(data_dir: Path, *, supabase_url: str, supabase_key: str) -> None:
    _write_persisted_settings(
        Path(data_dir),
        {"supabase_url": supabase_url.strip(), "supabase_key": supabase_key.strip()},
    )


@st.cache_resource
def get_config() -> AppConfig:
    return load_config(data_dir=st.session_state.get(SESSION_DATA_DIR))
