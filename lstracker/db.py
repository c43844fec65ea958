"""
Local SQLite file holding the persisted app state.

One connection is shared by Streamlit script runs and the sync thread, so
it is opened with `check_same_thread=False` and every write goes through
`x` under a lock. `get_conn` caches that connection per process;
`connect` is the same thing without the cache, for code that runs outside
a Streamlit session (tests, one-off scripts).
"""
from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Any, Iterable

import streamlit as st

from lstracker.schema import SCHEMA_SQL

_write_lock = threading.Lock()


def connect(db_path: Path) -> sqlite3.Connection:
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), check_same_thread=False, timeout=10)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL;")
    conn.execute("PRAGMA synchronous = NORMAL;")
    return conn


@st.cache_resource
def get_conn(db_path: Path) -> sqlite3.Connection:
    return connect(db_path)


def ensure_schema(conn: sqlite3.Connection) -> None:
    with _write_lock:
        conn.executescript(SCHEMA_SQL)
        conn.commit()


def q(conn: sqlite3.Connection, sql: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
    cur = conn.execute(sql, tuple(params))
    rows = cur.fetchall()
    cur.close()
    return rows


def x(conn: sqlite3.Connection, sql: str, params: Iterable[Any] = ()) -> int:
    """Execute and commit one statement; returns the number of rows it touched."""
    with _write_lock:
        cur = conn.execute(sql, tuple(params))
        conn.commit()
        count = cur.rowcount
        cur.close()
    return max(count, 0)
