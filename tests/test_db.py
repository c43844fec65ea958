from __future__ import annotations

import threading

from lstracker.db import connect, ensure_schema, q, x


def test_connect_creates_parent_dir_and_uses_wal(tmp_path):
    conn = connect(tmp_path / "nested" / "app.db")
    assert (tmp_path / "nested" / "app.db").exists()
    assert q(conn, "PRAGMA journal_mode;")[0][0].lower() == "wal"


def test_x_returns_touched_rows(tmp_path):
    conn = connect(tmp_path / "app.db")
    ensure_schema(conn)
    assert x(conn, "INSERT INTO app_state(key, payload, updated_at) VALUES (?, ?, ?)", ("a", "{}", "t")) == 1
    assert x(conn, "DELETE FROM app_state WHERE key=?", ("missing",)) == 0


def test_writes_from_several_threads(tmp_path):
    conn = connect(tmp_path / "app.db")
    ensure_schema(conn)

    def write(n):
        for i in range(20):
            x(conn, "INSERT INTO app_state(key, payload, updated_at) VALUES (?, ?, ?)", (f"{n}-{i}", "{}", "t"))

    threads = [threading.Thread(target=write, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert q(conn, "SELECT COUNT(*) AS n FROM app_state")[0]["n"] == 80
