from __future__ import annotations

import os
import sqlite3
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock

from .settings import settings


_schema_lock = Lock()
_schema_ready: set[str] = set()


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _resolve_db_path() -> str:
    """Return a file path usable by sqlite.

    If the configured path is an existing directory the journal file is
    placed inside it; missing parent directories are created.
    """

    p = os.path.abspath(os.path.expanduser(settings.db_path))

    if os.path.isdir(p):
        p = os.path.join(p, "events.db")

    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)

    return p


def connect() -> sqlite3.Connection:
    conn = sqlite3.connect(_resolve_db_path(), check_same_thread=False, timeout=10)
    conn.row_factory = sqlite3.Row
    return conn


def init_db() -> None:
    """Create tables if they do not exist."""
    path = _resolve_db_path()
    with _schema_lock:
        if path in _schema_ready:
            return
        with connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS events (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  ts TEXT NOT NULL,
                  level TEXT NOT NULL,
                  workload TEXT,
                  image TEXT,
                  message TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
                """
            )
        _schema_ready.add(path)


def log_event(level: str, message: str, workload: str | None = None, image: str | None = None) -> None:
    if not settings.enable_event_log:
        return
    try:
        init_db()
        with connect() as conn:
            conn.execute(
                "INSERT INTO events (ts, level, workload, image, message) VALUES (?, ?, ?, ?, ?)",
                (utc_now(), level.upper(), workload, image, message),
            )
    except (sqlite3.Error, OSError) as e:
        # An unwritable journal must not abort a rollout; keep the message visible.
        print(f"[{level.upper()}] {message} (event journal unavailable: {e})", file=sys.stderr)


@dataclass(frozen=True)
class EventRow:
    id: int
    ts: str
    level: str
    workload: str | None
    image: str | None
    message: str


def list_events(limit: int = 20, workload: str | None = None) -> list[EventRow]:
    init_db()
    limit = max(1, int(limit))
    with connect() as conn:
        if workload:
            cur = conn.execute(
                "SELECT * FROM events WHERE workload=? ORDER BY id DESC LIMIT ?",
                (workload, limit),
            )
        else:
            cur = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,))
        return [EventRow(**dict(r)) for r in cur.fetchall()]
