"""SQLite persistence for sessions and their captures, events, feelings and reports."""

import logging
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional, Sequence, Union

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS session (
    session_id      TEXT PRIMARY KEY,
    name            TEXT NOT NULL,
    original_intent TEXT NOT NULL,
    final_intent    TEXT,
    status          TEXT NOT NULL DEFAULT 'created'
                    CHECK(status IN ('created','active','paused','ended')),
    started_at      TEXT,
    ended_at        TEXT,
    ended_by        TEXT CHECK(ended_by IS NULL OR ended_by IN ('user','auto')),
    created_at      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_session_status ON session(status);

CREATE TABLE IF NOT EXISTS session_events (
    event_id    TEXT PRIMARY KEY,
    session_id  TEXT NOT NULL REFERENCES session(session_id) ON DELETE CASCADE,
    event_type  TEXT NOT NULL CHECK(event_type IN ('paused','resumed')),
    created_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_session ON session_events(session_id, created_at);

CREATE TABLE IF NOT EXISTS capture (
    capture_id   TEXT PRIMARY KEY,
    session_id   TEXT NOT NULL REFERENCES session(session_id) ON DELETE CASCADE,
    window_title TEXT NOT NULL CHECK(length(window_title) > 0),
    app_name     TEXT NOT NULL CHECK(length(app_name) > 0),
    captured_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_capture_session ON capture(session_id, captured_at);

CREATE TABLE IF NOT EXISTS feeling (
    feeling_id  TEXT PRIMARY KEY,
    session_id  TEXT NOT NULL REFERENCES session(session_id) ON DELETE CASCADE,
    text        TEXT NOT NULL CHECK(length(text) > 0),
    created_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_feeling_session ON feeling(session_id, created_at);

CREATE TABLE IF NOT EXISTS reports (
    report_id   TEXT PRIMARY KEY,
    session_id  TEXT NOT NULL REFERENCES session(session_id) ON DELETE CASCADE,
    summary     TEXT,
    patterns    TEXT,
    suggestions TEXT,
    status      TEXT NOT NULL CHECK(status IN ('generating','ready','failed')),
    created_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_reports_session ON reports(session_id, created_at);

CREATE TABLE IF NOT EXISTS meta (
    key   TEXT PRIMARY KEY,
    value TEXT
);
"""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_db_time(value: Optional[datetime]) -> Optional[str]:
    """
    Serialize a datetime for storage.

    Naive values are assumed to be UTC. Fixed microsecond precision keeps
    stored strings the same width so ORDER BY sorts them chronologically.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def new_id() -> str:
    return str(uuid.uuid4())


class Database:
    """
    Single shared SQLite connection.

    The poller, watchdog and report threads all write through this object,
    so every statement runs under one re-entrant lock.
    """

    def __init__(self, db_path: Union[Path, str]):
        self.db_path = db_path
        self.lock = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            path = str(self.db_path)
            if path != ":memory:":
                Path(path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(path, check_same_thread=False)
            if path != ":memory:":
                self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def initialize(self) -> None:
        """Create tables and indexes, and record the schema version."""
        with self.lock:
            self.conn.executescript(SCHEMA_SQL)
            with self.conn:
                self.conn.execute(
                    "INSERT OR REPLACE INTO meta (key, value) VALUES ('schema_version', ?)",
                    (str(SCHEMA_VERSION),),
                )
        logger.debug(f"Database initialised at {self.db_path}")

    def close(self) -> None:
        with self.lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a write statement in its own transaction. Returns affected row count."""
        with self.lock:
            with self.conn:
                cursor = self.conn.execute(sql, params)
            return cursor.rowcount

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        with self.lock:
            return self.conn.execute(sql, params).fetchall()

    def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[sqlite3.Row]:
        with self.lock:
            return self.conn.execute(sql, params).fetchone()
