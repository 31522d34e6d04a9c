"""Database schema DDL for the persistent grade cache."""

from __future__ import annotations

import sqlite3
from pathlib import Path

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS grade_cache (
    event_id        TEXT NOT NULL,
    fingerprint     TEXT NOT NULL,
    recommendations TEXT NOT NULL DEFAULT '[]',
    jitter          TEXT NOT NULL DEFAULT '{}',
    computed_at     TEXT NOT NULL,
    expires_at      TEXT,
    PRIMARY KEY (event_id, fingerprint)
);

CREATE TABLE IF NOT EXISTS terminal_events (
    event_id    TEXT PRIMARY KEY,
    closed_at   TEXT NOT NULL
);
"""


def _ensure_indexes(conn: sqlite3.Connection) -> None:
    """Create lookup indexes if they don't exist."""
    indexes = [
        "CREATE INDEX IF NOT EXISTS idx_grade_cache_event ON grade_cache(event_id)",
        "CREATE INDEX IF NOT EXISTS idx_grade_cache_computed_at ON grade_cache(computed_at)",
    ]
    for sql in indexes:
        conn.execute(sql)
    conn.commit()


def _connect(db_path: Path | str) -> sqlite3.Connection:
    """Open (or create) the SQLite database and ensure schema exists."""
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), timeout=30)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.executescript(SCHEMA_SQL)
    _ensure_indexes(conn)
    return conn
