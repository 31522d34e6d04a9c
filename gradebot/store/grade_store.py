"""Storage backends for GradeCacheEntry.

InMemoryGradeStore serves a single process; SqliteGradeStore persists entries
(and closed-event markers) so a restart serves the same grades. Both are
safe to share across threads.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Protocol

from gradebot.config import Settings
from gradebot.store.models import GradeCacheEntry
from gradebot.store.schema import _connect

logger = logging.getLogger(__name__)


class GradeStore(Protocol):
    def get(self, event_id: str, fingerprint: str) -> GradeCacheEntry | None: ...

    def put(self, entry: GradeCacheEntry) -> None: ...

    def entries_for(self, event_id: str) -> list[GradeCacheEntry]: ...

    def delete_event(self, event_id: str) -> int: ...

    def purge(self, before: datetime) -> int: ...

    def mark_terminal(self, event_id: str, closed_at: datetime) -> None: ...

    def terminal_events(self) -> set[str]: ...

    def event_ids(self) -> set[str]: ...

    def count(self) -> int: ...


class InMemoryGradeStore:
    def __init__(self) -> None:
        self._data: dict[tuple[str, str], GradeCacheEntry] = {}
        self._terminal: dict[str, datetime] = {}
        self._lock = threading.Lock()

    def get(self, event_id: str, fingerprint: str) -> GradeCacheEntry | None:
        with self._lock:
            return self._data.get((event_id, fingerprint))

    def put(self, entry: GradeCacheEntry) -> None:
        with self._lock:
            self._data[(entry.event_id, entry.fingerprint)] = entry

    def entries_for(self, event_id: str) -> list[GradeCacheEntry]:
        with self._lock:
            entries = [e for (eid, _), e in self._data.items() if eid == event_id]
        return sorted(entries, key=lambda e: e.computed_at)

    def delete_event(self, event_id: str) -> int:
        with self._lock:
            keys = [k for k in self._data if k[0] == event_id]
            for k in keys:
                del self._data[k]
        return len(keys)

    def purge(self, before: datetime) -> int:
        with self._lock:
            keys = [k for k, e in self._data.items() if e.computed_at < before]
            for k in keys:
                del self._data[k]
            stale = [eid for eid, closed in self._terminal.items() if closed < before]
            for eid in stale:
                del self._terminal[eid]
        return len(keys)

    def mark_terminal(self, event_id: str, closed_at: datetime) -> None:
        with self._lock:
            self._terminal.setdefault(event_id, closed_at)

    def terminal_events(self) -> set[str]:
        with self._lock:
            return set(self._terminal)

    def event_ids(self) -> set[str]:
        with self._lock:
            return {eid for eid, _ in self._data}

    def count(self) -> int:
        with self._lock:
            return len(self._data)


class SqliteGradeStore:
    """grade_cache rows keyed by (event_id, fingerprint). Connection per call."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        # スキーマ作成のため一度接続
        _connect(self.db_path).close()

    def get(self, event_id: str, fingerprint: str) -> GradeCacheEntry | None:
        conn = _connect(self.db_path)
        try:
            row = conn.execute(
                "SELECT * FROM grade_cache WHERE event_id = ? AND fingerprint = ?",
                (event_id, fingerprint),
            ).fetchone()
            return GradeCacheEntry.from_record(dict(row)) if row else None
        finally:
            conn.close()

    def put(self, entry: GradeCacheEntry) -> None:
        rec = entry.to_record()
        conn = _connect(self.db_path)
        try:
            conn.execute(
                """INSERT OR REPLACE INTO grade_cache
                   (event_id, fingerprint, recommendations, jitter, computed_at, expires_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    rec["event_id"],
                    rec["fingerprint"],
                    rec["recommendations"],
                    rec["jitter"],
                    rec["computed_at"],
                    rec["expires_at"],
                ),
            )
            conn.commit()
        finally:
            conn.close()

    def entries_for(self, event_id: str) -> list[GradeCacheEntry]:
        conn = _connect(self.db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM grade_cache WHERE event_id = ?",
                (event_id,),
            ).fetchall()
        finally:
            conn.close()
        entries = [GradeCacheEntry.from_record(dict(r)) for r in rows]
        return sorted(entries, key=lambda e: e.computed_at)

    def delete_event(self, event_id: str) -> int:
        conn = _connect(self.db_path)
        try:
            cur = conn.execute("DELETE FROM grade_cache WHERE event_id = ?", (event_id,))
            conn.commit()
            return cur.rowcount
        finally:
            conn.close()

    def purge(self, before: datetime) -> int:
        conn = _connect(self.db_path)
        try:
            rows = conn.execute(
                "SELECT event_id, fingerprint, computed_at FROM grade_cache"
            ).fetchall()
            stale = [
                (r["event_id"], r["fingerprint"])
                for r in rows
                if datetime.fromisoformat(r["computed_at"]) < before
            ]
            conn.executemany(
                "DELETE FROM grade_cache WHERE event_id = ? AND fingerprint = ?",
                stale,
            )
            closed = conn.execute("SELECT event_id, closed_at FROM terminal_events").fetchall()
            conn.executemany(
                "DELETE FROM terminal_events WHERE event_id = ?",
                [(r["event_id"],) for r in closed if datetime.fromisoformat(r["closed_at"]) < before],
            )
            conn.commit()
            return len(stale)
        finally:
            conn.close()

    def mark_terminal(self, event_id: str, closed_at: datetime) -> None:
        conn = _connect(self.db_path)
        try:
            conn.execute(
                "INSERT OR IGNORE INTO terminal_events (event_id, closed_at) VALUES (?, ?)",
                (event_id, closed_at.isoformat()),
            )
            conn.commit()
        finally:
            conn.close()

    def terminal_events(self) -> set[str]:
        conn = _connect(self.db_path)
        try:
            rows = conn.execute("SELECT event_id FROM terminal_events").fetchall()
            return {r["event_id"] for r in rows}
        finally:
            conn.close()

    def event_ids(self) -> set[str]:
        conn = _connect(self.db_path)
        try:
            rows = conn.execute("SELECT DISTINCT event_id FROM grade_cache").fetchall()
            return {r["event_id"] for r in rows}
        finally:
            conn.close()

    def count(self) -> int:
        conn = _connect(self.db_path)
        try:
            return conn.execute("SELECT COUNT(*) FROM grade_cache").fetchone()[0]
        finally:
            conn.close()


def build_store(config: Settings) -> GradeStore:
    """SQLite when grade_cache_db_path is set, otherwise in-memory."""
    if config.grade_cache_db_path:
        logger.info("Using SQLite grade cache at %s", config.grade_cache_db_path)
        return SqliteGradeStore(config.grade_cache_db_path)
    return InMemoryGradeStore()
