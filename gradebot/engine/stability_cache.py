"""Stability cache: serve one recommendation set per (event, fingerprint).

Per event the cache moves Uninitialized -> Stable -> Terminal:

- Stable reads with a known fingerprint return the stored entry unchanged
  (no recompute, no new jitter draw).
- An unknown fingerprint triggers a single-flight recompute: the first caller
  owns a Future and computes under the event's lock, every concurrent caller
  for the same key waits on that Future and receives the same entry.
- Terminal events raise EventClosedError carrying the last entry.

Superseded entries are kept; callers always ask by fingerprint, never for
"latest", so an older computation finishing late cannot be served as current.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from gradebot.errors import ConcurrentRecomputeTimeout, EventClosedError
from gradebot.models import Recommendation
from gradebot.store.grade_store import GradeStore, InMemoryGradeStore
from gradebot.store.models import GradeCacheEntry

logger = logging.getLogger(__name__)

DEFAULT_RECOMPUTE_TIMEOUT_SEC = 10.0
DEFAULT_RETENTION_HOURS = 24.0

# compute() は (recommendations, jitter) を返す
ComputeFn = Callable[[], tuple[list[Recommendation], dict[str, float]]]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CacheStats:
    entries: int
    events: int
    terminal_events: int
    in_flight: int
    avg_age_hours: float


class StabilityCache:
    def __init__(
        self,
        store: GradeStore | None = None,
        recompute_timeout_sec: float = DEFAULT_RECOMPUTE_TIMEOUT_SEC,
        retention_hours: float = DEFAULT_RETENTION_HOURS,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.store = store if store is not None else InMemoryGradeStore()
        self.recompute_timeout_sec = recompute_timeout_sec
        self.retention_hours = retention_hours
        self._clock = clock
        self._lock = threading.Lock()
        self._in_flight: dict[tuple[str, str], Future] = {}
        self._event_locks: dict[str, threading.Lock] = {}

    # --- Reads ---

    def get(self, event_id: str, fingerprint: str) -> GradeCacheEntry | None:
        """Stored, non-expired entry for the key, or None. Never blocks on a recompute."""
        entry = self.store.get(event_id, fingerprint)
        if entry is None or entry.is_expired(self._clock()):
            return None
        return entry

    def last_entry(self, event_id: str) -> GradeCacheEntry | None:
        """Most recently computed entry of the event (any fingerprint)."""
        entries = self.store.entries_for(event_id)
        return entries[-1] if entries else None

    def is_terminal(self, event_id: str) -> bool:
        return event_id in self.store.terminal_events()

    def get_or_compute(
        self,
        event_id: str,
        fingerprint: str,
        compute: ComputeFn,
        expires_at: datetime | None = None,
    ) -> GradeCacheEntry:
        """Return the entry for (event_id, fingerprint), computing it at most once.

        Raises:
            EventClosedError: the event is terminal.
            ConcurrentRecomputeTimeout: another caller's recompute outlasted the bound.
            Any error raised by compute() (not cached; shared with waiters).
        """
        if self.is_terminal(event_id):
            raise EventClosedError(event_id, self.last_entry(event_id))

        entry = self.get(event_id, fingerprint)
        if entry is not None:
            logger.debug("Cache hit %s@%s", event_id, fingerprint, extra={"event_id": event_id})
            return entry

        key = (event_id, fingerprint)
        with self._lock:
            future = self._in_flight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._in_flight[key] = future
            event_lock = self._event_locks.setdefault(event_id, threading.Lock())

        if not owner:
            try:
                return future.result(timeout=self.recompute_timeout_sec)
            except FutureTimeoutError:
                logger.warning(
                    "Recompute wait timed out for %s@%s after %.1fs",
                    event_id, fingerprint, self.recompute_timeout_sec,
                    extra={"event_id": event_id},
                )
                raise ConcurrentRecomputeTimeout(
                    event_id, fingerprint, self.recompute_timeout_sec
                ) from None

        try:
            # イベント単位で再計算は常に 1 本 (別 fingerprint の計算待ちも上限付き)
            if not event_lock.acquire(timeout=self.recompute_timeout_sec):
                logger.warning(
                    "Event lock for %s held past %.1fs, giving up on %s",
                    event_id, self.recompute_timeout_sec, fingerprint,
                    extra={"event_id": event_id},
                )
                raise ConcurrentRecomputeTimeout(event_id, fingerprint, self.recompute_timeout_sec)
            try:
                entry = self.get(event_id, fingerprint)
                if entry is None:
                    entry = self._recompute(event_id, fingerprint, compute, expires_at)
            finally:
                event_lock.release()
            future.set_result(entry)
            return entry
        except BaseException as exc:
            future.set_exception(exc)
            raise
        finally:
            with self._lock:
                self._in_flight.pop(key, None)

    def _recompute(
        self,
        event_id: str,
        fingerprint: str,
        compute: ComputeFn,
        expires_at: datetime | None,
    ) -> GradeCacheEntry:
        previous = self.last_entry(event_id)
        recommendations, jitter = compute()
        now = self._clock()
        entry = GradeCacheEntry(
            event_id=event_id,
            fingerprint=fingerprint,
            recommendations=tuple(recommendations),
            computed_at=now,
            expires_at=expires_at,
            jitter=dict(jitter),
        )
        self.store.put(entry)
        if previous is None:
            logger.info(
                "Graded %s@%s: %d recommendations",
                event_id, fingerprint, len(entry.recommendations),
                extra={"event_id": event_id},
            )
        else:
            logger.info(
                "Fingerprint transition %s: %s -> %s (%d recommendations)",
                event_id, previous.fingerprint, fingerprint, len(entry.recommendations),
                extra={"event_id": event_id},
            )
        return entry

    # --- Lifecycle ---

    def mark_terminal(self, event_id: str) -> None:
        if not self.is_terminal(event_id):
            logger.info("Event %s closed", event_id, extra={"event_id": event_id})
        self.store.mark_terminal(event_id, self._clock())

    def invalidate(self, event_id: str) -> int:
        """Drop every entry of the event so the next read recomputes."""
        removed = self.store.delete_event(event_id)
        logger.info(
            "Invalidated %s (%d entries removed)", event_id, removed,
            extra={"event_id": event_id},
        )
        return removed

    def purge_expired(self) -> int:
        """Evict entries older than the retention window."""
        cutoff = self._clock() - timedelta(hours=self.retention_hours)
        removed = self.store.purge(cutoff)
        if removed:
            logger.info("Purged %d grade cache entries older than %s", removed, cutoff.isoformat())
        return removed

    def clear_in_flight(self) -> None:
        with self._lock:
            self._in_flight.clear()
            self._event_locks.clear()

    def stats(self) -> CacheStats:
        with self._lock:
            in_flight = len(self._in_flight)
        terminal = self.store.terminal_events()
        events = self.store.event_ids()
        now = self._clock()
        ages = [
            (now - e.computed_at).total_seconds() / 3600
            for eid in events
            for e in self.store.entries_for(eid)
        ]
        return CacheStats(
            entries=self.store.count(),
            events=len(events),
            terminal_events=len(terminal),
            in_flight=in_flight,
            avg_age_hours=sum(ages) / len(ages) if ages else 0.0,
        )
