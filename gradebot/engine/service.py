"""GradeEngine: the read-through entry point for graded recommendations.

Constructed explicitly with a data source, a store and settings; nothing here
is module-level state. Both views read the same cached full-spectrum entry:
evaluate() filters it, evaluate_full_spectrum() returns it whole, so the
public list is always a subset graded with the same thresholds.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timezone

from gradebot.config import Settings, settings
from gradebot.connectors.odds_api import select_quote
from gradebot.engine.fingerprint import compute_fingerprint
from gradebot.engine.recommender import RecommendationBuilder, filter_public
from gradebot.engine.sources import EventDataSource
from gradebot.engine.stability_cache import CacheStats, StabilityCache
from gradebot.errors import (
    ConcurrentRecomputeTimeout,
    EventClosedError,
    GradeEngineError,
    PredictionUnavailableError,
)
from gradebot.models import (
    EventStatus,
    FactorInputs,
    Grade,
    InformationState,
    MarketQuote,
    Prediction,
    Recommendation,
)
from gradebot.scoring.factor_scorer import draw_jitter_set
from gradebot.store.grade_store import GradeStore, build_store

logger = logging.getLogger(__name__)

CLOSED_POLICIES = ("historical", "empty")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class GradeEngine:
    def __init__(
        self,
        source: EventDataSource,
        store: GradeStore | None = None,
        config: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config or settings
        if self.config.closed_event_policy not in CLOSED_POLICIES:
            raise ValueError(
                f"closed_event_policy must be one of {CLOSED_POLICIES}, "
                f"got {self.config.closed_event_policy!r}"
            )
        self.public_min_grade = Grade(self.config.public_min_grade)
        self.source = source
        self.builder = RecommendationBuilder.from_settings(self.config)
        self._clock = clock or _utc_now
        self.cache = StabilityCache(
            store if store is not None else build_store(self.config),
            recompute_timeout_sec=self.config.recompute_timeout_sec,
            retention_hours=self.config.cache_retention_hours,
            clock=self._clock,
        )
        self._closed = False

    def __enter__(self) -> GradeEngine:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # --- Exposed operations ---

    def evaluate(self, event_id: str) -> list[Recommendation]:
        """Filtered view: edge >= edge_floor and grade >= public_min_grade."""
        return filter_public(
            self.evaluate_full_spectrum(event_id),
            self.config.edge_floor,
            self.public_min_grade,
        )

    def evaluate_full_spectrum(self, event_id: str) -> list[Recommendation]:
        """Every graded selection for the event, unfiltered. Never raises on degraded input."""
        if self._closed:
            raise GradeEngineError("GradeEngine is closed")

        state = self.source.get_information_state(event_id)
        if state is None:
            logger.warning("No information state for %s", event_id, extra={"event_id": event_id})
            return []
        if state.status == EventStatus.FINAL:
            self.cache.mark_terminal(event_id)
        if self.cache.is_terminal(event_id):
            return self._closed_result(EventClosedError(event_id, self.cache.last_entry(event_id)))

        quote = select_quote(self.source.get_market_quotes(event_id), self.config.bookmaker_preference)
        if quote is None:
            logger.info("No moneyline quote for %s", event_id, extra={"event_id": event_id})
            return []

        fingerprint = self._fingerprint(state, quote)
        expires_at = self._expires_at(state)

        try:
            entry = self.cache.get_or_compute(
                event_id,
                fingerprint,
                lambda: self._compute(event_id, fingerprint, state, quote),
                expires_at,
            )
        except PredictionUnavailableError:
            logger.warning("No prediction for %s, returning no recommendations", event_id,
                           extra={"event_id": event_id})
            return []
        except EventClosedError as e:
            return self._closed_result(e)
        except ConcurrentRecomputeTimeout:
            last = self.cache.last_entry(event_id)
            logger.warning(
                "Serving last stable entry for %s (%s)", event_id,
                last.fingerprint if last else "none", extra={"event_id": event_id},
            )
            return list(last.recommendations) if last else []
        return list(entry.recommendations)

    def invalidate(self, event_id: str) -> int:
        """Admin: force the next read to recompute regardless of fingerprint."""
        return self.cache.invalidate(event_id)

    def close_event(self, event_id: str) -> None:
        self.cache.mark_terminal(event_id)

    def purge_expired(self) -> int:
        return self.cache.purge_expired()

    def stats(self) -> CacheStats:
        return self.cache.stats()

    def close(self) -> None:
        if self._closed:
            return
        self.cache.clear_in_flight()
        self._closed = True
        logger.info("GradeEngine closed")

    # --- Internals ---

    def _expires_at(self, state: InformationState) -> datetime | None:
        """Hard expiry at the scheduled start; None once that start has passed."""
        if state.status != EventStatus.SCHEDULED or state.start_time is None:
            return None
        # 開始遅延 (scheduled のまま開始時刻を過ぎた)
        if state.start_time <= self._clock():
            return None
        return state.start_time

    def _fingerprint(self, state: InformationState, quote: MarketQuote) -> str:
        return compute_fingerprint(
            state, quote, self.config.line_move_bucket, self.config.time_buckets_hours
        ).token

    def _compute(
        self, event_id: str, fingerprint: str, state: InformationState, quote: MarketQuote
    ) -> tuple[list[Recommendation], dict[str, float]]:
        prediction = self.source.get_prediction(event_id)
        if prediction is None:
            raise PredictionUnavailableError(event_id)

        factor_inputs = self.source.get_factor_inputs(event_id)
        jitter = draw_jitter_set(event_id, fingerprint, self.config.jitter_amplitude)
        recs = self.builder.build(
            event_id,
            prediction,
            quote,
            factor_inputs,
            jitter,
            self._baseline(event_id, fingerprint, state, quote, prediction, factor_inputs),
        )
        return recs, jitter

    def _baseline(
        self,
        event_id: str,
        fingerprint: str,
        state: InformationState,
        quote: MarketQuote,
        prediction: Prediction,
        factor_inputs: FactorInputs | None,
    ) -> list[Recommendation] | None:
        """Grades for the same quote before starter/lineup news, from current inputs only."""
        if self.builder.max_grade_step is None:
            return None
        opening = replace(state, starter_confirmed=False, lineup_posted=False)
        opening_fp = self._fingerprint(opening, quote)
        if opening_fp == fingerprint:
            return None
        opening_jitter = draw_jitter_set(event_id, opening_fp, self.config.jitter_amplitude)
        return self.builder.build(event_id, prediction, quote, factor_inputs, opening_jitter)

    def _closed_result(self, error: EventClosedError) -> list[Recommendation]:
        last = error.last_entry
        if self.config.closed_event_policy == "empty" or last is None:
            logger.debug("%s closed, no recommendations", error.event_id, extra={"event_id": error.event_id})
            return []
        return [replace(r, historical=True) for r in last.recommendations]
