"""Error types for the grading engine.

Every error here is locally recoverable: the engine catches them and degrades
to "no recommendation" (or the last stable entry) instead of crashing.
"""

from __future__ import annotations

from typing import Any


class GradeEngineError(RuntimeError):
    """Base error for grading operations."""


class InvalidOddsError(GradeEngineError, ValueError):
    """Zero or malformed American odds. Drop that market side, not the event."""

    def __init__(self, odds: Any, reason: str = "") -> None:
        self.odds = odds
        msg = f"Invalid American odds: {odds!r}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class QuoteValidationError(GradeEngineError):
    """A bookmaker payload failed boundary validation."""

    def __init__(self, bookmaker: str, message: str) -> None:
        self.bookmaker = bookmaker
        super().__init__(f"Invalid quote from {bookmaker}: {message}")


class PredictionUnavailableError(GradeEngineError):
    """The forecasting collaborator has no output for the event."""

    def __init__(self, event_id: str) -> None:
        self.event_id = event_id
        super().__init__(f"No prediction available for {event_id}")


class EventClosedError(GradeEngineError):
    """Evaluation requested for an event in terminal state."""

    def __init__(self, event_id: str, last_entry: Any = None) -> None:
        self.event_id = event_id
        self.last_entry = last_entry
        super().__init__(f"Event {event_id} is closed")


class ConcurrentRecomputeTimeout(GradeEngineError):
    """Waiting on another caller's recomputation exceeded the bound."""

    def __init__(self, event_id: str, fingerprint: str, timeout: float) -> None:
        self.event_id = event_id
        self.fingerprint = fingerprint
        self.timeout = timeout
        super().__init__(
            f"Recompute for {event_id}@{fingerprint} did not finish within {timeout:.1f}s"
        )


class OddsOutOfRangeError(InvalidOddsError):
    """Market-implied probability outside the modelled [floor, ceiling] range."""

    def __init__(self, odds: int, implied: float, floor: float, ceiling: float) -> None:
        self.implied = implied
        super().__init__(odds, f"implied {implied:.3f} outside [{floor:.2f}, {ceiling:.2f}]")
