"""Shared test helpers. Import in test files: from tests.helpers import make_quote."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from gradebot.engine.sources import StaticEventSource
from gradebot.models import (
    EventStatus,
    FactorInputs,
    InformationState,
    MarketQuote,
    MoneylineQuote,
    Prediction,
)

EVENT_ID = "mlb-2026-06-01-nyy-bos"
HOME = "Boston Red Sox"
AWAY = "New York Yankees"

# 観測時刻から試合開始まで 7 時間 ("3-8h" bucket)
T0 = datetime(2026, 6, 1, 16, 0, tzinfo=timezone.utc)
START = T0 + timedelta(hours=7)


class FakeClock:
    """Injectable clock; advance() moves time forward."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, hours: float) -> None:
        self.now += timedelta(hours=hours)


def make_quote(
    home: int | None = -150,
    away: int | None = 130,
    bookmaker: str = "draftkings",
    observed_at: datetime = T0,
    event_id: str = EVENT_ID,
) -> MarketQuote:
    moneyline = MoneylineQuote(home, away) if home is not None and away is not None else None
    return MarketQuote(
        event_id=event_id,
        bookmaker=bookmaker,
        observed_at=observed_at,
        home_team=HOME,
        away_team=AWAY,
        moneyline=moneyline,
    )


def make_prediction(home: float = 0.62, confidence: float = 0.70, total: float = 8.5) -> Prediction:
    return Prediction(
        home_win_probability=home,
        away_win_probability=round(1 - home, 6),
        predicted_total=total,
        confidence=confidence,
    )


def make_state(**overrides) -> InformationState:
    defaults = {
        "starter_confirmed": False,
        "lineup_posted": False,
        "status": EventStatus.SCHEDULED,
        "start_time": START,
    }
    defaults.update(overrides)
    return InformationState(**defaults)


def make_source(event_id: str = EVENT_ID, **overrides) -> StaticEventSource:
    """Single-event source with sensible defaults. Pass None to leave a part missing."""
    prediction = overrides.get("prediction", make_prediction())
    quotes = overrides.get("quotes", [make_quote(event_id=event_id)])
    state = overrides.get("state", make_state())
    factors = overrides.get("factors", FactorInputs())

    source = StaticEventSource()
    if prediction is not None:
        source.predictions[event_id] = prediction
    if quotes is not None:
        source.quotes[event_id] = quotes
    if state is not None:
        source.states[event_id] = state
    if factors is not None:
        source.factors[event_id] = factors
    return source
