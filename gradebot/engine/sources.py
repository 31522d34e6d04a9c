"""Collaborator contract: where the engine gets predictions, quotes and state.

The engine asks each source once per evaluation and never loops over
alternative sources; fallbacks belong in the adapter behind this protocol.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from gradebot.models import (
    EventStatus,
    FactorInputs,
    InformationState,
    MarketQuote,
    MoneylineQuote,
    Prediction,
)

logger = logging.getLogger(__name__)


class EventDataSource(Protocol):
    def get_prediction(self, event_id: str) -> Prediction | None: ...

    def get_market_quotes(self, event_id: str) -> list[MarketQuote] | None: ...

    def get_information_state(self, event_id: str) -> InformationState | None: ...

    def get_factor_inputs(self, event_id: str) -> FactorInputs | None: ...


@dataclass
class StaticEventSource:
    """In-memory source backed by plain dicts (CLI slates, tests)."""

    predictions: dict[str, Prediction] = field(default_factory=dict)
    quotes: dict[str, list[MarketQuote]] = field(default_factory=dict)
    states: dict[str, InformationState] = field(default_factory=dict)
    factors: dict[str, FactorInputs] = field(default_factory=dict)

    def get_prediction(self, event_id: str) -> Prediction | None:
        return self.predictions.get(event_id)

    def get_market_quotes(self, event_id: str) -> list[MarketQuote] | None:
        return self.quotes.get(event_id)

    def get_information_state(self, event_id: str) -> InformationState | None:
        return self.states.get(event_id)

    def get_factor_inputs(self, event_id: str) -> FactorInputs | None:
        return self.factors.get(event_id)

    def event_ids(self) -> list[str]:
        ids = set(self.predictions) | set(self.quotes) | set(self.states)
        return sorted(ids)


def _parse_dt(value: str | None) -> datetime | None:
    if not value:
        return None
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _quote_from_record(event: dict, rec: dict) -> MarketQuote:
    observed_at = _parse_dt(rec.get("observed_at"))
    if observed_at is None:
        # 時間 bucket は observed_at 基準、読み込み時刻では代用しない
        raise ValueError(
            f"Quote from {rec.get('bookmaker', 'unknown')} for {event['event_id']} has no observed_at"
        )
    moneyline = None
    if rec.get("home_moneyline") is not None and rec.get("away_moneyline") is not None:
        moneyline = MoneylineQuote(int(rec["home_moneyline"]), int(rec["away_moneyline"]))
    return MarketQuote(
        event_id=event["event_id"],
        bookmaker=rec.get("bookmaker", "unknown"),
        observed_at=observed_at,
        home_team=event.get("home_team", "Home"),
        away_team=event.get("away_team", "Away"),
        moneyline=moneyline,
    )


def load_slate(path: Path | str) -> StaticEventSource:
    """Build a StaticEventSource from a JSON slate file.

    Format: {"events": [{"event_id", "home_team", "away_team", "start_time",
    "status", "starter_confirmed", "lineup_posted", "prediction": {...},
    "factors": {"home": {...}, "away": {...}}, "quotes": [{"bookmaker",
    "observed_at", "home_moneyline", "away_moneyline"}]}]}
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    source = StaticEventSource()
    for event in data.get("events", []):
        eid = event["event_id"]
        source.states[eid] = InformationState(
            starter_confirmed=bool(event.get("starter_confirmed", False)),
            lineup_posted=bool(event.get("lineup_posted", False)),
            status=EventStatus(event.get("status", EventStatus.SCHEDULED)),
            start_time=_parse_dt(event.get("start_time")),
        )
        if event.get("prediction"):
            source.predictions[eid] = Prediction(**event["prediction"])
        if event.get("factors"):
            source.factors[eid] = FactorInputs(
                home=dict(event["factors"].get("home", {})),
                away=dict(event["factors"].get("away", {})),
            )
        source.quotes[eid] = [_quote_from_record(event, q) for q in event.get("quotes", [])]
    logger.info("Loaded %d events from %s", len(source.states), path)
    return source
