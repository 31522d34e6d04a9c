"""Domain records for the grading engine.

Quotes, predictions and recommendations are frozen: a new observation
supersedes an old one, it never mutates it.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Literal

# Prediction の home + away 合計に許容する誤差
PROBABILITY_SUM_TOLERANCE = 0.02


class EventStatus(StrEnum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    FINAL = "final"


class FactorType(StrEnum):
    OFFENSIVE = "offensive"
    PITCHING = "pitching"
    SITUATIONAL = "situational"
    MOMENTUM = "momentum"
    MARKET = "market"
    CONFIDENCE = "confidence"


# 上流から供給される文脈ファクター (market / confidence はエンジン側で導出)
CONTEXT_FACTORS: tuple[FactorType, ...] = (
    FactorType.OFFENSIVE,
    FactorType.PITCHING,
    FactorType.SITUATIONAL,
    FactorType.MOMENTUM,
)


class Grade(StrEnum):
    A_PLUS = "A+"
    A = "A"
    A_MINUS = "A-"
    B_PLUS = "B+"
    B = "B"
    B_MINUS = "B-"
    C_PLUS = "C+"
    C = "C"
    C_MINUS = "C-"
    D_PLUS = "D+"
    D = "D"
    F = "F"


# --- Market quotes (tagged per market type) ---


@dataclass(frozen=True)
class MoneylineQuote:
    home_price: int
    away_price: int
    kind: Literal["moneyline"] = "moneyline"


@dataclass(frozen=True)
class SpreadQuote:
    home_point: float
    home_price: int
    away_point: float
    away_price: int
    kind: Literal["spread"] = "spread"


@dataclass(frozen=True)
class TotalQuote:
    point: float
    over_price: int
    under_price: int
    kind: Literal["total"] = "total"


@dataclass(frozen=True)
class MarketQuote:
    """One bookmaker's prices for one event at one point in time."""

    event_id: str
    bookmaker: str
    observed_at: datetime
    home_team: str = "Home"
    away_team: str = "Away"
    moneyline: MoneylineQuote | None = None
    spread: SpreadQuote | None = None
    total: TotalQuote | None = None

    @property
    def home_moneyline(self) -> int | None:
        return self.moneyline.home_price if self.moneyline else None

    @property
    def away_moneyline(self) -> int | None:
        return self.moneyline.away_price if self.moneyline else None


@dataclass(frozen=True)
class Prediction:
    """Forecasting model output. Opaque to the engine; validated on construction."""

    home_win_probability: float
    away_win_probability: float
    predicted_total: float = 0.0
    confidence: float = 0.5

    def __post_init__(self) -> None:
        for name in ("home_win_probability", "away_win_probability", "confidence"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be in [0, 1], got {value}")
        total = self.home_win_probability + self.away_win_probability
        if abs(total - 1.0) > PROBABILITY_SUM_TOLERANCE:
            raise ValueError(f"Win probabilities must sum to ~1.0, got {total:.4f}")


@dataclass(frozen=True)
class InformationState:
    starter_confirmed: bool = False
    lineup_posted: bool = False
    status: EventStatus = EventStatus.SCHEDULED
    start_time: datetime | None = None


# --- Factors ---


@dataclass(frozen=True)
class FactorSet:
    """Raw analytic inputs for one selection."""

    offensive_production: float
    pitching_matchup: float
    situational_edge: float
    momentum: float
    market_inefficiency: float  # edge (percentage points)
    system_confidence: float

    def raw_for(self, factor: FactorType) -> float:
        return {
            FactorType.OFFENSIVE: self.offensive_production,
            FactorType.PITCHING: self.pitching_matchup,
            FactorType.SITUATIONAL: self.situational_edge,
            FactorType.MOMENTUM: self.momentum,
            FactorType.MARKET: self.market_inefficiency,
            FactorType.CONFIDENCE: self.system_confidence,
        }[factor]


@dataclass(frozen=True)
class FactorInputs:
    """Upstream contextual factors per side, keyed by FactorType value."""

    home: dict[str, float] = field(default_factory=dict)
    away: dict[str, float] = field(default_factory=dict)

    def for_side(self, side: str) -> dict[str, float]:
        return self.home if side == "home" else self.away


@dataclass(frozen=True)
class BandedFactorSet:
    """Six banded scores, each within [30, 100]."""

    offensive: int
    pitching: int
    situational: int
    momentum: int
    market: int
    confidence: int

    def as_dict(self) -> dict[str, int]:
        return asdict(self)

    def score_for(self, factor: FactorType) -> int:
        return getattr(self, factor.value)


# --- Output ---


@dataclass(frozen=True)
class Recommendation:
    event_id: str
    selection: str
    team: str
    side: str  # "home" | "away"
    odds: int
    implied_probability: float
    predicted_probability: float
    edge: float
    grade: Grade
    weighted_score: float
    factors: BandedFactorSet
    confidence: float
    expected_value: float  # % ROI per unit stake
    kelly_fraction: float
    reasoning: str
    bookmaker: str = ""
    market: str = "moneyline"
    historical: bool = False

    def to_dict(self) -> dict:
        d = asdict(self)
        d["grade"] = self.grade.value
        return d

    @classmethod
    def from_dict(cls, d: dict) -> Recommendation:
        data = dict(d)
        data["grade"] = Grade(data["grade"])
        data["factors"] = BandedFactorSet(**data["factors"])
        return cls(**data)
