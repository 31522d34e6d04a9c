"""Recommendation builder: quote + prediction + factors -> graded moneyline picks.

Moneyline only. Spread and total variants may ride along on the quote but are
never graded.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from gradebot.config import Settings
from gradebot.models import (
    CONTEXT_FACTORS,
    BandedFactorSet,
    FactorInputs,
    FactorSet,
    FactorType,
    Grade,
    MarketQuote,
    Prediction,
    Recommendation,
)
from gradebot.odds.converter import DEFAULT_KELLY_CAP, expected_value_pct, kelly_fraction
from gradebot.scoring.edge import (
    ANCHOR_ABOVE,
    ANCHOR_BELOW,
    EDGE_FLOOR,
    PROBABILITY_CEILING,
    PROBABILITY_FLOOR,
    EdgeResult,
    calculate_side_edges,
    is_candidate,
)
from gradebot.scoring.factor_scorer import score_factors
from gradebot.scoring.grades import (
    FACTOR_WEIGHTS,
    GRADE_THRESHOLDS,
    assign_grade,
    grade_at_least,
    grade_rank,
    limit_grade_change,
    weighted_average,
)

logger = logging.getLogger(__name__)

# 文脈ファクターが欠けている場合の中立値
NEUTRAL_RAW = 50.0

# 生値がこれ以上なら reasoning に "key factor" として載せる
KEY_FACTOR_RAW = 75.0

FACTOR_PHRASES: dict[FactorType, str] = {
    FactorType.OFFENSIVE: "strong offensive metrics",
    FactorType.PITCHING: "favorable pitching matchup",
    FactorType.SITUATIONAL: "positive situational factors",
    FactorType.MOMENTUM: "good recent form",
    FactorType.MARKET: "market value detected",
    FactorType.CONFIDENCE: "high model confidence",
}


def _team_for(quote: MarketQuote, side: str) -> str:
    return quote.home_team if side == "home" else quote.away_team


def _raw_factors(side_inputs: Mapping[str, float], edge: float, confidence: float) -> FactorSet:
    def ctx(factor: FactorType) -> float:
        value = side_inputs.get(factor.value)
        return NEUTRAL_RAW if value is None else float(value)

    return FactorSet(
        offensive_production=ctx(FactorType.OFFENSIVE),
        pitching_matchup=ctx(FactorType.PITCHING),
        situational_edge=ctx(FactorType.SITUATIONAL),
        momentum=ctx(FactorType.MOMENTUM),
        market_inefficiency=edge * 100,
        system_confidence=confidence * 100,
    )


def dominant_factor(
    factors: BandedFactorSet,
    weights: Mapping[FactorType, float] = FACTOR_WEIGHTS,
) -> FactorType:
    """Factor contributing most to the weighted average (first wins on ties)."""
    return max(weights, key=lambda f: weights[f] * factors.score_for(f))


def build_reasoning(
    team: str,
    side: str,
    result: EdgeResult,
    raw: FactorSet,
    factors: BandedFactorSet,
    grade: Grade,
    weights: Mapping[FactorType, float] = FACTOR_WEIGHTS,
) -> str:
    location = "at home" if side == "home" else "on the road"
    text = (
        f"{team} {location}: model {result.anchored_probability * 100:.1f}% "
        f"vs market {result.implied * 100:.1f}% ({result.edge * 100:+.1f} pts)"
    )
    if result.anchored_probability != result.predicted:
        text += f", anchored from {result.predicted * 100:.1f}%"

    key = [FACTOR_PHRASES[f] for f in CONTEXT_FACTORS if raw.raw_for(f) >= KEY_FACTOR_RAW]
    if key:
        text += f". Key factors: {', '.join(key)}"

    top = dominant_factor(factors, weights)
    text += (
        f". Grade {grade.value} led by {top.value} ({factors.score_for(top)}),"
        f" {raw.system_confidence:.0f}% model confidence."
    )
    return text


def _baseline_grade(baseline: Iterable[Recommendation] | None, side: str) -> Grade | None:
    for rec in baseline or ():
        if rec.side == side:
            return rec.grade
    return None


def sort_recommendations(recs: Iterable[Recommendation]) -> list[Recommendation]:
    """Best grade first, then larger edge."""
    return sorted(recs, key=lambda r: (grade_rank(r.grade), -r.edge))


@dataclass
class RecommendationBuilder:
    """Runs edge -> factor scoring -> grading for both moneyline sides."""

    anchor_below: float = ANCHOR_BELOW
    anchor_above: float = ANCHOR_ABOVE
    probability_floor: float = PROBABILITY_FLOOR
    probability_ceiling: float = PROBABILITY_CEILING
    kelly_cap: float = DEFAULT_KELLY_CAP
    max_grade_step: int | None = None
    weights: dict[FactorType, float] = field(default_factory=lambda: dict(FACTOR_WEIGHTS))
    thresholds: list[tuple[float, Grade]] = field(default_factory=lambda: list(GRADE_THRESHOLDS))

    @classmethod
    def from_settings(cls, config: Settings) -> RecommendationBuilder:
        return cls(
            anchor_below=config.anchor_below,
            anchor_above=config.anchor_above,
            probability_floor=config.probability_floor,
            probability_ceiling=config.probability_ceiling,
            kelly_cap=config.kelly_cap,
            max_grade_step=config.max_grade_step,
        )

    def build(
        self,
        event_id: str,
        prediction: Prediction,
        quote: MarketQuote | None,
        factor_inputs: FactorInputs | None = None,
        jitter: Mapping[str, float] | None = None,
        baseline: Iterable[Recommendation] | None = None,
    ) -> list[Recommendation]:
        """Full-spectrum recommendations (no edge or grade filter), sorted.

        Args:
            baseline: recommendations graded from the event's pre-announcement
                information state; grades move at most max_grade_step away
                from them. Ignored when max_grade_step is None.
        """
        if quote is None or quote.moneyline is None:
            logger.info("No moneyline for %s, nothing to grade", event_id, extra={"event_id": event_id})
            return []

        edges = calculate_side_edges(
            prediction,
            quote,
            self.anchor_below,
            self.anchor_above,
            self.probability_floor,
            self.probability_ceiling,
        )
        inputs = factor_inputs or FactorInputs()
        baseline = list(baseline or ())

        recs: list[Recommendation] = []
        for side, result in edges.items():
            raw = _raw_factors(inputs.for_side(side), result.edge, prediction.confidence)
            banded = score_factors(raw, jitter)
            score = weighted_average(banded, self.weights)
            grade = assign_grade(score, self.thresholds)

            prior = _baseline_grade(baseline, side)
            if prior is not None and self.max_grade_step is not None:
                limited = limit_grade_change(prior, grade, self.max_grade_step)
                if limited != grade:
                    logger.info(
                        "%s %s grade move %s -> %s limited to %s",
                        event_id, side, prior.value, grade.value, limited.value,
                        extra={"event_id": event_id},
                    )
                grade = limited

            team = _team_for(quote, side)
            p = result.anchored_probability
            recs.append(Recommendation(
                event_id=event_id,
                selection=f"{team} ML",
                team=team,
                side=side,
                odds=result.odds,
                implied_probability=result.implied,
                predicted_probability=p,
                edge=result.edge,
                grade=grade,
                weighted_score=score,
                factors=banded,
                confidence=prediction.confidence,
                expected_value=expected_value_pct(p, result.odds),
                kelly_fraction=kelly_fraction(p, result.odds, self.kelly_cap),
                reasoning=build_reasoning(team, side, result, raw, banded, grade, self.weights),
                bookmaker=quote.bookmaker,
            ))

        return sort_recommendations(recs)


def filter_public(
    recs: Iterable[Recommendation],
    edge_floor: float = EDGE_FLOOR,
    min_grade: Grade | str = Grade.F,
) -> list[Recommendation]:
    """Filtered view: drop strongly negative edges and grades below min_grade.

    Works on already-graded recommendations, so it can only remove entries,
    never re-grade them.
    """
    return [
        r for r in recs
        if is_candidate(r.edge, edge_floor) and grade_at_least(r.grade, min_grade)
    ]
