"""Market-anchored edge calculation.

An unconstrained model can put an underdog priced at +194 (~34% implied) at
87%, a 53-point "edge" that no market supports. The model probability is
therefore pulled into a window around the market before any edge, EV or
Kelly number is derived from it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from gradebot.errors import InvalidOddsError, OddsOutOfRangeError
from gradebot.models import MarketQuote, Prediction
from gradebot.odds.converter import implied_probability

logger = logging.getLogger(__name__)

ANCHOR_BELOW = 0.05
ANCHOR_ABOVE = 0.08
PROBABILITY_FLOOR = 0.25
PROBABILITY_CEILING = 0.75
EDGE_FLOOR = -0.05


@dataclass(frozen=True)
class EdgeResult:
    odds: int
    implied: float
    predicted: float  # model probability as received
    raw_edge: float
    anchored_probability: float
    edge: float  # anchored_probability - implied


def anchor_probability(
    predicted: float,
    implied: float,
    anchor_below: float = ANCHOR_BELOW,
    anchor_above: float = ANCHOR_ABOVE,
    floor: float = PROBABILITY_FLOOR,
    ceiling: float = PROBABILITY_CEILING,
) -> float:
    """Clamp into [implied - below, implied + above] intersected with [floor, ceiling].

    For an in-range market the window contains implied, so anchoring can
    shrink an edge but never flips its sign or pushes it past either cap.
    """
    lo = max(implied - anchor_below, floor)
    hi = min(implied + anchor_above, ceiling)
    return max(lo, min(hi, predicted))


def calculate_edge(
    predicted: float,
    odds: int,
    anchor_below: float = ANCHOR_BELOW,
    anchor_above: float = ANCHOR_ABOVE,
    floor: float = PROBABILITY_FLOOR,
    ceiling: float = PROBABILITY_CEILING,
) -> EdgeResult:
    """Edge of a model probability against one American price.

    Raises InvalidOddsError for zero/malformed odds and OddsOutOfRangeError
    when the market itself prices the side outside [floor, ceiling].
    """
    implied = implied_probability(odds)
    # +300 より長い / -300 より重いラインは確率の上下限と両立しない
    if not floor <= implied <= ceiling:
        raise OddsOutOfRangeError(odds, implied, floor, ceiling)
    anchored = anchor_probability(predicted, implied, anchor_below, anchor_above, floor, ceiling)
    return EdgeResult(
        odds=odds,
        implied=implied,
        predicted=predicted,
        raw_edge=predicted - implied,
        anchored_probability=anchored,
        edge=anchored - implied,
    )


def is_candidate(edge: float, edge_floor: float = EDGE_FLOOR) -> bool:
    """Slightly negative edges stay visible; strongly negative ones are filtered."""
    return edge >= edge_floor


def calculate_side_edges(
    prediction: Prediction,
    quote: MarketQuote,
    anchor_below: float = ANCHOR_BELOW,
    anchor_above: float = ANCHOR_ABOVE,
    floor: float = PROBABILITY_FLOOR,
    ceiling: float = PROBABILITY_CEILING,
) -> dict[str, EdgeResult]:
    """Edges for the home and away moneyline.

    A side with invalid or out-of-range odds is dropped (and logged); the
    other side survives.
    Returns {} when the quote carries no moneyline.
    """
    if quote.moneyline is None:
        return {}

    sides = {
        "home": (prediction.home_win_probability, quote.moneyline.home_price),
        "away": (prediction.away_win_probability, quote.moneyline.away_price),
    }
    results: dict[str, EdgeResult] = {}
    for side, (prob, odds) in sides.items():
        try:
            results[side] = calculate_edge(prob, odds, anchor_below, anchor_above, floor, ceiling)
        except InvalidOddsError as e:
            logger.warning("Dropping %s side of %s (%s): %s", side, quote.event_id, quote.bookmaker, e)
            continue

        r = results[side]
        if r.anchored_probability != r.predicted:
            logger.debug(
                "%s %s: model %.3f anchored to %.3f (implied %.3f)",
                quote.event_id, side, r.predicted, r.anchored_probability, r.implied,
            )
    return results
