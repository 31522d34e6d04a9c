"""American odds conversions, expected value and capped Kelly sizing.

All functions are pure. Zero or malformed odds raise InvalidOddsError so the
caller can drop that market side.
"""

from __future__ import annotations

from gradebot.errors import InvalidOddsError

DEFAULT_KELLY_CAP = 0.05


def validate_odds(odds: int) -> int:
    """Return odds unchanged if they are well-formed American odds."""
    if isinstance(odds, bool) or not isinstance(odds, int):
        raise InvalidOddsError(odds, "not an integer")
    if odds == 0:
        raise InvalidOddsError(odds, "zero")
    # -100 < odds < +100 は American 形式として存在しない
    if -100 < odds < 100:
        raise InvalidOddsError(odds, "between -100 and +100")
    return odds


def implied_probability(odds: int) -> float:
    """Convert American odds to implied probability (0-1), vig included."""
    validate_odds(odds)
    if odds > 0:
        return 100 / (odds + 100)
    return abs(odds) / (abs(odds) + 100)


def payout_multiplier(odds: int) -> float:
    """Net profit per unit staked when the bet wins."""
    validate_odds(odds)
    if odds > 0:
        return odds / 100
    return 100 / abs(odds)


def expected_value_pct(prob: float, odds: int) -> float:
    """Expected ROI in percent per unit stake.

    EV% = 100 * (p * payout - (1 - p))
    """
    payout = payout_multiplier(odds)
    return 100 * (prob * payout - (1 - prob))


def kelly_fraction(prob: float, odds: int, cap: float = DEFAULT_KELLY_CAP) -> float:
    """Kelly stake fraction clamped to [0, cap].

    k = (b*p - q) / b. Negative Kelly means no bet, never a negative stake.
    """
    b = payout_multiplier(odds)
    k = (b * prob - (1 - prob)) / b
    return max(0.0, min(k, cap))
