"""Band tables mapping raw factor values to fixed score centers.

Tables are fixed configuration rather than formulas so every score can be
traced back to one row. Bands are listed from highest to lowest; the first
band whose lower bound is <= the raw value wins, and the last band (lower
bound -inf) catches everything below.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from gradebot.models import FactorType

SCORE_FLOOR = 30
SCORE_CEILING = 100


@dataclass(frozen=True)
class FactorBand:
    """One step of a factor's step function."""

    lower: float  # raw value lower bound (inclusive)
    center: int  # banded score before jitter
    label: str


_BOTTOM = -math.inf

FACTOR_BANDS: dict[FactorType, list[FactorBand]] = {
    FactorType.OFFENSIVE: [
        FactorBand(85, 88, "elite"),
        FactorBand(75, 78, "strong"),
        FactorBand(65, 68, "good"),
        FactorBand(50, 58, "average"),
        FactorBand(35, 48, "below average"),
        FactorBand(20, 40, "poor"),
        FactorBand(_BOTTOM, 32, "very poor"),
    ],
    FactorType.PITCHING: [
        FactorBand(85, 82, "elite matchup"),
        FactorBand(70, 72, "good matchup"),
        FactorBand(55, 62, "average matchup"),
        FactorBand(40, 52, "poor matchup"),
        FactorBand(25, 42, "very poor matchup"),
        FactorBand(_BOTTOM, 34, "terrible matchup"),
    ],
    FactorType.SITUATIONAL: [
        FactorBand(80, 75, "major advantage"),
        FactorBand(65, 68, "good advantage"),
        FactorBand(50, 60, "slight advantage"),
        FactorBand(35, 52, "neutral"),
        FactorBand(20, 44, "disadvantage"),
        FactorBand(_BOTTOM, 36, "major disadvantage"),
    ],
    FactorType.MOMENTUM: [
        FactorBand(85, 80, "hot streak"),
        FactorBand(70, 70, "good form"),
        FactorBand(55, 60, "average form"),
        FactorBand(40, 50, "poor form"),
        FactorBand(25, 42, "cold streak"),
        FactorBand(_BOTTOM, 34, "very cold"),
    ],
    # market は edge をパーセントポイントで受け取る (0.035 -> 3.5)
    FactorType.MARKET: [
        FactorBand(6.0, 95, "exceptional edge"),
        FactorBand(4.0, 88, "strong edge"),
        FactorBand(2.5, 80, "good edge"),
        FactorBand(1.5, 68, "decent edge"),
        FactorBand(0.8, 58, "small edge"),
        FactorBand(0.3, 48, "minimal edge"),
        FactorBand(_BOTTOM, 38, "no edge"),
    ],
    FactorType.CONFIDENCE: [
        FactorBand(95, 92, "near certain"),
        FactorBand(85, 82, "high"),
        FactorBand(75, 72, "good"),
        FactorBand(65, 62, "moderate"),
        FactorBand(55, 52, "low"),
        FactorBand(45, 44, "poor"),
        FactorBand(_BOTTOM, 36, "very poor"),
    ],
}


def lookup_band(factor: FactorType, raw: float) -> FactorBand:
    """Find the band for a raw value. Never returns None (bottom band catches all)."""
    bands = FACTOR_BANDS[factor]
    for band in bands:
        if raw >= band.lower:
            return band
    # NaN は比較が全て False になる
    return bands[-1]
