"""Weighted factor average -> letter grade.

GRADE_THRESHOLDS is the single threshold table. The filtered (public) view,
the full-spectrum (pro) view and the builder all grade through
assign_grade(), so the same weighted average always maps to the same grade.

Thresholds are calibration constants tuned so a ~30-game daily slate lands
roughly on TARGET_DAILY_DISTRIBUTION. The distribution is something to check
offline (distribution_report / calibrate_thresholds), not a runtime rule.
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

import numpy as np

from gradebot.models import BandedFactorSet, FactorType, Grade

# market は実現 edge を反映するため最も重い
FACTOR_WEIGHTS: dict[FactorType, float] = {
    FactorType.OFFENSIVE: 0.15,
    FactorType.PITCHING: 0.15,
    FactorType.SITUATIONAL: 0.15,
    FactorType.MOMENTUM: 0.15,
    FactorType.MARKET: 0.25,
    FactorType.CONFIDENCE: 0.15,
}

# (lower bound inclusive, grade), descending. Below the last bound -> F.
GRADE_THRESHOLDS: list[tuple[float, Grade]] = [
    (78.5, Grade.A_PLUS),
    (76.0, Grade.A),
    (73.5, Grade.A_MINUS),
    (70.0, Grade.B_PLUS),
    (66.0, Grade.B),
    (62.0, Grade.B_MINUS),
    (58.0, Grade.C_PLUS),
    (54.0, Grade.C),
    (50.0, Grade.C_MINUS),
    (47.0, Grade.D_PLUS),
    (44.0, Grade.D),
]

GRADE_ORDER: list[Grade] = list(Grade)  # A+ first, F last

SLATE_SIZE = 30

# 30 試合スレートでの目標件数 (min, max)
TARGET_DAILY_DISTRIBUTION: dict[Grade, tuple[int, int]] = {
    Grade.A_PLUS: (1, 2),
    Grade.A: (2, 3),
    Grade.A_MINUS: (2, 3),
    Grade.B_PLUS: (4, 5),
    Grade.B: (6, 7),
    Grade.B_MINUS: (4, 5),
    Grade.C_PLUS: (3, 4),
    Grade.C: (3, 4),
    Grade.C_MINUS: (2, 3),
    Grade.D_PLUS: (1, 2),
    Grade.D: (0, 1),
    Grade.F: (0, 0),
}


def weighted_average(
    factors: BandedFactorSet,
    weights: Mapping[FactorType, float] = FACTOR_WEIGHTS,
) -> float:
    """Weighted factor score W in [30, 100].

    Rounded to 4 places so float noise never flips a threshold comparison.
    """
    total = sum(factors.score_for(f) * w for f, w in weights.items())
    return round(total, 4)


def assign_grade(
    score: float,
    thresholds: list[tuple[float, Grade]] = GRADE_THRESHOLDS,
) -> Grade:
    for lower, grade in thresholds:
        if score >= lower:
            return grade
    return Grade.F


def grade_rank(grade: Grade | str) -> int:
    """0 for A+, 11 for F."""
    return GRADE_ORDER.index(Grade(grade))


def grade_at_least(grade: Grade | str, minimum: Grade | str) -> bool:
    return grade_rank(grade) <= grade_rank(minimum)


def limit_grade_change(baseline: Grade | str, new: Grade | str, max_step: int | None) -> Grade:
    """Cap how many grade levels a selection may move away from a baseline grade."""
    new = Grade(new)
    if max_step is None:
        return new
    old_rank = grade_rank(baseline)
    delta = grade_rank(new) - old_rank
    if abs(delta) <= max_step:
        return new
    step = max_step if delta > 0 else -max_step
    return GRADE_ORDER[old_rank + step]


# --- Offline distribution checks ---


@dataclass(frozen=True)
class DistributionRow:
    grade: Grade
    count: int
    target_lo: int
    target_hi: int

    @property
    def within_target(self) -> bool:
        return self.target_lo <= self.count <= self.target_hi


def grade_distribution(
    scores: Iterable[float],
    thresholds: list[tuple[float, Grade]] = GRADE_THRESHOLDS,
) -> dict[Grade, int]:
    counts = Counter(assign_grade(s, thresholds) for s in scores)
    return {g: counts.get(g, 0) for g in GRADE_ORDER}


def distribution_report(
    scores: Iterable[float],
    thresholds: list[tuple[float, Grade]] = GRADE_THRESHOLDS,
) -> list[DistributionRow]:
    """Observed grade counts next to the target scaled to the slate size."""
    scores = list(scores)
    counts = grade_distribution(scores, thresholds)
    scale = len(scores) / SLATE_SIZE if scores else 0.0
    rows = []
    for grade in GRADE_ORDER:
        lo, hi = TARGET_DAILY_DISTRIBUTION[grade]
        rows.append(DistributionRow(
            grade=grade,
            count=counts[grade],
            target_lo=math.floor(lo * scale),
            target_hi=math.ceil(hi * scale),
        ))
    return rows


def _default_target_shares() -> dict[Grade, float]:
    mids = {g: (lo + hi) / 2 for g, (lo, hi) in TARGET_DAILY_DISTRIBUTION.items()}
    total = sum(mids.values())
    return {g: m / total for g, m in mids.items()}


def calibrate_thresholds(
    scores: Iterable[float],
    target_shares: Mapping[Grade, float] | None = None,
) -> list[tuple[float, Grade]]:
    """Derive a threshold table that reproduces target shares on observed scores.

    Walks grades top-down, placing each lower bound at the quantile that leaves
    the cumulative target share above it. Used to recalibrate offline; the
    runtime table is GRADE_THRESHOLDS.
    """
    arr = np.asarray(list(scores), dtype=float)
    if arr.size == 0:
        raise ValueError("Need at least one score to calibrate")

    shares = dict(target_shares) if target_shares is not None else _default_target_shares()
    total = sum(shares.get(g, 0.0) for g in GRADE_ORDER)
    if total <= 0:
        raise ValueError("Target shares must sum to a positive value")

    table: list[tuple[float, Grade]] = []
    cumulative = 0.0
    for grade in GRADE_ORDER[:-1]:  # F は下限なし
        cumulative += shares.get(grade, 0.0) / total
        q = min(max(1.0 - cumulative, 0.0), 1.0)
        table.append((round(float(np.quantile(arr, q)), 1), grade))
    return table
