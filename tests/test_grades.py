"""Tests for weighted grading, threshold table and distribution helpers."""

from __future__ import annotations

import numpy as np
import pytest

from gradebot.models import BandedFactorSet, Grade
from gradebot.scoring.grades import (
    FACTOR_WEIGHTS,
    GRADE_ORDER,
    GRADE_THRESHOLDS,
    assign_grade,
    calibrate_thresholds,
    distribution_report,
    grade_at_least,
    grade_distribution,
    grade_rank,
    limit_grade_change,
    weighted_average,
)


def _banded(value: int = 60, **overrides) -> BandedFactorSet:
    scores = dict.fromkeys(
        ("offensive", "pitching", "situational", "momentum", "market", "confidence"), value
    )
    scores.update(overrides)
    return BandedFactorSet(**scores)


class TestWeights:
    def test_sum_to_one(self):
        assert sum(FACTOR_WEIGHTS.values()) == pytest.approx(1.0)

    def test_market_heaviest(self):
        assert max(FACTOR_WEIGHTS, key=FACTOR_WEIGHTS.get).value == "market"

    def test_uniform_scores(self):
        assert weighted_average(_banded(60)) == pytest.approx(60.0)

    def test_market_weighted_higher(self):
        # 30 * 0.75 + 100 * 0.25
        assert weighted_average(_banded(30, market=100)) == pytest.approx(47.5)


class TestAssignGrade:
    @pytest.mark.parametrize(
        ("score", "grade"),
        [
            (79.0, Grade.A_PLUS),
            (68.3, Grade.B),
            (44.0, Grade.D),
            (30.0, Grade.F),
        ],
    )
    def test_examples(self, score, grade):
        assert assign_grade(score) == grade

    @pytest.mark.parametrize(("lower", "grade"), GRADE_THRESHOLDS)
    def test_boundaries_inclusive(self, lower, grade):
        assert assign_grade(lower) == grade
        assert assign_grade(lower - 0.01) != grade

    def test_every_band_reachable(self):
        samples = [100.0, 77.0, 75.0, 71.0, 68.0, 64.0, 60.0, 56.0, 52.0, 48.0, 45.0, 35.0]
        assert [assign_grade(s) for s in samples] == GRADE_ORDER

    def test_table_descending(self):
        bounds = [b for b, _ in GRADE_THRESHOLDS]
        assert bounds == sorted(bounds, reverse=True)
        assert len(GRADE_THRESHOLDS) == 11


class TestGradeOrder:
    def test_rank(self):
        assert grade_rank(Grade.A_PLUS) == 0
        assert grade_rank("F") == 11

    def test_at_least(self):
        assert grade_at_least(Grade.B, Grade.C)
        assert grade_at_least("C", "C")
        assert not grade_at_least(Grade.D, Grade.C)


class TestLimitGradeChange:
    def test_unlimited(self):
        assert limit_grade_change(Grade.A_PLUS, Grade.F, None) == Grade.F

    def test_small_move_allowed(self):
        assert limit_grade_change(Grade.B, Grade.B_MINUS, 2) == Grade.B_MINUS

    def test_downgrade_limited(self):
        assert limit_grade_change(Grade.B, Grade.F, 2) == Grade.C_PLUS

    def test_upgrade_limited(self):
        assert limit_grade_change(Grade.C, Grade.A_PLUS, 1) == Grade.C_PLUS


class TestDistribution:
    def test_counts_cover_all_grades(self):
        counts = grade_distribution([79.0, 79.5, 68.3, 30.0])
        assert set(counts) == set(GRADE_ORDER)
        assert counts[Grade.A_PLUS] == 2
        assert counts[Grade.B] == 1
        assert counts[Grade.F] == 1

    def test_report_scaled_to_slate(self):
        rows = distribution_report([70.0] * 30)
        by_grade = {r.grade: r for r in rows}
        assert by_grade[Grade.B_PLUS].count == 30
        assert not by_grade[Grade.B_PLUS].within_target
        assert by_grade[Grade.F].within_target
        assert (by_grade[Grade.A_PLUS].target_lo, by_grade[Grade.A_PLUS].target_hi) == (1, 2)

    def test_report_half_slate(self):
        rows = distribution_report([60.0] * 15)
        b = next(r for r in rows if r.grade == Grade.B)
        assert (b.target_lo, b.target_hi) == (3, 4)


class TestCalibrateThresholds:
    def test_descending_table(self):
        scores = np.linspace(40, 90, 300)
        table = calibrate_thresholds(scores)
        bounds = [b for b, _ in table]
        assert len(table) == 11
        assert bounds == sorted(bounds, reverse=True)
        assert assign_grade(90.0, table) == Grade.A_PLUS
        assert assign_grade(39.0, table) == Grade.F

    def test_reproduces_shares(self):
        scores = np.linspace(0, 100, 1000)
        shares = {g: 1.0 for g in GRADE_ORDER}
        table = calibrate_thresholds(scores, shares)
        counts = grade_distribution(scores, table)
        for grade in GRADE_ORDER:
            assert counts[grade] == pytest.approx(1000 / 12, abs=3)

    def test_empty_scores(self):
        with pytest.raises(ValueError):
            calibrate_thresholds([])
