"""Tests for RecommendationBuilder and the public filter."""

from __future__ import annotations

from dataclasses import replace

import pytest

from gradebot.engine.recommender import (
    RecommendationBuilder,
    dominant_factor,
    filter_public,
    sort_recommendations,
)
from gradebot.models import BandedFactorSet, FactorInputs, FactorType, Grade, Prediction
from gradebot.scoring.factor_scorer import draw_jitter_set
from tests.helpers import AWAY, EVENT_ID, HOME, make_prediction, make_quote


@pytest.fixture()
def builder() -> RecommendationBuilder:
    return RecommendationBuilder()


def _build(builder, prediction=None, quote=None, factors=None, jitter=None, baseline=None):
    return builder.build(
        EVENT_ID,
        prediction or make_prediction(),
        quote if quote is not None else make_quote(),
        factors,
        jitter,
        baseline,
    )


class TestBuild:
    def test_neutral_inputs(self, builder):
        # home: edge +2pt -> market 68, confidence 70 -> 62, 文脈は中立 (58/52/60/50)
        recs = _build(builder)
        assert [r.side for r in recs] == ["home", "away"]

        home, away = recs
        assert home.selection == f"{HOME} ML"
        assert home.team == HOME
        assert home.odds == -150
        assert home.edge == pytest.approx(0.02)
        assert home.factors == BandedFactorSet(58, 52, 60, 50, 68, 62)
        assert home.weighted_score == pytest.approx(59.3)
        assert home.grade == Grade.C_PLUS
        assert home.expected_value == pytest.approx(3.333, abs=0.001)
        assert home.kelly_fraction == pytest.approx(0.05)
        assert home.bookmaker == "draftkings"
        assert home.market == "moneyline"
        assert not home.historical

        assert away.team == AWAY
        assert away.edge == pytest.approx(-0.05)
        assert away.weighted_score == pytest.approx(51.8)
        assert away.grade == Grade.C_MINUS
        assert away.kelly_fraction == 0.0

    def test_factor_inputs_raise_grade(self, builder):
        factors = FactorInputs(home={"offensive": 90})
        home = next(r for r in _build(builder, factors=factors) if r.side == "home")
        assert home.factors.offensive == 88
        assert home.weighted_score == pytest.approx(63.8)
        assert home.grade == Grade.B_MINUS
        assert "strong offensive metrics" in home.reasoning

    def test_jitter_shifts_scores(self, builder):
        home = _build(builder, jitter={"market": 3.0})[0]
        assert home.factors.market == 71
        assert home.weighted_score == pytest.approx(60.05)

    def test_same_jitter_same_output(self, builder):
        jitter = draw_jitter_set(EVENT_ID, "abc")
        assert _build(builder, jitter=jitter) == _build(builder, jitter=jitter)

    def test_reasoning(self, builder):
        home = _build(builder)[0]
        assert home.reasoning.startswith(f"{HOME} at home: model 62.0% vs market 60.0%")
        assert "led by market (68)" in home.reasoning
        assert "70% model confidence" in home.reasoning

    def test_reasoning_mentions_anchor(self, builder):
        recs = _build(builder, prediction=make_prediction(0.128), quote=make_quote(-240, 194))
        away = next(r for r in recs if r.side == "away")
        assert "anchored from 87.2%" in away.reasoning
        assert "on the road" in away.reasoning

    def test_sorted_by_grade(self, builder):
        recs = _build(builder, factors=FactorInputs(away={"offensive": 90, "pitching": 90, "momentum": 90}))
        assert recs[0].side == "away"
        assert [r.grade for r in recs] == sorted((r.grade for r in recs), key=list(Grade).index)

    def test_no_quote(self, builder):
        assert builder.build(EVENT_ID, make_prediction(), None) == []

    def test_no_moneyline(self, builder):
        assert _build(builder, quote=make_quote(None, None)) == []

    def test_invalid_side_dropped(self, builder):
        recs = _build(builder, quote=make_quote(0, 130))
        assert [r.side for r in recs] == ["away"]


class TestUnderdogCap:
    def test_absurd_probability_is_capped(self, builder):
        recs = _build(builder, prediction=make_prediction(0.128), quote=make_quote(-240, 194))
        away = next(r for r in recs if r.side == "away")
        assert away.implied_probability == pytest.approx(0.340, abs=0.001)
        assert away.edge == pytest.approx(0.08)
        assert away.predicted_probability <= 0.75
        assert away.kelly_fraction <= 0.05

    def test_long_shot_with_low_model_probability_not_promoted(self, builder):
        # +400 / +900 の大穴は確率下限と両立しないので生成しない
        for home_odds, away_odds in [(-500, 400), (-1200, 900)]:
            recs = _build(builder, prediction=make_prediction(0.95), quote=make_quote(home_odds, away_odds))
            assert recs == []

    def test_edge_within_caps_and_sign(self, builder):
        for prob in (0.05, 0.20, 0.80):
            for r in _build(builder, prediction=make_prediction(prob), quote=make_quote(-280, 260)):
                assert -0.05 - 1e-9 <= r.edge <= 0.08 + 1e-9
                raw = (prob if r.side == "home" else 1 - prob) - r.implied_probability
                assert r.edge * raw >= -1e-12


class TestInvariants:
    def test_bounds_over_grid(self, builder):
        for home_odds, away_odds in [(-400, 320), (-240, 194), (-150, 130), (-110, -110), (120, -140), (250, -300)]:
            for p in (0.05, 0.25, 0.45, 0.55, 0.75, 0.95):
                pred = Prediction(p, round(1 - p, 6), confidence=p)
                for r in _build(builder, prediction=pred, quote=make_quote(home_odds, away_odds)):
                    assert 0.25 <= r.predicted_probability <= 0.75
                    assert 0.0 <= r.kelly_fraction <= 0.05
                    assert r.edge == pytest.approx(r.predicted_probability - r.implied_probability, abs=1e-6)
                    for score in r.factors.as_dict().values():
                        assert 30 <= score <= 100


class TestMaxGradeStep:
    def test_move_limited_against_baseline(self):
        builder = RecommendationBuilder(max_grade_step=1)
        baseline = [replace(r, grade=Grade.A_PLUS) for r in _build(builder)]
        home = next(r for r in _build(builder, baseline=baseline) if r.side == "home")
        assert home.grade == Grade.A

    def test_baseline_ignored_without_step(self, builder):
        baseline = [replace(r, grade=Grade.A_PLUS) for r in _build(builder)]
        assert _build(builder, baseline=baseline) == _build(builder)

    def test_no_baseline(self):
        builder = RecommendationBuilder(max_grade_step=1)
        assert _build(builder)[0].grade == Grade.C_PLUS


class TestFilterPublic:
    def test_min_grade(self, builder):
        recs = filter_public(_build(builder), min_grade=Grade.C)
        assert [r.side for r in recs] == ["home"]

    def test_edge_floor(self, builder):
        recs = filter_public(_build(builder), edge_floor=0.0)
        assert [r.side for r in recs] == ["home"]

    def test_defaults_keep_boundary(self, builder):
        recs = _build(builder, quote=make_quote(-150, 150))
        assert len(filter_public(recs)) == len([r for r in recs if r.edge >= -0.05])

    def test_subset_with_same_grades(self, builder):
        full = _build(builder, jitter=draw_jitter_set(EVENT_ID, "fp"))
        public = filter_public(full, min_grade=Grade.C_MINUS)
        assert all(r in full for r in public)


class TestHelpers:
    def test_dominant_factor(self):
        banded = BandedFactorSet(58, 52, 60, 50, 68, 62)
        assert dominant_factor(banded) == FactorType.MARKET

    def test_dominant_context_factor(self):
        banded = BandedFactorSet(100, 52, 60, 50, 38, 62)
        assert dominant_factor(banded) == FactorType.OFFENSIVE

    def test_sort_tiebreak_on_edge(self, builder):
        a, b = _build(builder)
        low = replace(a, grade=Grade.B, edge=0.01)
        high = replace(b, grade=Grade.B, edge=0.03)
        assert sort_recommendations([low, high]) == [high, low]
