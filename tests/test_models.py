"""Tests for domain records."""

from __future__ import annotations

import dataclasses

import pytest

from gradebot.engine.recommender import RecommendationBuilder
from gradebot.models import FactorInputs, Grade, Prediction, Recommendation
from tests.helpers import EVENT_ID, make_prediction, make_quote


class TestPrediction:
    def test_valid(self):
        p = Prediction(0.55, 0.44, predicted_total=8.0, confidence=0.6)
        assert p.home_win_probability == 0.55

    def test_sum_tolerance(self):
        Prediction(0.51, 0.50)
        with pytest.raises(ValueError, match="sum"):
            Prediction(0.55, 0.50)

    @pytest.mark.parametrize("kwargs", [
        {"home_win_probability": 1.2, "away_win_probability": -0.2},
        {"home_win_probability": 0.5, "away_win_probability": 0.5, "confidence": 1.5},
    ])
    def test_out_of_range(self, kwargs):
        with pytest.raises(ValueError, match=r"\[0, 1\]"):
            Prediction(**kwargs)


class TestQuotes:
    def test_frozen(self):
        quote = make_quote()
        with pytest.raises(dataclasses.FrozenInstanceError):
            quote.bookmaker = "fanduel"

    def test_moneyline_properties(self):
        quote = make_quote(-120, 105)
        assert (quote.home_moneyline, quote.away_moneyline) == (-120, 105)


class TestFactorInputs:
    def test_for_side(self):
        inputs = FactorInputs(home={"offensive": 80}, away={"momentum": 30})
        assert inputs.for_side("home") == {"offensive": 80}
        assert inputs.for_side("away") == {"momentum": 30}


class TestRecommendation:
    def test_dict_round_trip(self):
        rec = RecommendationBuilder().build(EVENT_ID, make_prediction(), make_quote())[0]
        d = rec.to_dict()
        assert d["grade"] == rec.grade.value
        assert isinstance(d["factors"], dict)
        assert Recommendation.from_dict(d) == rec

    def test_grade_order(self):
        assert list(Grade)[0] == Grade.A_PLUS
        assert list(Grade)[-1] == Grade.F
        assert len(Grade) == 12
