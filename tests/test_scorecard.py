"""Tests for scorecard resolution and weighted scoring."""

from decimal import Decimal

import pytest
from hypothesis import given, strategies as st

from compensation_engine.calculators.scorecard import (
    DEFAULT_SCORECARD,
    check_scores,
    resolve_scorecard,
    weighted_score,
)
from compensation_engine.calculators.types import MetricScore, ScorecardMetric
from compensation_engine.errors import ValidationError

CUSTOM_TEMPLATE = [
    {"name": "Retention", "description": "M1 retention", "weight": 60, "max_score": 5},
    {"name": "Attendance", "description": "", "weight": 40, "min_score": 1, "max_score": 10},
]


def scores_for(scorecard, values):
    return {
        m.name: MetricScore(metric_name=m.name, score=Decimal(str(v)))
        for m, v in zip(scorecard, values)
    }


class TestResolveScorecard:
    def test_default_flag_wins(self):
        assert resolve_scorecard(True, CUSTOM_TEMPLATE) == list(DEFAULT_SCORECARD)

    def test_custom_template(self):
        scorecard = resolve_scorecard(False, CUSTOM_TEMPLATE)
        assert [m.name for m in scorecard] == ["Retention", "Attendance"]
        assert scorecard[0].max_score == Decimal("5")
        assert scorecard[1].min_score == Decimal("1")

    def test_empty_template_falls_back_to_default(self):
        assert resolve_scorecard(False, []) == list(DEFAULT_SCORECARD)
        assert resolve_scorecard(False, None) == list(DEFAULT_SCORECARD)

    def test_default_weights(self):
        weights = {m.name: m.weight for m in DEFAULT_SCORECARD}
        assert weights == {
            "Session Fill Rates": Decimal("15"),
            "Buddy Trainer Activity": Decimal("20"),
            "DS Conversions": Decimal("15"),
            "Team Focus": Decimal("10"),
            "Special Projects": Decimal("40"),
        }
        assert all(m.max_score == Decimal("10") for m in DEFAULT_SCORECARD)

    @pytest.mark.parametrize(
        "template",
        [
            [{"name": "X", "weight": 50, "min_score": 5, "max_score": 5}],
            [{"name": "X", "weight": 120}],
            [{"name": "X", "weight": -1}],
            [{"name": "X", "weight": 0}],
            [{"name": "X", "weight": 10}, {"name": "X", "weight": 10}],
            [{"weight": 10}],
        ],
    )
    def test_unusable_template(self, template):
        with pytest.raises(ValidationError):
            resolve_scorecard(False, template)


class TestWeightedScore:
    def test_all_eights_is_point_eight(self):
        scorecard = list(DEFAULT_SCORECARD)
        score = weighted_score(scorecard, scores_for(scorecard, [8] * 5))
        assert score == Decimal("0.800000")

    def test_mixed_scores(self):
        scorecard = list(DEFAULT_SCORECARD)
        # (10*15 + 5*20 + 0*15 + 10*10 + 7*40) / 10 / 100
        score = weighted_score(scorecard, scores_for(scorecard, [10, 5, 0, 10, 7]))
        assert score == Decimal("0.630000")

    def test_normalizes_by_max_score(self):
        scorecard = resolve_scorecard(False, CUSTOM_TEMPLATE)
        # 4/5*60 + 5/10*40 = 48 + 20 = 68 -> 0.68
        assert weighted_score(scorecard, scores_for(scorecard, [4, 5])) == Decimal("0.680000")

    def test_rounds_to_six_places(self):
        scorecard = [
            ScorecardMetric(name="A", description="", weight=Decimal("1")),
            ScorecardMetric(name="B", description="", weight=Decimal("2")),
        ]
        score = weighted_score(scorecard, scores_for(scorecard, [10, 0]))
        assert score == Decimal("0.333333")

    def test_zero_total_weight(self):
        scorecard = [ScorecardMetric(name="A", description="", weight=Decimal("0"))]
        with pytest.raises(ValidationError):
            weighted_score(scorecard, scores_for(scorecard, [5]))

    @given(st.lists(st.integers(min_value=0, max_value=10), min_size=5, max_size=5))
    def test_score_always_in_unit_interval(self, values):
        scorecard = list(DEFAULT_SCORECARD)
        score = weighted_score(scorecard, scores_for(scorecard, values))
        assert Decimal("0") <= score <= Decimal("1")


class TestCheckScores:
    def test_missing_metric(self):
        scores = [MetricScore("Session Fill Rates", Decimal("8"))]
        with pytest.raises(ValidationError, match="Missing scores"):
            check_scores(DEFAULT_SCORECARD, scores)

    def test_partial_allowed_when_not_required(self):
        scores = [MetricScore("Session Fill Rates", Decimal("8"))]
        checked = check_scores(DEFAULT_SCORECARD, scores, require_all=False)
        assert list(checked) == ["Session Fill Rates"]

    def test_unknown_metric(self):
        scores = [MetricScore("Karaoke", Decimal("8"))]
        with pytest.raises(ValidationError, match="Invalid metric"):
            check_scores(DEFAULT_SCORECARD, scores, require_all=False)

    def test_duplicate_metric(self):
        scores = [
            MetricScore("Team Focus", Decimal("8")),
            MetricScore("Team Focus", Decimal("9")),
        ]
        with pytest.raises(ValidationError, match="Duplicate"):
            check_scores(DEFAULT_SCORECARD, scores, require_all=False)

    @given(
        st.one_of(
            st.decimals(max_value=Decimal("-0.01"), allow_nan=False, allow_infinity=False),
            st.decimals(min_value=Decimal("10.01"), allow_nan=False, allow_infinity=False),
        )
    )
    def test_out_of_range_always_fails(self, value):
        scores = [MetricScore("Team Focus", value)]
        with pytest.raises(ValidationError):
            check_scores(DEFAULT_SCORECARD, scores, require_all=False)
