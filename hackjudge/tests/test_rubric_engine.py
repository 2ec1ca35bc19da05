"""
Unit Tests for the Rubric Scoring Engine

Pure functions only: validation order, bounds and weighted aggregates.
"""
from decimal import Decimal
from types import SimpleNamespace

import pytest

from hackjudge.errors import InvalidCriteriaError, InvalidScoreError
from hackjudge.services.rubric_engine import (
    ScoreItem,
    compute_weighted_aggregate,
    quantize_score,
    rubric_breakdown,
    validate_items,
)


def criterion(id, key, weight=1, max_score="10", label=None, description=None):
    return SimpleNamespace(
        id=id, key=key, weight=weight, max_score=Decimal(max_score),
        label=label or key.title(), description=description,
    )


CRITERIA = [
    criterion(1, "innovation", weight=3),
    criterion(2, "execution", weight=2),
    criterion(3, "design", weight=1),
]


def item(key, score):
    return ScoreItem(criterion_key=key, score=Decimal(str(score)))


# =============================================================================
# Weighted aggregate
# =============================================================================

class TestWeightedAggregate:

    def test_weighted_mean(self):
        # (8*3 + 6*2 + 10*1) / 6 = 46 / 6
        result = compute_weighted_aggregate([(8, 3), (6, 2), (10, 1)])
        assert quantize_score(result) == Decimal("7.67")

    def test_zero_weight_items_are_ignored(self):
        assert compute_weighted_aggregate([(8, 1), (2, 0)]) == Decimal("8")

    def test_all_zero_weights_aggregate_to_zero(self):
        assert compute_weighted_aggregate([(8, 0), (9, 0)]) == Decimal("0")

    def test_empty_aggregate_is_zero(self):
        assert compute_weighted_aggregate([]) == Decimal("0")

    def test_equal_weights_is_plain_mean(self):
        assert compute_weighted_aggregate([(4, 2), (6, 2)]) == Decimal("5")

    def test_quantize_rounds_half_up(self):
        assert quantize_score("2.675") == Decimal("2.68")
        assert quantize_score("2.665") == Decimal("2.67")
        assert quantize_score(Decimal("7.6666")) == Decimal("7.67")


# =============================================================================
# Validation
# =============================================================================

class TestValidateItems:

    def test_valid_items_pair_with_criteria(self):
        pairs = validate_items([item("innovation", 8), item("design", "7.5")], CRITERIA)
        assert [(i.criterion_key, c.id) for i, c in pairs] == [("innovation", 1), ("design", 3)]

    def test_unknown_keys_are_named(self):
        with pytest.raises(InvalidCriteriaError) as exc:
            validate_items([item("innovation", 8), item("bogus", 5), item("also_bad", 5)], CRITERIA)
        assert exc.value.invalid_keys == ["also_bad", "bogus"]
        assert exc.value.details == {"invalid_keys": ["also_bad", "bogus"]}
        assert exc.value.status_code == 400

    def test_criteria_checked_before_bounds(self):
        # Both problems present; the unknown key wins
        with pytest.raises(InvalidCriteriaError):
            validate_items([item("innovation", 11), item("bogus", 5)], CRITERIA)

    def test_duplicate_keys_rejected(self):
        with pytest.raises(InvalidCriteriaError) as exc:
            validate_items([item("design", 5), item("design", 6)], CRITERIA)
        assert exc.value.invalid_keys == ["design"]

    @pytest.mark.parametrize("score", ["10.5", "-1", "7.3", "11"])
    def test_out_of_bounds_scores(self, score):
        with pytest.raises(InvalidScoreError) as exc:
            validate_items([item("innovation", score)], CRITERIA)
        assert exc.value.details["invalid_scores"][0]["criterion_key"] == "innovation"

    @pytest.mark.parametrize("score", ["0", "0.5", "7.5", "10"])
    def test_bounds_are_inclusive(self, score):
        assert len(validate_items([item("innovation", score)], CRITERIA)) == 1

    def test_custom_max_score(self):
        criteria = [criterion(9, "demo", max_score="5")]
        assert validate_items([item("demo", 5)], criteria)
        with pytest.raises(InvalidScoreError):
            validate_items([item("demo", "5.5")], criteria)

    def test_nan_is_invalid(self):
        with pytest.raises(InvalidScoreError):
            validate_items([ScoreItem(criterion_key="design", score=Decimal("NaN"))], CRITERIA)

    def test_non_numeric_is_invalid(self):
        with pytest.raises(InvalidScoreError):
            validate_items([ScoreItem(criterion_key="design", score="ten")], CRITERIA)


# =============================================================================
# Breakdown
# =============================================================================

def test_rubric_breakdown_averages_per_criterion():
    rows = [(1, Decimal("8")), (1, Decimal("6")), (3, Decimal("5"))]
    breakdown = rubric_breakdown(CRITERIA, rows)

    assert [b.key for b in breakdown] == ["innovation", "design"]
    innovation = breakdown[0]
    assert innovation.average_score == Decimal("7.00")
    assert innovation.weighted_score == Decimal("21.00")
    assert innovation.score_count == 2
