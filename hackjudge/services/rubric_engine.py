"""
hackjudge/services/rubric_engine.py
Deterministic Rubric Scoring Engine

Pure functions: no database access, no I/O.

Validation order for a score submission:
-----------------------------------------
1. Criterion keys must belong to the event rubric (and appear once)
2. Every score must lie in [0, max_score] on a 0.5 step

Weighted aggregate:
-------------------
    aggregate = sum(score * weight) / sum(weight)

Zero-weight criteria contribute to neither side. A rubric whose submitted
weights sum to zero aggregates to 0. All arithmetic is Decimal; values are
rounded half-up to 2 places only for display and ranking.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from hackjudge.errors import InvalidCriteriaError, InvalidScoreError

SCORE_STEP = Decimal("0.5")
TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0")


@dataclass(frozen=True)
class ScoreItem:
    criterion_key: str
    score: Decimal
    comment: Optional[str] = None


@dataclass(frozen=True)
class CriterionBreakdown:
    criterion_id: int
    key: str
    label: str
    description: Optional[str]
    weight: int
    max_score: Decimal
    average_score: Decimal
    weighted_score: Decimal
    score_count: int


def to_decimal(value: Any) -> Decimal:
    """Convert an int/float/str/Decimal score to Decimal via its string form."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidScoreError(f"Score {value!r} is not a number", details={"value": str(value)})


def quantize_score(value: Any) -> Decimal:
    """Round half-up to 2 decimal places."""
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def compute_weighted_aggregate(pairs: Iterable[Tuple[Any, Any]]) -> Decimal:
    """
    Weighted mean of ``(score, weight)`` pairs.

    Returns the unrounded Decimal; callers quantize for display.
    """
    weighted_sum = ZERO
    total_weight = ZERO

    for score, weight in pairs:
        w = to_decimal(weight)
        if w == 0:
            continue
        weighted_sum += to_decimal(score) * w
        total_weight += w

    if total_weight == 0:
        return ZERO
    return weighted_sum / total_weight


def validate_items(items: Sequence[ScoreItem], criteria: Sequence[Any]) -> List[Tuple[ScoreItem, Any]]:
    """
    Check submitted items against the event rubric.

    Args:
        items: Submitted score items
        criteria: Rubric criteria (anything with key, weight, max_score)

    Returns:
        List of (item, criterion) pairs in submission order

    Raises:
        InvalidCriteriaError: Unknown or repeated criterion keys
        InvalidScoreError: Score outside [0, max_score] or off the 0.5 step
    """
    by_key: Dict[str, Any] = {c.key: c for c in criteria}

    unknown = [item.criterion_key for item in items if item.criterion_key not in by_key]
    if unknown:
        raise InvalidCriteriaError(unknown)

    seen = set()
    duplicates = []
    for item in items:
        if item.criterion_key in seen:
            duplicates.append(item.criterion_key)
        seen.add(item.criterion_key)
    if duplicates:
        raise InvalidCriteriaError(
            duplicates,
            message=f"Criteria scored more than once: {', '.join(sorted(set(duplicates)))}"
        )

    invalid = []
    pairs = []
    for item in items:
        criterion = by_key[item.criterion_key]
        score = to_decimal(item.score)
        max_score = to_decimal(criterion.max_score)

        if not score.is_finite() or score < 0 or score > max_score or score % SCORE_STEP != 0:
            invalid.append({
                "criterion_key": item.criterion_key,
                "score": str(item.score),
                "max_score": str(max_score),
            })
            continue
        pairs.append((item, criterion))

    if invalid:
        raise InvalidScoreError(
            f"Scores must be between 0 and the criterion maximum in steps of {SCORE_STEP}",
            details={"invalid_scores": invalid}
        )

    return pairs


def rubric_breakdown(criteria: Sequence[Any], scores: Iterable[Tuple[int, Any]]) -> List[CriterionBreakdown]:
    """
    Per-criterion average over every ``(criterion_id, score)`` row.

    Criteria with no scores are left out. Order follows ``criteria``.
    """
    totals: Dict[int, List[Decimal]] = {}
    for criterion_id, score in scores:
        totals.setdefault(criterion_id, []).append(to_decimal(score))

    breakdown = []
    for criterion in criteria:
        values = totals.get(criterion.id)
        if not values:
            continue
        average = sum(values, ZERO) / len(values)
        breakdown.append(CriterionBreakdown(
            criterion_id=criterion.id,
            key=criterion.key,
            label=criterion.label,
            description=criterion.description,
            weight=criterion.weight,
            max_score=to_decimal(criterion.max_score),
            average_score=quantize_score(average),
            weighted_score=quantize_score(average * criterion.weight),
            score_count=len(values),
        ))
    return breakdown
