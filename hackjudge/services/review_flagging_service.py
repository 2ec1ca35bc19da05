"""
hackjudge/services/review_flagging_service.py
Review Integrity Analyzer

Two independent checks over an event's reviews:

Check A - outlier ratings (MAD z-score)
---------------------------------------
    median = median(ratings)
    MAD    = median(|r - median|)
    z      = (r - median) / (1.4826 * MAD)

1.4826 makes MAD a consistent estimator of the standard deviation for
normal data. MAD == 0 means no spread, so every z is 0. Events with fewer
than MIN_REVIEWS_FOR_OUTLIERS reviews are never flagged. |z| >= 3 flags.

Check B - invalid users
-----------------------
Every reviewer is re-verified against the event now; an author who is no
longer organizer, assigned judge or team member with a submission is flagged.

Each check owns one flag reason. A run upserts flags that apply and deletes
flags of its reason that no longer apply. suspicious_pattern flags belong to
moderators and are never touched here.
"""
import logging
import statistics
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hackjudge.orm.base import utcnow
from hackjudge.orm.review import FlagReason, Review, ReviewFlag
from hackjudge.orm.user import User
from hackjudge.services.verification_service import EventVerifier

logger = logging.getLogger(__name__)

MAD_CONSISTENCY = 1.4826
MIN_REVIEWS_FOR_OUTLIERS = 3
OUTLIER_Z_THRESHOLD = 3.0

DETECTION_MAD = "MAD_zscore"
DETECTION_VERIFICATION = "user_verification"


@dataclass(frozen=True)
class MadResult:
    zscores: List[float]
    median: float
    mad: float


@dataclass(frozen=True)
class Outlier:
    review: Any
    zscore: float
    median: float
    mad: float


@dataclass
class CheckResult:
    flagged: int = 0
    cleared: int = 0


@dataclass
class FlaggingReport:
    event_id: int
    outliers_flagged: int = 0
    invalid_users_flagged: int = 0
    flags_cleared: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "outliers_flagged": self.outliers_flagged,
            "invalid_users_flagged": self.invalid_users_flagged,
            "flags_cleared": self.flags_cleared,
            "errors": list(self.errors),
        }


# =============================================================================
# Pure statistics
# =============================================================================

def calculate_mad_zscores(ratings: Sequence[float]) -> MadResult:
    """Robust z-score of every rating, in input order."""
    if not ratings:
        return MadResult(zscores=[], median=0.0, mad=0.0)

    median = float(statistics.median(ratings))
    mad = float(statistics.median([abs(r - median) for r in ratings]))

    if mad == 0:
        return MadResult(zscores=[0.0] * len(ratings), median=median, mad=0.0)

    scale = MAD_CONSISTENCY * mad
    return MadResult(
        zscores=[(r - median) / scale for r in ratings],
        median=median,
        mad=mad,
    )


def find_outliers(reviews: Sequence[Any]) -> List[Outlier]:
    """Reviews whose rating has |z| >= OUTLIER_Z_THRESHOLD."""
    if len(reviews) < MIN_REVIEWS_FOR_OUTLIERS:
        return []

    result = calculate_mad_zscores([r.rating for r in reviews])
    return [
        Outlier(review=review, zscore=z, median=result.median, mad=result.mad)
        for review, z in zip(reviews, result.zscores)
        if abs(z) >= OUTLIER_Z_THRESHOLD
    ]


# =============================================================================
# Flag persistence helpers
# =============================================================================

async def _event_reviews(db: AsyncSession, event_id: int) -> List[Review]:
    result = await db.execute(
        select(Review).where(Review.event_id == event_id).order_by(Review.id)
    )
    return list(result.scalars().all())


async def _existing_flags(db: AsyncSession, event_id: int, reason: FlagReason) -> Dict[int, ReviewFlag]:
    result = await db.execute(
        select(ReviewFlag)
        .join(Review, Review.id == ReviewFlag.review_id)
        .where(Review.event_id == event_id, ReviewFlag.reason == reason)
    )
    return {flag.review_id: flag for flag in result.scalars().all()}


def _upsert_flag(
    db: AsyncSession,
    existing: Optional[ReviewFlag],
    review_id: int,
    reason: FlagReason,
    score: Optional[float],
    metadata: Dict[str, Any],
    detection_method: str,
) -> ReviewFlag:
    if existing is None:
        flag = ReviewFlag(review_id=review_id, reason=reason)
        db.add(flag)
    else:
        flag = existing
    flag.score = score
    flag.metadata_json = metadata
    flag.detection_method = detection_method
    flag.updated_at = utcnow()
    return flag


def _role_value(review: Review) -> Optional[str]:
    role = review.role
    return role.value if hasattr(role, "value") else role


# =============================================================================
# Checks
# =============================================================================

async def flag_outlier_reviews(db: AsyncSession, event_id: int) -> CheckResult:
    """Check A. Commits on success."""
    reviews = await _event_reviews(db, event_id)
    outliers = find_outliers(reviews)
    existing = await _existing_flags(db, event_id, FlagReason.OUTLIER_RATING)

    ratings = [r.rating for r in reviews]
    event_average = round(sum(ratings) / len(ratings), 2) if ratings else None

    result = CheckResult()
    outlier_ids = set()
    for outlier in outliers:
        review = outlier.review
        outlier_ids.add(review.id)
        _upsert_flag(
            db,
            existing.get(review.id),
            review.id,
            FlagReason.OUTLIER_RATING,
            score=round(abs(outlier.zscore), 4),
            metadata={
                "mad_zscore": round(outlier.zscore, 4),
                "event_median": outlier.median,
                "event_average_rating": event_average,
                "mad": outlier.mad,
                "user_role": _role_value(review),
                "detection_method": DETECTION_MAD,
            },
            detection_method=DETECTION_MAD,
        )
        result.flagged += 1

    for review_id, flag in existing.items():
        if review_id not in outlier_ids:
            await db.delete(flag)
            result.cleared += 1

    await db.commit()

    if result.flagged or result.cleared:
        logger.info(
            f"Outlier check for event {event_id}: {result.flagged} flagged, {result.cleared} cleared "
            f"({len(reviews)} reviews)"
        )
    return result


async def flag_invalid_user_reviews(db: AsyncSession, event_id: int, verifier: EventVerifier) -> CheckResult:
    """Check B. Commits on success."""
    reviews = await _event_reviews(db, event_id)
    existing = await _existing_flags(db, event_id, FlagReason.INVALID_USER)

    result = CheckResult()
    for review in reviews:
        verification = await verifier.is_verified(event_id, review.user_id)
        flag = existing.get(review.id)

        if verification.verified:
            if flag is not None:
                await db.delete(flag)
                result.cleared += 1
            continue

        _upsert_flag(
            db,
            flag,
            review.id,
            FlagReason.INVALID_USER,
            score=None,
            metadata={
                "user_role": _role_value(review),
                "detection_method": DETECTION_VERIFICATION,
            },
            detection_method=DETECTION_VERIFICATION,
        )
        result.flagged += 1

    await db.commit()

    if result.flagged or result.cleared:
        logger.info(f"Verification check for event {event_id}: {result.flagged} flagged, {result.cleared} cleared")
    return result


async def run_flagging_analysis(db: AsyncSession, event_id: int, verifier: EventVerifier) -> FlaggingReport:
    """
    Run both checks, one after the other. A failing check is rolled back
    and reported; it does not stop the other one.
    """
    report = FlaggingReport(event_id=event_id)

    try:
        outliers = await flag_outlier_reviews(db, event_id)
        report.outliers_flagged = outliers.flagged
        report.flags_cleared += outliers.cleared
    except Exception as e:
        await db.rollback()
        logger.exception(f"Outlier check failed for event {event_id}")
        report.errors.append(f"outlier_rating: {type(e).__name__}: {e}")

    try:
        invalid = await flag_invalid_user_reviews(db, event_id, verifier)
        report.invalid_users_flagged = invalid.flagged
        report.flags_cleared += invalid.cleared
    except Exception as e:
        await db.rollback()
        logger.exception(f"Verification check failed for event {event_id}")
        report.errors.append(f"invalid_user: {type(e).__name__}: {e}")

    return report


# =============================================================================
# Moderation view
# =============================================================================

async def get_flagged_reviews_with_details(db: AsyncSession, event_id: int) -> List[Dict[str, Any]]:
    """Every flag of the event with its review and author, newest flag first."""
    result = await db.execute(
        select(ReviewFlag, Review, User)
        .join(Review, Review.id == ReviewFlag.review_id)
        .join(User, User.id == Review.user_id)
        .where(Review.event_id == event_id)
        .order_by(ReviewFlag.updated_at.desc(), ReviewFlag.id.desc())
    )

    flagged = []
    for flag, review, author in result.all():
        flagged.append({
            "flag_id": flag.id,
            "review_id": review.id,
            "reason": flag.reason.value,
            "score": flag.score,
            "detection_method": flag.detection_method,
            "metadata": flag.metadata_json or {},
            "flagged_at": flag.updated_at.isoformat() if flag.updated_at else None,
            "rating": review.rating,
            "body": review.body,
            "role": _role_value(review),
            "author_id": author.id,
            "author_name": author.full_name,
            "author_email": author.email,
            "review_created_at": review.created_at.isoformat() if review.created_at else None,
        })
    return flagged
