"""
hackjudge/services/review_service.py
Event reviews

One review per (event, user). Resubmitting updates the existing row.
Only verified actors may review; the reviewer's role is captured at
write time and kept with the review.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hackjudge.config.settings import FeatureFlags
from hackjudge.errors import (
    AccessDeniedError,
    BadRequestError,
    ErrorCode,
    NotFoundError,
    wrap_store_failure,
)
from hackjudge.orm.event import Event
from hackjudge.orm.review import Review, ReviewerRole
from hackjudge.services.review_flagging_service import run_flagging_analysis
from hackjudge.services.verification_service import EventVerifier, require_organizer

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5
MAX_BODY_LENGTH = 5000


def _check_rating(rating: Any) -> int:
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise BadRequestError(
            "Rating must be an integer between 1 and 5",
            code=ErrorCode.INVALID_RATING,
            details={"rating": str(rating)}
        )
    if rating < MIN_RATING or rating > MAX_RATING:
        raise BadRequestError(
            f"Rating must be between {MIN_RATING} and {MAX_RATING}",
            code=ErrorCode.INVALID_RATING,
            details={"rating": rating}
        )
    return rating


async def _get_review(db: AsyncSession, event_id: int, user_id: int) -> Optional[Review]:
    result = await db.execute(
        select(Review).where(Review.event_id == event_id, Review.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def submit_review(
    db: AsyncSession,
    event_id: int,
    user_id: int,
    rating: int,
    body: str,
    verifier: EventVerifier,
    attendance_code: Optional[str] = None,
    run_analysis: bool = True,
) -> Review:
    """
    Create or update the caller's review of an event.

    Raises:
        NotFoundError: Unknown event
        BadRequestError: Rating not an integer in 1..5, or body too long
        AccessDeniedError: Caller not verified, or attendance code mismatch
        TransientStoreError: Write failed
    """
    event = await db.get(Event, event_id)
    if event is None:
        raise NotFoundError("Event", event_id, code=ErrorCode.EVENT_NOT_FOUND)

    rating = _check_rating(rating)
    body = (body or "").strip()
    if len(body) > MAX_BODY_LENGTH:
        raise BadRequestError(
            f"Review body must be at most {MAX_BODY_LENGTH} characters",
            code=ErrorCode.VALIDATION_ERROR
        )

    verification = await verifier.is_verified(event_id, user_id)
    if not verification.verified:
        logger.warning(f"Unverified user {user_id} attempted to review event {event_id}")
        raise AccessDeniedError(
            "Only event participants, judges and organizers can review this event",
            code=ErrorCode.NOT_VERIFIED,
        )

    if FeatureFlags.REQUIRE_ATTENDANCE_CODE or (event.attendance_code and attendance_code):
        if not await verifier.check_attendance_code(event_id, attendance_code):
            logger.warning(f"Invalid attendance code from user {user_id} for event {event_id}")
            raise AccessDeniedError(
                "Invalid attendance code",
                code=ErrorCode.INVALID_ATTENDANCE_CODE,
            )

    role = ReviewerRole(verification.role.value)

    review = await _get_review(db, event_id, user_id)
    created = review is None
    if created:
        review = Review(event_id=event_id, user_id=user_id)
        db.add(review)
    review.role = role
    review.rating = rating
    review.body = body

    try:
        await db.commit()
    except IntegrityError:
        # Concurrent first review by the same user; last write wins
        await db.rollback()
        review = await _get_review(db, event_id, user_id)
        if review is None:
            raise
        review.role = role
        review.rating = rating
        review.body = body
        created = False
        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            raise wrap_store_failure(e, "submit_review")
    except SQLAlchemyError as e:
        await db.rollback()
        raise wrap_store_failure(e, "submit_review")

    logger.info(
        f"Review {'created' if created else 'updated'} for event {event_id} by user {user_id} "
        f"(role={role.value}, rating={rating})"
    )

    if run_analysis and FeatureFlags.FLAG_ANALYSIS_ON_REVIEW:
        try:
            report = await run_flagging_analysis(db, event_id, verifier)
            if report.errors:
                logger.warning(f"Flagging analysis for event {event_id} reported errors: {report.errors}")
        except Exception:
            logger.exception(f"Flagging analysis failed after review of event {event_id}")

    await db.refresh(review)
    return review


async def list_reviews(db: AsyncSession, event_id: int) -> List[Review]:
    event = await db.get(Event, event_id)
    if event is None:
        raise NotFoundError("Event", event_id, code=ErrorCode.EVENT_NOT_FOUND)

    result = await db.execute(
        select(Review)
        .where(Review.event_id == event_id)
        .order_by(Review.created_at.desc(), Review.id.desc())
    )
    return list(result.scalars().all())


async def delete_review(db: AsyncSession, event_id: int, review_id: int, actor_id: int) -> None:
    """
    Organizer moderation: remove a review and its flags.

    Raises:
        NotFoundError: Unknown event or review
        AccessDeniedError: Actor is not the organizer
    """
    await require_organizer(db, event_id, actor_id)

    result = await db.execute(
        select(Review).where(Review.id == review_id, Review.event_id == event_id)
    )
    review = result.scalar_one_or_none()
    if review is None:
        raise NotFoundError("Review", review_id, code=ErrorCode.REVIEW_NOT_FOUND)

    try:
        await db.delete(review)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise wrap_store_failure(e, "delete_review")

    logger.info(f"Review {review_id} of event {event_id} deleted by organizer {actor_id}")


def review_to_dict(review: Review) -> Dict[str, Any]:
    role = review.role
    return {
        "id": review.id,
        "event_id": review.event_id,
        "user_id": review.user_id,
        "role": role.value if hasattr(role, "value") else role,
        "rating": review.rating,
        "body": review.body,
        "created_at": review.created_at.isoformat() if review.created_at else None,
        "updated_at": review.updated_at.isoformat() if review.updated_at else None,
    }
