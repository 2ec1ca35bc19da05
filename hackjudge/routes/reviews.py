"""
hackjudge/routes/reviews.py
Event reviews and review-integrity moderation
"""
import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from hackjudge.config.settings import Settings
from hackjudge.database import get_db
from hackjudge.orm.user import User
from hackjudge.schemas.reviews import ReviewCreate
from hackjudge.security.auth import get_current_user
from hackjudge.security.rate_limit import limiter
from hackjudge.services import review_flagging_service, review_service
from hackjudge.services.verification_service import DatabaseVerifier, require_organizer

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/events", tags=["reviews"])


@router.post("/{event_id}/reviews", status_code=status.HTTP_201_CREATED)
@limiter.limit(Settings.REVIEW_RATE_LIMIT)
async def submit_review(
    request: Request,
    event_id: int,
    body: ReviewCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Create or update the caller's review of the event."""
    review = await review_service.submit_review(
        db,
        event_id=event_id,
        user_id=current_user.id,
        rating=body.rating,
        body=body.body,
        verifier=DatabaseVerifier(db),
        attendance_code=body.attendance_code,
    )
    return {"success": True, "review": review_service.review_to_dict(review)}


@router.get("/{event_id}/reviews")
async def list_reviews(
    event_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    reviews = await review_service.list_reviews(db, event_id)
    return {
        "success": True,
        "event_id": event_id,
        "reviews": [review_service.review_to_dict(r) for r in reviews],
        "total": len(reviews),
    }


@router.delete("/{event_id}/reviews/{review_id}")
async def delete_review(
    event_id: int,
    review_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    await review_service.delete_review(db, event_id, review_id, current_user.id)
    return {"success": True, "message": "Review deleted"}


# =============================================================================
# Moderation (organizer only)
# =============================================================================

@router.post("/{event_id}/reviews/flags/analyze")
async def analyze_reviews(
    event_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Run the outlier and verification checks now."""
    await require_organizer(db, event_id, current_user.id)
    report = await review_flagging_service.run_flagging_analysis(db, event_id, DatabaseVerifier(db))
    return {"success": report.ok, **report.to_dict()}


@router.get("/{event_id}/reviews/flags")
async def list_flagged_reviews(
    event_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    await require_organizer(db, event_id, current_user.id)
    flags = await review_flagging_service.get_flagged_reviews_with_details(db, event_id)
    return {"success": True, "event_id": event_id, "flags": flags, "total": len(flags)}
