"""
hackjudge/routes/judging.py
Judge scoring endpoints

Security:
- Scoring and the round queue require a judge assigned to the event
- Aggregates are organizer only
- Feedback is visible to the team, judges and organizers
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hackjudge.database import get_db
from hackjudge.orm.user import User
from hackjudge.realtime.notifier import EventNotifier, get_notifier
from hackjudge.schemas.judging import ScoreSubmission
from hackjudge.security.auth import get_current_user
from hackjudge.services import feedback_service, scoring_service
from hackjudge.services.rubric_engine import ScoreItem
from hackjudge.services.verification_service import require_organizer

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/judging", tags=["judging"])


# =============================================================================
# Judge views
# =============================================================================

@router.get("/events/{event_id}/round/{round_number}")
async def get_round_queue(
    event_id: int,
    round_number: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Submissions to score in a round, with this judge's progress."""
    queue = await scoring_service.get_judge_round_queue(db, event_id, round_number, current_user.id)
    return {"success": True, **queue}


@router.post("/scores")
async def submit_scores(
    body: ScoreSubmission,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    notifier: EventNotifier = Depends(get_notifier)
):
    """
    Submit or replace the caller's scores for a submission in a round.

    Returns the judge's weighted aggregate and the submission's new
    leaderboard aggregate for the round.
    """
    result = await scoring_service.submit_scores(
        db,
        submission_id=body.submission_id,
        judge_id=current_user.id,
        round_number=body.round,
        items=[
            ScoreItem(criterion_key=s.criteria_id, score=s.score, comment=s.comment)
            for s in body.scores
        ],
        feedback=body.feedback,
        notifier=notifier,
    )
    return {"success": True, "message": "Scores submitted successfully", **result.to_dict()}


# =============================================================================
# Organizer views
# =============================================================================

@router.get("/events/{event_id}/aggregates")
async def get_aggregates(
    event_id: int,
    round_number: Optional[int] = Query(None, alias="round", ge=1),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    await require_organizer(db, event_id, current_user.id)
    aggregates = await scoring_service.get_scoring_aggregates(db, event_id, round_number)
    return {"success": True, **aggregates}


@router.get("/submissions/{submission_id}/feedback")
async def get_feedback(
    submission_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    await feedback_service.check_feedback_access(db, submission_id, current_user.id)
    feedback = await feedback_service.get_feedback_summary(db, submission_id)
    if feedback is None:
        return {
            "success": True,
            "submission_id": submission_id,
            "summary": [],
            "next_steps": [],
            "message": "No scores recorded for this submission yet",
        }
    return {"success": True, "submission_id": submission_id, **feedback}
