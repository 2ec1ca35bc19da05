"""
hackjudge/services/feedback_service.py
Automated feedback summary for a submission

Built from the rubric breakdown over every score the submission received.
The two lowest weighted criteria drive up to three summary bullets and
exactly three next steps. Wording is picked by position, so the same
scores always produce the same text.

Summaries are cached per submission; submit_scores drops the cache row.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hackjudge.errors import AccessDeniedError, ErrorCode, NotFoundError
from hackjudge.orm.event import Submission, TeamMember
from hackjudge.orm.feedback import FeedbackSummary
from hackjudge.orm.rubric import Criterion, Rubric
from hackjudge.orm.scoring import Score
from hackjudge.services.rubric_engine import CriterionBreakdown, rubric_breakdown
from hackjudge.services.verification_service import ActorRole, DatabaseVerifier

logger = logging.getLogger(__name__)

MAX_BULLETS = 3
NEXT_STEP_COUNT = 3
MAX_DESCRIPTION_LENGTH = 100

ACTION_PREFIXES = [
    "Consider improving",
    "Focus on enhancing",
    "Work on strengthening",
    "Prioritize developing",
]

GENERIC_STEP_TEMPLATES = [
    "Dedicate additional time to improving {label} through research and iteration.",
    "Seek feedback and resources specifically focused on {label} enhancement.",
    "Analyze high-performing examples to understand best practices for {label}.",
]

GENERAL_STEPS = [
    "Review successful submissions in similar categories to identify best practices and implementation patterns.",
    "Document key design decisions and known limitations so judges can follow the implementation.",
]


def _percent(value: Decimal, maximum: Decimal) -> int:
    if not maximum:
        return 0
    return int((value / maximum * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _one_place(value: Decimal) -> str:
    return str(value.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def build_summary_bullets(bottom: List[CriterionBreakdown]) -> List[str]:
    bullets = []
    for position, c in enumerate(bottom):
        pct = _percent(c.average_score, c.max_score)
        score = f"{_one_place(c.average_score)}/{_one_place(c.max_score)}"
        if position == 0:
            bullets.append(
                f"Primary concern: {c.label} scored {pct}% ({score}), "
                f"indicating significant room for improvement in this critical area."
            )
        else:
            bullets.append(
                f"Secondary area for improvement: {c.label} received {pct}% ({score}), "
                f"suggesting additional focus needed."
            )

    if len(bottom) >= 2:
        weighted = sum((c.average_score * c.weight for c in bottom), Decimal("0"))
        possible = sum((c.max_score * c.weight for c in bottom), Decimal("0"))
        bullets.append(
            f"Combined performance in these key areas reached {_percent(weighted, possible)}%, "
            f"falling below the expected standards for this evaluation."
        )

    return bullets[:MAX_BULLETS]


def _action_step(position: int, c: CriterionBreakdown) -> str:
    label = c.label.lower()
    description = (c.description or "").strip()
    if not description:
        return GENERIC_STEP_TEMPLATES[position % len(GENERIC_STEP_TEMPLATES)].format(label=label)

    description = description.lower()
    if len(description) > MAX_DESCRIPTION_LENGTH:
        description = description[:MAX_DESCRIPTION_LENGTH - 3] + "..."
    return f"{ACTION_PREFIXES[position % len(ACTION_PREFIXES)]} {label}: {description}"


def build_next_steps(bottom: List[CriterionBreakdown]) -> List[str]:
    steps = [_action_step(position, c) for position, c in enumerate(bottom)]
    for general in GENERAL_STEPS:
        if len(steps) >= NEXT_STEP_COUNT:
            break
        steps.append(general)
    return steps[:NEXT_STEP_COUNT]


def build_feedback(breakdown: List[CriterionBreakdown]) -> Dict[str, List[str]]:
    """Summary and next steps from the two weakest criteria by weighted score."""
    bottom = sorted(breakdown, key=lambda c: (c.weighted_score, c.key))[:2]
    return {
        "summary": build_summary_bullets(bottom),
        "next_steps": build_next_steps(bottom),
    }


async def _generate(db: AsyncSession, submission: Submission) -> Optional[Dict[str, List[str]]]:
    criteria = (await db.execute(
        select(Criterion)
        .join(Rubric, Rubric.id == Criterion.rubric_id)
        .where(Rubric.event_id == submission.event_id)
        .order_by(Criterion.display_order)
    )).scalars().all()
    if not criteria:
        return None

    rows = (await db.execute(
        select(Score.criterion_id, Score.score).where(Score.submission_id == submission.id)
    )).all()
    if not rows:
        return None

    breakdown = rubric_breakdown(criteria, rows)
    if not breakdown:
        return None
    return build_feedback(breakdown)


async def get_feedback_summary(db: AsyncSession, submission_id: int) -> Optional[Dict[str, Any]]:
    """
    Cached feedback for a submission, generated on first request.

    Returns None when the event has no rubric or the submission has no scores.

    Raises:
        NotFoundError: Unknown submission
    """
    submission = await db.get(Submission, submission_id)
    if submission is None:
        raise NotFoundError("Submission", submission_id, code=ErrorCode.SUBMISSION_NOT_FOUND)

    cached = await db.scalar(
        select(FeedbackSummary).where(FeedbackSummary.submission_id == submission_id)
    )
    if cached is not None:
        return {"summary": list(cached.summary), "next_steps": list(cached.next_steps), "cached": True}

    feedback = await _generate(db, submission)
    if feedback is None:
        return None

    db.add(FeedbackSummary(
        submission_id=submission_id,
        summary=feedback["summary"],
        next_steps=feedback["next_steps"],
    ))
    try:
        await db.commit()
    except IntegrityError:
        # Another request cached it first; the content is identical
        await db.rollback()
        logger.debug(f"Feedback summary for submission {submission_id} already cached")

    return {**feedback, "cached": False}


async def check_feedback_access(db: AsyncSession, submission_id: int, user_id: int) -> None:
    """
    Organizers and assigned judges see any submission's feedback;
    participants only their own team's.

    Raises:
        NotFoundError: Unknown submission
        AccessDeniedError: Viewer may not see this feedback
    """
    submission = await db.get(Submission, submission_id)
    if submission is None:
        raise NotFoundError("Submission", submission_id, code=ErrorCode.SUBMISSION_NOT_FOUND)

    verification = await DatabaseVerifier(db).is_verified(submission.event_id, user_id)
    if verification.role in (ActorRole.ORGANIZER, ActorRole.JUDGE):
        return

    member_id = await db.scalar(
        select(TeamMember.id).where(
            TeamMember.team_id == submission.team_id,
            TeamMember.user_id == user_id,
        )
    )
    if member_id is None:
        raise AccessDeniedError("Feedback is visible to the submitting team, judges and organizers")
