"""
hackjudge/services/scoring_service.py
Judge score submission and judging views

A judge's submission for (submission, round) replaces their previous set
of scores for that round as a whole: delete then insert in one transaction.

Checks run in order and the first failure wins:
1. submission exists, round >= 1, at least one item
2. judge is assigned to the submission's event
3. event rubric exists; criterion keys valid; score bounds valid
4. round is not finalized (while LOCK_FINALIZED_ROUNDS is on)
"""
import logging
from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, delete, func, distinct
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hackjudge.config.settings import FeatureFlags
from hackjudge.errors import (
    BadRequestError,
    ErrorCode,
    NotFoundError,
    RoundFinalizedError,
    wrap_store_failure,
)
from hackjudge.orm.event import Submission, Team
from hackjudge.orm.feedback import FeedbackSummary
from hackjudge.orm.rubric import Rubric
from hackjudge.orm.scoring import Score
from hackjudge.realtime.notifier import EventNotifier
from hackjudge.services import leaderboard_service
from hackjudge.services.rubric_engine import (
    ScoreItem,
    compute_weighted_aggregate,
    quantize_score,
    to_decimal,
    validate_items,
)
from hackjudge.services.verification_service import require_judge

logger = logging.getLogger(__name__)


@dataclass
class ScoreSubmissionResult:
    submission_id: int
    judge_id: int
    round: int
    scores_saved: int
    aggregate_score: Decimal
    round_aggregate_score: Decimal
    feedback_provided: bool

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["aggregate_score"] = float(self.aggregate_score)
        data["round_aggregate_score"] = float(self.round_aggregate_score)
        return data


async def get_event_rubric(db: AsyncSession, event_id: int) -> Rubric:
    result = await db.execute(
        select(Rubric)
        .options(selectinload(Rubric.criteria))
        .where(Rubric.event_id == event_id)
    )
    rubric = result.scalar_one_or_none()
    if rubric is None:
        raise NotFoundError("Rubric for event", event_id, code=ErrorCode.RUBRIC_NOT_FOUND)
    return rubric


async def submit_scores(
    db: AsyncSession,
    submission_id: int,
    judge_id: int,
    round_number: int,
    items: Sequence[ScoreItem],
    feedback: Optional[str] = None,
    notifier: Optional[EventNotifier] = None,
) -> ScoreSubmissionResult:
    """
    Record a judge's full score set for a submission in a round.

    Raises:
        NotFoundError: Unknown submission or missing rubric
        BadRequestError: round < 1 or no items
        AccessDeniedError: Judge not assigned to the event
        InvalidCriteriaError: Keys not in the rubric
        InvalidScoreError: Score out of bounds
        RoundFinalizedError: Round is finalized and locked
        TransientStoreError: Write failed; nothing was saved
    """
    submission = await db.get(Submission, submission_id)
    if submission is None:
        raise NotFoundError("Submission", submission_id, code=ErrorCode.SUBMISSION_NOT_FOUND)
    if round_number < 1:
        raise BadRequestError("round_number must be >= 1", code=ErrorCode.VALIDATION_ERROR)
    if not items:
        raise BadRequestError("At least one score is required", code=ErrorCode.VALIDATION_ERROR)

    event_id = submission.event_id

    await require_judge(db, event_id, judge_id)

    rubric = await get_event_rubric(db, event_id)
    pairs = validate_items(items, rubric.criteria)

    if FeatureFlags.LOCK_FINALIZED_ROUNDS and await leaderboard_service.is_round_finalized(db, event_id, round_number):
        raise RoundFinalizedError(event_id, round_number)

    try:
        await db.execute(
            delete(Score).where(
                Score.submission_id == submission_id,
                Score.judge_id == judge_id,
                Score.round_number == round_number,
            )
        )
        for item, criterion in pairs:
            db.add(Score(
                submission_id=submission_id,
                judge_id=judge_id,
                criterion_id=criterion.id,
                round_number=round_number,
                score=to_decimal(item.score),
                comment=item.comment,
                feedback=feedback,
            ))
        await db.execute(
            delete(FeedbackSummary).where(FeedbackSummary.submission_id == submission_id)
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise wrap_store_failure(e, "submit_scores")

    logger.info(
        f"Judge {judge_id} scored submission {submission_id} round {round_number}: {len(pairs)} criteria"
    )

    aggregate = quantize_score(
        compute_weighted_aggregate((item.score, criterion.weight) for item, criterion in pairs)
    )
    round_aggregate = await leaderboard_service.get_submission_round_aggregate(db, submission_id, round_number)

    await _publish_leaderboard_change(db, notifier, event_id, round_number, submission_id)

    return ScoreSubmissionResult(
        submission_id=submission_id,
        judge_id=judge_id,
        round=round_number,
        scores_saved=len(pairs),
        aggregate_score=aggregate,
        round_aggregate_score=round_aggregate,
        feedback_provided=bool(feedback and feedback.strip()),
    )


async def _publish_leaderboard_change(
    db: AsyncSession,
    notifier: Optional[EventNotifier],
    event_id: int,
    round_number: int,
    submission_id: int,
) -> None:
    """Refresh the rank cache and broadcast. Scores are already committed."""
    try:
        await leaderboard_service.refresh_rank_positions(db, event_id, round_number)
        board = await leaderboard_service.get_leaderboard(db, event_id, round_number)
    except SQLAlchemyError:
        await db.rollback()
        logger.exception(f"Rank cache refresh failed for event {event_id} round {round_number}")
        return

    entry = next((e for e in board.entries if e.submission_id == submission_id), None)
    if entry is None:
        return

    await leaderboard_service.broadcast_leaderboard_update(notifier, event_id, round_number, {
        "team_id": entry.team_id,
        "team_name": entry.team_name,
        "submission_id": entry.submission_id,
        "aggregate_score": float(entry.aggregate_score),
        "rank": entry.rank,
        "previous_rank": entry.previous_rank,
    })


# =============================================================================
# Judging views
# =============================================================================

def criterion_to_dict(criterion) -> Dict[str, Any]:
    return {
        "id": criterion.id,
        "key": criterion.key,
        "label": criterion.label,
        "description": criterion.description,
        "weight": criterion.weight,
        "max_score": float(criterion.max_score),
        "display_order": criterion.display_order,
    }


async def get_judge_round_queue(
    db: AsyncSession,
    event_id: int,
    round_number: int,
    judge_id: int,
) -> Dict[str, Any]:
    """
    Everything a judge needs to score a round: criteria, each submission
    with its team, the judge's existing scores and completion status.
    """
    if round_number < 1:
        raise BadRequestError("round_number must be >= 1", code=ErrorCode.VALIDATION_ERROR)
    await leaderboard_service.get_event(db, event_id)
    await require_judge(db, event_id, judge_id)

    rubric = await get_event_rubric(db, event_id)
    criteria = list(rubric.criteria)
    key_by_id = {c.id: c.key for c in criteria}

    submissions = await db.execute(
        select(Submission, Team.name)
        .join(Team, Team.id == Submission.team_id)
        .where(Submission.event_id == event_id)
        .order_by(Team.name, Submission.id)
    )

    scores = await db.execute(
        select(Score).join(Submission, Submission.id == Score.submission_id).where(
            Submission.event_id == event_id,
            Score.judge_id == judge_id,
            Score.round_number == round_number,
        )
    )
    by_submission: Dict[int, Dict[str, Any]] = {}
    for score in scores.scalars().all():
        by_submission.setdefault(score.submission_id, {})[key_by_id.get(score.criterion_id)] = {
            "score": float(score.score),
            "comment": score.comment,
        }

    queue = []
    for submission, team_name in submissions.all():
        existing = by_submission.get(submission.id, {})
        queue.append({
            "submission_id": submission.id,
            "title": submission.title,
            "team_id": submission.team_id,
            "team_name": team_name,
            "repo_url": submission.repo_url,
            "demo_url": submission.demo_url,
            "scores": existing,
            "scoring_status": {
                "scored_criteria": len(existing),
                "total_criteria": len(criteria),
                "is_complete": len(criteria) > 0 and len(existing) >= len(criteria),
            },
        })

    return {
        "event_id": event_id,
        "round_number": round_number,
        "is_finalized": await leaderboard_service.is_round_finalized(db, event_id, round_number),
        "criteria": [criterion_to_dict(c) for c in criteria],
        "submissions": queue,
    }


async def get_scoring_aggregates(
    db: AsyncSession,
    event_id: int,
    round_number: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Organizer overview per round: leaderboard aggregate, raw min/max,
    score row count and judges scored per submission.
    """
    await leaderboard_service.get_event(db, event_id)
    total_judges = await leaderboard_service.count_judges(db, event_id)

    stats_query = (
        select(
            Score.round_number,
            Score.submission_id,
            func.min(Score.score),
            func.max(Score.score),
            func.count(Score.id),
            func.count(distinct(Score.judge_id)),
        )
        .join(Submission, Submission.id == Score.submission_id)
        .where(Submission.event_id == event_id)
        .group_by(Score.round_number, Score.submission_id)
    )
    if round_number is not None:
        stats_query = stats_query.where(Score.round_number == round_number)

    stats: Dict[int, Dict[int, tuple]] = {}
    for rnd, sub_id, min_score, max_score, count, judges in (await db.execute(stats_query)).all():
        stats.setdefault(rnd, {})[sub_id] = (min_score, max_score, count, judges)

    rounds = [round_number] if round_number is not None else sorted(stats)

    submissions = (await db.execute(
        select(Submission.id, Submission.title, Team.name)
        .join(Team, Team.id == Submission.team_id)
        .where(Submission.event_id == event_id)
        .order_by(Submission.id)
    )).all()

    round_views: List[Dict[str, Any]] = []
    for rnd in rounds:
        aggregates = await leaderboard_service.compute_judge_aggregates(db, rnd, event_id=event_id)
        rows = []
        completed = 0
        for sub_id, title, team_name in submissions:
            min_score, max_score, count, judges = stats.get(rnd, {}).get(sub_id, (None, None, 0, 0))
            if total_judges and judges >= total_judges:
                completed += 1
            rows.append({
                "submission_id": sub_id,
                "title": title,
                "team_name": team_name,
                "aggregate_score": float(quantize_score(
                    leaderboard_service.mean_of_judges(aggregates.get(sub_id, {}))
                )),
                "min_score": float(min_score) if min_score is not None else None,
                "max_score": float(max_score) if max_score is not None else None,
                "score_count": count,
                "judges_scored": judges,
            })
        round_views.append({
            "round_number": rnd,
            "is_finalized": await leaderboard_service.is_round_finalized(db, event_id, rnd),
            "total_submissions": len(submissions),
            "completed_submissions": completed,
            "submissions": rows,
        })

    return {
        "event_id": event_id,
        "total_judges": total_judges,
        "rounds": round_views,
    }
