"""
hackjudge/services/leaderboard_service.py
Leaderboard Ranking Engine

Rankings are always re-derived from scores; nothing here is authoritative
except the one-way round finalization flag.

Aggregate:
- Each judge's weighted aggregate of a submission in a round
- The leaderboard score is the mean of those per-judge aggregates
- Unscored submissions appear with 0

Ranking (deterministic):
1. aggregate score (2dp) DESC
2. team name ASC (case-sensitive)
3. submission id ASC
Dense rank on the 2dp score: equal scores share a rank, no gaps.
"""
import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hackjudge.errors import (
    AlreadyFinalizedError,
    BadRequestError,
    ErrorCode,
    NotFoundError,
    wrap_store_failure,
)
from hackjudge.orm.event import Event, JudgeAssignment, Submission, Team
from hackjudge.orm.rubric import Criterion
from hackjudge.orm.scoring import LeaderboardPosition, RoundStatus, Score
from hackjudge.realtime.notifier import EventNotifier, LEADERBOARD_UPDATE, ROUND_FINALIZED
from hackjudge.services.rubric_engine import ZERO, compute_weighted_aggregate, quantize_score
from hackjudge.services.verification_service import require_organizer

logger = logging.getLogger(__name__)


# =============================================================================
# Result types
# =============================================================================

@dataclass
class LeaderboardEntry:
    team_id: int
    team_name: str
    submission_id: int
    submission_title: str
    aggregate_score: Decimal
    judges_completed: int
    total_judges: int
    rank: int = 0
    previous_rank: Optional[int] = None
    rank_change: Optional[int] = None
    score_change: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["aggregate_score"] = float(self.aggregate_score)
        data["score_change"] = float(self.score_change) if self.score_change is not None else None
        return data


@dataclass
class Leaderboard:
    event_id: int
    round_number: int
    entries: List[LeaderboardEntry]
    total_teams: int
    is_finalized: bool
    last_updated: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "round_number": self.round_number,
            "entries": [e.to_dict() for e in self.entries],
            "total_teams": self.total_teams,
            "is_finalized": self.is_finalized,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


@dataclass
class RoundStatusView:
    event_id: int
    round_number: int
    is_finalized: bool
    finalized_at: Optional[datetime] = None
    finalized_by: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["finalized_at"] = self.finalized_at.isoformat() if self.finalized_at else None
        return data


# =============================================================================
# Pure ranking
# =============================================================================

def compute_dense_ranking(rows: List[LeaderboardEntry]) -> List[LeaderboardEntry]:
    """
    Sort entries and assign dense ranks in place.

    Scores are compared at 2dp so that ties match what is displayed.
    """
    for row in rows:
        row.aggregate_score = quantize_score(row.aggregate_score)

    ranked = sorted(
        rows,
        key=lambda r: (
            -r.aggregate_score,   # Higher score first
            r.team_name,          # Code-point order, case-sensitive
            r.submission_id,
        )
    )

    current_rank = 0
    previous_score = None
    for entry in ranked:
        if entry.aggregate_score != previous_score:
            current_rank += 1
            previous_score = entry.aggregate_score
        entry.rank = current_rank

    return ranked


# =============================================================================
# Aggregation queries
# =============================================================================

async def get_event(db: AsyncSession, event_id: int) -> Event:
    event = await db.get(Event, event_id)
    if event is None:
        raise NotFoundError("Event", event_id, code=ErrorCode.EVENT_NOT_FOUND)
    return event


def _check_round(round_number: int) -> None:
    if round_number < 1:
        raise BadRequestError("round_number must be >= 1", code=ErrorCode.VALIDATION_ERROR)


async def compute_judge_aggregates(
    db: AsyncSession,
    round_number: int,
    event_id: Optional[int] = None,
    submission_id: Optional[int] = None,
) -> Dict[int, Dict[int, Decimal]]:
    """
    Per-judge weighted aggregates, keyed ``{submission_id: {judge_id: aggregate}}``.
    """
    query = (
        select(Score.submission_id, Score.judge_id, Score.score, Criterion.weight)
        .join(Criterion, Criterion.id == Score.criterion_id)
        .where(Score.round_number == round_number)
    )
    if event_id is not None:
        query = query.join(Submission, Submission.id == Score.submission_id).where(
            Submission.event_id == event_id
        )
    if submission_id is not None:
        query = query.where(Score.submission_id == submission_id)

    result = await db.execute(query)

    pairs: Dict[Tuple[int, int], List[Tuple[Decimal, int]]] = {}
    for sub_id, judge_id, score, weight in result.all():
        pairs.setdefault((sub_id, judge_id), []).append((score, weight))

    aggregates: Dict[int, Dict[int, Decimal]] = {}
    for (sub_id, judge_id), judge_pairs in pairs.items():
        aggregates.setdefault(sub_id, {})[judge_id] = compute_weighted_aggregate(judge_pairs)
    return aggregates


def mean_of_judges(per_judge: Dict[int, Decimal]) -> Decimal:
    if not per_judge:
        return ZERO
    return sum(per_judge.values(), ZERO) / len(per_judge)


async def get_submission_round_aggregate(db: AsyncSession, submission_id: int, round_number: int) -> Decimal:
    """Leaderboard aggregate of a single submission, rounded to 2dp."""
    aggregates = await compute_judge_aggregates(db, round_number, submission_id=submission_id)
    return quantize_score(mean_of_judges(aggregates.get(submission_id, {})))


async def count_judges(db: AsyncSession, event_id: int) -> int:
    return await db.scalar(
        select(func.count(JudgeAssignment.id)).where(JudgeAssignment.event_id == event_id)
    ) or 0


async def _build_ranking(db: AsyncSession, event_id: int, round_number: int) -> List[LeaderboardEntry]:
    submissions = await db.execute(
        select(Submission.id, Submission.title, Team.id, Team.name)
        .join(Team, Team.id == Submission.team_id)
        .where(Submission.event_id == event_id)
    )
    aggregates = await compute_judge_aggregates(db, round_number, event_id=event_id)
    total_judges = await count_judges(db, event_id)

    rows = []
    for sub_id, title, team_id, team_name in submissions.all():
        per_judge = aggregates.get(sub_id, {})
        rows.append(LeaderboardEntry(
            team_id=team_id,
            team_name=team_name,
            submission_id=sub_id,
            submission_title=title,
            aggregate_score=mean_of_judges(per_judge),
            judges_completed=len(per_judge),
            total_judges=total_judges,
        ))
    return compute_dense_ranking(rows)


async def _load_positions(db: AsyncSession, event_id: int, round_number: int) -> Dict[int, LeaderboardPosition]:
    result = await db.execute(
        select(LeaderboardPosition).where(
            LeaderboardPosition.event_id == event_id,
            LeaderboardPosition.round_number == round_number,
        )
    )
    return {p.submission_id: p for p in result.scalars().all()}


def _apply_deltas(entry: LeaderboardEntry, position: Optional[LeaderboardPosition]) -> None:
    if position is None:
        return

    # A cache row that still matches the live ranking carries the earlier
    # values in previous_*; a stale row is itself the earlier value.
    current = position.rank == entry.rank and quantize_score(position.aggregate_score) == entry.aggregate_score
    previous_rank = position.previous_rank if current else position.rank
    previous_score = position.previous_score if current else position.aggregate_score

    entry.previous_rank = previous_rank
    if previous_rank is not None:
        entry.rank_change = previous_rank - entry.rank
    if previous_score is not None:
        entry.score_change = quantize_score(entry.aggregate_score - quantize_score(previous_score))


# =============================================================================
# Core Service Functions
# =============================================================================

async def get_leaderboard(
    db: AsyncSession,
    event_id: int,
    round_number: int,
    limit: Optional[int] = None,
) -> Leaderboard:
    """
    Current standings of every submission of the event in a round.

    Raises:
        NotFoundError: Unknown event
    """
    _check_round(round_number)
    await get_event(db, event_id)

    entries = await _build_ranking(db, event_id, round_number)
    positions = await _load_positions(db, event_id, round_number)
    for entry in entries:
        _apply_deltas(entry, positions.get(entry.submission_id))

    status = await get_round_status(db, event_id, round_number)

    last_updated = await db.scalar(
        select(func.max(Score.updated_at))
        .join(Submission, Submission.id == Score.submission_id)
        .where(Submission.event_id == event_id, Score.round_number == round_number)
    )
    if last_updated is None:
        # Nothing scored yet; the standings are as of now
        last_updated = datetime.utcnow()

    total_teams = len(entries)
    if limit is not None:
        entries = entries[:limit]

    return Leaderboard(
        event_id=event_id,
        round_number=round_number,
        entries=entries,
        total_teams=total_teams,
        is_finalized=status.is_finalized,
        last_updated=last_updated,
    )


async def refresh_rank_positions(db: AsyncSession, event_id: int, round_number: int) -> List[LeaderboardEntry]:
    """
    Re-rank and upsert the rank-delta cache.

    Returns the entries whose rank or score moved (new submissions included),
    with previous_rank / rank_change filled in.
    """
    entries = await _build_ranking(db, event_id, round_number)
    positions = await _load_positions(db, event_id, round_number)

    changed = []
    for entry in entries:
        position = positions.get(entry.submission_id)
        if position is None:
            db.add(LeaderboardPosition(
                event_id=event_id,
                round_number=round_number,
                submission_id=entry.submission_id,
                rank=entry.rank,
                aggregate_score=entry.aggregate_score,
            ))
            changed.append(entry)
            continue

        old_score = quantize_score(position.aggregate_score)
        if position.rank == entry.rank and old_score == entry.aggregate_score:
            continue

        position.previous_rank = position.rank
        position.previous_score = old_score
        position.rank = entry.rank
        position.aggregate_score = entry.aggregate_score

        entry.previous_rank = position.previous_rank
        entry.rank_change = position.previous_rank - entry.rank
        entry.score_change = quantize_score(entry.aggregate_score - old_score)
        changed.append(entry)

    await db.commit()
    logger.info(f"Rank cache refreshed for event {event_id} round {round_number}: {len(changed)} changed")
    return changed


async def get_round_status(db: AsyncSession, event_id: int, round_number: int) -> RoundStatusView:
    result = await db.execute(
        select(RoundStatus).where(
            RoundStatus.event_id == event_id,
            RoundStatus.round_number == round_number,
        )
    )
    row = result.scalar_one_or_none()
    if row is None:
        return RoundStatusView(event_id=event_id, round_number=round_number, is_finalized=False)
    return RoundStatusView(
        event_id=event_id,
        round_number=round_number,
        is_finalized=bool(row.is_finalized),
        finalized_at=row.finalized_at,
        finalized_by=row.finalized_by,
    )


async def is_round_finalized(db: AsyncSession, event_id: int, round_number: int) -> bool:
    return (await get_round_status(db, event_id, round_number)).is_finalized


async def finalize_round(
    db: AsyncSession,
    event_id: int,
    round_number: int,
    actor_id: int,
    notifier: Optional[EventNotifier] = None,
) -> RoundStatusView:
    """
    Mark a round as finalized. One-way.

    Raises:
        NotFoundError: Unknown event
        AccessDeniedError: Actor is not the event organizer
        AlreadyFinalizedError: Round already finalized (including a lost race)
    """
    _check_round(round_number)
    await require_organizer(db, event_id, actor_id)

    result = await db.execute(
        select(RoundStatus).where(
            RoundStatus.event_id == event_id,
            RoundStatus.round_number == round_number,
        )
    )
    row = result.scalar_one_or_none()
    if row is not None and row.is_finalized:
        raise AlreadyFinalizedError(event_id, round_number)

    now = datetime.utcnow()
    if row is None:
        row = RoundStatus(event_id=event_id, round_number=round_number)
        db.add(row)
    row.is_finalized = True
    row.finalized_at = now
    row.finalized_by = actor_id

    try:
        await db.commit()
    except IntegrityError:
        # Concurrent finalize inserted the row first
        await db.rollback()
        logger.warning(f"Concurrent finalize of event {event_id} round {round_number}")
        raise AlreadyFinalizedError(event_id, round_number)
    except SQLAlchemyError as e:
        await db.rollback()
        raise wrap_store_failure(e, "finalize_round")

    logger.info(f"Round {round_number} of event {event_id} finalized by user {actor_id}")

    await _safe_broadcast(notifier, event_id, ROUND_FINALIZED, {
        "round_number": round_number,
        "finalized_at": now.isoformat(),
        "finalized_by": actor_id,
    })

    return RoundStatusView(
        event_id=event_id,
        round_number=round_number,
        is_finalized=True,
        finalized_at=now,
        finalized_by=actor_id,
    )


# =============================================================================
# Broadcast helpers
# =============================================================================

async def _safe_broadcast(
    notifier: Optional[EventNotifier],
    event_id: int,
    event_name: str,
    payload: Dict[str, Any],
) -> bool:
    if notifier is None:
        return False
    try:
        await notifier.broadcast(event_id, event_name, payload)
        return True
    except Exception:
        logger.exception(f"Broadcast of {event_name} for event {event_id} failed")
        return False


async def broadcast_leaderboard_update(
    notifier: Optional[EventNotifier],
    event_id: int,
    round_number: int,
    updated_team: Dict[str, Any],
) -> bool:
    """
    Fire-and-forget leaderboard-update. Never raises.

    Returns True when the message was handed to the adapter.
    """
    payload = {"round_number": round_number, **updated_team}
    return await _safe_broadcast(notifier, event_id, LEADERBOARD_UPDATE, payload)
