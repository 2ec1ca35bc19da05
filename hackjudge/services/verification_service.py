"""
hackjudge/services/verification_service.py
Event-scoped actor verification

An actor is "verified" for an event when they took part in it:
- organizer of the event           -> organizer
- judge assigned to the event      -> judge
- member of a team that submitted  -> participant

Checked in that order; the first match wins.
"""
import hmac
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hackjudge.errors import AccessDeniedError, ErrorCode, NotFoundError
from hackjudge.orm.event import Event, JudgeAssignment, Submission, Team, TeamMember

logger = logging.getLogger(__name__)


class ActorRole(str, Enum):
    PARTICIPANT = "participant"
    JUDGE = "judge"
    ORGANIZER = "organizer"
    NONE = "none"


@dataclass(frozen=True)
class VerificationResult:
    verified: bool
    role: ActorRole


NOT_VERIFIED = VerificationResult(verified=False, role=ActorRole.NONE)


class EventVerifier(Protocol):
    async def is_verified(self, event_id: int, user_id: int) -> VerificationResult:
        ...

    async def check_attendance_code(self, event_id: int, code: Optional[str]) -> bool:
        ...


class DatabaseVerifier:
    """EventVerifier backed by event, assignment and team tables."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def is_verified(self, event_id: int, user_id: int) -> VerificationResult:
        organizer_id = await self.db.scalar(
            select(Event.organizer_id).where(Event.id == event_id)
        )
        if organizer_id is None:
            return NOT_VERIFIED
        if organizer_id == user_id:
            return VerificationResult(verified=True, role=ActorRole.ORGANIZER)

        assignment_id = await self.db.scalar(
            select(JudgeAssignment.id).where(
                JudgeAssignment.event_id == event_id,
                JudgeAssignment.judge_id == user_id,
            )
        )
        if assignment_id is not None:
            return VerificationResult(verified=True, role=ActorRole.JUDGE)

        submission_id = await self.db.scalar(
            select(Submission.id)
            .join(Team, Team.id == Submission.team_id)
            .join(TeamMember, TeamMember.team_id == Team.id)
            .where(
                Submission.event_id == event_id,
                TeamMember.user_id == user_id,
            )
            .limit(1)
        )
        if submission_id is not None:
            return VerificationResult(verified=True, role=ActorRole.PARTICIPANT)

        return NOT_VERIFIED

    async def check_attendance_code(self, event_id: int, code: Optional[str]) -> bool:
        expected = await self.db.scalar(
            select(Event.attendance_code).where(Event.id == event_id)
        )
        if not expected or not code:
            return False
        return hmac.compare_digest(expected.strip(), code.strip())


async def require_organizer(db: AsyncSession, event_id: int, user_id: int) -> Event:
    """
    Load the event and check ``user_id`` organizes it.

    Raises:
        NotFoundError: Unknown event
        AccessDeniedError: User is not the organizer
    """
    event = await db.get(Event, event_id)
    if event is None:
        raise NotFoundError("Event", event_id, code=ErrorCode.EVENT_NOT_FOUND)
    if event.organizer_id != user_id:
        logger.warning(f"User {user_id} attempted organizer action on event {event_id}")
        raise AccessDeniedError(
            "Only the event organizer can perform this action",
            code=ErrorCode.NOT_ORGANIZER,
        )
    return event


async def require_judge(db: AsyncSession, event_id: int, user_id: int) -> None:
    """Raises AccessDeniedError unless ``user_id`` is assigned to judge the event."""
    assignment_id = await db.scalar(
        select(JudgeAssignment.id).where(
            JudgeAssignment.event_id == event_id,
            JudgeAssignment.judge_id == user_id,
        )
    )
    if assignment_id is None:
        logger.warning(f"User {user_id} is not assigned to judge event {event_id}")
        raise AccessDeniedError(
            "Judge is not assigned to this event",
            code=ErrorCode.NOT_ASSIGNED,
            details={"event_id": event_id},
        )
