"""
hackjudge/services/rubric_service.py
Rubric definition for an event

A rubric is defined once per event by its organizer. Criteria are not
edited afterwards: scores reference them by id.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hackjudge.errors import (
    BadRequestError,
    ConflictError,
    ErrorCode,
    InvalidCriteriaError,
    wrap_store_failure,
)
from hackjudge.orm.rubric import Criterion, Rubric, DEFAULT_MAX_SCORE
from hackjudge.services.rubric_engine import to_decimal
from hackjudge.services.scoring_service import criterion_to_dict, get_event_rubric
from hackjudge.services.verification_service import require_organizer

logger = logging.getLogger(__name__)


@dataclass
class CriterionSpec:
    key: str
    label: str
    weight: int = 1
    max_score: Decimal = Decimal(DEFAULT_MAX_SCORE)
    description: Optional[str] = None


def _check_criteria(criteria: Sequence[CriterionSpec]) -> None:
    if not criteria:
        raise BadRequestError("A rubric needs at least one criterion", code=ErrorCode.VALIDATION_ERROR)

    keys = [c.key for c in criteria]
    duplicates = {k for k in keys if keys.count(k) > 1}
    if duplicates:
        raise InvalidCriteriaError(duplicates, message=f"Duplicate criterion keys: {', '.join(sorted(duplicates))}")

    for c in criteria:
        if not c.key or not c.key.strip():
            raise BadRequestError("Criterion key must not be empty", code=ErrorCode.VALIDATION_ERROR)
        if c.weight < 0:
            raise BadRequestError(
                f"Criterion '{c.key}' has negative weight",
                code=ErrorCode.VALIDATION_ERROR,
                details={"criterion_key": c.key, "weight": c.weight}
            )
        if to_decimal(c.max_score) <= 0:
            raise BadRequestError(
                f"Criterion '{c.key}' must have a positive max_score",
                code=ErrorCode.VALIDATION_ERROR,
                details={"criterion_key": c.key}
            )


async def define_rubric(
    db: AsyncSession,
    event_id: int,
    actor_id: int,
    name: str,
    criteria: Sequence[CriterionSpec],
) -> Rubric:
    """
    Create the event rubric.

    Raises:
        NotFoundError: Unknown event
        AccessDeniedError: Actor is not the organizer
        InvalidCriteriaError: Duplicate keys
        BadRequestError: Empty rubric, negative weight, non-positive max
        ConflictError: The event already has a rubric
    """
    await require_organizer(db, event_id, actor_id)
    _check_criteria(criteria)

    existing = await db.scalar(select(Rubric.id).where(Rubric.event_id == event_id))
    if existing is not None:
        raise ConflictError(
            f"Event {event_id} already has a rubric",
            code=ErrorCode.RUBRIC_EXISTS,
            details={"event_id": event_id}
        )

    rubric = Rubric(event_id=event_id, name=name)
    rubric.criteria = [
        Criterion(
            key=c.key,
            label=c.label,
            description=c.description,
            weight=c.weight,
            max_score=to_decimal(c.max_score),
            display_order=position,
        )
        for position, c in enumerate(criteria)
    ]
    db.add(rubric)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError(
            f"Event {event_id} already has a rubric",
            code=ErrorCode.RUBRIC_EXISTS,
            details={"event_id": event_id}
        )
    except SQLAlchemyError as e:
        await db.rollback()
        raise wrap_store_failure(e, "define_rubric")

    logger.info(f"Rubric '{name}' with {len(criteria)} criteria defined for event {event_id}")
    return await get_rubric(db, event_id)


async def get_rubric(db: AsyncSession, event_id: int) -> Rubric:
    return await get_event_rubric(db, event_id)


def rubric_to_dict(rubric: Rubric) -> dict:
    return {
        "id": rubric.id,
        "event_id": rubric.event_id,
        "name": rubric.name,
        "criteria": [
            criterion_to_dict(c)
            for c in sorted(rubric.criteria, key=lambda c: c.display_order)
        ],
        "created_at": rubric.created_at.isoformat() if rubric.created_at else None,
    }
