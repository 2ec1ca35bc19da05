"""
hackjudge/routes/rubrics.py
Event rubric definition and retrieval
"""
import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from hackjudge.database import get_db
from hackjudge.orm.user import User
from hackjudge.schemas.judging import RubricCreate
from hackjudge.security.auth import get_current_user
from hackjudge.services import rubric_service
from hackjudge.services.rubric_service import CriterionSpec

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/events", tags=["rubrics"])


@router.post("/{event_id}/rubric", status_code=status.HTTP_201_CREATED)
async def define_rubric(
    event_id: int,
    body: RubricCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Create the event rubric. Organizer only; one rubric per event."""
    rubric = await rubric_service.define_rubric(
        db,
        event_id=event_id,
        actor_id=current_user.id,
        name=body.name,
        criteria=[
            CriterionSpec(
                key=c.key,
                label=c.label,
                description=c.description,
                weight=c.weight,
                max_score=c.max_score,
            )
            for c in body.criteria
        ],
    )
    return {"success": True, "rubric": rubric_service.rubric_to_dict(rubric)}


@router.get("/{event_id}/rubric")
async def get_rubric(
    event_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    rubric = await rubric_service.get_rubric(db, event_id)
    return {"success": True, "rubric": rubric_service.rubric_to_dict(rubric)}
