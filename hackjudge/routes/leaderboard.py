"""
hackjudge/routes/leaderboard.py
Leaderboard endpoints

Security:
- Reads require an authenticated user
- Finalize requires the event organizer
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hackjudge.database import get_db
from hackjudge.orm.user import User
from hackjudge.realtime.notifier import EventNotifier, get_notifier
from hackjudge.security.auth import get_current_user
from hackjudge.services import leaderboard_service as lb_svc

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/leaderboard", tags=["leaderboard"])


@router.get("/{event_id}/round/{round_number}")
async def get_leaderboard(
    event_id: int,
    round_number: int,
    limit: Optional[int] = Query(None, ge=1, le=500),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    board = await lb_svc.get_leaderboard(db, event_id, round_number, limit=limit)
    return {"success": True, **board.to_dict()}


@router.get("/{event_id}/round/{round_number}/status")
async def get_round_status(
    event_id: int,
    round_number: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    await lb_svc.get_event(db, event_id)
    status_view = await lb_svc.get_round_status(db, event_id, round_number)
    return {"success": True, **status_view.to_dict()}


@router.post("/{event_id}/round/{round_number}/finalize")
async def finalize_round(
    event_id: int,
    round_number: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    notifier: EventNotifier = Depends(get_notifier)
):
    """
    Finalize a round. One-way; a second call is a 409.
    """
    status_view = await lb_svc.finalize_round(
        db,
        event_id=event_id,
        round_number=round_number,
        actor_id=current_user.id,
        notifier=notifier,
    )
    return {"success": True, "message": f"Round {round_number} finalized", **status_view.to_dict()}
