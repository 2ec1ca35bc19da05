"""
hackjudge/routes/live.py
WebSocket feed of event notifications

URL: /ws/events/{event_id}?token={jwt}

Server messages are the notifier envelopes
({event, event_id, payload, timestamp}) for leaderboard-update and
round-finalized, plus {"type": "PONG"} / {"type": "ERROR"} replies.

Allowed client messages:
- {"type": "PING"}
"""
import asyncio
import json
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from hackjudge.database import get_db
from hackjudge.orm.event import Event
from hackjudge.realtime.notifier import EventNotifier, get_notifier
from hackjudge.security.auth import user_from_token

logger = logging.getLogger(__name__)
router = APIRouter(tags=["live"])

ALLOWED_CLIENT_MESSAGES = {"PING"}


async def _listen(websocket: WebSocket) -> None:
    while True:
        data = await websocket.receive_text()
        try:
            message = json.loads(data)
        except json.JSONDecodeError:
            await websocket.send_json({"type": "ERROR", "message": "Invalid JSON"})
            continue

        if not isinstance(message, dict) or message.get("type") not in ALLOWED_CLIENT_MESSAGES:
            await websocket.send_json({
                "type": "ERROR",
                "message": f"Invalid message type. Allowed: {sorted(ALLOWED_CLIENT_MESSAGES)}",
            })
            continue

        await websocket.send_json({"type": "PONG", "timestamp": datetime.utcnow().isoformat()})


async def _forward(websocket: WebSocket, notifier: EventNotifier, event_id: int) -> None:
    async for message in notifier.subscribe(event_id):
        await websocket.send_json(message)


async def relay_event_stream(websocket: WebSocket, notifier: EventNotifier, event_id: int) -> None:
    """
    Push event notifications to the socket until either side goes away.

    The subscription is released when the client disconnects. When the
    notifier shuts down the socket is closed with 1001.
    """
    forward = asyncio.create_task(_forward(websocket, notifier, event_id))
    listen = asyncio.create_task(_listen(websocket))
    try:
        done, _ = await asyncio.wait({forward, listen}, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            error = task.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                logger.warning(f"Live feed for event {event_id} stopped: {type(error).__name__}: {error}")
        if forward in done and forward.exception() is None:
            await websocket.close(code=status.WS_1001_GOING_AWAY)
    finally:
        for task in (forward, listen):
            task.cancel()
        await asyncio.gather(forward, listen, return_exceptions=True)


@router.websocket("/ws/events/{event_id}")
async def event_feed(
    websocket: WebSocket,
    event_id: int,
    token: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    notifier: EventNotifier = Depends(get_notifier)
):
    """Live leaderboard and round updates for any authenticated user."""
    user = await user_from_token(db, token)
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid token")
        return

    event = await db.get(Event, event_id)
    if event is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Event not found")
        return

    await websocket.accept()
    logger.info(f"User {user.id} joined live feed of event {event_id}")
    try:
        await relay_event_stream(websocket, notifier, event_id)
    finally:
        logger.info(f"User {user.id} left live feed of event {event_id}")
