"""
hackjudge/realtime/notifier.py
Event-scoped notifications

Wraps a BroadcastAdapter so services publish by event id and event name
instead of raw channels.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from .broadcast_adapter import BroadcastAdapter
from .in_memory_adapter import InMemoryAdapter

logger = logging.getLogger(__name__)

LEADERBOARD_UPDATE = "leaderboard-update"
ROUND_FINALIZED = "round-finalized"


def event_channel(event_id: int) -> str:
    return f"event:{event_id}"


class EventNotifier:
    def __init__(self, adapter: BroadcastAdapter):
        self.adapter = adapter

    async def broadcast(self, event_id: int, event_name: str, payload: Dict[str, Any]) -> None:
        """Publish ``payload`` to every subscriber of the event channel."""
        message = {
            "event": event_name,
            "event_id": event_id,
            "payload": payload,
            "timestamp": datetime.utcnow().isoformat(),
        }
        await self.adapter.publish(event_channel(event_id), message)
        logger.debug(f"Broadcast {event_name} to {event_channel(event_id)}")

    def subscribe(self, event_id: int):
        return self.adapter.subscribe(event_channel(event_id))

    async def close(self) -> None:
        await self.adapter.close()


_notifier: Optional[EventNotifier] = None


def get_notifier() -> EventNotifier:
    """Process-wide notifier; FastAPI dependency."""
    global _notifier
    if _notifier is None:
        _notifier = EventNotifier(InMemoryAdapter())
    return _notifier
