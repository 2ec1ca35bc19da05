"""
hackjudge/realtime/__init__.py
Realtime broadcast layer
"""
from .broadcast_adapter import BroadcastAdapter
from .in_memory_adapter import InMemoryAdapter
from .notifier import EventNotifier, get_notifier, event_channel, LEADERBOARD_UPDATE, ROUND_FINALIZED

__all__ = [
    "BroadcastAdapter",
    "InMemoryAdapter",
    "EventNotifier",
    "get_notifier",
    "event_channel",
    "LEADERBOARD_UPDATE",
    "ROUND_FINALIZED",
]
