"""
hackjudge/realtime/in_memory_adapter.py
In-Memory Broadcast Adapter

Local-only broadcast implementation using asyncio.Queue.
Used in development and tests.
"""
import asyncio
import json
import logging
from typing import Dict, Any, Set

from .broadcast_adapter import BroadcastAdapter

logger = logging.getLogger(__name__)

SUBSCRIBER_QUEUE_SIZE = 100


class InMemoryAdapter(BroadcastAdapter):
    """
    In-memory broadcast adapter.

    Each subscriber gets a bounded queue; a full queue means the subscriber
    is too slow and the message is dropped for it.
    """

    def __init__(self):
        self._channels: Dict[str, Set[asyncio.Queue]] = {}
        self._lock = asyncio.Lock()
        self.published_count = 0

    async def publish(self, channel: str, message: Dict[str, Any]) -> None:
        self.validate_message(message)
        serialized = self._serialize_message(message)

        async with self._lock:
            self.published_count += 1
            queues = list(self._channels.get(channel, ()))
            for queue in queues:
                try:
                    queue.put_nowait(serialized)
                except asyncio.QueueFull:
                    logger.warning(f"Dropping message on {channel}: subscriber queue full")

    async def subscribe(self, channel: str):
        queue: asyncio.Queue = asyncio.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE)

        async with self._lock:
            self._channels.setdefault(channel, set()).add(queue)

        try:
            while True:
                serialized = await queue.get()
                if serialized is None:
                    break
                yield json.loads(serialized)
        finally:
            async with self._lock:
                if channel in self._channels:
                    self._channels[channel].discard(queue)

    def subscriber_count(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))

    async def close(self) -> None:
        """Close all channels."""
        async with self._lock:
            for queues in self._channels.values():
                for queue in queues:
                    try:
                        queue.put_nowait(None)
                    except asyncio.QueueFull:
                        pass
            self._channels.clear()
