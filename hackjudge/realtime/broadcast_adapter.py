"""
hackjudge/realtime/broadcast_adapter.py
Broadcast Adapter Interface

Abstract base class for broadcast implementations.
Delivery-only: the database stays the source of truth.
"""
import abc
import json
from typing import Dict, Any


class BroadcastAdapter(abc.ABC):
    """
    Abstract base class for broadcast adapters.

    Guarantees:
    - Deterministic message serialization (sort_keys=True)
    - Fire-and-forget delivery; nothing is replayed
    """

    REQUIRED_FIELDS = ("event", "event_id", "payload")

    @abc.abstractmethod
    async def publish(self, channel: str, message: Dict[str, Any]) -> None:
        """
        Publish message to channel.

        Args:
            channel: Channel name (e.g., "event:42")
            message: Message envelope (event, event_id, payload, timestamp)
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def subscribe(self, channel: str):
        """
        Subscribe to channel and yield messages.

        Args:
            channel: Channel name to subscribe to
        Yields:
            Parsed message dict
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def close(self) -> None:
        """Close adapter connections."""
        raise NotImplementedError

    def _serialize_message(self, message: Dict[str, Any]) -> str:
        # default=str covers Decimal and datetime payload values
        return json.dumps(message, sort_keys=True, separators=(',', ':'), default=str)

    def validate_message(self, message: Dict[str, Any]) -> bool:
        """
        Validate message carries the envelope fields.

        Raises:
            ValueError: If required fields missing
        """
        missing = [f for f in self.REQUIRED_FIELDS if f not in message]
        if missing:
            raise ValueError(f"Message missing required fields: {missing}")
        return True
