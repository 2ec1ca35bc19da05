"""
Tests for the in-memory broadcast adapter and the event notifier.
"""
import asyncio
from decimal import Decimal

import pytest

from hackjudge.realtime import EventNotifier, InMemoryAdapter, event_channel


async def registered(stream, adapter, channel):
    """Start the subscription and wait until its queue is attached."""
    async def next_message():
        return await stream.__anext__()

    task = asyncio.create_task(next_message())
    for _ in range(10):
        if adapter.subscriber_count(channel):
            break
        await asyncio.sleep(0)
    return task


def test_serialization_is_deterministic():
    adapter = InMemoryAdapter()
    assert adapter._serialize_message({"b": 1, "a": 2}) == '{"a":2,"b":1}'


@pytest.mark.asyncio
async def test_publish_requires_envelope():
    adapter = InMemoryAdapter()
    with pytest.raises(ValueError):
        await adapter.publish("event:1", {"payload": {}})


@pytest.mark.asyncio
async def test_notifier_delivers_to_event_channel():
    adapter = InMemoryAdapter()
    notifier = EventNotifier(adapter)
    stream = notifier.subscribe(7)
    receive = await registered(stream, adapter, event_channel(7))

    await notifier.broadcast(7, "leaderboard-update", {"rank": 1, "aggregate_score": Decimal("9.50")})
    message = await asyncio.wait_for(receive, timeout=1)

    assert message["event"] == "leaderboard-update"
    assert message["event_id"] == 7
    assert message["payload"] == {"rank": 1, "aggregate_score": "9.50"}
    assert "timestamp" in message
    await stream.aclose()


@pytest.mark.asyncio
async def test_other_events_are_not_delivered():
    adapter = InMemoryAdapter()
    notifier = EventNotifier(adapter)
    stream = notifier.subscribe(1)
    receive = await registered(stream, adapter, event_channel(1))

    await notifier.broadcast(2, "round-finalized", {"round_number": 1})
    await asyncio.sleep(0)
    assert not receive.done()

    receive.cancel()
    with pytest.raises(asyncio.CancelledError):
        await receive


@pytest.mark.asyncio
async def test_slow_subscriber_does_not_block_publisher():
    adapter = InMemoryAdapter()
    notifier = EventNotifier(adapter)
    stream = notifier.subscribe(3)
    receive = await registered(stream, adapter, event_channel(3))

    # One message is taken by the pending receive; the rest overflow the queue
    for i in range(150):
        await notifier.broadcast(3, "leaderboard-update", {"seq": i})

    assert adapter.published_count == 150
    first = await asyncio.wait_for(receive, timeout=1)
    assert first["payload"]["seq"] == 0
    await stream.aclose()


@pytest.mark.asyncio
async def test_close_ends_subscriptions():
    adapter = InMemoryAdapter()
    stream = adapter.subscribe("event:9")
    receive = await registered(stream, adapter, "event:9")

    await adapter.close()

    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(receive, timeout=1)
