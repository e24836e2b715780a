import asyncio

import pytest

from inkwell.core.exceptions import NetworkError
from inkwell.llm.bridge import PushPullBridge


async def drain(bridge):
    return [item async for item in bridge]


@pytest.mark.asyncio
async def test_items_arrive_in_push_order_and_close_drains():
    bridge = PushPullBridge()
    for item in "abc":
        await bridge.push(item)
    bridge.close()
    assert await drain(bridge) == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_consumer_waits_for_producer():
    bridge = PushPullBridge()

    async def produce():
        await asyncio.sleep(0.01)
        await bridge.push(1)
        await asyncio.sleep(0.01)
        await bridge.push(2)
        bridge.close()

    producer = asyncio.create_task(produce())
    assert await drain(bridge) == [1, 2]
    await producer


@pytest.mark.asyncio
async def test_failure_is_raised_after_queued_items():
    bridge = PushPullBridge()
    await bridge.push("a")
    bridge.fail(NetworkError("socket went away"))

    received = []
    with pytest.raises(NetworkError):
        async for item in bridge:
            received.append(item)
    assert received == ["a"]


@pytest.mark.asyncio
async def test_abort_unblocks_a_waiting_consumer():
    bridge = PushPullBridge()
    consumer = asyncio.create_task(drain(bridge))
    await asyncio.sleep(0.01)
    assert not consumer.done()

    bridge.abort()
    assert await asyncio.wait_for(consumer, 1) == []


@pytest.mark.asyncio
async def test_abort_discards_queued_items():
    bridge = PushPullBridge()
    await bridge.push("a")
    bridge.abort()
    assert await drain(bridge) == []


@pytest.mark.asyncio
async def test_close_with_full_queue_still_terminates():
    bridge = PushPullBridge(maxsize=2)
    await bridge.push(1)
    await bridge.push(2)
    bridge.close()
    assert await drain(bridge) == [1, 2]


@pytest.mark.asyncio
async def test_pushes_after_finish_are_ignored():
    bridge = PushPullBridge()
    bridge.close()
    bridge.fail(NetworkError("late"))
    await bridge.push("late")
    assert bridge.finished
    assert await drain(bridge) == []
