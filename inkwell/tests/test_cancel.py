import asyncio

import pytest

from inkwell.core.cancel import CancelToken
from inkwell.core.exceptions import GenerationCancelled

@pytest.mark.asyncio
async def test_cancel_runs_callbacks_once():
    token = CancelToken()
    calls = []
    token.add_callback(lambda: calls.append("close"))

    assert token.cancel() is True
    assert token.cancel() is False
    assert token.cancelled
    assert calls == ["close"]

@pytest.mark.asyncio
async def test_removed_callback_is_not_called():
    token = CancelToken()
    calls = []
    remove = token.add_callback(lambda: calls.append("close"))
    remove()
    token.cancel()
    assert calls == []

@pytest.mark.asyncio
async def test_callback_added_after_cancel_runs_immediately():
    token = CancelToken()
    token.cancel()
    calls = []
    token.add_callback(lambda: calls.append("close"))
    assert calls == ["close"]

@pytest.mark.asyncio
async def test_wait_returns_once_cancelled():
    token = CancelToken()
    waiter = asyncio.create_task(token.wait())
    await asyncio.sleep(0)
    assert not waiter.done()
    token.cancel()
    await asyncio.wait_for(waiter, 1)

@pytest.mark.asyncio
async def test_run_returns_the_result():
    async def reply():
        return 42

    assert await CancelToken().run(reply()) == 42

@pytest.mark.asyncio
async def test_run_interrupts_a_pending_call():
    token = CancelToken()
    started = asyncio.Event()

    async def hung_server():
        started.set()
        await asyncio.sleep(10)

    caller = asyncio.create_task(token.run(hung_server()))
    await started.wait()
    token.cancel()

    with pytest.raises(GenerationCancelled):
        await asyncio.wait_for(caller, 1)

@pytest.mark.asyncio
async def test_run_on_a_fired_token_never_starts_the_call():
    token = CancelToken()
    token.cancel()
    calls = []

    async def request():
        calls.append("sent")

    with pytest.raises(GenerationCancelled):
        await token.run(request())
    assert calls == []

@pytest.mark.asyncio
async def test_run_propagates_task_cancellation():
    token = CancelToken()

    async def hung_server():
        await asyncio.sleep(10)

    caller = asyncio.create_task(token.run(hung_server()))
    await asyncio.sleep(0)
    caller.cancel()

    with pytest.raises(asyncio.CancelledError):
        await caller
    assert not token.cancelled
