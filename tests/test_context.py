import asyncio
import time

import pytest

from twirpy.context import CancellationSignal, RequestContext, ResponseGuard


def test_headers_are_lowercased_and_values_are_a_bag() -> None:
    ctx = RequestContext(headers={"X-Request-Id": "abc"}, values={"user": "ada"})
    assert ctx.header("x-request-id") == "abc"
    assert ctx.header("X-REQUEST-ID") == "abc"
    ctx["tenant"] = "t1"
    assert "tenant" in ctx
    assert ctx["user"] == "ada"
    assert ctx.get("missing", 1) == 1


def test_cancellation_is_irreversible_and_keeps_first_reason() -> None:
    signal = CancellationSignal()
    assert not signal.is_set()
    signal.fire("client disconnected")
    signal.fire("deadline")
    assert signal.is_set()
    assert signal.reason == "client disconnected"


def test_time_remaining() -> None:
    assert RequestContext().time_remaining() is None
    ctx = RequestContext.with_timeout(5)
    assert 4 < ctx.time_remaining() <= 5
    expired = RequestContext(deadline=time.time() - 1)
    assert expired.time_remaining() < 0


@pytest.mark.asyncio
async def test_wait_cancelled_wakes_waiters() -> None:
    ctx = RequestContext()
    waiter = asyncio.create_task(ctx.wait_cancelled())
    await asyncio.sleep(0)
    assert not waiter.done()
    ctx.cancel("stop")
    await asyncio.wait_for(waiter, 1)
    assert ctx.cancelled


@pytest.mark.asyncio
async def test_response_guard_first_write_wins() -> None:
    delivered = []

    async def sink(value):
        delivered.append(value)

    guard = ResponseGuard(sink)
    results = await asyncio.gather(*(guard.write(i) for i in range(10)))
    assert results.count(True) == 1
    assert len(delivered) == 1
    assert await guard.wait() == delivered[0]
    assert guard.written
