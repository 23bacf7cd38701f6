"""Tests for the bounded-parallelism limiter."""

import asyncio

import pytest

from rag_ingest.pipeline.concurrency import ConcurrencyLimiter


def test_never_exceeds_limit():
    async def scenario():
        limiter = ConcurrencyLimiter(3)
        active = 0
        observed = []

        async def work():
            nonlocal active
            async with limiter:
                active += 1
                observed.append(active)
                for _ in range(3):
                    await asyncio.sleep(0)
                active -= 1

        await asyncio.gather(*(work() for _ in range(10)))
        return limiter, observed

    limiter, observed = asyncio.run(scenario())

    assert max(observed) == 3
    assert limiter.peak_in_flight == 3
    assert limiter.in_flight == 0
    assert not limiter.locked()


def test_waiters_are_served_in_fifo_order():
    async def scenario():
        limiter = ConcurrencyLimiter(1)
        order = []

        async def work(i):
            async with limiter:
                order.append(i)
                await asyncio.sleep(0)

        await asyncio.gather(*(work(i) for i in range(5)))
        return order

    assert asyncio.run(scenario()) == [0, 1, 2, 3, 4]


def test_permit_released_when_body_raises():
    async def scenario():
        limiter = ConcurrencyLimiter(1)

        async def failing():
            async with limiter:
                raise ValueError("boom")

        with pytest.raises(ValueError):
            await failing()

        # A leaked permit would block here forever
        await asyncio.wait_for(limiter.acquire(), timeout=1)
        limiter.release()
        return limiter

    limiter = asyncio.run(scenario())
    assert limiter.in_flight == 0


def test_cancelled_waiter_does_not_leak_permit():
    async def scenario():
        limiter = ConcurrencyLimiter(1)
        await limiter.acquire()

        waiter = asyncio.ensure_future(limiter.acquire())
        await asyncio.sleep(0)
        assert limiter.waiting == 1

        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        limiter.release()
        await asyncio.wait_for(limiter.acquire(), timeout=1)
        limiter.release()
        return limiter

    limiter = asyncio.run(scenario())
    assert limiter.in_flight == 0
    assert limiter.waiting == 0


def test_release_without_acquire_raises():
    with pytest.raises(RuntimeError):
        ConcurrencyLimiter(2).release()


def test_limit_must_be_positive():
    with pytest.raises(ValueError):
        ConcurrencyLimiter(0)
