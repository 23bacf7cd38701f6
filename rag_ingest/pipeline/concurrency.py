"""Counting limiter bounding how many chunk pipelines run at once."""

from collections import deque
import asyncio


class ConcurrencyLimiter:
    """
    Counter plus FIFO waiter queue.

    ``acquire`` suspends until a permit is free; ``release`` hands the permit
    straight to the oldest waiter. Use as ``async with limiter:`` so the
    permit is returned even when the body raises.

    One limiter is created per batch; it is not shared between documents.
    """

    def __init__(self, limit: int):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.limit = limit
        self._free = limit
        self._waiters: "deque[asyncio.Future]" = deque()
        self.in_flight = 0
        self.peak_in_flight = 0

    @property
    def waiting(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    def locked(self) -> bool:
        return self._free == 0

    async def acquire(self) -> None:
        if self._free > 0 and not self._waiters:
            self._free -= 1
        else:
            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            try:
                await waiter
            except asyncio.CancelledError:
                if waiter.done() and not waiter.cancelled():
                    # The permit was handed over just before cancellation
                    self._hand_off()
                else:
                    self._discard(waiter)
                raise

        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)

    def release(self) -> None:
        if self.in_flight <= 0:
            raise RuntimeError("release() called more times than acquire()")
        self.in_flight -= 1
        self._hand_off()

    def _hand_off(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._free += 1

    def _discard(self, waiter: asyncio.Future) -> None:
        try:
            self._waiters.remove(waiter)
        except ValueError:
            pass

    async def __aenter__(self) -> "ConcurrencyLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()
