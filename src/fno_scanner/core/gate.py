import asyncio
from collections import deque
from typing import Deque


class ConcurrencyGate:
    """Bounded semaphore with FIFO hand-off.

    At most `capacity` holders at once. When a holder releases while others
    are queued, the slot passes straight to the longest waiter so a newcomer
    can never slip in between release and wake-up.
    """

    def __init__(self, capacity: int = 10) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._holders = 0
        self._waiters: Deque[asyncio.Future] = deque()

    @property
    def holders(self) -> int:
        return self._holders

    @property
    def waiting(self) -> int:
        return len(self._waiters)

    async def acquire(self) -> None:
        if self._holders < self.capacity and not self._waiters:
            self._holders += 1
            return

        fut = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        try:
            await fut
        except asyncio.CancelledError:
            if fut.done() and not fut.cancelled():
                # slot was already handed to us; pass it on
                self.release()
            else:
                try:
                    self._waiters.remove(fut)
                except ValueError:
                    pass
            raise

    def release(self) -> None:
        if self._holders <= 0:
            raise RuntimeError("ConcurrencyGate released more times than acquired")
        while self._waiters:
            fut = self._waiters.popleft()
            if not fut.done():
                # holder count unchanged: ownership transfers to the waiter
                fut.set_result(None)
                return
        self._holders -= 1

    async def __aenter__(self) -> "ConcurrencyGate":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()
