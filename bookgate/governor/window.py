"""Sliding-window admission control for outbound provider calls.

The limiter keeps the monotonic timestamps of admitted calls.  Every
admission prunes entries older than the window, then either records ``now``
or suspends the caller until the oldest entry leaves the window.

All mutation is guarded by one ``asyncio.Lock``.  The lock is held across the
admission wait, so callers are admitted strictly in arrival order and a
waiter cannot be overtaken by later arrivals.  Coroutines that never touch
the limiter are unaffected.
"""

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from time import monotonic

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


class SlidingWindowLimiter:
    """In-process sliding-window limiter.

    Parameters
    ----------
    max_requests : int
        Calls admitted per window.
    window_s : float
        Window length in seconds.
    safety_margin_s : float
        Extra wait added when the window is full.
    clock, sleep
        Time sources; injectable so tests never wait on real time.
    """

    def __init__(
        self,
        max_requests: int = 50,
        window_s: float = 60.0,
        safety_margin_s: float = 1.0,
        clock: Clock = monotonic,
        sleep: Sleep = asyncio.sleep,
        name: str = "provider",
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_s <= 0:
            raise ValueError("window_s must be > 0")
        self._max_requests = max_requests
        self._window_s = window_s
        self._safety_margin_s = max(safety_margin_s, 0.0)
        self._clock = clock
        self._sleep = sleep
        self._name = name
        self._timestamps: deque[float] = deque()
        self._lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def window_s(self) -> float:
        return self._window_s

    def _prune(self, now: float) -> None:
        cutoff = now - self._window_s
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

    async def acquire(self) -> float:
        """Admit one call, suspending first if the window is full.

        Returns the number of seconds the caller was suspended.
        """
        async with self._lock:
            now = self._clock()
            self._prune(now)
            if len(self._timestamps) < self._max_requests:
                self._timestamps.append(now)
                return 0.0

            oldest = self._timestamps[0]
            wait_s = self._window_s - (now - oldest) + self._safety_margin_s
            await self._sleep(wait_s)

            # The oldest entry has left the window while we slept.
            self._timestamps.popleft()
            self._timestamps.append(self._clock())
            return wait_s

    # Readers never mutate the deque; only acquire() does, under the lock.
    def in_window(self) -> list[float]:
        cutoff = self._clock() - self._window_s
        return [ts for ts in self._timestamps if ts > cutoff]

    def remaining(self) -> int:
        return max(0, self._max_requests - len(self.in_window()))

    def summary(self) -> dict[str, object]:
        remaining = self.remaining()
        return {
            "name": self._name,
            "max_requests": self._max_requests,
            "window_ms": int(self._window_s * 1000),
            "used": self._max_requests - remaining,
            "remaining": remaining,
        }
