"""Creator Safety Vetting - Rolling Window Rate Limiter
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

Admission control for the media queues: at most `limit` admissions in
any `window` seconds, independent of how many calls are in flight.
"""

import asyncio
import time
from collections import deque
from typing import Callable


class RollingWindowLimiter:
    """Sliding-window limiter that waits instead of rejecting."""

    def __init__(self, limit: int, window: float, clock: Callable[[], float] = time.monotonic):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if window < 0:
            raise ValueError("window must not be negative")
        self.limit = limit
        self.window = window
        self._clock = clock
        self._admissions: deque[float] = deque()

    def _prune(self, now: float) -> None:
        # Drop admissions that have left the window
        while self._admissions and now - self._admissions[0] >= self.window:
            self._admissions.popleft()

    def try_acquire(self) -> float:
        """
        Admit immediately if there is room and return 0.

        Otherwise return how long to wait before asking again.
        """
        now = self._clock()
        self._prune(now)
        if len(self._admissions) < self.limit:
            self._admissions.append(now)
            return 0.0
        return max(self._admissions[0] + self.window - now, 0.0)

    async def acquire(self) -> None:
        """Wait until an admission is available, then take it."""
        while True:
            wait = self.try_acquire()
            if wait <= 0:
                return
            await asyncio.sleep(wait)

    @property
    def recent_admissions(self) -> int:
        self._prune(self._clock())
        return len(self._admissions)
