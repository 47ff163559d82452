"""Rolling-window limiter for job starts."""

import time
from collections import deque
from typing import Callable


class RollingWindowLimiter:
    """Admit at most ``max_starts`` within any rolling ``window_s`` seconds.

    Independent of the concurrency cap: a job that is eligible to start but
    over the limit stays waiting until the oldest start ages out. Callers
    check ``delay()`` before claiming and ``record()`` once a claim succeeds.
    Not thread-safe: the worker pool calls both from its single dispatcher
    task, so a start is only counted for a job that exists.
    """

    def __init__(
        self,
        max_starts: int,
        window_s: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_starts < 1:
            raise ValueError("max_starts must be >= 1")
        if window_s <= 0:
            raise ValueError("window_s must be > 0")
        self.max_starts = max_starts
        self.window_s = window_s
        self._clock = clock
        self._starts: deque[float] = deque()

    def _evict(self, now: float) -> None:
        while self._starts and now - self._starts[0] >= self.window_s:
            self._starts.popleft()

    def delay(self) -> float:
        """Seconds until another start would be admitted (0 when admitted now)."""
        now = self._clock()
        self._evict(now)
        if len(self._starts) < self.max_starts:
            return 0.0
        return max(0.0, self._starts[0] + self.window_s - now)

    def record(self) -> None:
        """Count a job start at the current time."""
        self._starts.append(self._clock())

    @property
    def in_window(self) -> int:
        self._evict(self._clock())
        return len(self._starts)
