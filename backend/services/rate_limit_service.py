"""In-memory sliding-window throttle for failed logins. State is lost on restart."""

from __future__ import annotations

import time
from collections import deque


class LoginThrottle:
    """Count failed attempts per key within a sliding window.

    Safe under asyncio's single-threaded model: no method awaits between
    reading and mutating the attempt log.
    """

    def __init__(self, max_failures: int, window_seconds: int) -> None:
        if max_failures < 1 or window_seconds < 1:
            msg = "max_failures and window_seconds must be positive"
            raise ValueError(msg)
        self.max_failures = max_failures
        self.window_seconds = window_seconds
        self._failures: dict[str, deque[float]] = {}

    def _recent(self, key: str, now: float) -> deque[float] | None:
        failures = self._failures.get(key)
        if failures is None:
            return None
        cutoff = now - self.window_seconds
        while failures and failures[0] <= cutoff:
            failures.popleft()
        if not failures:
            del self._failures[key]
            return None
        return failures

    def retry_after(self, key: str) -> int:
        """Seconds until the key may try again; 0 when it is not throttled."""
        now = time.monotonic()
        failures = self._recent(key, now)
        if failures is None or len(failures) < self.max_failures:
            return 0
        return max(int(failures[0] + self.window_seconds - now) + 1, 1)

    def record_failure(self, key: str) -> None:
        now = time.monotonic()
        failures = self._recent(key, now)
        if failures is None:
            failures = self._failures[key] = deque()
        failures.append(now)

    def reset(self, key: str) -> None:
        self._failures.pop(key, None)
