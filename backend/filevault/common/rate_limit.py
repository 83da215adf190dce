from __future__ import annotations

import math
import threading
import time
from collections import defaultdict


class LoginRateLimiter:
    """Failed sign-in attempts per key, kept in process memory."""

    def __init__(self) -> None:
        self._failures: dict[str, list[float]] = defaultdict(list)
        self._lock = threading.Lock()

    def retry_after(self, key: str, window_seconds: int, max_attempts: int) -> int:
        """Seconds until ``key`` may try again, or 0 when it is not blocked."""
        now = time.time()
        with self._lock:
            recent = [stamp for stamp in self._failures[key] if now - stamp <= window_seconds]
            self._failures[key] = recent
            if len(recent) < max_attempts:
                return 0
            oldest = recent[-max_attempts]
            return max(1, math.ceil(oldest + window_seconds - now))

    def add_failure(self, key: str) -> None:
        with self._lock:
            self._failures[key].append(time.time())

    def clear(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._failures.clear()
            else:
                self._failures.pop(key, None)


login_rate_limiter = LoginRateLimiter()
