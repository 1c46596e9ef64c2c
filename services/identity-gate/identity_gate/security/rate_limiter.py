"""In-memory sliding window lockout for repeated authentication failures."""

from __future__ import annotations

import time
from collections import deque
from threading import Lock
from typing import Deque, Dict


class FailedAttemptLimiter:
    """Thread-safe per-key failure counter over a sliding window.

    A key is locked once it has accumulated ``max_failures`` failures within
    ``window_seconds``; it unlocks as those failures age out of the window.
    """

    def __init__(self, max_failures: int, window_seconds: int) -> None:
        """Initialise limiter parameters and per-key storage."""
        self._max_failures = max_failures
        self._window = window_seconds
        self._failures: Dict[str, Deque[float]] = {}
        self._lock = Lock()

    def is_locked(self, key: str) -> bool:
        """Return ``True`` when ``key`` has too many recent failures."""
        now = time.time()
        with self._lock:
            queue = self._failures.get(key)
            if queue is None:
                return False
            self._expire(queue, now)
            if not queue:
                del self._failures[key]
                return False
            return len(queue) >= self._max_failures

    def register_failure(self, key: str) -> None:
        """Record one failed attempt for ``key`` and drop keys with no recent failures."""
        now = time.time()
        with self._lock:
            for stale_key, stale_queue in list(self._failures.items()):
                self._expire(stale_queue, now)
                if not stale_queue:
                    del self._failures[stale_key]
            self._failures.setdefault(key, deque()).append(now)

    def _expire(self, queue: Deque[float], now: float) -> None:
        while queue and now - queue[0] > self._window:
            queue.popleft()
