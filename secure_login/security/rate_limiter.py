"""In-memory sliding window rate limiter guarding the auth endpoints."""

from __future__ import annotations

import time
from collections import deque
from threading import Lock
from typing import Callable, Deque, DefaultDict, Protocol


class RateLimiter(Protocol):
    def allow(self, key: str) -> bool: ...


class SlidingWindowRateLimiter:
    """Thread-safe per-key sliding window limiter for a single process.

    Keys whose hits have all left the window are dropped by a sweep that runs
    at most once per window, so memory tracks active clients only.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialise limiter parameters and per-key storage."""
        self._max_requests = max_requests
        self._window = window_seconds
        self._clock = clock
        self._events: DefaultDict[str, Deque[float]] = DefaultDict(deque)
        self._lock = Lock()
        self._next_sweep = clock() + window_seconds

    def __len__(self) -> int:
        """Number of keys currently tracked."""
        with self._lock:
            return len(self._events)

    def allow(self, key: str) -> bool:
        """Return ``True`` and record the hit when ``key`` is under its limit."""
        now = self._clock()
        with self._lock:
            if now >= self._next_sweep:
                self._sweep(now)
            queue = self._events[key]
            while queue and now - queue[0] >= self._window:
                queue.popleft()
            if len(queue) >= self._max_requests:
                return False
            queue.append(now)
            return True

    def reset(self, key: str) -> None:
        with self._lock:
            self._events.pop(key, None)

    def _sweep(self, now: float) -> None:
        # newest hit expired means the whole queue has
        stale = [
            key for key, queue in self._events.items()
            if not queue or now - queue[-1] >= self._window
        ]
        for key in stale:
            del self._events[key]
        self._next_sweep = now + self._window
