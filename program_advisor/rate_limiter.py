"""Sliding-window limiter for outbound text-generation calls."""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Callable, Deque

from .config import get_advisor_settings

logger = logging.getLogger(__name__)

WAIT_BUFFER_SECONDS = 0.01


class RateLimiter:
    """Allow at most ``max_requests`` acquisitions per ``window_seconds``.

    Callers over the limit sleep until the oldest request leaves the window and
    then try again; nobody is rejected. Only guards the current process.
    """

    def __init__(
        self,
        max_requests: int = 8,
        window_seconds: float = 1.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep
        self._requests: Deque[float] = deque()
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        while self._requests and now - self._requests[0] >= self.window_seconds:
            self._requests.popleft()

    def wait_for_slot(self) -> None:
        """Block until a slot is free, then claim it."""

        while True:
            with self._lock:
                now = self._clock()
                self._prune(now)
                if len(self._requests) < self.max_requests:
                    self._requests.append(now)
                    return
                wait = self.window_seconds - (now - self._requests[0]) + WAIT_BUFFER_SECONDS
            logger.info("Rate limit reached, waiting %.0f ms", wait * 1000)
            self._sleep(wait)

    @property
    def in_flight(self) -> int:
        with self._lock:
            self._prune(self._clock())
            return len(self._requests)


_limiter: RateLimiter | None = None
_limiter_lock = threading.Lock()


def get_rate_limiter() -> RateLimiter:
    """Return the process-wide limiter, creating it from settings on first use."""

    global _limiter
    with _limiter_lock:
        if _limiter is None:
            settings = get_advisor_settings()
            _limiter = RateLimiter(settings.rate_limit, settings.rate_window_seconds)
        return _limiter
