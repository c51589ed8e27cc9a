"""Fixed-window rate limiter for OAuth callbacks.

WHAT:
    `CallbackRateLimiter.check(key)` allows `limit` hits per `window_seconds`
    per key (client IP). Expired windows are swept lazily, at most once per
    `sweep_interval`, during a check.

WHY:
    OAuth callbacks exchange codes with third parties on every hit; a
    per-IP cap keeps a replay loop from burning provider quota. The clock
    is injectable so tests can step time instead of sleeping.

NOTES:
    State is per process. Behind several API replicas the effective limit
    is `limit * replicas`.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict

from fastapi import Request

logger = logging.getLogger(__name__)


@dataclass
class _Window:
    count: int
    reset_at: float


class CallbackRateLimiter:
    def __init__(
        self,
        limit: int = 10,
        window_seconds: float = 60.0,
        sweep_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._next_sweep = clock() + sweep_interval

    def check(self, key: str) -> bool:
        """Record a hit for `key`; False when the key is over its limit."""
        now = self._clock()
        self._maybe_sweep(now)

        window = self._windows.get(key)
        if window is None or now >= window.reset_at:
            self._windows[key] = _Window(count=1, reset_at=now + self.window_seconds)
            return True

        if window.count >= self.limit:
            logger.warning("[RATE_LIMIT] %s exceeded %d requests / %.0fs", key, self.limit, self.window_seconds)
            return False

        window.count += 1
        return True

    def retry_after(self, key: str) -> int:
        window = self._windows.get(key)
        if window is None:
            return 0
        return max(0, int(window.reset_at - self._clock()) + 1)

    def _maybe_sweep(self, now: float) -> None:
        if now < self._next_sweep:
            return
        expired = [key for key, window in self._windows.items() if now >= window.reset_at]
        for key in expired:
            del self._windows[key]
        self._next_sweep = now + self.sweep_interval

    def __len__(self) -> int:
        return len(self._windows)


def client_ip(request: Request) -> str:
    """Peer address; ProxyHeadersMiddleware has already applied X-Forwarded-For from trusted proxies."""
    return request.client.host if request.client else "unknown"
