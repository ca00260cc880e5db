from __future__ import annotations

import time
from collections import defaultdict
from typing import Callable, Dict, List, Tuple

from ..config import RateLimitConfig


class SlidingWindowRateLimiter:
    """
    In-memory sliding-window limiter keyed by ``(client_id, action)``.

    Only timestamps younger than the window are counted on each check, so
    capacity frees up gradually rather than on a fixed bucket reset.
    Denied attempts are not recorded.
    """

    def __init__(self, config: RateLimitConfig | None = None, clock: Callable[[], float] = time.time):
        cfg = config or RateLimitConfig()
        self._limit = cfg.limit
        self._window = cfg.window_seconds
        self._clock = clock
        self._hits: Dict[Tuple[str, str], List[float]] = defaultdict(list)

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_seconds(self) -> float:
        return self._window

    def check_and_record(self, client_id: str, action: str) -> bool:
        """Return True and record the hit if the key is under its limit."""
        key = (client_id, action)
        now = self._clock()

        recent = [t for t in self._hits[key] if now - t < self._window]
        if len(recent) >= self._limit:
            self._hits[key] = recent
            return False

        recent.append(now)
        self._hits[key] = recent
        return True

    def remaining(self, client_id: str, action: str) -> int:
        now = self._clock()
        recent = [t for t in self._hits.get((client_id, action), ()) if now - t < self._window]
        return max(self._limit - len(recent), 0)

    def reset(self, client_id: str | None = None) -> None:
        """Forget recorded hits for one client, or for everyone."""
        if client_id is None:
            self._hits.clear()
            return
        for key in [k for k in self._hits if k[0] == client_id]:
            del self._hits[key]


__all__ = ["SlidingWindowRateLimiter"]
