"""Per-client sliding-window request limiter."""

import time
from collections import deque
from typing import Deque, Dict, Optional


class SlidingWindowLimiter:
    """Allow at most max_requests per key within the trailing window_seconds."""

    def __init__(self, max_requests: int = 120, window_seconds: float = 60.0):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._hits: Dict[str, Deque[float]] = {}
        self._last_prune: Optional[float] = None

    @property
    def enabled(self) -> bool:
        return self.max_requests > 0

    def __len__(self) -> int:
        return len(self._hits)

    def allow(self, key: str, now: Optional[float] = None) -> bool:
        if not self.enabled:
            return True
        now = now if now is not None else time.monotonic()
        if self._last_prune is None or now - self._last_prune >= self.window_seconds:
            self.prune(now)
        hits = self._hits.setdefault(key, deque())
        self._expire(hits, now)
        if len(hits) >= self.max_requests:
            return False
        hits.append(now)
        return True

    def prune(self, now: Optional[float] = None) -> None:
        """Forget every key whose hits have all left the window."""
        now = now if now is not None else time.monotonic()
        for key in list(self._hits):
            hits = self._hits[key]
            self._expire(hits, now)
            if not hits:
                del self._hits[key]
        self._last_prune = now

    def _expire(self, hits: Deque[float], now: float) -> None:
        while hits and now - hits[0] >= self.window_seconds:
            hits.popleft()

    def reset(self) -> None:
        self._hits.clear()
        self._last_prune = None
