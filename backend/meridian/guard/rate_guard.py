"""Sliding-window admission control keyed by caller identity.

One guard lives for the whole process and is shared by every request
handler. State is in memory only.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional

logger = logging.getLogger(__name__)


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class RateGuard:
    def __init__(
        self,
        max_requests: int = 10,
        window_ms: int = 60_000,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        if max_requests < 1 or window_ms < 1:
            raise ValueError("max_requests and window_ms must be positive")
        self.max_requests = max_requests
        self.window_ms = window_ms
        self._clock = clock or monotonic_ms
        self._lock = threading.Lock()
        self._entries: Dict[str, Deque[float]] = {}
        self._prune_interval_ms = max(window_ms * 5, 300_000)
        self._last_prune = self._clock()

    def check(self, key: str) -> bool:
        """True to admit the call, False to reject it. Admission records a timestamp."""
        with self._lock:
            now = self._clock()
            self._prune(now)

            timestamps = self._entries.get(key)
            if timestamps is None:
                timestamps = deque()
                self._entries[key] = timestamps
            while timestamps and now - timestamps[0] >= self.window_ms:
                timestamps.popleft()

            if len(timestamps) >= self.max_requests:
                logger.info("Rate guard rejected key=%s (%s in window)", key, len(timestamps))
                return False
            timestamps.append(now)
            return True

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._entries)

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()
            self._last_prune = self._clock()

    def _prune(self, now: float) -> None:
        # Only drops timestamps that check() would discard anyway.
        if now - self._last_prune < self._prune_interval_ms:
            return
        self._last_prune = now
        for key in list(self._entries):
            timestamps = self._entries[key]
            while timestamps and now - timestamps[0] >= self.window_ms:
                timestamps.popleft()
            if not timestamps:
                del self._entries[key]
