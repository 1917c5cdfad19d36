import time
from threading import Lock
from typing import Callable, Dict, Optional


class MinIntervalRateLimiter:
    """
    Allows one call per key every `min_interval` seconds.

    Clock and state are injected so callers (and tests) own them; nothing
    is kept at module level.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        last_seen: Optional[Dict[str, float]] = None,
    ):
        if min_interval < 0:
            raise ValueError("min_interval must be non-negative")
        self.min_interval = min_interval
        self._clock = clock
        self._last_seen = last_seen if last_seen is not None else {}
        self._lock = Lock()

    def allow(self, key: str) -> bool:
        with self._lock:
            now = self._clock()
            last = self._last_seen.get(key)
            if last is not None and now - last < self.min_interval:
                return False
            self._last_seen[key] = now
            return True

    def retry_after(self, key: str) -> float:
        last = self._last_seen.get(key)
        if last is None:
            return 0.0
        return max(0.0, self.min_interval - (self._clock() - last))
