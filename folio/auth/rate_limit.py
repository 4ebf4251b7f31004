from __future__ import annotations

import threading
import time
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Tuple


class RateLimiter:
    """
    In-memory limiter for failed login attempts.

    Only failures count: after `max_failures` failures inside `window_seconds` the identifier
    is locked out until the oldest failure ages out. A successful login resets it.
    """

    def __init__(
        self,
        max_failures: int = 5,
        window_seconds: int = 300,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._failures: Dict[str, List[float]] = defaultdict(list)
        self._max = max_failures
        self._window = float(window_seconds)
        self._clock = clock
        self._lock = threading.Lock()

    def _prune(self, identifier: str, now: float) -> List[float]:
        kept = [t for t in self._failures.get(identifier, []) if now - t < self._window]
        if kept:
            self._failures[identifier] = kept
        else:
            self._failures.pop(identifier, None)
        return kept

    def check(self, identifier: str) -> Tuple[bool, int]:
        """Return (is_allowed, attempts_remaining) without recording anything."""
        with self._lock:
            failures = self._prune(identifier, self._clock())
            remaining = max(0, self._max - len(failures))
            return remaining > 0, remaining

    def record_failure(self, identifier: str) -> int:
        """Record one failed attempt; returns attempts remaining."""
        with self._lock:
            now = self._clock()
            failures = self._prune(identifier, now)
            failures.append(now)
            self._failures[identifier] = failures
            return max(0, self._max - len(failures))

    def reset(self, identifier: str) -> None:
        with self._lock:
            self._failures.pop(identifier, None)


_global_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get global rate limiter instance."""
    global _global_rate_limiter
    if _global_rate_limiter is None:
        _global_rate_limiter = RateLimiter(max_failures=5, window_seconds=300)
    return _global_rate_limiter


def reset_rate_limiter() -> None:
    global _global_rate_limiter
    _global_rate_limiter = None
