"""Per-dependency rate limiting for outbound calls."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class QuotaExhaustedError(RuntimeError):
    """Raised when a call budget has been fully consumed."""


class RateLimiter:
    """Thread-safe token bucket enforcing a calls-per-second rate.

    `burst` tokens may be spent back to back; after that callers are paced at
    `rate` per second. An optional `budget` caps the total number of calls for
    the limiter's lifetime. `clock` and `sleep` are injectable so pacing can be
    tested without wall-clock delays.
    """

    def __init__(
        self,
        rate: float,
        *,
        burst: int = 1,
        budget: Optional[int] = None,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be > 0")
        if burst < 1:
            raise ValueError("burst must be >= 1")
        self.name = name
        self._rate = float(rate)
        self._capacity = float(burst)
        self._tokens = float(burst)
        self._budget = budget
        self._calls = 0
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._updated = clock()

    @property
    def calls(self) -> int:
        return self._calls

    @property
    def exhausted(self) -> bool:
        return self._budget is not None and self._calls >= self._budget

    def _refill(self, now: float) -> None:
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)
        self._updated = now

    def acquire(self, *, charge: bool = True) -> None:
        """Block until a token is available, then consume it.

        Calls made with `charge=False` are paced like any other but neither
        count against nor are refused by the budget.
        """
        with self._lock:
            if charge:
                if self.exhausted:
                    raise QuotaExhaustedError(f"{self.name} call budget of {self._budget} is exhausted")
                self._calls += 1

            self._refill(self._clock())
            if self._tokens < 1.0:
                wait_for = (1.0 - self._tokens) / self._rate
                logger.debug("Rate limiter %s waiting %.2fs", self.name, wait_for)
                # Holding the lock while sleeping keeps callers strictly ordered.
                self._sleep(wait_for)
                self._refill(self._clock())
                self._tokens = max(self._tokens, 1.0)
            self._tokens -= 1.0
