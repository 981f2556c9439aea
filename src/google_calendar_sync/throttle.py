"""
Rate limiting and retry policy for remote calendar calls.
"""

import logging
import threading
import time
from typing import Callable
from typing import TypeVar

from google_calendar_sync.models import RateLimitedError
from google_calendar_sync.models import RemoteApiError
from google_calendar_sync.models import RemoteNotFoundError
from google_calendar_sync.models import SyncConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Extra second slept past a minute boundary so the provider's window has
# definitely rolled over before the next call.
_MINUTE_BUFFER = 1.0


class RateLimiter:
    """Spaces remote calls and caps them per wall-clock minute.

    One instance is meant to be shared by every engine in the process: the
    provider quota is account-wide, so all calls go through the same counter.
    The lock is held while waiting, which serialises callers.
    """

    def __init__(
        self,
        min_interval: float = 0.5,
        max_calls_per_minute: int = 590,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.min_interval = min_interval
        self.max_calls_per_minute = max_calls_per_minute
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_call: float | None = None
        self._minute: int | None = None
        self._calls = 0

    @classmethod
    def from_config(cls, config: SyncConfig, **kwargs) -> "RateLimiter":
        return cls(
            min_interval=config.min_call_delay_ms / 1000.0,
            max_calls_per_minute=config.max_calls_per_minute,
            **kwargs,
        )

    @property
    def calls_this_minute(self) -> int:
        return self._calls

    def throttle(self):
        """Block until one more remote call is allowed, then account for it."""
        with self._lock:
            now = self._clock()
            self._roll_minute(now)

            if self._calls >= self.max_calls_per_minute:
                wait = self._seconds_to_next_minute(now)
                logger.info(
                    f"Approaching rate limit ({self._calls} calls this minute), waiting {wait:.1f}s"
                )
                self._sleep(wait)
                now = self._clock()
                self._roll_minute(now)

            if self._last_call is not None:
                gap = now - self._last_call
                if gap < self.min_interval:
                    self._sleep(self.min_interval - gap)
                    now = self._clock()
                    self._roll_minute(now)

            self._last_call = now
            self._calls += 1

    def wait_for_next_minute(self):
        """Sleep past the next minute boundary and reset the per-minute counter."""
        with self._lock:
            now = self._clock()
            wait = self._seconds_to_next_minute(now)
            logger.warning(f"Rate limited by provider, waiting {wait:.1f}s for next minute")
            self._sleep(wait)
            self._minute = int(self._clock() // 60)
            self._calls = 0

    def backoff(self, seconds: float):
        """Plain delay used between retry attempts."""
        self._sleep(seconds)

    def _roll_minute(self, now: float):
        minute = int(now // 60)
        if minute != self._minute:
            self._minute = minute
            self._calls = 0

    @staticmethod
    def _seconds_to_next_minute(now: float) -> float:
        return (int(now // 60) + 1) * 60 - now + _MINUTE_BUFFER


def call_with_retry(
    limiter: RateLimiter,
    operation: Callable[[], T],
    description: str = "remote call",
    max_retries: int = 3,
) -> T:
    """Run one remote operation under the throttle with the retry policy.

    - Rate-limited: wait for the next minute and try again.  These waits do
      not consume the retry budget.
    - Not found: re-raised immediately; callers decide what a vanished
      object means.
    - Other transient errors: up to ``max_retries`` attempts in total with
      exponential backoff (2s, 4s, ...), then the last error is re-raised.
    - Non-transient errors: re-raised immediately.
    """
    attempt = 0
    while True:
        limiter.throttle()
        try:
            return operation()
        except RateLimitedError:
            logger.warning(f"Rate limit hit during {description}")
            limiter.wait_for_next_minute()
        except RemoteNotFoundError:
            raise
        except RemoteApiError as e:
            attempt += 1
            if not e.transient or attempt >= max_retries:
                raise
            delay = 2**attempt
            logger.warning(
                f"{description} failed (attempt {attempt}/{max_retries}): {e}; "
                f"retrying in {delay}s"
            )
            limiter.backoff(delay)
