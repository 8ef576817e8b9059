"""
Exponential Backoff

delay(attempt) = base_delay_ms * multiplier ** (attempt - 1)
"""
import datetime as dt
from dataclasses import dataclass
from typing import Optional


def next_delay(attempt: int, base: int = 5000, multiplier: int = 2) -> int:
    """
    Backoff delay in milliseconds before retry number ``attempt``.

    Args:
        attempt: 1-based retry number
        base: Delay before the first retry (ms)
        multiplier: Growth factor per retry

    Raises:
        ValueError: If attempt is below 1
    """
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    return base * multiplier ** (attempt - 1)


@dataclass(frozen=True)
class RetryPolicy:
    """Configured backoff parameters."""
    base_delay_ms: int = 5000
    multiplier: int = 2
    max_delay_ms: Optional[int] = None

    def next_delay(self, attempt: int) -> int:
        delay = next_delay(attempt, self.base_delay_ms, self.multiplier)
        if self.max_delay_ms is not None:
            delay = min(delay, self.max_delay_ms)
        return delay

    def next_retry_at(self, attempt: int, now: dt.datetime) -> dt.datetime:
        return now + dt.timedelta(milliseconds=self.next_delay(attempt))
