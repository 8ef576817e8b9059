"""
Delivery statistics aggregator.

Per-process counters for terminal delivery outcomes. Observational only:
nothing in the queue reads these values to make decisions.
"""
import datetime as dt
import threading
from typing import Optional, Protocol

from outbox.models import utcnow
from outbox.utils.metrics import MetricsRegistry


class DeliveryStatsSink(Protocol):
    def record_sent(self) -> None: ...

    def record_failed(self) -> None: ...


class DeliveryStatsAggregator:
    """
    Counters for sent / delivered / read / failed messages.

    ``delivered`` and ``read`` stay at zero until provider status
    callbacks are wired in; only the queue processor calls
    ``record_sent`` and ``record_failed``.
    """

    def __init__(self, metrics: Optional[MetricsRegistry] = None):
        self.metrics = metrics
        self._lock = threading.Lock()
        self.reset()

    def record_sent(self) -> None:
        with self._lock:
            self._sent += 1
        if self.metrics:
            self.metrics.messages_sent.inc()

    def record_failed(self) -> None:
        with self._lock:
            self._failed += 1
        if self.metrics:
            self.metrics.messages_failed.inc()

    def get_statistics(self) -> dict:
        with self._lock:
            now = utcnow()
            return {
                "sent": self._sent,
                "delivered": self._delivered,
                "read": self._read,
                "failed": self._failed,
                "total_messages": self._sent + self._failed,
                "started_at": self._started_at.isoformat(),
                "uptime_seconds": round((now - self._started_at).total_seconds(), 3),
            }

    def reset(self) -> None:
        with self._lock:
            self._sent = 0
            self._delivered = 0
            self._read = 0
            self._failed = 0
            self._started_at: dt.datetime = utcnow()

    @property
    def sent(self) -> int:
        return self._sent

    @property
    def failed(self) -> int:
        return self._failed
