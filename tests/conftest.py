import asyncio
import collections
import datetime as dt
from typing import Optional

import pytest

from outbox.message_queue import InMemoryOutboxStore, QueueProcessor, RetryPolicy
from outbox.models import Message
from outbox.services.delivery_stats import DeliveryStatsAggregator
from outbox.services.enqueue import EnqueueService
from outbox.services.gateway import DeliveryResult, GatewayClient
from outbox.utils.metrics import MetricsRegistry


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: dt.datetime = dt.datetime(2025, 3, 3, 9, 0, tzinfo=dt.UTC)):
        self.now = start

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, **kwargs) -> dt.datetime:
        self.now += dt.timedelta(**kwargs)
        return self.now


class FakeGateway(GatewayClient):
    """
    Scripted gateway.

    ``results`` is consumed one item per send; items are DeliveryResults
    or exceptions to raise. When empty, ``default`` is returned.
    """

    def __init__(self):
        self.results: collections.deque = collections.deque()
        self.default = DeliveryResult.sent("SM-fake")
        self.sent: list[Message] = []
        self.delay: float = 0.0
        self.ping_ms: float = 42.0
        self.ping_error: Optional[Exception] = None
        self.sender_error: Optional[str] = None

    def script(self, *results) -> None:
        self.results.extend(results)

    async def send(self, message: Message) -> DeliveryResult:
        self.sent.append(message)
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.results.popleft() if self.results else self.default
        if isinstance(result, Exception):
            raise result
        return result

    async def ping(self) -> float:
        if self.ping_error:
            raise self.ping_error
        return self.ping_ms

    def check_sender(self) -> Optional[str]:
        return self.sender_error


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryOutboxStore()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def metrics():
    return MetricsRegistry()


@pytest.fixture
def stats(metrics):
    return DeliveryStatsAggregator(metrics=metrics)


@pytest.fixture
def processor(store, gateway, stats, clock, metrics):
    return QueueProcessor(
        store=store,
        gateway=gateway,
        stats=stats,
        retry_policy=RetryPolicy(base_delay_ms=5000, multiplier=2),
        batch_size=10,
        gateway_timeout=0.2,
        stuck_after=dt.timedelta(seconds=600),
        clock=clock,
        metrics=metrics,
    )


@pytest.fixture
def enqueue_service(store, processor, clock, metrics):
    """Enqueue service without the background trigger so tests drive batches."""
    return EnqueueService(
        store=store,
        processor=processor,
        clock=clock,
        max_retries=3,
        process_on_enqueue=False,
        metrics=metrics,
    )
