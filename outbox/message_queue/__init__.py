"""
Delivery Queue

Durable outbox for outbound WhatsApp messages:
- Abstract store interface with MongoDB and in-memory backends
- Atomic claim of due entries, ordered by priority then age
- Exponential backoff retries with a bounded budget
- Stuck-entry recovery and a periodic background worker
"""

from outbox.message_queue.base import OutboxStore, QueuedDelivery, QueueStats
from outbox.message_queue.memory import InMemoryOutboxStore
from outbox.message_queue.retry_policy import RetryPolicy, next_delay
from outbox.message_queue.processor import QueueProcessor, BatchResult, ProcessOutcome
from outbox.message_queue.worker import QueueWorker

__all__ = [
    "OutboxStore",
    "QueuedDelivery",
    "QueueStats",
    "InMemoryOutboxStore",
    "RetryPolicy",
    "next_delay",
    "QueueProcessor",
    "BatchResult",
    "ProcessOutcome",
    "QueueWorker",
]
