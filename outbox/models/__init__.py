"""Domain models for the delivery outbox."""
from outbox.models.base import MongoBaseModel, utcnow
from outbox.models.message import (
    Message,
    MessageType,
    MessageDirection,
    MessageStatus,
    DELIVERABLE_STATUSES,
)
from outbox.models.queue_entry import (
    QueueEntry,
    QueuePriority,
    QueueStatus,
    TERMINAL_QUEUE_STATUSES,
)

__all__ = [
    "MongoBaseModel",
    "utcnow",
    "Message",
    "MessageType",
    "MessageDirection",
    "MessageStatus",
    "DELIVERABLE_STATUSES",
    "QueueEntry",
    "QueuePriority",
    "QueueStatus",
    "TERMINAL_QUEUE_STATUSES",
]
