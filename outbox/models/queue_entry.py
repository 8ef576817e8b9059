import datetime as dt
from enum import IntEnum, StrEnum
from typing import Optional
from pydantic import Field, model_validator
from outbox.models.base import MongoBaseModel, utcnow


class QueuePriority(IntEnum):
    URGENT = 0
    HIGH = 1
    NORMAL = 2
    LOW = 3


class QueueStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_QUEUE_STATUSES = (QueueStatus.COMPLETED, QueueStatus.FAILED)


class QueueEntry(MongoBaseModel):
    """
    Retry and scheduling metadata paired 1:1 with a Message.

    ``retry_count`` never exceeds ``max_retries``; ``completed`` and
    ``failed`` are terminal.
    """
    message_id: Optional[str] = None
    priority: QueuePriority = QueuePriority.NORMAL
    retry_count: int = Field(0, ge=0)
    max_retries: int = Field(3, ge=0)
    next_retry_at: dt.datetime = Field(default_factory=utcnow)
    status: QueueStatus = QueueStatus.PENDING
    error_details: Optional[str] = None

    @model_validator(mode="after")
    def check_retry_budget(self) -> "QueueEntry":
        if self.retry_count > self.max_retries:
            raise ValueError(
                f"retry_count ({self.retry_count}) exceeds max_retries ({self.max_retries})"
            )
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_QUEUE_STATUSES
