"""
Enqueue service.

Single entry point for producers: validates the request, stores the
Message and its QueueEntry together, and nudges the processor for
immediate sends.
"""
import asyncio
import datetime as dt
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional, Union

from outbox.message_queue.base import OutboxStore
from outbox.models import (
    Message,
    MessageStatus,
    MessageType,
    QueueEntry,
    QueuePriority,
    utcnow,
)
from outbox.utils.metrics import MetricsRegistry
from outbox.utils.observability import logger

if TYPE_CHECKING:
    from outbox.message_queue.processor import QueueProcessor


class ValidationError(Exception):
    """Rejected enqueue input; nothing was stored."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


@dataclass(frozen=True)
class EnqueueResult:
    message_id: str
    queue_id: str


class EnqueueService:
    """
    Accepts outbound messages into the outbox.

    Usage:
        service = EnqueueService(store, processor)
        result = await service.enqueue("+923001234567", "Shift starts at 9")
    """

    def __init__(
        self,
        store: OutboxStore,
        processor: Optional["QueueProcessor"] = None,
        clock: Callable[[], dt.datetime] = utcnow,
        max_retries: int = 3,
        process_on_enqueue: bool = True,
        metrics: Optional[MetricsRegistry] = None,
    ):
        self.store = store
        self.processor = processor
        self.clock = clock
        self.max_retries = max_retries
        self.process_on_enqueue = process_on_enqueue
        self.metrics = metrics
        self._background: set[asyncio.Task] = set()

    async def enqueue(
        self,
        destination: str,
        content: str,
        message_type: Union[MessageType, str] = MessageType.TEXT,
        priority: Union[QueuePriority, int] = QueuePriority.NORMAL,
        scheduled_at: Optional[dt.datetime] = None,
        media_url: Optional[str] = None,
    ) -> EnqueueResult:
        """
        Store a message for delivery.

        Args:
            destination: Phone number or group id
            content: Message body
            message_type: text, image, document or audio
            priority: 0 (urgent) to 3 (low)
            scheduled_at: Earliest send time; naive values are UTC
            media_url: Attachment URL for non-text messages

        Returns:
            Ids of the stored message and queue entry

        Raises:
            ValidationError: If any argument is invalid
        """
        destination = (destination or "").strip()
        if not destination:
            raise ValidationError("destination must not be empty", field="destination")
        if not content or not content.strip():
            raise ValidationError("content must not be empty", field="content")

        message_type = self._parse_message_type(message_type)
        priority = self._parse_priority(priority)

        now = self.clock()
        if scheduled_at is not None and scheduled_at.tzinfo is None:
            scheduled_at = scheduled_at.replace(tzinfo=dt.UTC)
        is_scheduled = scheduled_at is not None and scheduled_at > now

        message = Message(
            destination=destination,
            content=content,
            message_type=message_type,
            status=MessageStatus.SCHEDULED if is_scheduled else MessageStatus.QUEUED,
            media_url=media_url,
            scheduled_at=scheduled_at,
            created_at=now,
            updated_at=now,
        )
        entry = QueueEntry(
            priority=priority,
            max_retries=self.max_retries,
            next_retry_at=scheduled_at if is_scheduled else now,
            created_at=now,
            updated_at=now,
        )

        message, entry = await self.store.create(message, entry)

        logger.info(
            f"Enqueued message {message.id} (queue={entry.id}, priority={int(priority)}, "
            f"scheduled={is_scheduled})"
        )
        if self.metrics:
            self.metrics.messages_enqueued.inc(
                priority=str(int(priority)),
                scheduled=str(is_scheduled).lower()
            )

        if not is_scheduled and self.process_on_enqueue and self.processor is not None:
            self._trigger_processing()

        return EnqueueResult(message_id=message.id, queue_id=entry.id)

    def _trigger_processing(self) -> None:
        task = asyncio.create_task(self.processor.process_batch())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def wait_for_background(self) -> None:
        """Wait for processing batches triggered by enqueue calls."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    @staticmethod
    def _parse_message_type(value: Union[MessageType, str]) -> MessageType:
        try:
            return MessageType(value)
        except ValueError:
            allowed = ", ".join(t.value for t in MessageType)
            raise ValidationError(
                f"message_type must be one of {allowed}, got {value!r}",
                field="message_type"
            )

    @staticmethod
    def _parse_priority(value: Union[QueuePriority, int]) -> QueuePriority:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"priority must be an integer 0-3, got {value!r}", field="priority")
        try:
            return QueuePriority(value)
        except ValueError:
            raise ValidationError(f"priority must be between 0 and 3, got {value}", field="priority")
