"""
In-Memory Outbox Store

Store implementation for tests and single-instance deployments.
Uses one asyncio lock so every transition is atomic within the process.
"""

import asyncio
import datetime as dt
import itertools
import uuid
from typing import Optional

from outbox.message_queue.base import OutboxStore, QueuedDelivery, QueueStats
from outbox.models import (
    DELIVERABLE_STATUSES,
    Message,
    MessageStatus,
    QueueEntry,
    QueuePriority,
    QueueStatus,
)


class InMemoryOutboxStore(OutboxStore):
    """
    In-memory outbox store.

    Data is lost on restart.

    Suitable for:
    - Testing
    - Single-instance deployments without MongoDB

    Not suitable for:
    - Multiple processor instances across replicas
    - Durable delivery guarantees
    """

    def __init__(self):
        self._messages: dict[str, Message] = {}
        self._entries: dict[str, QueueEntry] = {}
        self._entry_by_message: dict[str, str] = {}
        # Insertion order breaks created_at ties
        self._sequence: dict[str, int] = {}
        self._counter = itertools.count()
        self._lock = asyncio.Lock()

    async def create(self, message: Message, entry: QueueEntry) -> tuple[Message, QueueEntry]:
        async with self._lock:
            message = message.model_copy(update={"id": message.id or str(uuid.uuid4())})
            if message.id in self._entry_by_message:
                raise ValueError(f"Message {message.id} already has a queue entry")

            entry = entry.model_copy(update={
                "id": entry.id or str(uuid.uuid4()),
                "message_id": message.id,
            })

            self._messages[message.id] = message
            self._entries[entry.id] = entry
            self._entry_by_message[message.id] = entry.id
            self._sequence[entry.id] = next(self._counter)

            return message.model_copy(), entry.model_copy()

    async def claim_due(self, now: dt.datetime, limit: int) -> list[QueuedDelivery]:
        async with self._lock:
            candidates = [
                entry for entry in self._entries.values()
                if entry.status == QueueStatus.PENDING
                and entry.next_retry_at <= now
                and self._messages[entry.message_id].status in DELIVERABLE_STATUSES
            ]
            candidates.sort(key=lambda e: (e.priority, e.created_at, self._sequence[e.id]))

            claimed = []
            for entry in candidates[:limit]:
                entry.status = QueueStatus.PROCESSING
                entry.updated_at = now
                claimed.append(QueuedDelivery(
                    entry=entry.model_copy(),
                    message=self._messages[entry.message_id].model_copy(),
                ))
            return claimed

    async def mark_sent(
        self,
        queue_id: str,
        message_id: str,
        provider_message_id: Optional[str],
        now: dt.datetime,
    ) -> bool:
        async with self._lock:
            entry = self._processing_entry(queue_id)
            if entry is None:
                return False

            entry.status = QueueStatus.COMPLETED
            entry.updated_at = now

            message = self._messages[message_id]
            message.status = MessageStatus.SENT
            message.sent_at = now
            message.provider_message_id = provider_message_id
            message.updated_at = now
            return True

    async def schedule_retry(
        self,
        queue_id: str,
        retry_count: int,
        next_retry_at: dt.datetime,
        error: str,
        now: dt.datetime,
    ) -> bool:
        async with self._lock:
            entry = self._processing_entry(queue_id)
            if entry is None:
                return False
            if retry_count > entry.max_retries:
                raise ValueError(
                    f"retry_count {retry_count} exceeds max_retries {entry.max_retries}"
                )

            entry.status = QueueStatus.PENDING
            entry.retry_count = retry_count
            entry.next_retry_at = next_retry_at
            entry.error_details = error
            entry.updated_at = now
            return True

    async def mark_failed(
        self,
        queue_id: str,
        message_id: str,
        error: str,
        now: dt.datetime,
    ) -> bool:
        async with self._lock:
            entry = self._processing_entry(queue_id)
            if entry is None:
                return False

            entry.status = QueueStatus.FAILED
            entry.error_details = error
            entry.updated_at = now

            message = self._messages[message_id]
            message.status = MessageStatus.FAILED
            message.failed_at = now
            message.error_details = error
            message.updated_at = now
            return True

    async def get_entry(self, queue_id: str) -> Optional[QueueEntry]:
        async with self._lock:
            entry = self._entries.get(queue_id)
            return entry.model_copy() if entry else None

    async def get_message(self, message_id: str) -> Optional[Message]:
        async with self._lock:
            message = self._messages.get(message_id)
            return message.model_copy() if message else None

    async def find_stuck(self, older_than: dt.datetime, limit: int = 100) -> list[QueueEntry]:
        async with self._lock:
            stuck = [
                e for e in self._entries.values()
                if e.status == QueueStatus.PROCESSING and e.updated_at < older_than
            ]
            stuck.sort(key=lambda e: e.updated_at)
            return [e.model_copy() for e in stuck[:limit]]

    async def get_conversation(self, destination: str, limit: int = 50) -> list[Message]:
        async with self._lock:
            history = [m for m in self._messages.values() if m.destination == destination]
            history.sort(key=lambda m: m.created_at)
            return [m.model_copy() for m in history[-limit:]] if limit > 0 else []

    async def count_sent_since(self, since: dt.datetime) -> int:
        async with self._lock:
            return sum(
                1 for m in self._messages.values()
                if m.status == MessageStatus.SENT and m.sent_at and m.sent_at >= since
            )

    async def get_stats(self, now: dt.datetime, stuck_before: dt.datetime) -> QueueStats:
        async with self._lock:
            by_status = {status.value: 0 for status in QueueStatus}
            pending_by_priority = {int(p): 0 for p in QueuePriority}
            oldest_pending: Optional[dt.datetime] = None
            stuck = 0

            for entry in self._entries.values():
                by_status[entry.status.value] += 1
                if entry.status == QueueStatus.PENDING:
                    pending_by_priority[int(entry.priority)] += 1
                    due = entry.next_retry_at <= now
                    if due and (oldest_pending is None or entry.created_at < oldest_pending):
                        oldest_pending = entry.created_at
                elif entry.status == QueueStatus.PROCESSING and entry.updated_at < stuck_before:
                    stuck += 1

            return QueueStats(
                by_status=by_status,
                pending_by_priority=pending_by_priority,
                oldest_pending_age_seconds=(
                    (now - oldest_pending).total_seconds() if oldest_pending else None
                ),
                stuck_processing=stuck,
                generated_at=now,
            )

    def _processing_entry(self, queue_id: str) -> Optional[QueueEntry]:
        """Entry if it is currently claimed; caller holds the lock."""
        entry = self._entries.get(queue_id)
        if entry is None or entry.status != QueueStatus.PROCESSING:
            return None
        return entry
