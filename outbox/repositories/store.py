"""
MongoDB Outbox Store
OutboxStore backed by the ``messages`` and ``message_queue`` collections.
"""
import datetime as dt
from typing import List, Optional
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from .messages import MessageRepository
from .queue import QueueRepository
from ..message_queue.base import OutboxStore, QueuedDelivery, QueueStats
from ..models import Message, QueueEntry, QueuePriority, QueueStatus
from ..utils.observability import logger


class MongoOutboxStore(OutboxStore):
    """
    Durable outbox store on MongoDB.

    With transactions enabled (replica set) creation and the terminal
    transitions write the message and its entry in one multi-document
    transaction. Without them a failed entry insert removes the message,
    and a message left behind by a terminal transition is repaired by
    reconcile_terminal.
    """

    def __init__(
        self,
        database: AsyncIOMotorDatabase,
        client: Optional[AsyncIOMotorClient] = None,
        use_transactions: bool = False,
    ):
        self.database = database
        self.client = client
        self.use_transactions = use_transactions and client is not None
        self.messages = MessageRepository(database)
        self.queue = QueueRepository(database)

    async def create(self, message: Message, entry: QueueEntry) -> tuple[Message, QueueEntry]:
        if self.use_transactions:
            async with await self.client.start_session() as session:
                async with session.start_transaction():
                    message = await self.messages.create(message, session=session)
                    entry.message_id = message.id
                    entry = await self.queue.create(entry, session=session)
            return message, entry

        message = await self.messages.create(message)
        entry.message_id = message.id
        try:
            entry = await self.queue.create(entry)
        except Exception:
            logger.error(f"Queue entry insert failed; removing message {message.id}")
            await self.messages.delete(message.id)
            raise
        return message, entry

    async def claim_due(self, now: dt.datetime, limit: int) -> List[QueuedDelivery]:
        candidates = await self.queue.find_due_candidates(now, limit)

        claimed = []
        for doc in candidates:
            entry = await self.queue.claim(str(doc["_id"]), now)
            if entry is None:
                continue
            claimed.append(QueuedDelivery(
                entry=entry,
                message=self.messages._to_model(doc["message"]),
            ))
        return claimed

    async def mark_sent(
        self,
        queue_id: str,
        message_id: str,
        provider_message_id: Optional[str],
        now: dt.datetime,
    ) -> bool:
        if self.use_transactions:
            async with await self.client.start_session() as session:
                async with session.start_transaction():
                    if not await self.queue.complete(queue_id, now, session=session):
                        return False
                    await self.messages.mark_sent(message_id, provider_message_id, now, session=session)
            return True

        if not await self.queue.complete(queue_id, now):
            return False
        try:
            if not await self.messages.mark_sent(message_id, provider_message_id, now):
                logger.warning(f"Message {message_id} was not deliverable when marking sent")
        except Exception as e:
            logger.exception(f"Message {message_id} not marked sent, left for reconciliation: {e}")
        return True

    async def schedule_retry(
        self,
        queue_id: str,
        retry_count: int,
        next_retry_at: dt.datetime,
        error: str,
        now: dt.datetime,
    ) -> bool:
        return await self.queue.reschedule(queue_id, retry_count, next_retry_at, error, now)

    async def mark_failed(
        self,
        queue_id: str,
        message_id: str,
        error: str,
        now: dt.datetime,
    ) -> bool:
        if self.use_transactions:
            async with await self.client.start_session() as session:
                async with session.start_transaction():
                    if not await self.queue.fail(queue_id, error, now, session=session):
                        return False
                    await self.messages.mark_failed(message_id, error, now, session=session)
            return True

        if not await self.queue.fail(queue_id, error, now):
            return False
        try:
            if not await self.messages.mark_failed(message_id, error, now):
                logger.warning(f"Message {message_id} was not deliverable when marking failed")
        except Exception as e:
            logger.exception(f"Message {message_id} not marked failed, left for reconciliation: {e}")
        return True

    async def reconcile_terminal(self, since: dt.datetime, limit: int = 100) -> int:
        """
        Repair messages whose entry went terminal without them.

        The provider message id of a repaired sent message is not recoverable.
        """
        repaired = 0
        for doc in await self.queue.find_unmirrored_terminal(since, limit):
            message_id = doc["message_id"]
            if doc["status"] == QueueStatus.COMPLETED.value:
                updated = await self.messages.mark_sent(message_id, None, doc["updated_at"])
            else:
                error = doc.get("error_details") or "Delivery failed"
                updated = await self.messages.mark_failed(message_id, error, doc["updated_at"])
            if updated:
                repaired += 1

        if repaired:
            logger.warning(f"Reconciled {repaired} messages with their terminal queue entries")
        return repaired

    async def get_entry(self, queue_id: str) -> Optional[QueueEntry]:
        return await self.queue.find_by_id(queue_id)

    async def get_message(self, message_id: str) -> Optional[Message]:
        return await self.messages.find_by_id(message_id)

    async def find_stuck(self, older_than: dt.datetime, limit: int = 100) -> List[QueueEntry]:
        return await self.queue.find_stuck(older_than, limit)

    async def get_conversation(self, destination: str, limit: int = 50) -> List[Message]:
        return await self.messages.get_conversation(destination, limit)

    async def count_sent_since(self, since: dt.datetime) -> int:
        return await self.messages.count_sent_since(since)

    async def get_stats(self, now: dt.datetime, stuck_before: dt.datetime) -> QueueStats:
        by_status = {status.value: 0 for status in QueueStatus}
        by_status.update(await self.queue.count_by_status())

        pending_by_priority = {int(p): 0 for p in QueuePriority}
        pending_by_priority.update(await self.queue.count_pending_by_priority())

        oldest = await self.queue.oldest_due_created_at(now)
        stuck = await self.queue.count({
            "status": QueueStatus.PROCESSING.value,
            "updated_at": {"$lt": stuck_before},
        })

        return QueueStats(
            by_status=by_status,
            pending_by_priority=pending_by_priority,
            oldest_pending_age_seconds=(now - oldest).total_seconds() if oldest else None,
            stuck_processing=stuck,
            generated_at=now,
        )

    async def ping(self) -> None:
        await self.database.command("ping")
