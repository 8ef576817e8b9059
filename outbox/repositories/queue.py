"""
Queue Repository
Retry and scheduling metadata for outbound messages, with atomic claims.
"""
import datetime as dt
from typing import Any, Dict, List, Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, ReturnDocument

from .base import BaseRepository, to_object_id
from .messages import MESSAGES_COLLECTION
from ..models import QueueEntry, QueueStatus, DELIVERABLE_STATUSES
from ..utils.observability import logger

QUEUE_COLLECTION = "message_queue"

PROCESSING = {"status": QueueStatus.PROCESSING.value}


class QueueRepository(BaseRepository[QueueEntry]):
    """
    Repository for QueueEntry documents.

    Every transition is a conditional update on the current status:
    pending -> processing for claims, processing -> anything afterwards.
    """

    def __init__(self, database: AsyncIOMotorDatabase):
        super().__init__(database, QUEUE_COLLECTION, QueueEntry)

    async def find_due_candidates(self, now: dt.datetime, limit: int) -> List[Dict[str, Any]]:
        """
        Due pending entries joined with their deliverable message.

        Returns raw documents with the message embedded under ``message``,
        ordered by priority then creation time.
        """
        pipeline = [
            {"$match": {
                "status": QueueStatus.PENDING.value,
                "next_retry_at": {"$lte": now},
            }},
            {"$sort": {"priority": ASCENDING, "created_at": ASCENDING, "_id": ASCENDING}},
            {"$lookup": {
                "from": MESSAGES_COLLECTION,
                "let": {"message_oid": {"$toObjectId": "$message_id"}},
                "pipeline": [{"$match": {"$expr": {"$eq": ["$_id", "$$message_oid"]}}}],
                "as": "message",
            }},
            {"$unwind": "$message"},
            {"$match": {"message.status": {"$in": [s.value for s in DELIVERABLE_STATUSES]}}},
            {"$limit": limit},
        ]
        return await self.collection.aggregate(pipeline).to_list(length=limit)

    async def find_unmirrored_terminal(self, since: dt.datetime, limit: int) -> List[Dict[str, Any]]:
        """
        Completed or failed entries whose message is still deliverable.

        Returns raw documents with the message embedded under ``message``.
        """
        pipeline = [
            {"$match": {
                "status": {"$in": [QueueStatus.COMPLETED.value, QueueStatus.FAILED.value]},
                "updated_at": {"$gte": since},
            }},
            {"$lookup": {
                "from": MESSAGES_COLLECTION,
                "let": {"message_oid": {"$toObjectId": "$message_id"}},
                "pipeline": [{"$match": {"$expr": {"$eq": ["$_id", "$$message_oid"]}}}],
                "as": "message",
            }},
            {"$unwind": "$message"},
            {"$match": {"message.status": {"$in": [s.value for s in DELIVERABLE_STATUSES]}}},
            {"$limit": limit},
        ]
        return await self.collection.aggregate(pipeline).to_list(length=limit)

    async def claim(self, queue_id: str, now: dt.datetime) -> Optional[QueueEntry]:
        """
        Atomically move one due entry from pending to processing.

        Returns:
            The claimed entry, or None if another processor got it first
        """
        object_id = to_object_id(queue_id)
        if object_id is None:
            return None

        doc = await self.collection.find_one_and_update(
            {
                "_id": object_id,
                "status": QueueStatus.PENDING.value,
                "next_retry_at": {"$lte": now},
            },
            {"$set": {"status": QueueStatus.PROCESSING.value, "updated_at": now}},
            return_document=ReturnDocument.AFTER
        )
        if doc is None:
            logger.debug(f"Queue entry {queue_id} already claimed")
            return None
        return self._to_model(doc)

    async def complete(self, queue_id: str, now: dt.datetime, session=None) -> bool:
        return await self.update_where(
            queue_id,
            PROCESSING,
            {"status": QueueStatus.COMPLETED.value, "updated_at": now},
            session=session
        )

    async def reschedule(
        self,
        queue_id: str,
        retry_count: int,
        next_retry_at: dt.datetime,
        error: str,
        now: dt.datetime
    ) -> bool:
        return await self.update_where(
            queue_id,
            {**PROCESSING, "max_retries": {"$gte": retry_count}},
            {
                "status": QueueStatus.PENDING.value,
                "retry_count": retry_count,
                "next_retry_at": next_retry_at,
                "error_details": error,
                "updated_at": now,
            }
        )

    async def fail(self, queue_id: str, error: str, now: dt.datetime, session=None) -> bool:
        return await self.update_where(
            queue_id,
            PROCESSING,
            {
                "status": QueueStatus.FAILED.value,
                "error_details": error,
                "updated_at": now,
            },
            session=session
        )

    async def find_stuck(self, older_than: dt.datetime, limit: int = 100) -> List[QueueEntry]:
        return await self.find_many(
            {**PROCESSING, "updated_at": {"$lt": older_than}},
            limit=limit,
            sort=[("updated_at", ASCENDING)]
        )

    async def count_by_status(self) -> Dict[str, int]:
        rows = await self.collection.aggregate([
            {"$group": {"_id": "$status", "count": {"$sum": 1}}},
        ]).to_list(length=None)
        return {row["_id"]: row["count"] for row in rows}

    async def count_pending_by_priority(self) -> Dict[int, int]:
        rows = await self.collection.aggregate([
            {"$match": {"status": QueueStatus.PENDING.value}},
            {"$group": {"_id": "$priority", "count": {"$sum": 1}}},
        ]).to_list(length=None)
        return {int(row["_id"]): row["count"] for row in rows}

    async def oldest_due_created_at(self, now: dt.datetime) -> Optional[dt.datetime]:
        doc = await self.collection.find_one(
            {"status": QueueStatus.PENDING.value, "next_retry_at": {"$lte": now}},
            sort=[("created_at", ASCENDING)],
            projection={"created_at": 1}
        )
        return doc["created_at"] if doc else None
