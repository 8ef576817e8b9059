"""
Message Repository
Persistence for outbound messages and conversation history.
"""
import datetime as dt
from typing import List, Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING

from .base import BaseRepository
from ..models import Message, MessageStatus, DELIVERABLE_STATUSES

MESSAGES_COLLECTION = "messages"


class MessageRepository(BaseRepository[Message]):
    """
    Repository for Message documents.

    Status changes only move a message out of queued/scheduled, so a
    message that is already sent or failed is never overwritten.
    """

    def __init__(self, database: AsyncIOMotorDatabase):
        super().__init__(database, MESSAGES_COLLECTION, Message)

    async def mark_sent(
        self,
        message_id: str,
        provider_message_id: Optional[str],
        now: dt.datetime,
        session=None
    ) -> bool:
        return await self.update_where(
            message_id,
            {"status": {"$in": [s.value for s in DELIVERABLE_STATUSES]}},
            {
                "status": MessageStatus.SENT.value,
                "sent_at": now,
                "provider_message_id": provider_message_id,
                "updated_at": now,
            },
            session=session
        )

    async def mark_failed(
        self,
        message_id: str,
        error: str,
        now: dt.datetime,
        session=None
    ) -> bool:
        return await self.update_where(
            message_id,
            {"status": {"$in": [s.value for s in DELIVERABLE_STATUSES]}},
            {
                "status": MessageStatus.FAILED.value,
                "failed_at": now,
                "error_details": error,
                "updated_at": now,
            },
            session=session
        )

    async def get_conversation(self, destination: str, limit: int = 50) -> List[Message]:
        """
        Most recent messages for a destination, oldest first.

        Args:
            destination: Phone number or group id
            limit: Maximum number of messages

        Returns:
            Messages in ascending chronological order
        """
        if limit <= 0:
            return []
        recent = await self.find_many(
            {"destination": destination},
            limit=limit,
            sort=[("created_at", DESCENDING), ("_id", DESCENDING)]
        )
        return list(reversed(recent))

    async def count_sent_since(self, since: dt.datetime) -> int:
        return await self.count({
            "status": MessageStatus.SENT.value,
            "sent_at": {"$gte": since},
        })
