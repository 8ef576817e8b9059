"""
Outbox Store Interface

Storage contract for Message + QueueEntry pairs. Every state transition
after creation is a conditional update so that several processor
instances can share one store without double-sending.
"""

import datetime as dt
from abc import ABC, abstractmethod
from typing import Optional
from pydantic import BaseModel, Field

from outbox.models import Message, QueueEntry, utcnow


class QueuedDelivery(BaseModel):
    """A claimed queue entry joined with its message."""
    entry: QueueEntry
    message: Message


class QueueStats(BaseModel):
    """
    Point-in-time queue statistics.

    Attributes:
        by_status: Entry count per queue status
        pending_by_priority: Pending entry count per priority (0-3)
        oldest_pending_age_seconds: Age of the oldest pending entry that is due
        stuck_processing: Entries in processing past the stuck threshold
    """
    by_status: dict[str, int] = Field(default_factory=dict)
    pending_by_priority: dict[int, int] = Field(default_factory=dict)
    oldest_pending_age_seconds: Optional[float] = None
    stuck_processing: int = 0
    generated_at: dt.datetime = Field(default_factory=utcnow)


class OutboxStore(ABC):
    """
    Abstract message/queue repository.

    Implementations must provide:
    - Create: persist a Message and its QueueEntry atomically
    - Claim: atomically move due pending entries to processing
    - Complete / Retry / Fail: conditional transitions out of processing
    - Reads: entries, messages, conversation history, statistics
    """

    @abstractmethod
    async def create(self, message: Message, entry: QueueEntry) -> tuple[Message, QueueEntry]:
        """
        Persist a message and its queue entry as one unit.

        Either both records exist afterwards or neither does.

        Returns:
            The stored message and entry with ids populated
        """
        pass

    @abstractmethod
    async def claim_due(self, now: dt.datetime, limit: int) -> list[QueuedDelivery]:
        """
        Claim up to ``limit`` due entries for processing.

        Candidates are pending entries with ``next_retry_at <= now`` whose
        message is queued or scheduled, ordered by priority then creation
        time. Each claim is a single compare-and-swap from pending to
        processing; entries won by another processor are skipped.

        Returns:
            Claimed deliveries in claim order
        """
        pass

    @abstractmethod
    async def mark_sent(
        self,
        queue_id: str,
        message_id: str,
        provider_message_id: Optional[str],
        now: dt.datetime,
    ) -> bool:
        """
        Complete a processing entry and mark its message sent.

        Returns:
            False if the entry was no longer in processing
        """
        pass

    @abstractmethod
    async def schedule_retry(
        self,
        queue_id: str,
        retry_count: int,
        next_retry_at: dt.datetime,
        error: str,
        now: dt.datetime,
    ) -> bool:
        """
        Return a processing entry to pending with a new retry time.

        Returns:
            False if the entry was no longer in processing
        """
        pass

    @abstractmethod
    async def mark_failed(
        self,
        queue_id: str,
        message_id: str,
        error: str,
        now: dt.datetime,
    ) -> bool:
        """
        Fail a processing entry and its message permanently.

        Returns:
            False if the entry was no longer in processing
        """
        pass

    @abstractmethod
    async def get_entry(self, queue_id: str) -> Optional[QueueEntry]:
        """Fetch a queue entry by id."""
        pass

    @abstractmethod
    async def get_message(self, message_id: str) -> Optional[Message]:
        """Fetch a message by id."""
        pass

    @abstractmethod
    async def find_stuck(self, older_than: dt.datetime, limit: int = 100) -> list[QueueEntry]:
        """Entries in processing whose last update is older than ``older_than``."""
        pass

    @abstractmethod
    async def get_conversation(self, destination: str, limit: int = 50) -> list[Message]:
        """
        Most recent ``limit`` messages for a destination.

        Returns:
            Messages in ascending chronological order
        """
        pass

    @abstractmethod
    async def count_sent_since(self, since: dt.datetime) -> int:
        """Number of messages marked sent at or after ``since``."""
        pass

    @abstractmethod
    async def get_stats(self, now: dt.datetime, stuck_before: dt.datetime) -> QueueStats:
        """Queue statistics as of ``now``."""
        pass

    async def reconcile_terminal(self, since: dt.datetime, limit: int = 100) -> int:
        """
        Copy the outcome of completed/failed entries updated at or after
        ``since`` onto messages still left queued or scheduled.

        Stores whose terminal transitions write the entry and the message
        together have nothing to repair.

        Returns:
            Number of messages updated
        """
        return 0

    async def ping(self) -> None:
        """Raise if the backing storage is unreachable."""
        return None
