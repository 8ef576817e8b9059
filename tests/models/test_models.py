"""
Tests for the Message and QueueEntry models.
"""
import datetime as dt

import pytest
from pydantic import ValidationError

from outbox.models import (
    Message,
    MessageStatus,
    QueueEntry,
    QueuePriority,
    QueueStatus,
)


class TestQueueEntry:
    """Retry budget and terminal states."""

    def test_defaults(self):
        entry = QueueEntry()

        assert entry.priority == QueuePriority.NORMAL
        assert entry.status == QueueStatus.PENDING
        assert entry.retry_count == 0
        assert entry.max_retries == 3
        assert entry.next_retry_at.tzinfo is not None

    def test_retry_count_cannot_exceed_budget(self):
        with pytest.raises(ValidationError):
            QueueEntry(retry_count=4, max_retries=3)

    def test_negative_retry_count_rejected(self):
        with pytest.raises(ValidationError):
            QueueEntry(retry_count=-1)

    @pytest.mark.parametrize("status,terminal", [
        (QueueStatus.PENDING, False),
        (QueueStatus.PROCESSING, False),
        (QueueStatus.COMPLETED, True),
        (QueueStatus.FAILED, True),
    ])
    def test_is_terminal(self, status, terminal):
        assert QueueEntry(status=status).is_terminal is terminal

    def test_priority_ordering(self):
        assert sorted([QueuePriority.LOW, QueuePriority.URGENT, QueuePriority.HIGH]) == [
            QueuePriority.URGENT, QueuePriority.HIGH, QueuePriority.LOW
        ]


class TestMessage:
    """Message model and Mongo aliasing."""

    def test_defaults(self):
        message = Message(destination="+923001234567", content="hi")

        assert message.status == MessageStatus.QUEUED
        assert message.id is None

    def test_id_alias_round_trip(self):
        message = Message.model_validate({"_id": "abc", "destination": "+92", "content": "hi"})

        assert message.id == "abc"
        assert message.model_dump(by_alias=True)["_id"] == "abc"

    def test_json_dump_uses_iso_timestamps(self):
        created = dt.datetime(2025, 1, 1, 8, 30, tzinfo=dt.UTC)
        message = Message(destination="+92", content="hi", created_at=created, updated_at=created)

        dumped = message.model_dump(mode="json")

        assert dumped["created_at"] == "2025-01-01T08:30:00+00:00"

    def test_unknown_fields_rejected(self):
        with pytest.raises(ValidationError):
            Message(destination="+92", content="hi", colour="blue")
