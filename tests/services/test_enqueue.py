"""
Tests for EnqueueService validation and record creation.
"""
import asyncio
import datetime as dt
from unittest.mock import AsyncMock, MagicMock

import pytest

from outbox.models import MessageStatus, MessageType, QueuePriority, QueueStatus
from outbox.services.enqueue import EnqueueService, ValidationError


class TestEnqueueValidation:
    """Rejected input creates nothing."""

    @pytest.mark.parametrize("destination,content,field", [
        ("", "hello", "destination"),
        ("   ", "hello", "destination"),
        ("+923001234567", "", "content"),
        ("+923001234567", " \n\t", "content"),
    ])
    async def test_empty_fields_rejected(self, enqueue_service, store, clock, destination, content, field):
        with pytest.raises(ValidationError) as exc_info:
            await enqueue_service.enqueue(destination, content)

        assert exc_info.value.field == field
        assert await store.get_conversation(destination.strip() or "+923001234567") == []

    @pytest.mark.parametrize("priority", [-1, 4, "1", 1.5, True])
    async def test_priority_out_of_range_rejected(self, enqueue_service, priority):
        with pytest.raises(ValidationError) as exc_info:
            await enqueue_service.enqueue("+923001234567", "hello", priority=priority)

        assert exc_info.value.field == "priority"

    async def test_unknown_message_type_rejected(self, enqueue_service):
        with pytest.raises(ValidationError) as exc_info:
            await enqueue_service.enqueue("+923001234567", "hello", message_type="video")

        assert exc_info.value.field == "message_type"

    async def test_store_not_touched_on_validation_failure(self, clock):
        store = MagicMock()
        store.create = AsyncMock()
        service = EnqueueService(store, clock=clock)

        with pytest.raises(ValidationError):
            await service.enqueue("", "hello")

        store.create.assert_not_awaited()


class TestEnqueueRecords:
    """Message and queue entry contents."""

    async def test_immediate_message(self, enqueue_service, store, clock, metrics):
        result = await enqueue_service.enqueue(
            "+923001234567", "Shift starts at 9", message_type="image",
            priority=0, media_url="https://example.com/roster.png",
        )

        message = await store.get_message(result.message_id)
        entry = await store.get_entry(result.queue_id)
        assert message.status == MessageStatus.QUEUED
        assert message.message_type == MessageType.IMAGE
        assert message.media_url == "https://example.com/roster.png"
        assert entry.message_id == message.id
        assert entry.priority == QueuePriority.URGENT
        assert entry.status == QueueStatus.PENDING
        assert entry.retry_count == 0
        assert entry.max_retries == 3
        assert entry.next_retry_at == clock()
        assert metrics.messages_enqueued.value(priority="0", scheduled="false") == 1

    async def test_future_schedule(self, enqueue_service, store, clock):
        send_at = clock() + dt.timedelta(hours=2)

        result = await enqueue_service.enqueue("+923001234567", "Reminder", scheduled_at=send_at)

        message = await store.get_message(result.message_id)
        entry = await store.get_entry(result.queue_id)
        assert message.status == MessageStatus.SCHEDULED
        assert message.scheduled_at == send_at
        assert entry.next_retry_at == send_at

    async def test_naive_schedule_is_utc(self, enqueue_service, store, clock):
        naive = (clock() + dt.timedelta(hours=1)).replace(tzinfo=None)

        result = await enqueue_service.enqueue("+923001234567", "Reminder", scheduled_at=naive)

        entry = await store.get_entry(result.queue_id)
        assert entry.next_retry_at == naive.replace(tzinfo=dt.UTC)

    async def test_past_schedule_is_immediate(self, enqueue_service, store, clock):
        result = await enqueue_service.enqueue(
            "+923001234567", "Late", scheduled_at=clock() - dt.timedelta(minutes=1)
        )

        assert (await store.get_message(result.message_id)).status == MessageStatus.QUEUED
        assert (await store.get_entry(result.queue_id)).next_retry_at == clock()

    async def test_scheduled_message_not_sent_early(self, enqueue_service, processor, gateway, clock):
        await enqueue_service.enqueue(
            "+923001234567", "Later", scheduled_at=clock() + dt.timedelta(minutes=30)
        )

        assert (await processor.process_batch()).claimed == 0
        clock.advance(minutes=30)
        assert (await processor.process_batch()).sent == 1


class TestProcessOnEnqueue:
    """Background batch trigger."""

    async def test_immediate_message_triggers_batch(self, store, processor, clock, stats):
        service = EnqueueService(store, processor, clock=clock, process_on_enqueue=True)

        result = await service.enqueue("+923001234567", "hello")
        await service.wait_for_background()

        assert (await store.get_message(result.message_id)).status == MessageStatus.SENT
        assert stats.sent == 1

    async def test_scheduled_message_does_not_trigger(self, store, clock):
        processor = MagicMock()
        processor.process_batch = AsyncMock()
        service = EnqueueService(store, processor, clock=clock, process_on_enqueue=True)

        await service.enqueue("+923001234567", "later", scheduled_at=clock() + dt.timedelta(hours=1))
        await asyncio.sleep(0)

        processor.process_batch.assert_not_called()
