"""
Tests for InMemoryOutboxStore.
"""
import asyncio
import datetime as dt
import pytest

from outbox.message_queue import InMemoryOutboxStore
from outbox.models import Message, MessageStatus, QueueEntry, QueuePriority, QueueStatus


async def add(store, clock, priority=QueuePriority.NORMAL, destination="+923001234567",
              status=MessageStatus.QUEUED, next_retry_at=None, content="hello"):
    """Create one message/entry pair at the current clock time."""
    now = clock()
    return await store.create(
        Message(destination=destination, content=content, status=status, created_at=now, updated_at=now),
        QueueEntry(priority=priority, next_retry_at=next_retry_at or now, created_at=now, updated_at=now),
    )


class TestCreate:
    """Creating message/entry pairs."""

    async def test_assigns_ids_and_links_entry(self, store, clock):
        message, entry = await add(store, clock)

        assert message.id
        assert entry.id
        assert entry.message_id == message.id
        assert (await store.get_message(message.id)).content == "hello"
        assert (await store.get_entry(entry.id)).status == QueueStatus.PENDING

    async def test_returns_copies(self, store, clock):
        _, entry = await add(store, clock)
        entry.status = QueueStatus.FAILED

        assert (await store.get_entry(entry.id)).status == QueueStatus.PENDING

    async def test_unknown_ids_return_none(self, store):
        assert await store.get_entry("missing") is None
        assert await store.get_message("missing") is None


class TestClaimDue:
    """Atomic claim of due entries."""

    async def test_orders_by_priority_then_age(self, store, clock):
        created = []
        for priority in (3, 0, 1, 0):
            _, entry = await add(store, clock, priority=QueuePriority(priority))
            created.append(entry)
            clock.advance(seconds=1)

        claimed = await store.claim_due(clock(), limit=2)

        assert [d.entry.id for d in claimed] == [created[1].id, created[3].id]
        assert all(d.entry.status == QueueStatus.PROCESSING for d in claimed)

    async def test_same_timestamp_keeps_insertion_order(self, store, clock):
        _, first = await add(store, clock)
        _, second = await add(store, clock)

        claimed = await store.claim_due(clock(), limit=10)

        assert [d.entry.id for d in claimed] == [first.id, second.id]

    async def test_skips_entries_not_yet_due(self, store, clock):
        await add(store, clock, next_retry_at=clock() + dt.timedelta(minutes=5))

        assert await store.claim_due(clock(), limit=10) == []
        clock.advance(minutes=5)
        assert len(await store.claim_due(clock(), limit=10)) == 1

    async def test_skips_messages_already_terminal(self, store, clock):
        await add(store, clock, status=MessageStatus.SENT)

        assert await store.claim_due(clock(), limit=10) == []

    async def test_entry_claimed_only_once_under_concurrency(self, store, clock):
        await add(store, clock)

        results = await asyncio.gather(*(store.claim_due(clock(), limit=10) for _ in range(5)))

        assert sum(len(r) for r in results) == 1

    async def test_claim_includes_message(self, store, clock):
        message, _ = await add(store, clock, content="shift update")

        [delivery] = await store.claim_due(clock(), limit=1)

        assert delivery.message.id == message.id
        assert delivery.message.content == "shift update"


class TestTransitions:
    """Transitions out of processing are conditional."""

    async def test_mark_sent_requires_processing(self, store, clock):
        message, entry = await add(store, clock)

        assert await store.mark_sent(entry.id, message.id, "SM1", clock()) is False

        await store.claim_due(clock(), limit=1)
        assert await store.mark_sent(entry.id, message.id, "SM1", clock()) is True
        assert await store.mark_sent(entry.id, message.id, "SM1", clock()) is False

        stored = await store.get_message(message.id)
        assert stored.status == MessageStatus.SENT
        assert stored.provider_message_id == "SM1"
        assert stored.sent_at == clock()
        assert (await store.get_entry(entry.id)).status == QueueStatus.COMPLETED

    async def test_schedule_retry_returns_entry_to_pending(self, store, clock):
        message, entry = await add(store, clock)
        await store.claim_due(clock(), limit=1)
        later = clock() + dt.timedelta(seconds=5)

        assert await store.schedule_retry(entry.id, 1, later, "timeout", clock()) is True

        stored = await store.get_entry(entry.id)
        assert stored.status == QueueStatus.PENDING
        assert stored.retry_count == 1
        assert stored.next_retry_at == later
        assert stored.error_details == "timeout"
        assert (await store.get_message(message.id)).status == MessageStatus.QUEUED

    async def test_schedule_retry_beyond_budget_rejected(self, store, clock):
        _, entry = await add(store, clock)
        await store.claim_due(clock(), limit=1)

        with pytest.raises(ValueError):
            await store.schedule_retry(entry.id, 4, clock(), "boom", clock())

    async def test_mark_failed_sets_both_records(self, store, clock):
        message, entry = await add(store, clock)
        await store.claim_due(clock(), limit=1)

        assert await store.mark_failed(entry.id, message.id, "rejected", clock()) is True
        assert await store.mark_failed(entry.id, message.id, "rejected", clock()) is False

        stored = await store.get_message(message.id)
        assert stored.status == MessageStatus.FAILED
        assert stored.failed_at == clock()
        assert stored.error_details == "rejected"


class TestQueries:
    """Read helpers."""

    async def test_find_stuck(self, store, clock):
        _, entry = await add(store, clock)
        await store.claim_due(clock(), limit=1)
        clock.advance(minutes=11)

        stuck = await store.find_stuck(clock() - dt.timedelta(minutes=10))

        assert [e.id for e in stuck] == [entry.id]
        assert await store.find_stuck(clock() - dt.timedelta(minutes=20)) == []

    async def test_conversation_is_ascending_and_limited(self, store, clock):
        for i in range(4):
            await add(store, clock, content=f"m{i}")
            clock.advance(seconds=1)
        await add(store, clock, destination="+923009999999", content="other")

        history = await store.get_conversation("+923001234567", limit=3)

        assert [m.content for m in history] == ["m1", "m2", "m3"]

    async def test_count_sent_since(self, store, clock):
        message, entry = await add(store, clock)
        await store.claim_due(clock(), limit=1)
        await store.mark_sent(entry.id, message.id, None, clock())

        assert await store.count_sent_since(clock() - dt.timedelta(hours=1)) == 1
        assert await store.count_sent_since(clock() + dt.timedelta(seconds=1)) == 0

    async def test_stats(self, store, clock):
        await add(store, clock, priority=QueuePriority.URGENT)
        clock.advance(seconds=30)
        await add(store, clock, priority=QueuePriority.LOW)

        stats = await store.get_stats(clock(), clock() - dt.timedelta(minutes=10))

        assert stats.by_status["pending"] == 2
        assert stats.by_status["processing"] == 0
        assert stats.pending_by_priority == {0: 1, 1: 0, 2: 0, 3: 1}
        assert stats.oldest_pending_age_seconds == 30
        assert stats.stuck_processing == 0

    async def test_stats_empty_queue(self):
        now = dt.datetime.now(dt.UTC)
        stats = await InMemoryOutboxStore().get_stats(now, now)

        assert stats.oldest_pending_age_seconds is None
        assert sum(stats.by_status.values()) == 0
