"""
Tests for QueueWorker.
"""

import pytest
import asyncio
from unittest.mock import AsyncMock, MagicMock

from outbox.message_queue import QueueWorker
from outbox.models import MessageStatus


def mock_processor():
    processor = MagicMock()
    processor.process_batch = AsyncMock()
    processor.recover_stuck = AsyncMock(return_value=0)
    return processor


class TestQueueWorkerTick:
    """Scheduling of the individual jobs."""

    async def test_first_tick_runs_everything(self):
        processor = mock_processor()
        monitor = MagicMock()
        monitor.refresh = AsyncMock()
        worker = QueueWorker(processor, health_monitor=monitor)

        await worker.tick()

        processor.process_batch.assert_awaited_once()
        processor.recover_stuck.assert_awaited_once()
        monitor.refresh.assert_awaited_once()

    async def test_slow_jobs_wait_for_their_interval(self):
        processor = mock_processor()
        monitor = MagicMock()
        monitor.refresh = AsyncMock()
        worker = QueueWorker(processor, health_monitor=monitor, sweep_interval=60, health_interval=30)

        await worker.tick()
        await worker.tick()

        assert processor.process_batch.await_count == 2
        assert processor.recover_stuck.await_count == 1
        assert monitor.refresh.await_count == 1

    async def test_job_errors_are_contained(self):
        processor = mock_processor()
        processor.recover_stuck.side_effect = RuntimeError("db down")
        worker = QueueWorker(processor)

        await worker.tick()

        processor.process_batch.assert_awaited_once()


class TestQueueWorkerLifecycle:
    """Start/stop behaviour."""

    async def test_worker_delivers_enqueued_message(self, processor, enqueue_service, store):
        """Worker picks up a message without an explicit batch call."""
        result = await enqueue_service.enqueue("+923001234567", "hello")
        worker = QueueWorker(processor, poll_interval=0.05)

        worker_task = asyncio.create_task(worker.start())
        try:
            for _ in range(40):
                message = await store.get_message(result.message_id)
                if message.status == MessageStatus.SENT:
                    break
                await asyncio.sleep(0.05)

            assert message.status == MessageStatus.SENT
        finally:
            await worker.stop()
            await asyncio.wait_for(worker_task, timeout=1.0)

        assert not worker.running

    async def test_loop_survives_failing_batches(self):
        processor = mock_processor()
        processor.process_batch.side_effect = RuntimeError("boom")
        worker = QueueWorker(processor, poll_interval=0.01)

        worker_task = asyncio.create_task(worker.start())
        await asyncio.sleep(0.1)
        await worker.stop()
        await asyncio.wait_for(worker_task, timeout=1.0)

        assert processor.process_batch.await_count > 1

    async def test_stop_when_not_running_is_noop(self):
        worker = QueueWorker(mock_processor())

        await worker.stop()

        assert not worker.running

    async def test_stop_waits_for_in_flight_tick(self):
        finished = asyncio.Event()

        async def slow_batch():
            await asyncio.sleep(0.1)
            finished.set()

        processor = mock_processor()
        processor.process_batch.side_effect = slow_batch
        worker = QueueWorker(processor, poll_interval=10)

        worker_task = asyncio.create_task(worker.start())
        await asyncio.sleep(0.01)
        await worker.stop()

        assert finished.is_set()
        await asyncio.wait_for(worker_task, timeout=1.0)
