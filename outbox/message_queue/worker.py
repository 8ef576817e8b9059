"""
Queue Worker

Background scheduler that drives the queue processor: delivery batches on
the poll interval, stuck-entry sweeps and gateway health refreshes on
their own slower intervals.
"""

import asyncio
import time
from typing import TYPE_CHECKING, Awaitable, Callable, Optional
from loguru import logger

from outbox.message_queue.processor import QueueProcessor

if TYPE_CHECKING:
    from outbox.services.health_monitor import HealthMonitor


class QueueWorker:
    """
    Periodic driver for a QueueProcessor.

    Attributes:
        processor: Processor to run batches and sweeps on
        health_monitor: Optional monitor refreshed on its own interval
        poll_interval: Seconds between delivery batches
        sweep_interval: Seconds between stuck-entry sweeps
        health_interval: Seconds between health refreshes
        shutdown_timeout: Seconds stop() waits for the in-flight tick
    """

    def __init__(
        self,
        processor: QueueProcessor,
        health_monitor: Optional["HealthMonitor"] = None,
        poll_interval: float = 10.0,
        sweep_interval: float = 60.0,
        health_interval: float = 30.0,
        shutdown_timeout: float = 30.0,
    ):
        self.processor = processor
        self.health_monitor = health_monitor
        self.poll_interval = poll_interval
        self.sweep_interval = sweep_interval
        self.health_interval = health_interval
        self.shutdown_timeout = shutdown_timeout
        self._running = False
        self._wakeup = asyncio.Event()
        self._stopped = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._last_sweep: Optional[float] = None
        self._last_health: Optional[float] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """
        Start the worker.

        Runs ticks every ``poll_interval`` seconds until stop() is called.
        """
        if self._running:
            logger.warning("Worker already running")
            return

        self._running = True
        self._wakeup.clear()
        self._stopped.clear()
        self._task = asyncio.current_task()
        logger.info(
            f"🚀 Queue worker started (poll={self.poll_interval}s, "
            f"sweep={self.sweep_interval}s, health={self.health_interval}s)"
        )

        try:
            while self._running:
                await self.tick()
                try:
                    await asyncio.wait_for(self._wakeup.wait(), timeout=self.poll_interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            self._stopped.set()
            logger.info("🛑 Queue worker stopped")

    async def stop(self) -> None:
        """
        Stop the worker.

        Stops scheduling new ticks and waits for the in-flight tick to
        finish; cancels the loop if that takes longer than the grace period.
        """
        if not self._running:
            return

        logger.info("Stopping queue worker...")
        self._running = False
        self._wakeup.set()

        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=self.shutdown_timeout)
        except asyncio.TimeoutError:
            logger.warning("Timeout waiting for in-flight tick, cancelling worker")
            if self._task and not self._task.done():
                self._task.cancel()

    async def tick(self) -> None:
        """Run whatever is due: health refresh, stuck sweep, then one batch."""
        now = time.monotonic()

        if self.health_monitor is not None and self._due(self._last_health, self.health_interval, now):
            self._last_health = now
            await self._run("health refresh", self.health_monitor.refresh)

        if self._due(self._last_sweep, self.sweep_interval, now):
            self._last_sweep = now
            await self._run("stuck sweep", self.processor.recover_stuck)

        await self._run("delivery batch", self.processor.process_batch)

    @staticmethod
    def _due(last: Optional[float], interval: float, now: float) -> bool:
        return last is None or now - last >= interval

    async def _run(self, name: str, job: Callable[[], Awaitable]) -> None:
        try:
            await job()
        except Exception as e:
            logger.exception(f"Worker {name} failed: {e}")
