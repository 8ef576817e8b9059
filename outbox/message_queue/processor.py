"""
Queue Processor

Claims due queue entries, hands each message to the delivery gateway and
records the outcome: completed, rescheduled with exponential backoff, or
failed once the retry budget is spent.
"""

import asyncio
import datetime as dt
import math
import time
from enum import StrEnum
from typing import Callable, Optional

from pydantic import BaseModel

from outbox.message_queue.base import OutboxStore, QueuedDelivery, QueueStats
from outbox.message_queue.retry_policy import RetryPolicy
from outbox.models import QueueEntry, QueueStatus, utcnow
from outbox.services.delivery_stats import DeliveryStatsSink
from outbox.services.gateway import (
    DeliveryOutcome,
    DeliveryResult,
    GatewayClient,
    PermanentDeliveryError,
    TransientDeliveryError,
)
from outbox.utils.metrics import MetricsRegistry
from outbox.utils.observability import log_delivery_event, logger


# How far back the sweep looks for terminal entries whose message was not updated
RECONCILE_WINDOW = dt.timedelta(hours=24)


class ProcessOutcome(StrEnum):
    SENT = "sent"
    RETRIED = "retried"
    FAILED = "failed"
    # Entry left processing before this worker could act on it
    IGNORED = "ignored"


class BatchResult(BaseModel):
    """Summary of one process_batch run."""
    claimed: int = 0
    sent: int = 0
    retried: int = 0
    failed: int = 0
    duration_ms: float = 0.0


class QueueProcessor:
    """
    Delivers due messages from an OutboxStore.

    Several processors may share one store: claims and every later
    transition are conditional updates, so an entry is only ever acted on
    by the processor that holds it in ``processing``.

    Attributes:
        store: Message/queue persistence
        gateway: Outbound messaging provider
        stats: Sink for terminal delivery outcomes
        retry_policy: Backoff parameters
        batch_size: Default number of entries claimed per batch
        max_batch_size: Largest batch whose sends all start before a
            claimed entry could be swept as stuck
        gateway_timeout: Seconds allowed for one gateway send
        stuck_after: Age after which a processing entry counts as stuck
    """

    def __init__(
        self,
        store: OutboxStore,
        gateway: GatewayClient,
        stats: DeliveryStatsSink,
        retry_policy: Optional[RetryPolicy] = None,
        batch_size: int = 10,
        gateway_timeout: float = 30.0,
        stuck_after: dt.timedelta = dt.timedelta(seconds=600),
        clock: Callable[[], dt.datetime] = utcnow,
        metrics: Optional[MetricsRegistry] = None,
    ):
        if gateway_timeout <= 0:
            raise ValueError("gateway_timeout must be positive")
        max_batch_size = math.ceil(stuck_after.total_seconds() / gateway_timeout) - 1
        if batch_size > max_batch_size:
            raise ValueError(
                f"batch_size={batch_size} with gateway_timeout={gateway_timeout}s can keep "
                f"claimed entries in processing past the {stuck_after.total_seconds():.0f}s stuck threshold"
            )

        self.store = store
        self.gateway = gateway
        self.stats = stats
        self.retry_policy = retry_policy or RetryPolicy()
        self.batch_size = batch_size
        self.max_batch_size = max_batch_size
        self.gateway_timeout = gateway_timeout
        self.stuck_after = stuck_after
        self.clock = clock
        self.metrics = metrics

    async def process_batch(self, batch_size: Optional[int] = None) -> BatchResult:
        """
        Claim and deliver up to ``batch_size`` due entries.

        Never raises: a claim failure yields an empty result and a failure
        on one entry is recorded as a transient failure of that entry.
        """
        started = time.perf_counter()
        limit = self.batch_size if batch_size is None else batch_size
        result = BatchResult()
        if limit <= 0:
            return result
        if limit > self.max_batch_size:
            logger.warning(f"Batch size {limit} capped at {self.max_batch_size} to stay under the stuck threshold")
            limit = self.max_batch_size

        try:
            claimed = await self.store.claim_due(self.clock(), limit)
        except Exception as e:
            logger.exception(f"Failed to claim queue entries: {e}")
            result.duration_ms = self._elapsed_ms(started)
            return result

        result.claimed = len(claimed)
        if claimed:
            logger.info(f"Processing batch of {len(claimed)} queue entries")

        for delivery in claimed:
            outcome = await self._process_safely(delivery)
            if outcome == ProcessOutcome.SENT:
                result.sent += 1
            elif outcome == ProcessOutcome.RETRIED:
                result.retried += 1
            elif outcome == ProcessOutcome.FAILED:
                result.failed += 1

        result.duration_ms = self._elapsed_ms(started)
        if self.metrics:
            self.metrics.batch_duration.observe(result.duration_ms / 1000)

        if claimed:
            logger.info(
                f"Batch done: claimed={result.claimed} sent={result.sent} "
                f"retried={result.retried} failed={result.failed} ({result.duration_ms:.0f}ms)"
            )
        return result

    async def _process_safely(self, delivery: QueuedDelivery) -> ProcessOutcome:
        try:
            return await self.process_entry(delivery)
        except Exception as e:
            logger.exception(
                f"Unexpected error processing queue entry {delivery.entry.id}: {e}"
            )
            try:
                return await self.handle_failure(delivery.entry, f"Internal error: {e}")
            except Exception as inner:
                logger.exception(
                    f"Could not record failure for queue entry {delivery.entry.id}: {inner}"
                )
                return ProcessOutcome.IGNORED

    async def process_entry(self, delivery: QueuedDelivery) -> ProcessOutcome:
        """Send one claimed message and record the outcome."""
        entry, message = delivery.entry, delivery.message
        result = await self._send(delivery)

        if self.metrics:
            self.metrics.delivery_attempts.inc(outcome=result.outcome.value)

        if not result.ok:
            return await self.handle_failure(
                entry,
                result.error or "Unknown delivery error",
                permanent=result.outcome == DeliveryOutcome.PERMANENT,
            )

        now = self.clock()
        if not await self.store.mark_sent(entry.id, message.id, result.provider_message_id, now):
            logger.warning(f"Queue entry {entry.id} left processing before completion; not counted")
            return ProcessOutcome.IGNORED

        self.stats.record_sent()
        log_delivery_event(
            "sent",
            queue_id=entry.id,
            message_id=message.id,
            retry_count=entry.retry_count,
            provider_message_id=result.provider_message_id,
        )
        return ProcessOutcome.SENT

    async def _send(self, delivery: QueuedDelivery) -> DeliveryResult:
        """Call the gateway under the timeout, folding every failure into a DeliveryResult."""
        started = time.perf_counter()
        try:
            result = await asyncio.wait_for(
                self.gateway.send(delivery.message),
                timeout=self.gateway_timeout
            )
        except asyncio.TimeoutError:
            result = DeliveryResult.transient(f"Gateway timeout after {self.gateway_timeout}s")
        except PermanentDeliveryError as e:
            result = DeliveryResult.permanent(str(e))
        except TransientDeliveryError as e:
            result = DeliveryResult.transient(str(e))
        except Exception as e:
            logger.exception(f"Gateway raised unexpectedly for entry {delivery.entry.id}: {e}")
            result = DeliveryResult.transient(f"Internal error: {e}")

        if self.metrics:
            self.metrics.gateway_latency.observe(
                time.perf_counter() - started,
                outcome=result.outcome.value
            )
        return result

    async def handle_failure(
        self,
        entry: QueueEntry,
        error: str,
        permanent: bool = False,
    ) -> ProcessOutcome:
        """
        Record a failed attempt for an entry this processor holds.

        Transient failures are rescheduled with backoff until the retry
        budget is spent; permanent failures go terminal immediately.
        Does nothing unless the stored entry is still in processing.
        """
        current = await self.store.get_entry(entry.id)
        if current is None or current.status != QueueStatus.PROCESSING:
            logger.debug(f"Ignoring failure for queue entry {entry.id}: not in processing")
            return ProcessOutcome.IGNORED

        now = self.clock()
        new_retry_count = current.retry_count + 1

        if not permanent and new_retry_count <= current.max_retries:
            delay_ms = self.retry_policy.next_delay(new_retry_count)
            next_retry_at = self.retry_policy.next_retry_at(new_retry_count, now)
            if not await self.store.schedule_retry(current.id, new_retry_count, next_retry_at, error, now):
                return ProcessOutcome.IGNORED

            if self.metrics:
                self.metrics.retries_scheduled.inc()
            log_delivery_event(
                "retry_scheduled",
                queue_id=current.id,
                message_id=current.message_id,
                retry_count=new_retry_count,
                error=error,
                delay_ms=delay_ms,
            )
            return ProcessOutcome.RETRIED

        if not await self.store.mark_failed(current.id, current.message_id, error, now):
            return ProcessOutcome.IGNORED

        self.stats.record_failed()
        log_delivery_event(
            "failed",
            queue_id=current.id,
            message_id=current.message_id,
            retry_count=current.retry_count,
            error=error,
            permanent=permanent,
        )
        return ProcessOutcome.FAILED

    async def recover_stuck(self) -> int:
        """
        Route entries stuck in processing through handle_failure, then
        repair messages a partial terminal transition left deliverable.

        Returns:
            Number of entries rescheduled or failed
        """
        now = self.clock()
        stuck = await self.store.find_stuck(now - self.stuck_after)

        recovered = 0
        for entry in stuck:
            outcome = await self.handle_failure(
                entry,
                f"Stuck in processing since {entry.updated_at.isoformat()}",
            )
            if outcome != ProcessOutcome.IGNORED:
                recovered += 1

        if recovered:
            logger.warning(f"Recovered {recovered} stuck queue entries")
            if self.metrics:
                self.metrics.stuck_recovered.inc(recovered)

        await self.store.reconcile_terminal(now - RECONCILE_WINDOW)
        return recovered

    async def get_queue_stats(self) -> QueueStats:
        """Queue statistics; also refreshes the queue depth gauge."""
        now = self.clock()
        stats = await self.store.get_stats(now, now - self.stuck_after)
        if self.metrics:
            for status, count in stats.by_status.items():
                self.metrics.queue_depth.set(count, status=status)
        return stats

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return (time.perf_counter() - started) * 1000
