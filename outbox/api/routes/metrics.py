"""
Metrics Endpoints

Prometheus-compatible metrics and delivery statistics for observability.
"""
from fastapi import APIRouter, Depends
from fastapi.responses import Response
from loguru import logger

from outbox.api.dependencies import get_delivery_stats, get_metrics, get_processor
from outbox.message_queue import QueueProcessor
from outbox.services.delivery_stats import DeliveryStatsAggregator
from outbox.utils.metrics import MetricsRegistry

router = APIRouter(tags=["Metrics"])


@router.get("/metrics")
async def prometheus_metrics(
    metrics: MetricsRegistry = Depends(get_metrics),
    processor: QueueProcessor = Depends(get_processor),
):
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text exposition format for scraping.
    Includes:
    - Enqueue counts by priority
    - Delivery attempts, sends, failures and retries
    - Gateway latency and batch duration
    - Queue depth by status and gateway health

    Content-Type: text/plain; version=0.0.4; charset=utf-8
    """
    try:
        # Update queue gauges from current state
        await processor.get_queue_stats()
        output = metrics.export()

        return Response(
            content=output,
            media_type="text/plain; version=0.0.4; charset=utf-8"
        )

    except Exception as e:
        logger.exception(f"Failed to export metrics: {e}")
        return Response(
            content=f"# Error exporting metrics: {e}\n",
            media_type="text/plain",
            status_code=500
        )


@router.get("/metrics/delivery")
async def delivery_statistics(stats: DeliveryStatsAggregator = Depends(get_delivery_stats)):
    """
    Delivery statistics snapshot.

    Counts of sent, delivered, read and failed messages since startup.
    """
    return {
        "status": "ok",
        "statistics": stats.get_statistics()
    }
