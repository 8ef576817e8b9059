"""
FastAPI Dependencies

Accessors for the services the lifespan handler stores on app.state.
"""

from fastapi import Request

from outbox.message_queue import OutboxStore, QueueProcessor
from outbox.services.delivery_stats import DeliveryStatsAggregator
from outbox.services.enqueue import EnqueueService
from outbox.services.health_monitor import HealthMonitor
from outbox.utils.metrics import MetricsRegistry


def get_store(request: Request) -> OutboxStore:
    return request.app.state.store


def get_processor(request: Request) -> QueueProcessor:
    return request.app.state.processor


def get_enqueue_service(request: Request) -> EnqueueService:
    return request.app.state.enqueue_service


def get_health_monitor(request: Request) -> HealthMonitor:
    return request.app.state.health_monitor


def get_delivery_stats(request: Request) -> DeliveryStatsAggregator:
    return request.app.state.delivery_stats


def get_metrics(request: Request) -> MetricsRegistry:
    return request.app.state.metrics
