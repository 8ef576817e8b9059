"""
FastAPI Application

Main entry point for the delivery outbox API.
Handles application lifecycle, service wiring and router mounting.
"""
import asyncio
import datetime as dt
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from outbox.config import Settings, get_settings
from outbox.message_queue import (
    InMemoryOutboxStore,
    OutboxStore,
    QueueProcessor,
    QueueWorker,
    RetryPolicy,
)
from outbox.repositories import MongoOutboxStore, db_manager
from outbox.services.delivery_stats import DeliveryStatsAggregator
from outbox.services.enqueue import EnqueueService, ValidationError
from outbox.services.gateway import GatewayClient, TwilioGateway
from outbox.services.health_monitor import HealthMonitor
from outbox.utils.metrics import MetricsRegistry
from outbox.utils.observability import configure_logging
from outbox.api.routes import health_router, messages_router, queue_router, metrics_router


def wire_services(
    app: FastAPI,
    settings: Settings,
    store: OutboxStore,
    gateway: GatewayClient,
) -> None:
    """
    Build the outbox services and store them in app state.

    Each application gets its own metrics registry and delivery stats.
    """
    metrics = MetricsRegistry()
    stats = DeliveryStatsAggregator(metrics=metrics)

    processor = QueueProcessor(
        store=store,
        gateway=gateway,
        stats=stats,
        retry_policy=RetryPolicy(
            base_delay_ms=settings.retry_base_delay_ms,
            multiplier=settings.retry_backoff_multiplier,
        ),
        batch_size=settings.queue_batch_size,
        gateway_timeout=settings.gateway_timeout_seconds,
        stuck_after=dt.timedelta(seconds=settings.stuck_processing_threshold_seconds),
        metrics=metrics,
    )
    enqueue_service = EnqueueService(
        store=store,
        processor=processor,
        max_retries=settings.queue_max_retries,
        process_on_enqueue=settings.process_on_enqueue,
        metrics=metrics,
    )
    health_monitor = HealthMonitor(settings, gateway, store, metrics=metrics)
    worker = QueueWorker(
        processor=processor,
        health_monitor=health_monitor,
        poll_interval=settings.queue_poll_interval_seconds,
        sweep_interval=settings.stuck_sweep_interval_seconds,
        health_interval=settings.health_check_interval_seconds,
    )

    # Store in app state for access in routes
    app.state.settings = settings
    app.state.store = store
    app.state.gateway = gateway
    app.state.metrics = metrics
    app.state.delivery_stats = stats
    app.state.processor = processor
    app.state.enqueue_service = enqueue_service
    app.state.health_monitor = health_monitor
    app.state.worker = worker


async def open_store(settings: Settings) -> OutboxStore:
    """Connect the configured queue backend."""
    if settings.queue_backend == "memory":
        logger.warning("Using in-memory outbox store - queued messages are lost on restart")
        return InMemoryOutboxStore()

    await db_manager.connect()
    await db_manager.create_indexes()
    return MongoOutboxStore(
        db_manager.database,
        client=db_manager.client,
        use_transactions=settings.mongodb_use_transactions,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle: startup and shutdown events.

    Startup:
    - Configure logging
    - Connect the outbox store (MongoDB or in-memory)
    - Wire gateway, processor, enqueue service and health monitor
    - Start background queue worker

    Shutdown:
    - Stop background worker gracefully
    - Disconnect from MongoDB
    """
    configure_logging()
    settings = get_settings()
    logger.info(f"Starting {settings.app_name} ({settings.environment})...")

    store = await open_store(settings)
    wire_services(app, settings, store, TwilioGateway(settings))

    worker_task = asyncio.create_task(app.state.worker.start())
    app.state.worker_task = worker_task

    logger.info("API server ready to accept messages")

    yield

    # Shutdown
    logger.info("Shutting down API server...")

    await app.state.worker.stop()
    await app.state.enqueue_service.wait_for_background()

    if not worker_task.done():
        worker_task.cancel()
        try:
            await worker_task
        except asyncio.CancelledError:
            logger.info("Stopped queue worker")

    if settings.queue_backend == "mongodb":
        await db_manager.disconnect()
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="WhatsApp Delivery Outbox",
    description="Durable outbound WhatsApp message queue with retries and health monitoring",
    version="1.0.0",
    lifespan=lifespan
)


@app.exception_handler(ValidationError)
async def enqueue_validation_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc), "field": exc.field}
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"detail": jsonable_encoder(exc.errors())}
    )


# Mount routers
app.include_router(health_router)
app.include_router(messages_router)
app.include_router(queue_router)
app.include_router(metrics_router)
