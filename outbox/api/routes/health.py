"""
Health and Readiness Endpoints

Gateway health for monitoring and a readiness probe for orchestration.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from loguru import logger

from outbox.api.dependencies import get_health_monitor, get_store
from outbox.message_queue import OutboxStore
from outbox.services.health_monitor import HealthMonitor, HealthStatus

router = APIRouter(tags=["Health"])

# API version - single source of truth
API_VERSION = "1.0.0"


@router.get("/health")
async def health_check(monitor: HealthMonitor = Depends(get_health_monitor)):
    """
    Gateway health.

    Runs the credential, connectivity, quota and sender checks.
    Returns 200 when healthy or degraded, 503 when down.
    """
    api_status = await monitor.check_api_status()
    body = api_status.model_dump(mode="json")
    if api_status.status == HealthStatus.DOWN:
        return JSONResponse(status_code=503, content=body)
    return body


@router.get("/ready")
async def readiness_check(request: Request, store: OutboxStore = Depends(get_store)):
    """
    Readiness probe - checks if service can handle requests.

    Returns 200 if the store answers a ping, 503 if not.
    """
    try:
        await store.ping()
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "reason": str(e)}
        )

    return {
        "status": "ready",
        "store": type(store).__name__,
        "worker": "running" if request.app.state.worker.running else "stopped",
    }


@router.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "service": "WhatsApp Delivery Outbox",
        "version": API_VERSION,
        "endpoints": {
            "send": "/messages (POST)",
            "history": "/messages/{conversationId}",
            "health": "/health",
            "ready": "/ready",
            "process": "/queue/process (POST)",
            "queue_stats": "/queue/stats",
            "metrics": "/metrics",
            "delivery_stats": "/metrics/delivery",
        }
    }
