"""
API Routes

Modular route definitions for the delivery outbox API.
"""
from outbox.api.routes.health import router as health_router
from outbox.api.routes.messages import router as messages_router
from outbox.api.routes.queue import router as queue_router
from outbox.api.routes.metrics import router as metrics_router

__all__ = [
    "health_router",
    "messages_router",
    "queue_router",
    "metrics_router",
]
