"""
Structured Logging & Observability
Logging that's both human-readable and machine-parseable.
"""
import sys
from typing import Optional
from loguru import logger
from outbox.config import get_settings


def configure_logging():
    """
    Configure loguru for the outbox service.

    In development: Human-readable colorized output
    In production: Structured JSON logs for ingestion (ELK, Datadog, etc.)
    """
    settings = get_settings()

    # Remove default handler
    logger.remove()

    if not settings.enable_structured_logging:
        logger.add(
            sys.stderr,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "{message}"
            ),
            level=settings.log_level,
            colorize=True,
        )
    else:
        logger.add(
            sys.stderr,
            format="{message}",
            level=settings.log_level,
            serialize=True,  # Output as JSON
        )

    logger.info(f"Logging configured: level={settings.log_level}, structured={settings.enable_structured_logging}")


def log_delivery_event(
    event_type: str,
    queue_id: str,
    message_id: str,
    retry_count: Optional[int] = None,
    error: Optional[str] = None,
    **context
):
    """
    Structured logging for queue entry lifecycle transitions.

    Args:
        event_type: Transition name (e.g., "sent", "retry_scheduled", "failed")
        queue_id: Queue entry id
        message_id: Message id
        retry_count: Retry counter after the transition
        error: Error details if the attempt failed
        **context: Additional context (priority, delay_ms, provider id, ...)

    Example:
        >>> log_delivery_event(
        ...     "retry_scheduled",
        ...     queue_id="65f...",
        ...     message_id="65e...",
        ...     retry_count=2,
        ...     delay_ms=10000,
        ... )
    """
    log_data = {
        "event_type": event_type,
        "queue_id": queue_id,
        "message_id": message_id,
    }

    if retry_count is not None:
        log_data["retry_count"] = retry_count
    if error:
        log_data["error"] = error

    log_data.update(context)

    level = "WARNING" if error else "INFO"
    logger.bind(**log_data).log(level, f"Delivery | {event_type} | queue={queue_id}")
