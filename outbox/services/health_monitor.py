"""
Gateway health monitor.

Runs four independent checks against the messaging provider setup:
credentials, API connectivity, daily quota and sender number. Each check
captures its own failure; the overall status is healthy only when every
check passes.
"""
import asyncio
import datetime as dt
from enum import StrEnum
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field

from outbox.config import Settings
from outbox.message_queue.base import OutboxStore
from outbox.models import utcnow
from outbox.services.gateway import GatewayClient
from outbox.utils.metrics import MetricsRegistry
from outbox.utils.observability import logger


class HealthStatus(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    DOWN = "down"


# Gauge encoding for outbox_gateway_health
HEALTH_GAUGE_VALUES = {
    HealthStatus.HEALTHY: 2,
    HealthStatus.DEGRADED: 1,
    HealthStatus.DOWN: 0,
}


class ApiStatus(BaseModel):
    status: HealthStatus
    details: dict[str, Any] = Field(default_factory=dict)


class HealthReport(BaseModel):
    """Flattened view of the last health check."""
    credentials_ok: bool = False
    connectivity_ok: bool = False
    quota_ok: bool = False
    sender_ok: bool = False
    overall: HealthStatus = HealthStatus.DOWN
    checked_at: Optional[dt.datetime] = None


class HealthMonitor:
    """
    Provider health checks for the delivery gateway.

    ``check_api_status`` runs the checks on demand; ``refresh`` is called
    by the queue worker on its health interval and caches the result for
    ``report``.
    """

    def __init__(
        self,
        settings: Settings,
        gateway: GatewayClient,
        store: OutboxStore,
        clock: Callable[[], dt.datetime] = utcnow,
        metrics: Optional[MetricsRegistry] = None,
    ):
        self.settings = settings
        self.gateway = gateway
        self.store = store
        self.clock = clock
        self.metrics = metrics
        self.connectivity_timeout = settings.gateway_timeout_seconds
        self.last_status: Optional[ApiStatus] = None
        self.last_checked_at: Optional[dt.datetime] = None

    async def check_api_status(self) -> ApiStatus:
        """
        Run every check and combine the results.

        Returns:
            healthy if all checks pass, degraded if any fails, down if the
            checks themselves could not be run
        """
        try:
            checks = {
                "credentials": self.check_credentials(),
                "connectivity": await self.check_connectivity(),
                "quota": await self.check_quota(),
                "sender": self.check_sender(),
            }
            all_healthy = all(check["healthy"] for check in checks.values())
            api_status = ApiStatus(
                status=HealthStatus.HEALTHY if all_healthy else HealthStatus.DEGRADED,
                details=checks,
            )
        except Exception as e:
            logger.exception(f"Health check failed: {e}")
            api_status = ApiStatus(status=HealthStatus.DOWN, details={"error": str(e)})

        if api_status.status != HealthStatus.HEALTHY:
            logger.warning(f"Gateway health is {api_status.status}")
        if self.metrics:
            self.metrics.health_status.set(HEALTH_GAUGE_VALUES[api_status.status])
        return api_status

    def check_credentials(self) -> dict[str, Any]:
        missing = [
            name for name, value in (
                ("account_sid", self.settings.twilio_account_sid),
                ("auth_token", self.settings.twilio_auth_token),
                ("sender", self.settings.twilio_whatsapp_from),
            )
            if not value
        ]
        if missing:
            return {"healthy": False, "error": f"Missing credentials: {', '.join(missing)}"}
        return {"healthy": True}

    async def check_connectivity(self) -> dict[str, Any]:
        try:
            elapsed_ms = await asyncio.wait_for(self.gateway.ping(), timeout=self.connectivity_timeout)
        except Exception as e:
            return {"healthy": False, "error": str(e) or type(e).__name__}
        return {"healthy": True, "response_time_ms": round(elapsed_ms, 1)}

    async def check_quota(self) -> dict[str, Any]:
        quota = self.settings.daily_message_quota
        try:
            now = self.clock().astimezone(dt.UTC)
            midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
            sent_today = await self.store.count_sent_since(midnight)
        except Exception as e:
            return {"healthy": False, "error": str(e)}
        return {
            "healthy": sent_today < quota,
            "sent_today": sent_today,
            "daily_quota": quota,
            "remaining": max(quota - sent_today, 0),
        }

    def check_sender(self) -> dict[str, Any]:
        try:
            error = self.gateway.check_sender()
        except Exception as e:
            error = str(e)
        if error:
            return {"healthy": False, "error": error}
        return {"healthy": True, "sender": self.settings.twilio_whatsapp_from}

    async def refresh(self) -> ApiStatus:
        """Run the checks and keep the result for report()."""
        self.last_status = await self.check_api_status()
        self.last_checked_at = self.clock()
        return self.last_status

    async def report(self) -> HealthReport:
        """Flattened view of the last check, running one if none exists yet."""
        if self.last_status is None:
            await self.refresh()

        details = self.last_status.details

        def passed(name: str) -> bool:
            check = details.get(name)
            return isinstance(check, dict) and bool(check.get("healthy"))

        return HealthReport(
            credentials_ok=passed("credentials"),
            connectivity_ok=passed("connectivity"),
            quota_ok=passed("quota"),
            sender_ok=passed("sender"),
            overall=self.last_status.status,
            checked_at=self.last_checked_at,
        )
