"""Services package."""
from outbox.services.gateway import (
    GatewayClient,
    TwilioGateway,
    DeliveryResult,
    DeliveryOutcome,
    TransientDeliveryError,
    PermanentDeliveryError,
)
from outbox.services.delivery_stats import DeliveryStatsAggregator, DeliveryStatsSink

__all__ = [
    "GatewayClient",
    "TwilioGateway",
    "DeliveryResult",
    "DeliveryOutcome",
    "TransientDeliveryError",
    "PermanentDeliveryError",
    "DeliveryStatsAggregator",
    "DeliveryStatsSink",
]
