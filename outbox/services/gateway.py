"""
WhatsApp Delivery Gateway

Sends outbound messages through the Twilio Messages API and classifies
every failure as transient (retry with backoff) or permanent (fail now).
"""
import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum
from typing import Optional

from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from outbox.config import Settings
from outbox.models import Message
from outbox.utils.observability import logger
from outbox.utils.phone_normalizer import (
    PhoneNormalizationError,
    PhoneNormalizer,
    to_whatsapp_address,
)

# Retryable Twilio statuses besides 5xx
TRANSIENT_HTTP_STATUSES = frozenset({401, 403, 408, 429})


class DeliveryOutcome(StrEnum):
    SENT = "sent"
    TRANSIENT = "transient"
    PERMANENT = "permanent"


@dataclass(frozen=True)
class DeliveryResult:
    """Tagged result of one gateway send."""
    outcome: DeliveryOutcome
    provider_message_id: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def sent(cls, provider_message_id: Optional[str] = None) -> "DeliveryResult":
        return cls(DeliveryOutcome.SENT, provider_message_id=provider_message_id)

    @classmethod
    def transient(cls, error: str) -> "DeliveryResult":
        return cls(DeliveryOutcome.TRANSIENT, error=error)

    @classmethod
    def permanent(cls, error: str) -> "DeliveryResult":
        return cls(DeliveryOutcome.PERMANENT, error=error)

    @property
    def ok(self) -> bool:
        return self.outcome == DeliveryOutcome.SENT


class DeliveryError(Exception):
    """Base class for gateway failures raised instead of returned."""
    pass


class TransientDeliveryError(DeliveryError):
    """Failure that may succeed on retry (timeout, 5xx, throttling, network)."""
    pass


class PermanentDeliveryError(DeliveryError):
    """Failure that will never succeed (invalid destination, rejected recipient)."""
    pass


class GatewayClient(ABC):
    """
    Outbound messaging provider.

    ``send`` either returns a DeliveryResult or raises a DeliveryError;
    any other exception is treated by callers as a transient failure.
    """

    @abstractmethod
    async def send(self, message: Message) -> DeliveryResult:
        pass

    @abstractmethod
    async def ping(self) -> float:
        """
        Round-trip the provider API.

        Returns:
            Response time in milliseconds

        Raises:
            Exception: If the provider cannot be reached or rejects the credentials
        """
        pass

    @abstractmethod
    def check_sender(self) -> Optional[str]:
        """Validate the configured sender; returns an error string or None."""
        pass

    @property
    def configured(self) -> bool:
        return True


class TwilioGateway(GatewayClient):
    """
    Twilio WhatsApp gateway.

    The Twilio SDK is synchronous; calls run in a worker thread and the
    HTTP client timeout matches the configured gateway timeout.
    """

    def __init__(
        self,
        settings: Settings,
        normalizer: Optional[PhoneNormalizer] = None,
        client: Optional[Client] = None,
    ):
        self.account_sid = settings.twilio_account_sid
        self.from_number = settings.twilio_whatsapp_from
        self.normalizer = normalizer or PhoneNormalizer(settings.default_phone_region)

        # Allow for testing without credentials
        if client is not None:
            self.client = client
        elif settings.twilio_account_sid and settings.twilio_auth_token:
            self.client = Client(
                settings.twilio_account_sid,
                settings.twilio_auth_token,
                http_client=TwilioHttpClient(timeout=settings.gateway_timeout_seconds),
            )
        else:
            self.client = None
            logger.warning("Twilio credentials not configured - gateway will not be functional")

    @property
    def configured(self) -> bool:
        return self.client is not None and bool(self.from_number)

    async def send(self, message: Message) -> DeliveryResult:
        if not self.configured:
            return DeliveryResult.transient("Twilio client not configured - missing credentials or sender")

        try:
            to_address = to_whatsapp_address(message.destination, self.normalizer)
        except PhoneNormalizationError as e:
            return DeliveryResult.permanent(str(e))

        from_address = self.from_number
        if not from_address.startswith("whatsapp:"):
            from_address = f"whatsapp:{from_address}"

        kwargs = {"body": message.content, "from_": from_address, "to": to_address}
        if message.media_url:
            kwargs["media_url"] = [message.media_url]

        logger.info(
            "📤 Sending WhatsApp message",
            extra={
                "to": to_address,
                "message_type": message.message_type,
                "message_length": len(message.content),
            }
        )

        try:
            response = await asyncio.to_thread(self.client.messages.create, **kwargs)
        except TwilioRestException as e:
            return self._classify_rest_error(e)
        except TwilioException as e:
            return DeliveryResult.transient(f"Twilio error: {e}")

        logger.info(f"✅ Message accepted by Twilio (sid={response.sid}, status={response.status})")
        return DeliveryResult.sent(response.sid)

    def _classify_rest_error(self, error: TwilioRestException) -> DeliveryResult:
        detail = f"Twilio {error.status} (code {error.code}): {error.msg}"
        if error.status >= 500 or error.status in TRANSIENT_HTTP_STATUSES:
            logger.warning(f"Transient Twilio failure: {detail}")
            return DeliveryResult.transient(detail)
        logger.error(f"Twilio rejected message: {detail}")
        return DeliveryResult.permanent(detail)

    async def ping(self) -> float:
        if self.client is None:
            raise TransientDeliveryError("Twilio client not configured")

        start = time.perf_counter()
        account = await asyncio.to_thread(self.client.api.v2010.accounts(self.account_sid).fetch)
        elapsed_ms = (time.perf_counter() - start) * 1000

        logger.debug(f"Twilio account {account.sid} status={account.status} in {elapsed_ms:.0f}ms")
        return elapsed_ms

    def check_sender(self) -> Optional[str]:
        if not self.from_number:
            return "Sender number not configured"
        if not self.from_number.removeprefix("whatsapp:").strip().startswith("+"):
            return f"Sender number is not in E.164 format: {self.from_number}"
        try:
            self.normalizer.normalize(self.from_number)
        except PhoneNormalizationError as e:
            return str(e)
        return None
