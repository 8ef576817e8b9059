"""
Phone Number Normalization

E.164 validation and normalization for WhatsApp destinations and the
configured sender number. Numbers written in national format (for example
``0300 1234567``) are resolved against the configured default region.
"""

import phonenumbers
from phonenumbers import NumberParseException
from dataclasses import dataclass
from typing import Optional
from outbox.utils.observability import logger

WHATSAPP_PREFIX = "whatsapp:"


@dataclass
class NormalizedPhone:
    """Result of phone normalization."""
    original: str
    e164: str
    country_code: str
    national_number: str
    is_mobile: bool
    region: str


class PhoneNormalizationError(Exception):
    """Raised when phone number cannot be normalized."""
    pass


class PhoneNormalizer:
    """
    Normalizes phone numbers to E.164 format.

    Usage:
        normalizer = PhoneNormalizer(default_region="PK")
        result = normalizer.normalize("0300-1234567")
        print(result.e164)  # "+923001234567"
    """

    def __init__(self, default_region: str = "PK"):
        self.default_region = default_region

    def normalize(
        self,
        phone: str,
        default_region: Optional[str] = None,
    ) -> NormalizedPhone:
        """
        Normalize a phone number to E.164 format.

        Args:
            phone: Phone number in any format, optionally ``whatsapp:``-prefixed
            default_region: ISO country code for national-format numbers

        Returns:
            NormalizedPhone with normalized data

        Raises:
            PhoneNormalizationError: If number is invalid
        """
        original = phone
        region = default_region or self.default_region
        phone = self._clean_input(phone)

        if not phone or phone == "+":
            raise PhoneNormalizationError(f"Empty phone number: {original!r}")

        try:
            parsed = phonenumbers.parse(phone, region)
        except NumberParseException as e:
            raise PhoneNormalizationError(
                f"Cannot parse phone number '{original}': {e}"
            )

        if not phonenumbers.is_valid_number(parsed):
            raise PhoneNormalizationError(f"Invalid phone number: {original}")

        e164 = phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)
        number_type = phonenumbers.number_type(parsed)
        region_code = phonenumbers.region_code_for_number(parsed)

        result = NormalizedPhone(
            original=original,
            e164=e164,
            country_code=str(parsed.country_code),
            national_number=str(parsed.national_number),
            is_mobile=number_type in (
                phonenumbers.PhoneNumberType.MOBILE,
                phonenumbers.PhoneNumberType.FIXED_LINE_OR_MOBILE,
            ),
            region=region_code or region,
        )

        logger.debug(f"Normalized phone: {original} -> {e164}")
        return result

    def _clean_input(self, phone: str) -> str:
        """Drop the WhatsApp prefix and formatting characters, keeping a leading +."""
        phone = phone.strip()
        if phone.startswith(WHATSAPP_PREFIX):
            phone = phone[len(WHATSAPP_PREFIX):]
        if phone.startswith("+"):
            return "+" + "".join(c for c in phone[1:] if c.isdigit())
        return "".join(c for c in phone if c.isdigit())


def to_whatsapp_address(phone: str, normalizer: PhoneNormalizer) -> str:
    """
    Format a phone number as a Twilio WhatsApp address.

    Raises:
        PhoneNormalizationError: If number is invalid
    """
    return f"{WHATSAPP_PREFIX}{normalizer.normalize(phone).e164}"
