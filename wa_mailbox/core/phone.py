"""Phone number utilities for WhatsApp addressing."""

import logging
import re

from wa_mailbox.settings import settings

logger = logging.getLogger(__name__)


def digits_only(phone: str | None) -> str:
    """Strip everything except digits."""
    if not phone:
        return ""
    return re.sub(r"\D", "", phone)


def format_phone_number(phone: str | None, default_country_code: str | None = None) -> str:
    """Format a phone number the way the Cloud API expects it (digits, with country code).

    Handles various input formats:
        +92 300 1234567 → 923001234567
        0300-1234567    → 923001234567
        3001234567      → 923001234567
        +1 281 788 2316 → 12817882316

    Args:
        phone: Phone number in any format
        default_country_code: Country code prefixed to local numbers
            (defaults to WHATSAPP_DEFAULT_COUNTRY_CODE)

    Returns:
        Digits-only international number, or an empty string for empty input
    """
    country_code = default_country_code or settings.whatsapp_default_country_code
    digits = digits_only(phone).lstrip("0")
    if not digits:
        logger.warning(f"Could not format phone number: {phone!r}")
        return ""

    if digits.startswith(country_code) or digits.startswith("1"):
        return digits
    return f"{country_code}{digits}"
