"""Formatting helpers for the Daraja STK push API.

These are pure functions: phone normalization, the request timestamp and
password the provider requires, and parsing of the provider's compact
``YYYYMMDDHHMMSS`` dates.
"""

from __future__ import annotations

import base64
import re
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from feepay.core.logging import get_logger

logger = get_logger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"

# Daraja timestamps and callback dates are Kenyan local time. Kenya has no DST.
PROVIDER_TZ = timezone(timedelta(hours=3), "EAT")

_WHITESPACE = re.compile(r"\s+")


def normalize_phone(raw: str, country_code: str = "254") -> str:
    """Bring a Kenyan phone number into the ``2547XXXXXXXX`` form.

    Best effort only, this is not an E.164 parser:
    whitespace is removed, a leading ``0`` becomes the country code,
    a leading ``+`` is dropped and anything still missing the country
    code gets it prefixed.

    Args:
        raw: Phone number as typed by the payer.
        country_code: Dialling code without ``+``.

    Returns:
        The normalized phone number.
    """
    phone = _WHITESPACE.sub("", str(raw))
    if phone.startswith("0"):
        phone = country_code + phone[1:]
    if phone.startswith("+"):
        phone = phone[1:]
    if not phone.startswith(country_code):
        phone = country_code + phone
    return phone


def provider_now() -> datetime:
    """Current time as a naive EAT datetime.

    Every provider-facing date in the ledger (``transaction_date``,
    ``payment_date``) uses this convention, whether it came from the
    callback or from the clock.
    """
    return datetime.now(PROVIDER_TZ).replace(tzinfo=None)


def build_timestamp(now: Optional[datetime] = None) -> str:
    """Return the ``YYYYMMDDHHMMSS`` request timestamp for *now* (EAT)."""
    return (now or provider_now()).strftime(TIMESTAMP_FORMAT)


def build_password(short_code: str, passkey: str, timestamp: str) -> str:
    """Base64 of shortcode + passkey + timestamp, as Daraja mandates."""
    raw = f"{short_code}{passkey}{timestamp}".encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def parse_transaction_date(value: Any) -> Optional[datetime]:
    """Parse the 14-digit ``TransactionDate`` sent in callback metadata.

    The provider sends it as an integer (``20191219102115``); a string is
    accepted as well. Anything that is not exactly 14 digits yields None.
    """
    if value is None:
        return None
    text = str(value).strip()
    if len(text) != 14 or not text.isdigit():
        logger.warning("Unexpected TransactionDate value: %r", value)
        return None
    try:
        return datetime.strptime(text, TIMESTAMP_FORMAT)
    except ValueError:
        logger.warning("Invalid TransactionDate value: %r", value)
        return None


def to_decimal(value: Any) -> Optional[Decimal]:
    """Convert a JSON number (or numeric string) to a 2dp Decimal."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        return None


def to_whole_amount(amount: Decimal | float | int) -> int:
    """Round an amount half-up to whole shillings.

    STK push only accepts integer amounts.
    """
    return int(Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
