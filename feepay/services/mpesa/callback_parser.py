"""Typed decoding of the Daraja STK callback envelope.

Expected JSON structure::

    {
        "Body": {
            "stkCallback": {
                "MerchantRequestID": "29115-34620561-1",
                "CheckoutRequestID": "ws_CO_191220191020363925",
                "ResultCode": 0,
                "ResultDesc": "The service request is processed successfully.",
                "CallbackMetadata": {
                    "Item": [
                        {"Name": "Amount", "Value": 1.00},
                        {"Name": "MpesaReceiptNumber", "Value": "NLJ7RT61SV"},
                        {"Name": "TransactionDate", "Value": 20191219102115},
                        {"Name": "PhoneNumber", "Value": 254708374149}
                    ]
                }
            }
        }
    }

Failed and cancelled callbacks carry no ``CallbackMetadata``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from feepay.core.logging import get_logger
from feepay.services.mpesa.formatting import (
    parse_transaction_date,
    provider_now,
    to_decimal,
)

logger = get_logger(__name__)


@dataclass
class CallbackMetadata:
    """Optional fields pulled from ``CallbackMetadata.Item``."""

    amount: Optional[Decimal] = None
    receipt_number: Optional[str] = None
    transaction_date: Optional[datetime] = None
    phone_number: Optional[str] = None

    def resolve(
        self,
        stored_amount: Decimal,
        stored_phone: str,
        now: Optional[datetime] = None,
    ) -> CallbackMetadata:
        """Fill every missing field from the stored transaction.

        The receipt number has nothing to fall back to and becomes an empty
        string; the transaction date falls back to *now*, or the current
        EAT time when *now* is not given.
        """
        return CallbackMetadata(
            amount=self.amount if self.amount is not None else stored_amount,
            receipt_number=self.receipt_number or "",
            transaction_date=self.transaction_date or now or provider_now(),
            phone_number=self.phone_number or stored_phone,
        )


@dataclass
class StkCallback:
    """One decoded ``stkCallback``."""

    checkout_request_id: str
    result_code: int
    merchant_request_id: Optional[str] = None
    result_desc: Optional[str] = None
    metadata: CallbackMetadata = field(default_factory=CallbackMetadata)

    @property
    def succeeded(self) -> bool:
        return self.result_code == 0


def _parse_metadata(raw: Any) -> CallbackMetadata:
    """Map the ``Item`` name/value list onto ``CallbackMetadata``."""
    metadata = CallbackMetadata()
    if not isinstance(raw, dict):
        return metadata
    items = raw.get("Item") or []
    if not isinstance(items, list):
        return metadata

    for item in items:
        if not isinstance(item, dict):
            continue
        name = item.get("Name")
        value = item.get("Value")
        if name == "Amount":
            metadata.amount = to_decimal(value)
        elif name == "MpesaReceiptNumber":
            metadata.receipt_number = str(value) if value is not None else None
        elif name == "TransactionDate":
            metadata.transaction_date = parse_transaction_date(value)
        elif name == "PhoneNumber":
            metadata.phone_number = str(value) if value is not None else None
    return metadata


def _parse_result_code(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def parse_callback(payload: Any) -> Optional[StkCallback]:
    """Decode a callback payload.

    Args:
        payload: Raw bytes/str of the request body, or an already-decoded dict.

    Returns:
        An ``StkCallback``, or None if the envelope is structurally invalid.
    """
    if isinstance(payload, (bytes, bytearray, str)):
        try:
            if isinstance(payload, (bytes, bytearray)):
                payload = payload.decode("utf-8-sig")
            payload = json.loads(payload)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.error("Callback body is not valid JSON: %s", exc)
            return None

    if not isinstance(payload, dict):
        logger.error("Callback body is not a JSON object")
        return None

    body = payload.get("Body")
    stk_callback = body.get("stkCallback") if isinstance(body, dict) else None
    if not isinstance(stk_callback, dict):
        logger.error("Invalid callback format: no Body.stkCallback")
        return None

    checkout_request_id = stk_callback.get("CheckoutRequestID")
    if not checkout_request_id:
        logger.error("Invalid callback format: no CheckoutRequestID")
        return None

    result_code = _parse_result_code(stk_callback.get("ResultCode"))
    if result_code is None:
        logger.error(
            "Invalid callback format: bad ResultCode %r",
            stk_callback.get("ResultCode"),
        )
        return None

    return StkCallback(
        checkout_request_id=str(checkout_request_id),
        result_code=result_code,
        merchant_request_id=stk_callback.get("MerchantRequestID"),
        result_desc=stk_callback.get("ResultDesc"),
        metadata=_parse_metadata(stk_callback.get("CallbackMetadata")),
    )
