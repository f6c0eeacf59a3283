"""Pydantic schemas for the M-Pesa endpoints."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class StkPushRequest(BaseModel):
    """Request body to start an STK push.

    ``phone_number`` and ``amount`` are optional here and checked by the
    initiator, so a missing value gets the same ``{success: false, error}``
    body as every other initiation failure. Values that cannot be parsed
    are rendered that way by the app's request validation handler.
    """

    phone_number: Optional[str] = Field(
        None,
        description="Payer phone number, e.g. 0712345678 or +254712345678",
    )
    amount: Optional[Decimal] = Field(
        None,
        description="Amount in KES; rounded to whole shillings for the push",
    )
    student_id: Optional[str] = Field(None, max_length=64)
    invoice_id: Optional[UUID] = None
    account_reference: Optional[str] = Field(None, max_length=50)
    transaction_desc: Optional[str] = Field(None, max_length=100)


class StkPushResponse(BaseModel):
    """Returned when the provider accepted the push."""

    success: bool = True
    message: str = "STK Push sent successfully. Please check your phone."
    checkout_request_id: str
    merchant_request_id: Optional[str] = None


class ErrorResponse(BaseModel):
    """Body of every failed STK push request."""

    success: bool = False
    error: str


class CallbackAck(BaseModel):
    """Fixed acknowledgement returned to the provider for every callback."""

    ResultCode: int = 0
    ResultDesc: str = "Accepted"


class TransactionStatusResponse(BaseModel):
    """Transaction state polled by the UI after a push."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    checkout_request_id: str
    merchant_request_id: Optional[str] = None
    student_id: Optional[str] = None
    invoice_id: Optional[UUID] = None
    phone_number: str
    amount: Decimal
    account_reference: Optional[str] = None
    status: str = Field(
        ...,
        description="pending | success | failed | cancelled",
    )
    result_code: Optional[str] = None
    result_desc: Optional[str] = None
    mpesa_receipt_number: Optional[str] = None
    transaction_date: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class StkQueryResponse(BaseModel):
    """Live status reported by the provider for a push request."""

    checkout_request_id: str
    result_code: Optional[str] = None
    result_desc: Optional[str] = None
    raw: dict[str, Any] = Field(default_factory=dict)


class ConnectionCheckRequest(BaseModel):
    """Ad-hoc credentials to check before saving them."""

    consumer_key: str = Field(..., min_length=1)
    consumer_secret: str = Field(..., min_length=1)
    environment: str = Field("sandbox", description="sandbox | production")


class ConnectionCheckResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
