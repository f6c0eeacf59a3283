"""M-Pesa transaction model — one row per STK push attempt."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, Index, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from feepay.core.database import Base


class MpesaTransaction(Base):
    """A push request sent to the payer's phone.

    Created ``pending`` when the provider accepts the push and moved to
    ``success``, ``failed`` or ``cancelled`` when the callback for its
    ``checkout_request_id`` arrives.
    """

    __tablename__ = "mpesa_transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    checkout_request_id: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
    )
    merchant_request_id: Mapped[Optional[str]] = mapped_column(
        String(100),
    )
    student_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        index=True,
    )
    invoice_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        nullable=True,
        index=True,
    )
    phone_number: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
    )
    account_reference: Mapped[Optional[str]] = mapped_column(
        String(50),
    )
    transaction_desc: Mapped[Optional[str]] = mapped_column(
        String(100),
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        comment="pending | success | failed | cancelled",
    )
    result_code: Mapped[Optional[str]] = mapped_column(
        String(10),
    )
    result_desc: Mapped[Optional[str]] = mapped_column(
        Text,
    )
    mpesa_receipt_number: Mapped[Optional[str]] = mapped_column(
        String(50),
    )
    transaction_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        onupdate=func.now(),
    )

    __table_args__ = (
        Index("ix_mpesa_tx_status_created", "status", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<MpesaTransaction(checkout_request_id={self.checkout_request_id!r}, "
            f"amount={self.amount}, status={self.status!r})>"
        )
