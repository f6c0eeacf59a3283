"""Fee payment model — a completed payment applied to an invoice."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, DateTime, ForeignKey, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from feepay.core.database import Base


class FeePayment(Base):
    """Payment row written when an M-Pesa push settles against an invoice.

    ``receipt_number`` is our own generated receipt; ``reference_number``
    is the provider's receipt (e.g. ``NLJ7RT61SV``).
    """

    __tablename__ = "fee_payments"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    receipt_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
    )
    student_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        index=True,
    )
    invoice_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("fee_invoices.id"),
        nullable=True,
    )
    payment_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
    )
    reference_number: Mapped[Optional[str]] = mapped_column(
        String(50),
    )
    notes: Mapped[Optional[str]] = mapped_column(
        Text,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default="Completed",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )

    # -- Relationships --
    invoice: Mapped[Optional[FeeInvoice]] = relationship(
        "FeeInvoice",
        back_populates="payments",
        lazy="select",
    )

    def __repr__(self) -> str:
        return (
            f"<FeePayment(receipt_number={self.receipt_number!r}, "
            f"amount={self.amount}, reference_number={self.reference_number!r})>"
        )
