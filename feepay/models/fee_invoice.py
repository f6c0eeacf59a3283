"""Fee invoice model — owned by finance, balance mutated by M-Pesa callbacks."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, DateTime, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from feepay.core.database import Base


class FeeInvoice(Base):
    """A student's fee invoice."""

    __tablename__ = "fee_invoices"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    invoice_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
    )
    student_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        index=True,
    )
    invoice_date: Mapped[Optional[date]] = mapped_column(
        Date,
    )
    due_date: Mapped[Optional[date]] = mapped_column(
        Date,
    )
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
    )
    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        default=Decimal("0"),
    )
    balance_due: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
    )
    credit_balance: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        default=Decimal("0"),
        comment="Overpayment carried forward, only tracked when enabled",
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default="Pending",
        comment="Pending | Partial | Paid | Overdue",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        onupdate=func.now(),
    )

    # -- Relationships --
    payments: Mapped[list[FeePayment]] = relationship(
        "FeePayment",
        back_populates="invoice",
        lazy="select",
    )

    def __repr__(self) -> str:
        return (
            f"<FeeInvoice(invoice_number={self.invoice_number!r}, "
            f"balance_due={self.balance_due}, status={self.status!r})>"
        )
