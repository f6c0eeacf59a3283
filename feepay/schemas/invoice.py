"""Pydantic schemas for invoice and payment read-back."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class InvoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    invoice_number: str
    student_id: Optional[str] = None
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    total_amount: Decimal
    amount_paid: Optional[Decimal] = None
    balance_due: Decimal
    credit_balance: Optional[Decimal] = None
    status: Optional[str] = Field(
        None,
        description="Pending | Partial | Paid | Overdue",
    )
    created_at: datetime
    updated_at: Optional[datetime] = None


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    receipt_number: str
    student_id: Optional[str] = None
    invoice_id: Optional[UUID] = None
    payment_date: date
    amount: Decimal
    reference_number: Optional[str] = None
    notes: Optional[str] = None
    status: str
    created_at: datetime
