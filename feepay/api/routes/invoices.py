"""Invoice read-back endpoints used by the UI after a payment."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from feepay.core.database import get_db
from feepay.models.fee_invoice import FeeInvoice
from feepay.models.fee_payment import FeePayment
from feepay.schemas.invoice import InvoiceResponse, PaymentResponse
from feepay.services.ledger import LedgerStore

router = APIRouter()


@router.get("/{invoice_id}", response_model=InvoiceResponse)
def get_invoice(invoice_id: UUID, db: Session = Depends(get_db)) -> FeeInvoice:
    invoice = LedgerStore(db).get_invoice(invoice_id)
    if invoice is None:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return invoice


@router.get("/{invoice_id}/payments", response_model=list[PaymentResponse])
def list_invoice_payments(
    invoice_id: UUID,
    db: Session = Depends(get_db),
) -> list[FeePayment]:
    """Payments applied to an invoice, oldest first."""
    ledger = LedgerStore(db)
    if ledger.get_invoice(invoice_id) is None:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return ledger.list_payments(invoice_id)
