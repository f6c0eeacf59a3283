"""Ledger store — every read and write the payment pipeline makes.

Each write commits on its own. A callback that fails halfway through
(payment inserted, invoice not updated) leaves the earlier writes in place;
nothing here compensates for that.
"""

from __future__ import annotations

import time
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from feepay.core.exceptions import PersistenceError
from feepay.core.logging import get_logger
from feepay.models.fee_invoice import FeeInvoice
from feepay.models.fee_payment import FeePayment
from feepay.models.mpesa_transaction import MpesaTransaction

logger = get_logger(__name__)

RECEIPT_PREFIX = "RCP"
FALLBACK_RECEIPT_PREFIX = "RCP-MPESA"


def fallback_receipt_number() -> str:
    """Time-based receipt number, e.g. ``RCP-MPESA-1705303275123``."""
    return f"{FALLBACK_RECEIPT_PREFIX}-{int(time.time() * 1000)}"


class LedgerStore:
    """SQLAlchemy-backed access to transactions, payments and invoices."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ── Transactions ─────────────────────────────────────────────────

    def create_transaction(self, **fields: Any) -> MpesaTransaction:
        """Insert a transaction row (normally ``status='pending'``)."""
        txn = MpesaTransaction(id=uuid.uuid4(), **fields)
        self.db.add(txn)
        self._commit("insert transaction")
        self.db.refresh(txn)
        return txn

    def find_transaction(self, checkout_request_id: str) -> Optional[MpesaTransaction]:
        """Look up a transaction by the provider's CheckoutRequestID."""
        try:
            return (
                self.db.query(MpesaTransaction)
                .filter(MpesaTransaction.checkout_request_id == checkout_request_id)
                .first()
            )
        except SQLAlchemyError as exc:
            logger.error("Transaction lookup failed: %s", exc)
            raise PersistenceError("Failed to look up transaction") from exc

    def update_transaction(self, txn: MpesaTransaction, **fields: Any) -> None:
        for name, value in fields.items():
            setattr(txn, name, value)
        txn.updated_at = datetime.utcnow()
        self._commit("update transaction")

    def claim_transaction(self, txn: MpesaTransaction, **fields: Any) -> bool:
        """Conditionally move a transaction out of ``pending``.

        Issues ``UPDATE ... WHERE id = :id AND status = 'pending'`` so that of
        two concurrent deliveries only one sees a row count of 1.

        Returns:
            True if this call performed the transition.
        """
        values = dict(fields, updated_at=datetime.utcnow())
        stmt = (
            update(MpesaTransaction)
            .where(MpesaTransaction.id == txn.id)
            .where(MpesaTransaction.status == "pending")
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            claimed = self.db.execute(stmt).rowcount == 1
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Failed to claim transaction %s: %s", txn.id, exc)
            raise PersistenceError("Failed to claim transaction") from exc

        self.db.refresh(txn)
        return claimed

    # ── Payments ─────────────────────────────────────────────────────

    def generate_receipt_number(self, on: Optional[date] = None) -> str:
        """Next receipt number for the month, e.g. ``RCP-202401-00042``.

        Continues from the highest number issued in the month, so gaps left
        by deleted payments are never reused. Falls back to a time-based
        number if the sequence cannot be read.
        """
        on = on or date.today()
        prefix = f"{RECEIPT_PREFIX}-{on:%Y%m}-"
        try:
            latest = (
                self.db.query(func.max(FeePayment.receipt_number))
                .filter(FeePayment.receipt_number.like(f"{prefix}%"))
                .scalar()
            )
        except SQLAlchemyError as exc:
            self.db.rollback()
            fallback = fallback_receipt_number()
            logger.warning("Receipt sequence unavailable (%s), using %s", exc, fallback)
            return fallback

        if latest is None:
            return f"{prefix}{1:05d}"
        try:
            last = int(latest[len(prefix):])
        except ValueError:
            fallback = fallback_receipt_number()
            logger.warning("Unreadable receipt number %s, using %s", latest, fallback)
            return fallback
        return f"{prefix}{last + 1:05d}"

    def record_payment(self, on: date, **fields: Any) -> FeePayment:
        """Insert a payment under the next receipt number for *on*'s month.

        Two callbacks settling at the same time can both be handed the same
        number. The loser of that race is retried once under a time-based
        receipt number.
        """
        receipt = self.generate_receipt_number(on)
        try:
            return self._insert_payment(receipt, fields)
        except IntegrityError:
            fallback = fallback_receipt_number()
            logger.warning("Receipt %s already taken, retrying as %s", receipt, fallback)

        try:
            return self._insert_payment(fallback, fields)
        except IntegrityError as exc:
            logger.error("Ledger write failed (insert payment): %s", exc)
            raise PersistenceError("Failed to insert payment") from exc

    def list_payments(self, invoice_id: uuid.UUID) -> list[FeePayment]:
        return (
            self.db.query(FeePayment)
            .filter(FeePayment.invoice_id == invoice_id)
            .order_by(FeePayment.created_at.asc())
            .all()
        )

    # ── Invoices ─────────────────────────────────────────────────────

    def get_invoice(self, invoice_id: uuid.UUID) -> Optional[FeeInvoice]:
        try:
            return self.db.query(FeeInvoice).filter(FeeInvoice.id == invoice_id).first()
        except SQLAlchemyError as exc:
            logger.error("Invoice lookup failed: %s", exc)
            raise PersistenceError("Failed to look up invoice") from exc

    def update_invoice(
        self,
        invoice: FeeInvoice,
        amount_paid: Decimal,
        balance_due: Decimal,
        status: str,
        credit: Decimal = Decimal("0"),
    ) -> None:
        invoice.amount_paid = amount_paid
        invoice.balance_due = balance_due
        invoice.status = status
        if credit > 0:
            invoice.credit_balance = (invoice.credit_balance or Decimal("0")) + credit
        self._commit("update invoice")

    # ── Private helpers ──────────────────────────────────────────────

    def _insert_payment(self, receipt_number: str, fields: dict[str, Any]) -> FeePayment:
        """Insert one payment row; a constraint violation is re-raised as is."""
        payment = FeePayment(id=uuid.uuid4(), receipt_number=receipt_number, **fields)
        self.db.add(payment)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Ledger write failed (insert payment): %s", exc)
            raise PersistenceError("Failed to insert payment") from exc
        return payment

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Ledger write failed (%s): %s", action, exc)
            raise PersistenceError(f"Failed to {action}") from exc
