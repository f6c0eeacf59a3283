"""Callback receiver — converges the ledger when Daraja reports a result.

The provider retries any callback that does not get a 2xx, so ``handle``
acknowledges every delivery: malformed bodies, unknown checkout IDs and
internal failures are logged and answered with the same payload as a
successful run.

On success:
  1. Mark the transaction ``success`` with receipt number and date.
  2. If it is linked to an invoice, generate a receipt number, insert a
     ``Completed`` payment and recompute the invoice balance and status.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from feepay.core.config import Settings
from feepay.core.exceptions import CorrelationMiss, PaymentError
from feepay.core.logging import get_logger
from feepay.models.mpesa_transaction import MpesaTransaction
from feepay.services.ledger import LedgerStore
from feepay.services.mpesa.callback_parser import StkCallback, parse_callback
from feepay.services.mpesa.formatting import provider_now
from feepay.services.payments.rules import apply_payment, map_result_status

logger = get_logger(__name__)

ACK_RESPONSE: dict[str, Any] = {"ResultCode": 0, "ResultDesc": "Accepted"}


def acknowledgement() -> dict[str, Any]:
    """Fresh copy of the fixed acknowledgement payload."""
    return dict(ACK_RESPONSE)


class CallbackReceiver:
    """Processes STK callbacks against the ledger."""

    def __init__(self, ledger: LedgerStore, config: Settings) -> None:
        self.ledger = ledger
        self.config = config

    # ── Public API ───────────────────────────────────────────────────

    def handle(self, raw_body: Any) -> dict[str, Any]:
        """Process one callback delivery and return the acknowledgement.

        Never raises.
        """
        try:
            callback = parse_callback(raw_body)
            if callback is None:
                return acknowledgement()
            self._process(callback)
        except CorrelationMiss as exc:
            logger.warning("Callback ignored: %s", exc.message)
        except PaymentError as exc:
            logger.error("Callback processing failed: %s", exc.message, exc_info=True)
        except Exception:
            logger.exception("Unexpected error while processing callback")
        return acknowledgement()

    # ── Private helpers ──────────────────────────────────────────────

    def _process(self, callback: StkCallback) -> None:
        logger.info(
            "Callback received: checkout_request_id=%s result_code=%s",
            callback.checkout_request_id,
            callback.result_code,
        )
        txn = self.ledger.find_transaction(callback.checkout_request_id)
        if txn is None:
            raise CorrelationMiss(
                f"Transaction not found: {callback.checkout_request_id}"
            )

        if callback.succeeded:
            self._apply_success(txn, callback)
        else:
            self._apply_failure(txn, callback)

    def _apply_success(self, txn: MpesaTransaction, callback: StkCallback) -> None:
        meta = callback.metadata.resolve(
            stored_amount=txn.amount,
            stored_phone=txn.phone_number,
            now=provider_now(),
        )
        fields = {
            "status": map_result_status(callback.result_code),
            "result_code": str(callback.result_code),
            "result_desc": callback.result_desc,
            "mpesa_receipt_number": meta.receipt_number,
            "transaction_date": meta.transaction_date,
        }
        if not self._transition(txn, fields):
            return

        if txn.invoice_id:
            self._record_payment(
                txn,
                meta.amount,
                meta.receipt_number,
                meta.transaction_date,
                meta.phone_number,
            )

        logger.info("Payment processed successfully: %s", meta.receipt_number)

    def _apply_failure(self, txn: MpesaTransaction, callback: StkCallback) -> None:
        fields = {
            "status": map_result_status(callback.result_code),
            "result_code": str(callback.result_code),
            "result_desc": callback.result_desc,
        }
        if self._transition(txn, fields):
            logger.info(
                "Payment %s: checkout_request_id=%s desc=%s",
                fields["status"],
                txn.checkout_request_id,
                callback.result_desc,
            )

    def _transition(self, txn: MpesaTransaction, fields: dict[str, Any]) -> bool:
        """Write the terminal status; False means the callback is a duplicate."""
        if not self.config.callback_dedupe_enabled:
            if txn.status != "pending":
                # Duplicate deliveries are applied again unless dedupe is on.
                logger.warning(
                    "Transaction %s already %s, applying callback again",
                    txn.checkout_request_id,
                    txn.status,
                )
            self.ledger.update_transaction(txn, **fields)
            return True

        if self.ledger.claim_transaction(txn, **fields):
            return True
        logger.warning(
            "Duplicate callback dropped: checkout_request_id=%s status=%s",
            txn.checkout_request_id,
            txn.status,
        )
        return False

    def _record_payment(
        self,
        txn: MpesaTransaction,
        amount,
        receipt_number: str,
        transaction_date: datetime,
        phone_number: Optional[str],
    ) -> None:
        payment = self.ledger.record_payment(
            transaction_date.date(),
            student_id=txn.student_id,
            invoice_id=txn.invoice_id,
            payment_date=transaction_date.date(),
            amount=amount,
            reference_number=receipt_number,
            notes=f"M-Pesa payment from {phone_number}",
            status="Completed",
        )

        invoice = self.ledger.get_invoice(txn.invoice_id)
        if invoice is None:
            logger.error(
                "Invoice %s not found, payment %s left unapplied",
                txn.invoice_id,
                payment.receipt_number,
            )
            return

        change = apply_payment(
            invoice.total_amount,
            invoice.balance_due,
            amount,
            track_credit=self.config.overpayment_credit_enabled,
        )
        self.ledger.update_invoice(
            invoice,
            amount_paid=change.amount_paid,
            balance_due=change.balance_due,
            status=change.status,
            credit=change.credit,
        )
        logger.info(
            "Invoice %s updated: balance_due=%s status=%s",
            invoice.invoice_number,
            change.balance_due,
            change.status,
        )
