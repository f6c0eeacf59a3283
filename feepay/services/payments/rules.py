"""Reconciliation rules applied when a callback arrives.

Both functions are pure so they can be tested without a database.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

# Daraja ResultCode for "Request cancelled by user"
RESULT_CODE_CANCELLED = 1032

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"
STATUS_CANCELLED = "cancelled"
STATUS_PENDING = "pending"

INVOICE_PAID = "Paid"
INVOICE_PARTIAL = "Partial"

_ZERO = Decimal("0")


def map_result_status(result_code: int) -> str:
    """Transaction status for a callback ResultCode.

    ``0`` is success, ``1032`` is a user cancellation, everything else failed.
    """
    if result_code == 0:
        return STATUS_SUCCESS
    if result_code == RESULT_CODE_CANCELLED:
        return STATUS_CANCELLED
    return STATUS_FAILED


@dataclass(frozen=True)
class InvoiceUpdate:
    amount_paid: Decimal
    balance_due: Decimal
    status: str
    credit: Decimal = _ZERO


def apply_payment(
    total_amount: Decimal,
    balance_due: Decimal,
    amount: Decimal,
    track_credit: bool = False,
) -> InvoiceUpdate:
    """Apply *amount* to an invoice balance.

    The new balance is ``max(0, balance_due - amount)`` and ``amount_paid``
    is derived from it as ``total_amount - new_balance``. Any excess over the
    old balance is dropped unless *track_credit* is set, in which case it is
    returned as ``credit``.
    """
    total_amount = Decimal(str(total_amount))
    balance_due = Decimal(str(balance_due))
    amount = Decimal(str(amount))

    remaining = balance_due - amount
    new_balance = max(_ZERO, remaining)
    credit = -remaining if track_credit and remaining < 0 else _ZERO

    return InvoiceUpdate(
        amount_paid=total_amount - new_balance,
        balance_due=new_balance,
        status=INVOICE_PAID if new_balance <= 0 else INVOICE_PARTIAL,
        credit=credit,
    )
