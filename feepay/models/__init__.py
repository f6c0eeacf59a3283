"""SQLAlchemy models for the feepay payment reconciliation service."""

from feepay.models.mpesa_settings import MpesaSettings
from feepay.models.mpesa_transaction import MpesaTransaction
from feepay.models.fee_invoice import FeeInvoice
from feepay.models.fee_payment import FeePayment

__all__ = [
    "MpesaSettings",
    "MpesaTransaction",
    "FeeInvoice",
    "FeePayment",
]
