"""Payment initiator — sends an STK push and records a pending transaction.

Flow:
  1. Validate the request and normalize the phone number.
  2. Load the active M-Pesa settings through the settings provider.
  3. Get a token and submit the push (``DarajaClient``).
  4. On ``ResponseCode == "0"`` store one ``pending`` transaction keyed by
     the CheckoutRequestID; otherwise surface the provider's message.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional

from feepay.core.config import Settings
from feepay.core.exceptions import UpstreamRejected, ValidationError
from feepay.core.logging import get_logger
from feepay.services.ledger import LedgerStore
from feepay.services.mpesa.client import DarajaClient
from feepay.services.mpesa.config_provider import MpesaConfig, SettingsProvider
from feepay.services.mpesa.formatting import normalize_phone
from feepay.services.payments.rules import STATUS_PENDING

logger = get_logger(__name__)

ClientFactory = Callable[[MpesaConfig], DarajaClient]


@dataclass(frozen=True)
class InitiationResult:
    checkout_request_id: str
    merchant_request_id: Optional[str]
    phone_number: str


class PaymentInitiator:
    """Originates STK push requests."""

    def __init__(
        self,
        ledger: LedgerStore,
        settings_provider: SettingsProvider,
        config: Settings,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self.ledger = ledger
        self.settings_provider = settings_provider
        self.config = config
        self.client_factory = client_factory or self._default_client

    def initiate(
        self,
        phone_number: Optional[str],
        amount,
        student_id: Optional[str] = None,
        invoice_id: Optional[uuid.UUID] = None,
        account_reference: Optional[str] = None,
        description: Optional[str] = None,
    ) -> InitiationResult:
        """Send a push to *phone_number* for *amount*.

        Raises:
            ValidationError: phone number or amount missing/invalid.
            ConfigurationError: no active M-Pesa settings.
            UpstreamAuthError: the provider refused the credentials.
            UpstreamRejected: the provider refused the push.
            PersistenceError: the pending transaction could not be stored.
        """
        value = self._validate(phone_number, amount)
        phone = normalize_phone(phone_number, self.config.mpesa_country_code)
        reference = account_reference or self.config.mpesa_default_account_reference
        desc = description or self.config.mpesa_default_transaction_desc

        mpesa_config = self.settings_provider.get_active()
        callback_url = mpesa_config.callback_url or self.config.default_callback_url
        client = self.client_factory(mpesa_config)

        logger.info(
            "Initiating STK push: phone=%s amount=%s invoice=%s",
            phone,
            value,
            invoice_id,
        )
        response = client.stk_push(
            phone_number=phone,
            amount=value,
            account_reference=reference,
            description=desc,
            callback_url=callback_url,
        )

        if str(response.get("ResponseCode")) != "0":
            message = (
                response.get("errorMessage")
                or response.get("ResponseDescription")
                or "Failed to initiate payment"
            )
            logger.error("STK push rejected: %s", response)
            raise UpstreamRejected(message, provider_response=response)

        checkout_request_id = response.get("CheckoutRequestID")
        if not checkout_request_id:
            logger.error("STK push accepted without CheckoutRequestID: %s", response)
            raise UpstreamRejected(
                "Provider did not return a CheckoutRequestID",
                provider_response=response,
            )

        self.ledger.create_transaction(
            checkout_request_id=checkout_request_id,
            merchant_request_id=response.get("MerchantRequestID"),
            student_id=student_id or None,
            invoice_id=invoice_id or None,
            phone_number=phone,
            amount=value,
            account_reference=reference,
            transaction_desc=desc,
            status=STATUS_PENDING,
        )
        logger.info("STK push accepted: checkout_request_id=%s", checkout_request_id)

        return InitiationResult(
            checkout_request_id=checkout_request_id,
            merchant_request_id=response.get("MerchantRequestID"),
            phone_number=phone,
        )

    # ── Private helpers ──────────────────────────────────────────────

    @staticmethod
    def _validate(phone_number: Optional[str], amount) -> Decimal:
        if not phone_number or not str(phone_number).strip() or amount in (None, ""):
            raise ValidationError("Phone number and amount are required")
        try:
            value = Decimal(str(amount))
        except (InvalidOperation, ValueError):
            raise ValidationError(f"Invalid amount: {amount!r}")
        if not value.is_finite() or value <= 0:
            raise ValidationError("Amount must be greater than zero")
        return value.quantize(Decimal("0.01"))

    def _default_client(self, mpesa_config: MpesaConfig) -> DarajaClient:
        return DarajaClient(
            mpesa_config,
            auth_timeout=self.config.mpesa_auth_timeout_seconds,
            request_timeout=self.config.mpesa_request_timeout_seconds,
        )
