"""Tests for PaymentInitiator against a SQLite ledger and a mocked Daraja."""

from __future__ import annotations

import uuid
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from conftest import make_daraja_session
from feepay.core.config import Settings
from feepay.core.exceptions import (
    ConfigurationError,
    PersistenceError,
    UpstreamAuthError,
    UpstreamRejected,
    ValidationError,
)
from feepay.models.mpesa_transaction import MpesaTransaction
from feepay.services.ledger import LedgerStore
from feepay.services.mpesa.client import DarajaClient
from feepay.services.mpesa.config_provider import (
    DatabaseSettingsProvider,
    MpesaConfig,
    SettingsProvider,
)
from feepay.services.payments.initiator import PaymentInitiator

CONFIG = MpesaConfig(
    consumer_key="key",
    consumer_secret="secret",
    business_short_code="174379",
    passkey="passkey",
)


def _provider(mpesa_config: MpesaConfig) -> MagicMock:
    provider = MagicMock(spec=SettingsProvider)
    provider.get_active.return_value = mpesa_config
    return provider


def _initiator(db_session, session, mpesa_config=CONFIG, config=None):
    return PaymentInitiator(
        ledger=LedgerStore(db_session),
        settings_provider=_provider(mpesa_config),
        config=config or Settings(public_base_url="https://pay.school.ac.ke"),
        client_factory=lambda cfg: DarajaClient(cfg, session=session),
    )


def _rows(db_session) -> list[MpesaTransaction]:
    return db_session.query(MpesaTransaction).all()


class TestInitiateSuccess:
    def test_creates_one_pending_transaction(self, db_session):
        session = make_daraja_session()
        invoice_id = uuid.uuid4()

        result = _initiator(db_session, session).initiate(
            phone_number="0712345678",
            amount=Decimal("4000"),
            student_id="STU-001",
            invoice_id=invoice_id,
        )

        assert result.checkout_request_id == "ws_CO_191220191020363925"
        assert result.merchant_request_id == "29115-34620561-1"

        rows = _rows(db_session)
        assert len(rows) == 1
        txn = rows[0]
        assert txn.status == "pending"
        assert txn.checkout_request_id == "ws_CO_191220191020363925"
        assert txn.phone_number == "254712345678"
        assert txn.amount == Decimal("4000.00")
        assert txn.invoice_id == invoice_id
        assert txn.student_id == "STU-001"
        assert txn.account_reference == "SchoolFees"
        assert txn.transaction_desc == "Fee Payment"

    def test_default_callback_url(self, db_session):
        session = make_daraja_session()
        _initiator(db_session, session).initiate("0712345678", 100)

        payload = session.post.call_args.kwargs["json"]
        assert payload["CallBackURL"] == "https://pay.school.ac.ke/api/v1/mpesa/callback"

    def test_configured_callback_url_wins(self, db_session):
        session = make_daraja_session()
        config = MpesaConfig(
            consumer_key="key",
            consumer_secret="secret",
            business_short_code="174379",
            passkey="passkey",
            callback_url="https://hooks.example.com/mpesa",
        )
        _initiator(db_session, session, mpesa_config=config).initiate("0712345678", 100)

        payload = session.post.call_args.kwargs["json"]
        assert payload["CallBackURL"] == "https://hooks.example.com/mpesa"

    def test_custom_reference_and_description(self, db_session):
        session = make_daraja_session()
        _initiator(db_session, session).initiate(
            "+254712345678",
            "250",
            account_reference="ADM-0042",
            description="Term 1 fees",
        )

        payload = session.post.call_args.kwargs["json"]
        assert payload["AccountReference"] == "ADM-0042"
        assert payload["TransactionDesc"] == "Term 1 fees"
        assert _rows(db_session)[0].account_reference == "ADM-0042"

    def test_reads_settings_from_database(self, db_session, active_settings):
        session = make_daraja_session()
        initiator = PaymentInitiator(
            ledger=LedgerStore(db_session),
            settings_provider=DatabaseSettingsProvider(db_session),
            config=Settings(),
            client_factory=lambda cfg: DarajaClient(cfg, session=session),
        )

        initiator.initiate("0712345678", 100)

        assert session.post.call_args.kwargs["json"]["BusinessShortCode"] == "174379"
        assert len(_rows(db_session)) == 1


class TestInitiateFailures:
    @pytest.mark.parametrize(
        "phone, amount",
        [(None, 100), ("", 100), ("   ", 100), ("0712345678", None), ("0712345678", "")],
    )
    def test_missing_input(self, db_session, phone, amount):
        session = make_daraja_session()

        with pytest.raises(ValidationError):
            _initiator(db_session, session).initiate(phone, amount)

        session.get.assert_not_called()
        assert _rows(db_session) == []

    @pytest.mark.parametrize("amount", [0, -5, "abc"])
    def test_invalid_amount(self, db_session, amount):
        with pytest.raises(ValidationError):
            _initiator(db_session, make_daraja_session()).initiate("0712345678", amount)

    def test_no_active_settings(self, db_session):
        session = make_daraja_session()
        initiator = PaymentInitiator(
            ledger=LedgerStore(db_session),
            settings_provider=DatabaseSettingsProvider(db_session),
            config=Settings(),
            client_factory=lambda cfg: DarajaClient(cfg, session=session),
        )

        with pytest.raises(ConfigurationError):
            initiator.initiate("0712345678", 100)
        session.get.assert_not_called()

    def test_inactive_settings_are_ignored(self, db_session, active_settings):
        active_settings.is_active = False
        db_session.commit()

        with pytest.raises(ConfigurationError):
            DatabaseSettingsProvider(db_session).get_active()

    def test_auth_failure_creates_no_row(self, db_session):
        session = make_daraja_session(token=None)

        with pytest.raises(UpstreamAuthError):
            _initiator(db_session, session).initiate("0712345678", 100)

        session.post.assert_not_called()
        assert _rows(db_session) == []

    def test_rejection_surfaces_provider_message(self, db_session):
        session = make_daraja_session(
            push_response={
                "requestId": "11728-2929992-1",
                "errorCode": "400.002.02",
                "errorMessage": "Bad Request - Invalid PhoneNumber",
            }
        )

        with pytest.raises(UpstreamRejected) as exc_info:
            _initiator(db_session, session).initiate("0712345678", 100)

        assert exc_info.value.message == "Bad Request - Invalid PhoneNumber"
        assert _rows(db_session) == []

    def test_non_zero_response_code_uses_description(self, db_session):
        session = make_daraja_session(
            push_response={"ResponseCode": "1", "ResponseDescription": "Rejected"}
        )

        with pytest.raises(UpstreamRejected) as exc_info:
            _initiator(db_session, session).initiate("0712345678", 100)
        assert exc_info.value.message == "Rejected"

    def test_ledger_failure_is_surfaced(self, db_session):
        ledger = MagicMock()
        ledger.create_transaction.side_effect = PersistenceError("Failed to insert transaction")
        initiator = PaymentInitiator(
            ledger=ledger,
            settings_provider=_provider(CONFIG),
            config=Settings(),
            client_factory=lambda cfg: DarajaClient(cfg, session=make_daraja_session()),
        )

        with pytest.raises(PersistenceError):
            initiator.initiate("0712345678", 100)
