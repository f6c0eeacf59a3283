"""Shared test fixtures for the feepay service tests.

Uses a SQLite database so tests run without PostgreSQL, and a mocked
``requests`` session in place of the Daraja API.
"""

from __future__ import annotations

import os

# Override DATABASE_URL before importing anything from feepay. The Settings
# model reads .env eagerly via pydantic-settings, and the module-level
# ``engine`` in feepay.core.database would try to connect to PostgreSQL.
os.environ["DATABASE_URL"] = "sqlite:///./test.db"

import uuid
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from feepay.api.routes.mpesa import get_client_factory
from feepay.core.database import Base, get_db
from feepay.main import app
from feepay.models.fee_invoice import FeeInvoice
from feepay.models.mpesa_settings import MpesaSettings
from feepay.models.mpesa_transaction import MpesaTransaction
from feepay.services.mpesa.client import DarajaClient

# Use SQLite file-based database for tests (no PostgreSQL needed)
TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)


@event.listens_for(engine, "connect")
def _set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

ACCEPTED_PUSH = {
    "MerchantRequestID": "29115-34620561-1",
    "CheckoutRequestID": "ws_CO_191220191020363925",
    "ResponseCode": "0",
    "ResponseDescription": "Success. Request accepted for processing",
    "CustomerMessage": "Success. Request accepted for processing",
}


def make_response(data, status_code: int = 200) -> MagicMock:
    """Minimal stand-in for ``requests.Response``."""
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = data
    return response


def make_daraja_session(
    push_response: dict | None = None,
    token: str | None = "test-token",
) -> MagicMock:
    """A mocked ``requests.Session`` answering the token and push calls."""
    session = MagicMock()
    token_body = {"access_token": token, "expires_in": "3599"} if token else {
        "errorCode": "400.008.01",
        "errorMessage": "Invalid Authentication passed",
    }
    session.get.return_value = make_response(token_body)
    session.post.return_value = make_response(
        ACCEPTED_PUSH if push_response is None else push_response
    )
    return session


def success_callback(
    checkout_request_id: str = "ws_CO_191220191020363925",
    amount=4000,
    receipt: str = "NLJ7RT61SV",
    transaction_date=20240115102115,
    phone=254712345678,
) -> dict:
    return {
        "Body": {
            "stkCallback": {
                "MerchantRequestID": "29115-34620561-1",
                "CheckoutRequestID": checkout_request_id,
                "ResultCode": 0,
                "ResultDesc": "The service request is processed successfully.",
                "CallbackMetadata": {
                    "Item": [
                        {"Name": "Amount", "Value": amount},
                        {"Name": "MpesaReceiptNumber", "Value": receipt},
                        {"Name": "Balance"},
                        {"Name": "TransactionDate", "Value": transaction_date},
                        {"Name": "PhoneNumber", "Value": phone},
                    ]
                },
            }
        }
    }


def failed_callback(
    checkout_request_id: str = "ws_CO_191220191020363925",
    result_code=1032,
    result_desc: str = "Request cancelled by user",
) -> dict:
    return {
        "Body": {
            "stkCallback": {
                "MerchantRequestID": "29115-34620561-1",
                "CheckoutRequestID": checkout_request_id,
                "ResultCode": result_code,
                "ResultDesc": result_desc,
            }
        }
    }


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def daraja_session() -> MagicMock:
    return make_daraja_session()


@pytest.fixture(scope="function")
def client(db_session, daraja_session):
    """FastAPI test client with overridden DB and Daraja dependencies."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    def override_client_factory():
        return lambda config: DarajaClient(config, session=daraja_session)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_client_factory] = override_client_factory
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def active_settings(db_session) -> MpesaSettings:
    row = MpesaSettings(
        consumer_key="key",
        consumer_secret="secret",
        business_short_code="174379",
        passkey="passkey",
        callback_url=None,
        environment="sandbox",
        is_active=True,
    )
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture
def make_invoice(db_session):
    """Factory inserting a fee invoice."""

    def _make(total="10000", balance="4000", status="Partial") -> FeeInvoice:
        total_amount = Decimal(total)
        balance_due = Decimal(balance)
        invoice = FeeInvoice(
            id=uuid.uuid4(),
            invoice_number=f"INV-{uuid.uuid4().hex[:8].upper()}",
            student_id="STU-001",
            total_amount=total_amount,
            amount_paid=total_amount - balance_due,
            balance_due=balance_due,
            credit_balance=Decimal("0"),
            status=status,
        )
        db_session.add(invoice)
        db_session.commit()
        return invoice

    return _make


@pytest.fixture
def make_transaction(db_session):
    """Factory inserting a pending M-Pesa transaction."""

    def _make(
        checkout_request_id="ws_CO_191220191020363925",
        invoice_id=None,
        amount="4000",
        status="pending",
    ) -> MpesaTransaction:
        txn = MpesaTransaction(
            id=uuid.uuid4(),
            checkout_request_id=checkout_request_id,
            merchant_request_id="29115-34620561-1",
            student_id="STU-001",
            invoice_id=invoice_id,
            phone_number="254712345678",
            amount=Decimal(amount),
            account_reference="SchoolFees",
            transaction_desc="Fee Payment",
            status=status,
        )
        db_session.add(txn)
        db_session.commit()
        return txn

    return _make
