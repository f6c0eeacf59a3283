"""M-Pesa endpoints.

Covers STK push initiation, the provider callback, transaction polling
for the UI, a live status query and a credentials check.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from feepay.core.config import settings
from feepay.core.database import get_db
from feepay.core.exceptions import UpstreamAuthError
from feepay.core.logging import get_logger
from feepay.models.mpesa_transaction import MpesaTransaction
from feepay.schemas.mpesa import (
    CallbackAck,
    ConnectionCheckRequest,
    ConnectionCheckResponse,
    ErrorResponse,
    StkPushRequest,
    StkPushResponse,
    StkQueryResponse,
    TransactionStatusResponse,
)
from feepay.services.ledger import LedgerStore
from feepay.services.mpesa.client import DarajaClient
from feepay.services.mpesa.config_provider import (
    DatabaseSettingsProvider,
    MpesaConfig,
)
from feepay.services.payments.callback import CallbackReceiver
from feepay.services.payments.initiator import ClientFactory, PaymentInitiator

logger = get_logger(__name__)

router = APIRouter()


def get_client_factory() -> ClientFactory:
    """Dependency returning how Daraja clients are built (overridden in tests)."""

    def factory(config: MpesaConfig) -> DarajaClient:
        return DarajaClient(
            config,
            auth_timeout=settings.mpesa_auth_timeout_seconds,
            request_timeout=settings.mpesa_request_timeout_seconds,
        )

    return factory


def _get_transaction(db: Session, checkout_request_id: str) -> MpesaTransaction:
    txn = LedgerStore(db).find_transaction(checkout_request_id)
    if txn is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return txn


@router.post(
    "/stk-push",
    response_model=StkPushResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid request or push rejected"},
        500: {"model": ErrorResponse, "description": "Ledger write failed"},
        502: {"model": ErrorResponse, "description": "Daraja authentication failed"},
    },
)
def initiate_stk_push(
    body: StkPushRequest,
    db: Session = Depends(get_db),
    client_factory: ClientFactory = Depends(get_client_factory),
) -> StkPushResponse:
    """Send an STK push to the payer's phone.

    Returns the checkout/merchant request IDs the UI uses to poll for the
    outcome. Failures are rendered as ``{"success": false, "error": ...}``.
    """
    initiator = PaymentInitiator(
        ledger=LedgerStore(db),
        settings_provider=DatabaseSettingsProvider(db),
        config=settings,
        client_factory=client_factory,
    )
    result = initiator.initiate(
        phone_number=body.phone_number,
        amount=body.amount,
        student_id=body.student_id,
        invoice_id=body.invoice_id,
        account_reference=body.account_reference,
        description=body.transaction_desc,
    )
    return StkPushResponse(
        checkout_request_id=result.checkout_request_id,
        merchant_request_id=result.merchant_request_id,
    )


@router.post("/callback", response_model=CallbackAck)
async def mpesa_callback(
    request: Request,
    db: Session = Depends(get_db),
) -> JSONResponse:
    """Daraja result callback.

    Always answers 200 with ``{"ResultCode": 0, "ResultDesc": "Accepted"}``;
    anything else makes the provider redeliver.
    """
    raw_body = await request.body()
    receiver = CallbackReceiver(ledger=LedgerStore(db), config=settings)
    ack = await run_in_threadpool(receiver.handle, raw_body)
    return JSONResponse(status_code=200, content=ack)


@router.get(
    "/transactions/{checkout_request_id}",
    response_model=TransactionStatusResponse,
)
def get_transaction_status(
    checkout_request_id: str,
    db: Session = Depends(get_db),
) -> MpesaTransaction:
    """Current state of a push, polled by the UI until it leaves ``pending``."""
    return _get_transaction(db, checkout_request_id)


@router.post(
    "/transactions/{checkout_request_id}/query",
    response_model=StkQueryResponse,
)
def query_transaction(
    checkout_request_id: str,
    db: Session = Depends(get_db),
    client_factory: ClientFactory = Depends(get_client_factory),
) -> StkQueryResponse:
    """Ask the provider for a push's status. Does not touch the ledger."""
    txn = _get_transaction(db, checkout_request_id)
    config = DatabaseSettingsProvider(db).get_active()
    data = client_factory(config).stk_query(txn.checkout_request_id)

    result_code = data.get("ResultCode")
    return StkQueryResponse(
        checkout_request_id=txn.checkout_request_id,
        result_code=str(result_code) if result_code is not None else None,
        result_desc=data.get("ResultDesc") or data.get("errorMessage"),
        raw=data,
    )


@router.post("/test-connection", response_model=ConnectionCheckResponse)
def test_connection(
    body: ConnectionCheckRequest,
    client_factory: ClientFactory = Depends(get_client_factory),
) -> ConnectionCheckResponse:
    """Check that a consumer key/secret pair can obtain a token."""
    config = MpesaConfig(
        consumer_key=body.consumer_key,
        consumer_secret=body.consumer_secret,
        environment=body.environment,
    )
    try:
        client_factory(config).test_connection()
    except UpstreamAuthError as exc:
        logger.warning("Connection test failed: %s", exc.message)
        return ConnectionCheckResponse(success=False, error=exc.message)
    return ConnectionCheckResponse(success=True, message="Connection successful")
