"""Daraja (Safaricom M-Pesa) HTTP client.

Thin wrapper over ``requests`` covering the three calls the payment
pipeline needs: the OAuth token, the STK push and the STK push query.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

import requests

from feepay.core.exceptions import UpstreamAuthError, UpstreamRejected
from feepay.core.logging import get_logger
from feepay.services.mpesa.config_provider import MpesaConfig
from feepay.services.mpesa.formatting import (
    build_password,
    build_timestamp,
    to_whole_amount,
)

logger = get_logger(__name__)

TOKEN_PATH = "/oauth/v1/generate?grant_type=client_credentials"
STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"
STK_QUERY_PATH = "/mpesa/stkpushquery/v1/query"


def _json_or_empty(response: requests.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        logger.warning(
            "Non-JSON response from Daraja: status=%s", response.status_code
        )
        return {}
    return data if isinstance(data, dict) else {}


class DarajaClient:
    """Talks to the Daraja API on behalf of one ``MpesaConfig``."""

    def __init__(
        self,
        config: MpesaConfig,
        session: Optional[requests.Session] = None,
        auth_timeout: float = 20.0,
        request_timeout: float = 30.0,
    ) -> None:
        self.config = config
        self.session = session or requests.Session()
        self.auth_timeout = auth_timeout
        self.request_timeout = request_timeout

    # ── Public API ───────────────────────────────────────────────────

    def get_access_token(self) -> str:
        """Fetch a short-lived bearer token using client credentials.

        Raises:
            UpstreamAuthError: If the request fails or no token comes back.
        """
        try:
            response = self.session.get(
                f"{self.config.base_url}{TOKEN_PATH}",
                auth=(self.config.consumer_key, self.config.consumer_secret),
                timeout=self.auth_timeout,
            )
        except requests.RequestException as exc:
            logger.error("Daraja token request failed: %s", exc)
            raise UpstreamAuthError("Failed to connect to M-Pesa API") from exc

        data = _json_or_empty(response)
        token = data.get("access_token")
        if not token:
            logger.error("Token error: %s", data)
            raise UpstreamAuthError(
                data.get("errorMessage") or "Failed to authenticate with M-Pesa"
            )
        return token

    def stk_push(
        self,
        phone_number: str,
        amount,
        account_reference: str,
        description: str,
        callback_url: str,
        now: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """Send an STK push and return the provider's JSON response.

        The caller decides what a non-zero ``ResponseCode`` means.
        """
        token = self.get_access_token()
        timestamp = build_timestamp(now)
        payload = {
            "BusinessShortCode": self.config.business_short_code,
            "Password": build_password(
                self.config.business_short_code, self.config.passkey, timestamp
            ),
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": to_whole_amount(amount),
            "PartyA": phone_number,
            "PartyB": self.config.business_short_code,
            "PhoneNumber": phone_number,
            "CallBackURL": callback_url,
            "AccountReference": account_reference,
            "TransactionDesc": description,
        }
        return self._post(STK_PUSH_PATH, payload, token)

    def stk_query(
        self,
        checkout_request_id: str,
        now: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """Ask the provider for the current state of a push request."""
        token = self.get_access_token()
        timestamp = build_timestamp(now)
        payload = {
            "BusinessShortCode": self.config.business_short_code,
            "Password": build_password(
                self.config.business_short_code, self.config.passkey, timestamp
            ),
            "Timestamp": timestamp,
            "CheckoutRequestID": checkout_request_id,
        }
        return self._post(STK_QUERY_PATH, payload, token)

    def test_connection(self) -> bool:
        """True when the configured credentials yield a token."""
        self.get_access_token()
        return True

    # ── Private helpers ──────────────────────────────────────────────

    def _post(self, path: str, payload: dict[str, Any], token: str) -> dict[str, Any]:
        try:
            response = self.session.post(
                f"{self.config.base_url}{path}",
                json=payload,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                },
                timeout=self.request_timeout,
            )
        except requests.RequestException as exc:
            logger.error("Daraja request to %s failed: %s", path, exc)
            raise UpstreamRejected("Failed to connect to M-Pesa API") from exc

        data = _json_or_empty(response)
        logger.info(
            "Daraja %s response: status=%s body=%s", path, response.status_code, data
        )
        return data
