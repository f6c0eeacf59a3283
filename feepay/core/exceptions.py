"""Domain exceptions for the payment pipeline.

Each exception carries the HTTP status the API layer should answer with.
The callback endpoint never lets any of these reach the provider.
"""

from __future__ import annotations


class PaymentError(Exception):
    """Base class for all payment pipeline failures."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(PaymentError):
    """Required input is missing or malformed."""

    status_code = 400


class ConfigurationError(PaymentError):
    """No active M-Pesa settings row is available."""

    status_code = 400


class UpstreamAuthError(PaymentError):
    """The provider did not hand out an access token."""

    status_code = 502


class UpstreamRejected(PaymentError):
    """The provider refused the push request.

    ``provider_response`` keeps the raw JSON for logging.
    """

    status_code = 400

    def __init__(self, message: str, provider_response: dict | None = None) -> None:
        super().__init__(message)
        self.provider_response = provider_response or {}


class CorrelationMiss(PaymentError):
    """A callback referenced a CheckoutRequestID we never stored."""

    status_code = 404


class PersistenceError(PaymentError):
    """A ledger read or write failed."""

    status_code = 500
