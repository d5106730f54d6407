"""
Error taxonomy for the payment subsystem.

Every error carries the HTTP status the API layer maps it to. Provider
errors additionally carry the provider's own response status and body so
failures can be diagnosed from logs without re-running the call.
"""

from typing import Any, Optional


class PaymentError(Exception):
    """Base class for all payment-subsystem errors."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PaymentError):
    """Missing or malformed caller input."""

    status_code = 400


class NotFoundError(PaymentError):
    """Referenced pending transaction (or client) does not exist."""

    status_code = 404


class ReferenceMismatchError(PaymentError):
    """Caller-supplied reference id conflicts with the stored external_ref."""

    status_code = 400


class StoreError(PaymentError):
    """Transactional persistence failure. Always aborts the enclosing transaction."""

    status_code = 500


class ConfigurationError(PaymentError):
    """Required configuration is missing or invalid at startup."""


class ProviderError(PaymentError):
    """Base exception for payment provider errors."""

    status_code = 502

    def __init__(
        self,
        message: str,
        provider_status: Optional[int] = None,
        body: Any = None,
        retriable: bool = False,
    ):
        super().__init__(message)
        self.provider_status = provider_status
        self.body = body
        self.retriable = retriable


class ProviderAuthError(ProviderError):
    """Token exchange failed (non-2xx, unreachable, or no access_token in body)."""


class ProviderRequestError(ProviderError):
    """Non-2xx response, timeout, or transport failure on a provider call."""


class ProviderValidationError(ProviderError):
    """Provider call rejected locally before any network I/O."""
