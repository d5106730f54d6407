"""
Abstract payment provider interface.

The orchestrator only talks to providers through this interface. The real
implementation wraps the MTN MoMo collection API (see momo.py); the mock
provider simulates it for demos and tests.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Generic, Optional, TypeVar

from zonepay.engine.errors import ProviderError

T = TypeVar("T")

# Provider-side status vocabulary.
PROVIDER_PENDING = "PENDING"
PROVIDER_SUCCESSFUL = "SUCCESSFUL"
PROVIDER_FAILED = "FAILED"


@dataclass
class RequestToPayResponse:
    """Accepted payment instruction. reference_id is the idempotency key."""

    reference_id: str


@dataclass
class ProviderStatus:
    """Status of a payment instruction as reported by the provider."""

    reference_id: str
    status: str  # PENDING / SUCCESSFUL / FAILED
    financial_transaction_id: Optional[str] = None
    reason: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class ProviderResult(Generic[T]):
    """
    Outcome of a best-effort provider call.

    Used wherever a provider failure must not abort the enclosing operation:
    the caller branches on ``ok`` instead of catching exceptions.
    """

    ok: bool
    value: Optional[T] = None
    error: Optional[ProviderError] = None


async def attempt(func: Callable[..., Any], *args: Any, **kwargs: Any) -> ProviderResult:
    """Run a provider call, turning a ProviderError into a failed result."""
    try:
        return ProviderResult(ok=True, value=await func(*args, **kwargs))
    except ProviderError as e:
        return ProviderResult(ok=False, error=e)


class PaymentProvider(ABC):
    """Abstract base class for mobile-money providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier (e.g. 'momo')."""
        ...

    @abstractmethod
    async def request_to_pay(
        self,
        amount: Decimal,
        currency: Optional[str],
        phone_number: str,
        external_id: Optional[str] = None,
        payer_message: Optional[str] = None,
        payee_note: Optional[str] = None,
        reference_id: Optional[str] = None,
        callback_url: Optional[str] = None,
    ) -> RequestToPayResponse:
        """
        Submit a collection request to the payer's wallet.

        Implementations must be idempotent on reference_id: submitting the
        same reference id twice never creates two payment instructions.

        Raises:
            ProviderAuthError: Token exchange failed.
            ProviderRequestError: Non-2xx response or transport failure.
        """
        ...

    @abstractmethod
    async def get_status(self, reference_id: str) -> ProviderStatus:
        """
        Query the provider for the status of a payment instruction.

        Raises:
            ProviderValidationError: Empty reference id.
            ProviderAuthError: Token exchange failed.
            ProviderRequestError: Non-2xx response or transport failure.
        """
        ...

    async def aclose(self) -> None:
        """Release network resources. No-op by default."""
