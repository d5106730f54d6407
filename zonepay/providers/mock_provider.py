"""
Mock mobile-money provider for demos and tests.

Simulates the MoMo collection API without network access:
  - Configurable latency (default 100ms) and random failure rate
  - Deterministic failure switches for request-to-pay and status lookups
  - Idempotent on reference id: re-submitting a reference is a no-op
  - Per-reference status that tests can settle explicitly
"""

import asyncio
import random
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from zonepay.config import settings
from zonepay.engine.errors import ProviderRequestError, ProviderValidationError
from zonepay.providers.base import (
    PROVIDER_PENDING,
    PROVIDER_SUCCESSFUL,
    PaymentProvider,
    ProviderStatus,
    RequestToPayResponse,
)


@dataclass
class MockInstruction:
    reference_id: str
    amount: Decimal
    currency: Optional[str]
    phone_number: str
    external_id: Optional[str]
    status: str = PROVIDER_PENDING
    financial_transaction_id: Optional[str] = None


class MockPaymentProvider(PaymentProvider):
    """In-memory stand-in for the MoMo collection API."""

    def __init__(
        self,
        failure_rate: Optional[float] = None,
        latency_ms: Optional[int] = None,
        fail_requests: bool = False,
        fail_status: bool = False,
    ):
        self._failure_rate = failure_rate if failure_rate is not None else settings.mock_failure_rate
        self._latency_ms = latency_ms if latency_ms is not None else settings.mock_latency_ms
        self.fail_requests = fail_requests
        self.fail_status = fail_status
        self.instructions: dict[str, MockInstruction] = {}
        self.request_calls = 0
        self.status_calls = 0

    @property
    def name(self) -> str:
        return "mock_momo"

    async def _simulate_network(self) -> None:
        if self._latency_ms > 0:
            jitter = random.uniform(0.5, 1.5)
            await asyncio.sleep(self._latency_ms * jitter / 1000)

        if random.random() < self._failure_rate:
            raise ProviderRequestError(
                "Mock transient error - service temporarily unavailable",
                provider_status=503,
                retriable=True,
            )

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
        self.request_calls += 1
        if self.fail_requests:
            raise ProviderRequestError("Mock requestToPay error 500", provider_status=500)
        await self._simulate_network()

        reference_id = reference_id or str(uuid.uuid4())
        self.instructions.setdefault(
            reference_id,
            MockInstruction(
                reference_id=reference_id,
                amount=Decimal(str(amount)),
                currency=currency,
                phone_number=phone_number,
                external_id=external_id,
            ),
        )
        return RequestToPayResponse(reference_id=reference_id)

    async def get_status(self, reference_id: str) -> ProviderStatus:
        if not reference_id:
            raise ProviderValidationError("referenceId required")
        self.status_calls += 1
        if self.fail_status:
            raise ProviderRequestError("Mock status error 503", provider_status=503)
        await self._simulate_network()

        instruction = self.instructions.get(reference_id)
        if instruction is None:
            raise ProviderRequestError(
                "Mock status error 404",
                provider_status=404,
                body={"code": "RESOURCE_NOT_FOUND"},
            )
        return ProviderStatus(
            reference_id=reference_id,
            status=instruction.status,
            financial_transaction_id=instruction.financial_transaction_id,
            raw={
                "status": instruction.status,
                "financialTransactionId": instruction.financial_transaction_id,
                "externalId": instruction.external_id,
            },
        )

    def settle(self, reference_id: str, status: str, financial_transaction_id: Optional[str] = None) -> None:
        """Force the provider-side outcome of an instruction (test/demo hook)."""
        instruction = self.instructions.get(reference_id)
        if instruction is None:
            instruction = MockInstruction(
                reference_id=reference_id,
                amount=Decimal("0"),
                currency=None,
                phone_number="",
                external_id=None,
            )
            self.instructions[reference_id] = instruction
        if financial_transaction_id is None and status == PROVIDER_SUCCESSFUL:
            financial_transaction_id = f"fin_{uuid.uuid4().hex[:12]}"
        instruction.status = status
        instruction.financial_transaction_id = financial_transaction_id
