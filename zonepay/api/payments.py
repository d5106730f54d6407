"""
Payment transaction endpoints.

POST /payments/transactions                 — Create a pending transaction and submit it.
GET  /payments/transactions                 — List pending transactions (scope, mine, filter).
POST /payments/transactions/{id}/submit     — Re-submit a transaction still pending.
GET  /payments/transactions/{id}/status     — Fresh provider status for a transaction.
POST /payments/transactions/{id}/complete   — Atomically convert into a completed payment.
GET  /payments/completed                    — List completed payments (scope, mine, filter).
GET  /payments/clients                      — Payer picker for the UI.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from zonepay.auth import PAYMENT_ROLES, Principal, require_role
from zonepay.database import get_session
from zonepay.engine.orchestrator import PaymentOrchestrator
from zonepay.engine.queries import list_clients, list_completed, list_pending, parse_filters
from zonepay.models.payment import CompletedPayment, PendingTransaction

router = APIRouter(prefix="/payments", tags=["payments"])

allowed = require_role(*PAYMENT_ROLES)


def get_orchestrator(request: Request) -> PaymentOrchestrator:
    return request.app.state.orchestrator


class CreateTransactionRequest(BaseModel):
    client_id: Any = Field(None, alias="clientId")
    amount: Any = None
    currency: Optional[str] = None
    provider: Optional[str] = None
    phone_number: Optional[str] = Field(None, alias="phoneNumber")
    purpose: Optional[str] = None
    external_ref: Optional[str] = Field(None, alias="externalRef")
    metadata: Optional[dict] = None

    model_config = {"populate_by_name": True}


class CompleteTransactionRequest(BaseModel):
    transaction_id: Optional[str] = Field(None, alias="transactionId")
    status: Optional[str] = None
    reference_id: Optional[str] = Field(None, alias="referenceId")

    model_config = {"populate_by_name": True}


class TransactionDetail(BaseModel):
    id: int
    client_id: int
    client_username: Optional[str] = None
    amount: Decimal
    currency: str
    provider: str
    phone_number: Optional[str]
    purpose: Optional[str]
    external_ref: Optional[str]
    status: str
    metadata: Optional[dict] = None
    is_paid_by_chief: bool
    paid_by_chief_id: Optional[int]
    created_at: Optional[datetime]


class PaymentDetail(BaseModel):
    id: int
    pending_id: Optional[int]
    client_id: int
    client_username: Optional[str] = None
    amount: Decimal
    currency: str
    provider: str
    phone_number: Optional[str]
    purpose: Optional[str]
    external_ref: Optional[str]
    transaction_id: Optional[str]
    status: str
    metadata: Optional[dict] = None
    is_paid_by_chief: bool
    paid_by_chief_id: Optional[int]
    created_at: Optional[datetime]
    completed_at: Optional[datetime]


class TransactionEnvelope(BaseModel):
    transaction: TransactionDetail


class TransactionList(BaseModel):
    transactions: list[TransactionDetail]


class PaymentEnvelope(BaseModel):
    payment: PaymentDetail


class PaymentList(BaseModel):
    payments: list[PaymentDetail]


class ProviderStatusResponse(BaseModel):
    reference_id: str
    status: str
    financial_transaction_id: Optional[str]
    reason: Optional[str]


class ClientSummary(BaseModel):
    id: int
    username: str


class ClientList(BaseModel):
    clients: list[ClientSummary]


def _transaction_to_detail(t: PendingTransaction, username: Optional[str] = None) -> TransactionDetail:
    return TransactionDetail(
        id=t.id,
        client_id=t.client_id,
        client_username=username,
        amount=t.amount,
        currency=t.currency,
        provider=t.provider,
        phone_number=t.phone_number,
        purpose=t.purpose,
        external_ref=t.external_ref,
        status=t.status,
        metadata=t.meta,
        is_paid_by_chief=bool(t.is_paid_by_chief),
        paid_by_chief_id=t.paid_by_chief_id,
        created_at=t.created_at,
    )


def _payment_to_detail(p: CompletedPayment, username: Optional[str] = None) -> PaymentDetail:
    return PaymentDetail(
        id=p.id,
        pending_id=p.pending_id,
        client_id=p.client_id,
        client_username=username,
        amount=p.amount,
        currency=p.currency,
        provider=p.provider,
        phone_number=p.phone_number,
        purpose=p.purpose,
        external_ref=p.external_ref,
        transaction_id=p.transaction_id,
        status=p.status,
        metadata=p.meta,
        is_paid_by_chief=bool(p.is_paid_by_chief),
        paid_by_chief_id=p.paid_by_chief_id,
        created_at=p.created_at,
        completed_at=p.completed_at,
    )


@router.post("/transactions", response_model=TransactionEnvelope, status_code=201)
async def create_transaction(
    body: CreateTransactionRequest,
    principal: Principal = Depends(allowed),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    """
    Create a pending transaction and submit the request-to-pay.

    Always returns the persisted transaction: if the provider could not be
    reached it stays "pending" and can be re-submitted later.
    """
    txn = await orchestrator.create(
        client_id=body.client_id,
        amount=body.amount,
        currency=body.currency,
        phone_number=body.phone_number,
        purpose=body.purpose,
        external_ref=body.external_ref,
        provider=body.provider,
        metadata=body.metadata,
        principal=principal,
    )
    return TransactionEnvelope(transaction=_transaction_to_detail(txn))


@router.get("/transactions", response_model=TransactionList)
async def list_transactions(
    scope: Optional[str] = Query(None, description="'chief' for rows paid by the caller on a client's behalf"),
    mine: Optional[str] = Query(None, description="'true' for the caller's own rows"),
    filter: Optional[str] = Query(None, description="'today' for the current calendar day"),
    principal: Principal = Depends(allowed),
    session: AsyncSession = Depends(get_session),
):
    """List pending transactions, newest first."""
    rows = await list_pending(session, principal, parse_filters(scope, mine, filter))
    return TransactionList(transactions=[_transaction_to_detail(t, username) for t, username in rows])


@router.post("/transactions/{transaction_id}/submit", response_model=TransactionEnvelope)
async def submit_transaction(
    transaction_id: int,
    principal: Principal = Depends(allowed),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    """Re-submit a pending transaction under its existing reference id."""
    txn = await orchestrator.submit(transaction_id)
    return TransactionEnvelope(transaction=_transaction_to_detail(txn))


@router.get("/transactions/{transaction_id}/status", response_model=ProviderStatusResponse)
async def transaction_status(
    transaction_id: int,
    principal: Principal = Depends(allowed),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    """Query the provider for the transaction's current status. Provider failures return 502."""
    status = await orchestrator.refresh_status(transaction_id)
    return ProviderStatusResponse(
        reference_id=status.reference_id,
        status=status.status,
        financial_transaction_id=status.financial_transaction_id,
        reason=status.reason,
    )


@router.post("/transactions/{transaction_id}/complete", response_model=PaymentEnvelope)
async def complete_transaction(
    transaction_id: int,
    body: Optional[CompleteTransactionRequest] = None,
    principal: Principal = Depends(allowed),
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
):
    """
    Complete a pending transaction.

    Without a transactionId the provider is asked for the authoritative
    status first; if it cannot be reached the declared status is used, or
    "unknown" when none was declared.
    """
    body = body or CompleteTransactionRequest()
    payment = await orchestrator.complete(
        transaction_id,
        transaction_id=body.transaction_id,
        status=body.status,
        reference_id=body.reference_id,
    )
    return PaymentEnvelope(payment=_payment_to_detail(payment))


@router.get("/completed", response_model=PaymentList)
async def list_completed_payments(
    scope: Optional[str] = Query(None),
    mine: Optional[str] = Query(None),
    filter: Optional[str] = Query(None),
    principal: Principal = Depends(allowed),
    session: AsyncSession = Depends(get_session),
):
    """List completed payments, newest first."""
    rows = await list_completed(session, principal, parse_filters(scope, mine, filter))
    return PaymentList(payments=[_payment_to_detail(p, username) for p, username in rows])


@router.get("/clients", response_model=ClientList)
async def payment_clients(
    principal: Principal = Depends(allowed),
    session: AsyncSession = Depends(get_session),
):
    """Clients selectable as payers."""
    clients = await list_clients(session)
    return ClientList(clients=[ClientSummary(id=c.id, username=c.username) for c in clients])
