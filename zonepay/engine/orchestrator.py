"""
Payment orchestrator — the transaction state machine.

Lifecycle of a payment attempt:

  pending ──(provider accepts request-to-pay)──> initiated
     │                                              │
     └──────────────(complete)──────────────────────┴──> CompletedPayment
                                                        (success | failed | unknown | caller value)

Guarantees:
  - create() always returns a persisted row once the insert commits; provider
    failures leave it "pending" for a later submit() instead of raising.
  - complete() is all-or-nothing: the CompletedPayment insert, the audit entry
    and the pending-row delete commit together or not at all.
  - complete() succeeds at most once per pending id. The row is locked on load
    where the store supports it, and the delete must hit exactly one row.
  - external_ref never changes once set; a conflicting caller reference is
    rejected before anything is written.
"""

import logging
import uuid
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from zonepay.audit.logger import log_event
from zonepay.engine.errors import (
    NotFoundError,
    PaymentError,
    ReferenceMismatchError,
    StoreError,
    ValidationError,
)
from zonepay.engine.phone import normalize_phone
from zonepay.engine.validation import (
    default_purpose,
    parse_positive_int,
    validate_completion_status,
    validate_create,
    validate_reference,
)
from zonepay.models.enums import PaymentStatus, Role, TransactionStatus
from zonepay.models.payment import Client, CompletedPayment, PendingTransaction
from zonepay.providers.base import (
    PROVIDER_FAILED,
    PROVIDER_SUCCESSFUL,
    PaymentProvider,
    ProviderStatus,
    attempt,
)

logger = logging.getLogger("zonepay.orchestrator")

_PROVIDER_TO_PAYMENT_STATUS = {
    PROVIDER_SUCCESSFUL: PaymentStatus.SUCCESS.value,
    PROVIDER_FAILED: PaymentStatus.FAILED.value,
}


def map_provider_status(provider_status: Optional[str]) -> Optional[str]:
    """SUCCESSFUL -> success, FAILED -> failed, anything else -> None (unresolved)."""
    return _PROVIDER_TO_PAYMENT_STATUS.get((provider_status or "").upper())


class PaymentOrchestrator:
    """
    Drives pending transactions through the provider and into completed payments.

    Args:
        session_factory: Produces one AsyncSession per operation.
        provider: Mobile-money provider implementation.
        default_currency: Currency used when the caller gives none.
        default_country_code: Used to normalize phone numbers to MSISDN.
        unresolved_status: Recorded when a completion has neither a caller
            status nor a conclusive provider status.
        callback_url: Optional X-Callback-Url forwarded to the provider.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        provider: PaymentProvider,
        default_currency: str = "EUR",
        default_country_code: str = "250",
        unresolved_status: str = PaymentStatus.UNKNOWN.value,
        callback_url: Optional[str] = None,
    ):
        self._session_factory = session_factory
        self._provider = provider
        self._default_currency = default_currency
        self._country_code = default_country_code
        self._unresolved_status = unresolved_status
        self._callback_url = callback_url or None

    @property
    def provider(self) -> PaymentProvider:
        return self._provider

    # ── Create ───────────────────────────────────────────────────────

    async def create(
        self,
        client_id: Any,
        amount: Any,
        currency: Optional[str] = None,
        phone_number: Optional[str] = None,
        purpose: Optional[str] = None,
        external_ref: Optional[str] = None,
        provider: Optional[str] = None,
        metadata: Optional[dict] = None,
        principal: Any = None,
    ) -> PendingTransaction:
        """
        Persist a pending transaction and submit it to the provider.

        Raises:
            ValidationError: Missing/invalid input or no resolvable phone number.
            NotFoundError: Unknown client.
            StoreError: The pending row could not be persisted.
        """
        request = validate_create(client_id, amount, currency, provider, purpose, external_ref)
        is_proxy = principal is not None and principal.role == Role.CHIEF.value

        async with self._session_factory() as session:
            client = await session.get(Client, request.client_id)
            if client is None:
                raise NotFoundError(f"Client not found: {request.client_id}")

            if is_proxy and not phone_number:
                raise ValidationError("phoneNumber is required when paying on behalf of a client")
            raw_phone = phone_number or client.phone_number
            if not raw_phone:
                raise ValidationError("phoneNumber is required (client has no phone number on file)")
            msisdn = normalize_phone(raw_phone, self._country_code)
            if not msisdn:
                raise ValidationError(f"Invalid phoneNumber: {raw_phone!r}")

            if request.external_ref:
                await self._ensure_reference_unused(session, request.external_ref)

            txn = PendingTransaction(
                client_id=request.client_id,
                amount=request.amount,
                currency=request.currency or self._default_currency,
                provider=request.provider,
                phone_number=msisdn,
                purpose=request.purpose or default_purpose(),
                external_ref=request.external_ref or str(uuid.uuid4()),
                status=TransactionStatus.PENDING.value,
                meta=metadata,
                is_paid_by_chief=is_proxy,
                paid_by_chief_id=principal.id if is_proxy else None,
            )
            session.add(txn)
            try:
                await session.flush()
                await log_event(session, "transaction_created", pending_id=txn.id, external_ref=txn.external_ref, details={
                    "client_id": txn.client_id,
                    "amount": txn.amount,
                    "currency": txn.currency,
                    "paid_by_chief": txn.is_paid_by_chief,
                })
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                if isinstance(e, IntegrityError) and request.external_ref and "external_ref" in str(e.orig):
                    # Lost a race with a concurrent create using the same reference.
                    raise ValidationError(f"externalRef already in use: {request.external_ref}") from e
                logger.error("Failed to persist pending transaction for client %s: %s", request.client_id, e)
                raise StoreError("Failed to persist pending transaction") from e

            logger.info(
                "Pending transaction %s created for client %s (%s %s, ref=%s)",
                txn.id,
                txn.client_id,
                txn.amount,
                txn.currency,
                txn.external_ref,
            )
            return await self._submit(session, txn)

    async def _ensure_reference_unused(self, session: AsyncSession, external_ref: str) -> None:
        pending = await session.scalar(
            select(PendingTransaction.id).where(PendingTransaction.external_ref == external_ref)
        )
        completed = await session.scalar(
            select(CompletedPayment.id).where(CompletedPayment.external_ref == external_ref)
        )
        if pending is not None or completed is not None:
            raise ValidationError(f"externalRef already in use: {external_ref}")

    # ── Submit ───────────────────────────────────────────────────────

    async def submit(self, pending_id: Any) -> PendingTransaction:
        """
        Re-submit a still-pending transaction under its existing reference id.

        Already-initiated rows are returned untouched. Provider failures are
        non-fatal, exactly as in create().
        """
        pending_id = parse_positive_int(pending_id, "id")
        async with self._session_factory() as session:
            txn = await session.get(PendingTransaction, pending_id)
            if txn is None:
                raise NotFoundError(f"Pending transaction not found: {pending_id}")
            if txn.status == TransactionStatus.INITIATED.value:
                return txn

            if not txn.external_ref:
                txn.external_ref = str(uuid.uuid4())
                try:
                    await session.commit()
                except SQLAlchemyError as e:
                    await session.rollback()
                    raise StoreError("Failed to assign a reference id") from e

            return await self._submit(session, txn)

    async def _submit(self, session: AsyncSession, txn: PendingTransaction) -> PendingTransaction:
        result = await attempt(
            self._provider.request_to_pay,
            amount=Decimal(txn.amount),
            currency=txn.currency,
            phone_number=txn.phone_number,
            external_id=txn.external_ref,
            payer_message=txn.purpose,
            payee_note=txn.purpose,
            reference_id=txn.external_ref,
            callback_url=self._callback_url,
        )

        if result.ok:
            txn.status = TransactionStatus.INITIATED.value
            await log_event(session, "request_submitted", pending_id=txn.id, external_ref=txn.external_ref, details={
                "provider": self._provider.name,
                "reference_id": result.value.reference_id,
            })
        else:
            error = result.error
            logger.warning(
                "Provider request-to-pay failed for transaction %s (ref=%s): %s; left pending",
                txn.id,
                txn.external_ref,
                error,
            )
            await log_event(session, "request_failed", pending_id=txn.id, external_ref=txn.external_ref, details={
                "provider": self._provider.name,
                "error": str(error),
                "provider_status": error.provider_status,
            })

        txn_id = txn.id
        try:
            await session.commit()
        except SQLAlchemyError as e:
            # Rollback expires txn; nothing below may touch its attributes before the reload.
            await session.rollback()
            logger.error("Failed to record submission outcome for transaction %s: %s", txn_id, e)
            try:
                current = await session.get(PendingTransaction, txn_id, populate_existing=True)
            except SQLAlchemyError as reload_error:
                raise StoreError(f"Failed to reload pending transaction {txn_id}") from reload_error
            if current is None:
                # Completed concurrently.
                raise NotFoundError(f"Pending transaction not found: {txn_id}") from e
            return current
        return txn

    # ── Status ───────────────────────────────────────────────────────

    async def refresh_status(self, pending_id: Any) -> ProviderStatus:
        """
        Ask the provider for the current status of a pending transaction.

        Unlike the best-effort lookup inside complete(), provider errors
        propagate: the caller asked for fresh status explicitly.
        """
        pending_id = parse_positive_int(pending_id, "id")
        async with self._session_factory() as session:
            txn = await session.get(PendingTransaction, pending_id)
            if txn is None:
                raise NotFoundError(f"Pending transaction not found: {pending_id}")
            reference_id = txn.external_ref

        if not reference_id:
            raise ValidationError(f"Pending transaction {pending_id} has no reference id")
        status = await self._provider.get_status(reference_id)
        logger.info("Provider status for transaction %s (ref=%s): %s", pending_id, reference_id, status.status)
        return status

    # ── Complete ─────────────────────────────────────────────────────

    async def complete(
        self,
        pending_id: Any,
        transaction_id: Optional[str] = None,
        status: Optional[str] = None,
        reference_id: Optional[str] = None,
    ) -> CompletedPayment:
        """
        Atomically convert a pending transaction into a completed payment.

        Raises:
            NotFoundError: No such pending transaction (or it was already completed).
            ReferenceMismatchError: reference_id conflicts with the stored external_ref.
            StoreError: Persistence failed; nothing was changed.
        """
        pending_id = parse_positive_int(pending_id, "id")
        declared_status = validate_completion_status(status)
        caller_ref = validate_reference(reference_id)
        if transaction_id is not None:
            transaction_id = str(transaction_id).strip() or None

        async with self._session_factory() as session:
            try:
                async with session.begin():
                    payment = await self._complete_in_transaction(
                        session, pending_id, transaction_id, declared_status, caller_ref
                    )
            except PaymentError:
                raise
            except SQLAlchemyError as e:
                logger.error("Completion of transaction %s rolled back: %s", pending_id, e)
                raise StoreError(f"Failed to complete transaction {pending_id}") from e

        logger.info(
            "Transaction %s completed as payment %s: status=%s txn=%s ref=%s",
            pending_id,
            payment.id,
            payment.status,
            payment.transaction_id or "-",
            payment.external_ref or "-",
        )
        return payment

    async def _complete_in_transaction(
        self,
        session: AsyncSession,
        pending_id: int,
        transaction_id: Optional[str],
        declared_status: Optional[str],
        caller_ref: Optional[str],
    ) -> CompletedPayment:
        # Step 1: load and lock
        txn = (
            await session.execute(
                select(PendingTransaction)
                .where(PendingTransaction.id == pending_id)
                .with_for_update()
            )
        ).scalar_one_or_none()
        if txn is None:
            raise NotFoundError(f"Pending transaction not found: {pending_id}")

        # Step 2: reference reconciliation
        if txn.external_ref and caller_ref and caller_ref != txn.external_ref:
            raise ReferenceMismatchError(
                f"referenceId {caller_ref} does not match transaction {pending_id}"
            )
        effective_ref = txn.external_ref or caller_ref

        # Step 3: best-effort provider lookup
        provider_status = None
        status_source = "caller" if declared_status else None
        lookup_error = None
        if transaction_id is None and effective_ref:
            result = await attempt(self._provider.get_status, effective_ref)
            if result.ok:
                transaction_id = result.value.financial_transaction_id
                provider_status = result.value.status
            else:
                lookup_error = str(result.error)
                logger.warning(
                    "Provider status lookup failed for transaction %s (ref=%s): %s; using declared status",
                    pending_id,
                    effective_ref,
                    result.error,
                )

        final_status = declared_status
        if final_status is None:
            final_status = map_provider_status(provider_status)
            status_source = "provider" if final_status else "unresolved"
        if final_status is None:
            final_status = self._unresolved_status

        # Step 4: insert the completed record
        payment = CompletedPayment(
            pending_id=txn.id,
            client_id=txn.client_id,
            amount=txn.amount,
            currency=txn.currency,
            provider=txn.provider,
            phone_number=txn.phone_number,
            purpose=txn.purpose,
            external_ref=effective_ref,
            transaction_id=transaction_id,
            status=final_status,
            meta=txn.meta,
            is_paid_by_chief=txn.is_paid_by_chief,
            paid_by_chief_id=txn.paid_by_chief_id,
            created_at=txn.created_at,
        )
        await self._insert_completed(session, payment)
        await log_event(session, "payment_completed", pending_id=txn.id, completed_id=payment.id, external_ref=effective_ref, details={
            "status": final_status,
            "status_source": status_source,
            "provider_status": provider_status,
            "transaction_id": transaction_id,
            "lookup_error": lookup_error,
            "backfilled_ref": bool(effective_ref and not txn.external_ref),
        })

        # Step 5: consume the pending row
        await self._delete_pending(session, txn)
        return payment

    async def _insert_completed(self, session: AsyncSession, payment: CompletedPayment) -> None:
        session.add(payment)
        await session.flush()

    async def _delete_pending(self, session: AsyncSession, txn: PendingTransaction) -> None:
        result = await session.execute(
            delete(PendingTransaction).where(PendingTransaction.id == txn.id)
        )
        if result.rowcount != 1:
            # A concurrent completion consumed the row first.
            raise NotFoundError(f"Pending transaction not found: {txn.id}")
