"""SQLAlchemy models for pending transactions and completed payments."""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, validates


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Client(Base):
    """
    Payer account. Owned by the client-management side of the system;
    payments only read it to resolve a default phone number.
    """

    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), nullable=False, unique=True)
    name = Column(String(200), nullable=True)
    phone_number = Column(String(32), nullable=True)
    zone_id = Column(Integer, nullable=True, index=True)


class PendingTransaction(Base):
    """
    One in-flight payment attempt.

    Created as "pending", moved to "initiated" once the provider accepts the
    request-to-pay, and deleted when it is converted into a CompletedPayment.
    external_ref is the provider reference id (idempotency key) and never
    changes once set.
    """

    __tablename__ = "payments_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    amount = Column(Numeric(14, 2), nullable=False)
    currency = Column(String(8), nullable=False)
    provider = Column(String(32), nullable=False, default="momo")
    phone_number = Column(String(32), nullable=True)
    purpose = Column(String(255), nullable=True)
    external_ref = Column(String(64), nullable=True, unique=True)
    status = Column(String(20), nullable=False, default="pending")
    meta = Column("metadata", JSON, nullable=True)
    is_paid_by_chief = Column(Boolean, nullable=False, default=False)
    paid_by_chief_id = Column(Integer, nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    @validates("external_ref")
    def _freeze_external_ref(self, key, value):
        current = self.external_ref
        if current is not None and value != current:
            raise ValueError(f"external_ref is immutable once set ({current!r} -> {value!r})")
        return value


class CompletedPayment(Base):
    """
    Terminal record of a payment attempt. Append-only: written once, in the
    same transaction that deletes the originating pending row.
    """

    __tablename__ = "payments_completed"

    id = Column(Integer, primary_key=True, autoincrement=True)
    pending_id = Column(Integer, nullable=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    amount = Column(Numeric(14, 2), nullable=False)
    currency = Column(String(8), nullable=False)
    provider = Column(String(32), nullable=False, default="momo")
    phone_number = Column(String(32), nullable=True)
    purpose = Column(String(255), nullable=True)
    external_ref = Column(String(64), nullable=True, index=True)
    transaction_id = Column(String(128), nullable=True)  # provider financialTransactionId
    status = Column(String(20), nullable=False)
    meta = Column("metadata", JSON, nullable=True)
    is_paid_by_chief = Column(Boolean, nullable=False, default=False)
    paid_by_chief_id = Column(Integer, nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), default=_utcnow, index=True)


class PaymentEvent(Base):
    """
    Immutable audit trail entry.

    Written in the same transaction as the state change it records, so a
    rolled-back completion leaves no trace here either.
    """

    __tablename__ = "payment_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    pending_id = Column(Integer, nullable=True, index=True)
    completed_id = Column(Integer, nullable=True, index=True)
    external_ref = Column(String(64), nullable=True, index=True)
    action = Column(String(50), nullable=False)
    details = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=_utcnow)
