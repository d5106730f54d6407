"""Enumerations for the payment domain model."""

from enum import Enum


class TransactionStatus(str, Enum):
    """Lifecycle states for a pending (in-flight) transaction."""

    PENDING = "pending"
    INITIATED = "initiated"


class PaymentStatus(str, Enum):
    """Terminal outcomes recorded on a completed payment."""

    SUCCESS = "success"
    FAILED = "failed"
    UNKNOWN = "unknown"  # Provider unreachable/undecided; needs manual reconciliation


class Role(str, Enum):
    """Roles allowed to work with payments."""

    MANAGER = "manager"
    SUPERVISOR = "supervisor"
    CHIEF = "chief"
    CLIENT = "client"
