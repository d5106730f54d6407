from zonepay.models.enums import PaymentStatus, Role, TransactionStatus
from zonepay.models.payment import Base, Client, CompletedPayment, PaymentEvent, PendingTransaction

__all__ = [
    "Base",
    "Client",
    "PendingTransaction",
    "CompletedPayment",
    "PaymentEvent",
    "PaymentStatus",
    "Role",
    "TransactionStatus",
]
