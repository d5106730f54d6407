"""
Immutable audit trail for payment operations.

Every state change gets an append-only entry with:
  - Pending transaction id (and completed payment id once it exists)
  - External reference (provider idempotency key)
  - Action (what happened)
  - Details (amounts, provider errors, resolved statuses)
  - Timestamp (UTC)

Entries are added to the caller's session, so they commit or roll back
together with the change they describe.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from zonepay.models.payment import PaymentEvent

logger = logging.getLogger("zonepay.audit")


def _dumps(details: dict[str, Any]) -> str:
    return json.dumps(details, default=str)


async def log_event(
    session: AsyncSession,
    action: str,
    pending_id: Optional[int] = None,
    completed_id: Optional[int] = None,
    external_ref: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> PaymentEvent:
    """
    Create an immutable audit log entry.

    Args:
        session: Database session of the enclosing unit of work.
        action: What happened (e.g. "transaction_created", "payment_completed").
        pending_id: The pending transaction this event relates to.
        completed_id: The completed payment, once written.
        external_ref: Provider reference id.
        details: Arbitrary context (serialized to JSON).

    Returns:
        The created PaymentEvent record.
    """
    entry = PaymentEvent(
        pending_id=pending_id,
        completed_id=completed_id,
        external_ref=external_ref,
        action=action,
        details=_dumps(details) if details else None,
        timestamp=datetime.now(timezone.utc),
    )
    session.add(entry)
    logger.info(
        "AUDIT | pending=%s completed=%s ref=%s action=%s | %s",
        pending_id if pending_id is not None else "-",
        completed_id if completed_id is not None else "-",
        external_ref or "-",
        action,
        _dumps(details)[:200] if details else "",
    )
    return entry
