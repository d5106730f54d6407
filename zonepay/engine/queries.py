"""
Read-only, role-scoped listings of pending transactions and completed payments.

Filters:
  scope=chief   only rows a chief paid on a client's behalf, and only the caller's
  mine=true     only the caller's own client rows
  filter=today  only rows from the current (UTC) calendar day

A principal with the client role is always restricted to their own rows.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from zonepay.engine.errors import ValidationError
from zonepay.models.enums import Role
from zonepay.models.payment import Client, CompletedPayment, PendingTransaction

SCOPES = {"all", "chief"}
DATE_FILTERS = {"all", "today"}
_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass
class ListingFilters:
    scope: str = "all"
    mine: bool = False
    filter: str = "all"


def parse_filters(scope: Optional[str] = None, mine: Any = None, filter: Optional[str] = None) -> ListingFilters:
    """Parse raw query parameters. Raises ValidationError on unknown values."""
    scope = (scope or "all").strip().lower()
    if scope not in SCOPES:
        raise ValidationError(f"Invalid scope: {scope!r}")

    date_filter = (filter or "all").strip().lower()
    if date_filter not in DATE_FILTERS:
        raise ValidationError(f"Invalid filter: {date_filter!r}")

    if isinstance(mine, bool):
        mine_flag = mine
    else:
        raw = str(mine or "").strip().lower()
        if raw not in _TRUE | _FALSE:
            raise ValidationError(f"Invalid mine: {mine!r}")
        mine_flag = raw in _TRUE

    return ListingFilters(scope=scope, mine=mine_flag, filter=date_filter)


def day_bounds(now: Optional[datetime] = None) -> tuple[datetime, datetime]:
    now = now or datetime.now(timezone.utc)
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def _apply_filters(stmt: Select, model, date_column, principal, filters: ListingFilters, now: Optional[datetime]) -> Select:
    if filters.scope == "chief":
        stmt = stmt.where(model.is_paid_by_chief.is_(True), model.paid_by_chief_id == principal.id)
    if filters.mine or principal.role == Role.CLIENT.value:
        stmt = stmt.where(model.client_id == principal.id)
    if filters.filter == "today":
        start, end = day_bounds(now)
        stmt = stmt.where(date_column >= start, date_column < end)
    return stmt


async def list_pending(
    session: AsyncSession,
    principal,
    filters: Optional[ListingFilters] = None,
    now: Optional[datetime] = None,
) -> list[tuple[PendingTransaction, Optional[str]]]:
    """Pending transactions with their client's username, newest first."""
    filters = filters or ListingFilters()
    stmt = select(PendingTransaction, Client.username).join(Client, Client.id == PendingTransaction.client_id)
    stmt = _apply_filters(stmt, PendingTransaction, PendingTransaction.created_at, principal, filters, now)
    stmt = stmt.order_by(PendingTransaction.created_at.desc(), PendingTransaction.id.desc())
    result = await session.execute(stmt)
    return [(row[0], row[1]) for row in result.all()]


async def list_completed(
    session: AsyncSession,
    principal,
    filters: Optional[ListingFilters] = None,
    now: Optional[datetime] = None,
) -> list[tuple[CompletedPayment, Optional[str]]]:
    """Completed payments with their client's username, newest first."""
    filters = filters or ListingFilters()
    stmt = select(CompletedPayment, Client.username).outerjoin(Client, Client.id == CompletedPayment.client_id)
    stmt = _apply_filters(stmt, CompletedPayment, CompletedPayment.completed_at, principal, filters, now)
    stmt = stmt.order_by(CompletedPayment.completed_at.desc(), CompletedPayment.id.desc())
    result = await session.execute(stmt)
    return [(row[0], row[1]) for row in result.all()]


async def list_clients(session: AsyncSession) -> list[Client]:
    """Clients available as payers, by username."""
    result = await session.execute(select(Client).order_by(Client.username.asc()))
    return list(result.scalars().all())
