"""
Input validation for payment operations.

Checks run before anything touches the store or the provider:
  1. Client id is present and a positive integer
  2. Amount is present and a positive decimal
  3. Currency / provider / purpose / reference fit their columns
  4. Caller-declared completion status is a short non-empty string

Failures raise ValidationError with a message naming the offending field.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from zonepay.engine.errors import ValidationError

MAX_CURRENCY_LEN = 8
MAX_PROVIDER_LEN = 32
MAX_PURPOSE_LEN = 255
MAX_REFERENCE_LEN = 64
MAX_STATUS_LEN = 20
AMOUNT_QUANTUM = Decimal("0.01")


@dataclass
class CreateRequest:
    """Validated, normalized input for creating a pending transaction."""

    client_id: int
    amount: Decimal
    currency: Optional[str]
    provider: str
    purpose: Optional[str]
    external_ref: Optional[str]


def parse_positive_int(value: Any, field: str) -> int:
    if value is None or value == "" or isinstance(value, bool):
        raise ValidationError(f"{field} is required")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {field}: {value!r}") from None
    if isinstance(value, float) and value != number:
        raise ValidationError(f"Invalid {field}: {value!r}")
    if number <= 0:
        raise ValidationError(f"Invalid {field}: {value!r}")
    return number


def parse_amount(value: Any) -> Decimal:
    if value is None or value == "" or isinstance(value, bool):
        raise ValidationError("amount is required")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"Invalid amount: {value!r}") from None
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f"Invalid amount: {value!r}")
    if amount != amount.quantize(AMOUNT_QUANTUM):
        raise ValidationError(f"Invalid amount: {value!r} (at most 2 decimal places)")
    return amount


def _optional_text(value: Any, field: str, max_len: int) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if len(text) > max_len:
        raise ValidationError(f"{field} must be at most {max_len} characters")
    return text


def default_purpose(now: Optional[datetime] = None) -> str:
    """'Payment for 2026-10' for the current (UTC) year-month."""
    now = now or datetime.now(timezone.utc)
    return f"Payment for {now:%Y-%m}"


def validate_create(
    client_id: Any,
    amount: Any,
    currency: Any = None,
    provider: Any = None,
    purpose: Any = None,
    external_ref: Any = None,
) -> CreateRequest:
    """Validate creation input. Raises ValidationError on the first problem found."""
    currency = _optional_text(currency, "currency", MAX_CURRENCY_LEN)
    return CreateRequest(
        client_id=parse_positive_int(client_id, "clientId"),
        amount=parse_amount(amount),
        currency=currency.upper() if currency else None,
        provider=_optional_text(provider, "provider", MAX_PROVIDER_LEN) or "momo",
        purpose=_optional_text(purpose, "purpose", MAX_PURPOSE_LEN),
        external_ref=_optional_text(external_ref, "externalRef", MAX_REFERENCE_LEN),
    )


def validate_completion_status(status: Any) -> Optional[str]:
    """Caller-declared terminal status; None means 'resolve it for me'."""
    status = _optional_text(status, "status", MAX_STATUS_LEN)
    return status.lower() if status else None


def validate_reference(reference_id: Any) -> Optional[str]:
    return _optional_text(reference_id, "referenceId", MAX_REFERENCE_LEN)
