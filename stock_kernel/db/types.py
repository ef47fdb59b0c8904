"""
Module: stock_kernel.db.types
Responsibility: Annotated type aliases and conversion helpers for quantity,
    money and timestamp columns.  Every model and service uses these so that
    stock quantities and costs are stored and rounded identically.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats for quantities or money.  to_decimal() rejects floats and
      booleans outright; callers pass int, str or Decimal.
    - Timestamps round-trip as timezone-aware UTC datetimes on every
      backend (SQLite drops tzinfo; UTCDateTime restores it).

Failure modes:
    - ValidationError on a non-numeric or float value passed to to_decimal().
"""

from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated, Any

from sqlalchemy import DateTime, Numeric, String
from sqlalchemy.types import TypeDecorator

from stock_kernel.exceptions import ValidationError


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware DateTime that always loads as UTC.

    PostgreSQL returns aware values already.  SQLite stores ISO text without
    an offset, so naive values read back are tagged as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


# Stock quantity: parts may be fractional (litres of oil, metres of hose)
Quantity = Annotated[Decimal, Numeric(38, 9)]

# Unit cost / price
Money = Annotated[Decimal, Numeric(38, 9)]

# External identifiers (part catalog, service orders, vehicles, clients)
ExternalId = Annotated[str, String(64)]

ShortCode = Annotated[str, String(50)]

LongText = Annotated[str, String(2000)]


QUANTITY_DECIMAL_PLACES = 9
MONEY_DECIMAL_PLACES = 9
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def to_decimal(value: Any, field: str = "quantity") -> Decimal:
    """
    Coerce an int / str / Decimal to Decimal.

    Preconditions: value is int, str or Decimal.  Floats are rejected
        because they cannot represent most decimal quantities exactly.
    Postconditions: Returns a finite Decimal.

    Raises:
        ValidationError: value is a float, bool, non-numeric or non-finite.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(
            f"{field} must be an integer, decimal string or Decimal, "
            f"got {type(value).__name__}",
            field=field,
        )
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValidationError(
                f"{field} is not a number: {value!r}", field=field
            ) from exc
    else:
        raise ValidationError(
            f"{field} has unsupported type {type(value).__name__}", field=field
        )
    if not result.is_finite():
        raise ValidationError(f"{field} must be finite: {value!r}", field=field)
    return result


def positive_quantity(value: Any, field: str = "quantity") -> Decimal:
    """Coerce and require quantity > 0."""
    quantity = to_decimal(value, field)
    if quantity <= ZERO:
        raise ValidationError(f"{field} must be positive, got {quantity}", field=field)
    return quantity


def non_negative(value: Any, field: str) -> Decimal:
    """Coerce and require value >= 0."""
    result = to_decimal(value, field)
    if result < ZERO:
        raise ValidationError(f"{field} must not be negative, got {result}", field=field)
    return result


def round_money(amount: Decimal, places: int = MONEY_DECIMAL_PLACES) -> Decimal:
    """Round a money amount with the kernel's rounding mode."""
    quantizer = Decimal(10) ** -places
    return amount.quantize(quantizer, rounding=DEFAULT_ROUNDING)


def utc_now() -> datetime:
    """Timezone-aware current time.  Services use the injected Clock instead."""
    return datetime.now(UTC)
