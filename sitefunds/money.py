"""
Money and record value helpers.

Amounts are kept as Decimal end to end; stored documents hold them as
strings so nothing passes through binary floating point.
"""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from .exceptions import ValidationError

CENTS = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value: Any, field: str = "amount") -> Decimal:
    """Convert a number or numeric string to Decimal.

    Args:
        value: Value to convert (Decimal, int, float, str)
        field: Field name used in the error message

    Returns:
        Decimal value

    Raises:
        ValidationError: If the value is not numeric
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number", {"field": field})
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number", {"field": field, "value": str(value)})

    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number", {"field": field})
    return result


def quantize(value: Decimal) -> Decimal:
    """Round to cents, half up."""
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def percent(part: Decimal, whole: Decimal) -> int:
    """Whole-number percentage of part over whole, 0 when whole is 0."""
    if not whole:
        return 0
    return int((part / whole * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def decimal_or_none(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    return Decimal(str(value))


def str_or_none(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


def parse_date(value: Any, field: str = "date") -> date | None:
    """Parse an ISO date (or the date part of an ISO datetime).

    Raises:
        ValidationError: If the value is not a valid ISO date
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)", {"field": field, "value": str(value)})


def parse_datetime(value: Any, field: str = "timestamp") -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO timestamp", {"field": field, "value": str(value)})


def iso_or_none(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
