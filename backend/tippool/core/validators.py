"""Reusable input coercion for engine operations.

Services accept plain Python values as well as the typed values the API
schemas produce; these helpers turn either into the canonical type or raise
the engine's ValidationError.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Tuple

from tippool.core.config import settings
from tippool.core.errors import (
    ValidationError,
    DATE_RANGE_REQUIRED, INVALID_AMOUNT, INVALID_DATE, INVALID_DATE_RANGE,
)


def amount_quantum() -> Decimal:
    """Smallest currency unit, e.g. Decimal('0.01') for cents."""
    return Decimal(1).scaleb(-settings.currency_exponent)


def parse_date(value: Any, field: str = "date") -> date:
    """Accept a date or an ISO ``YYYY-MM-DD`` string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            pass
    raise ValidationError(INVALID_DATE, f"{field} must be a valid YYYY-MM-DD date", {"field": field})


def require_date_range(start: Optional[Any], end: Optional[Any]) -> Tuple[date, date]:
    """Both bounds are mandatory and inclusive; start must not be after end."""
    if start is None or end is None or start == "" or end == "":
        raise ValidationError(DATE_RANGE_REQUIRED, "startDate and endDate are required")
    start_date = parse_date(start, "start_date")
    end_date = parse_date(end, "end_date")
    if start_date > end_date:
        raise ValidationError(
            INVALID_DATE_RANGE,
            "start_date must not be after end_date",
            {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )
    return start_date, end_date


def normalize_amount(value: Any, field: str = "amount") -> Decimal:
    """Coerce a money amount to Decimal: finite, >= 0, no sub-minor-unit digits."""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        amount = None
    if (
        amount is None
        or value is None
        or isinstance(value, bool)
        or not amount.is_finite()
        or amount < 0
        or amount != amount.quantize(amount_quantum())
    ):
        raise ValidationError(
            INVALID_AMOUNT,
            f"{field} must be a non-negative amount with at most {settings.currency_exponent} decimals",
            {"field": field, "value": str(value)},
        )
    return amount.quantize(amount_quantum())
