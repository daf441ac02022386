"""Input checks shared by the ledger operations.

Each helper either returns the normalised value or raises
``ValidationError`` naming the offending field. They run before any
storage access.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from .errors import ValidationError


def number(value: Any, field: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number", field=field)
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number", field=field)
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number", field=field)
    return result


def positive_int(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer", field=field)
    if value <= 0:
        raise ValidationError(f"{field} must be greater than 0", field=field)
    return value


CENT = Decimal("0.01")
# largest value a Numeric(10, 2) column holds
MAX_MONEY = Decimal("99999999.99")


def money(value: Any, field: str, positive: bool = True) -> Decimal:
    """An amount with at most two decimal places, never rounded."""
    amount = number(value, field)
    if amount.copy_abs() > MAX_MONEY:
        raise ValidationError(f"{field} must not exceed {MAX_MONEY}", field=field)
    cents = amount.quantize(CENT)
    if cents != amount:
        raise ValidationError(f"{field} must have at most 2 decimal places", field=field)
    if positive and cents <= 0:
        raise ValidationError(f"{field} must be greater than 0", field=field)
    if cents < 0:
        raise ValidationError(f"{field} must not be negative", field=field)
    return cents


def score(value: Any, field: str) -> int:
    """A 0-100 score, rounded half-up to an integer."""
    result = number(value, field)
    if result < 0 or result > 100:
        raise ValidationError(f"{field} must be between 0 and 100", field=field)
    return int(result.to_integral_value(rounding=ROUND_HALF_UP))


def required_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", field=field)
    return value.strip()


def enum_value(enum_cls, value: Any, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"{field} must be one of {allowed}", field=field)
