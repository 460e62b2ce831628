"""Minor-unit money boundary.

Amounts travel through the orchestrator as integer minor units (cents for a
two-decimal currency). This is the only place unit amounts are converted.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from snowrail.errors import ValidationError


def to_minor_units(amount: Decimal | str | int | float, exponent: int = 2) -> int:
    """Convert a unit amount to integer minor units, rounding half up.

    Floats are converted through their shortest repr so that 12.345 is
    treated as the decimal 12.345 and not its binary approximation.

    Examples:
        >>> to_minor_units("12.345")
        1235
        >>> to_minor_units("0.005")
        1
    """
    if isinstance(amount, bool):
        raise ValidationError("amount must be a number")
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except InvalidOperation as exc:
        raise ValidationError(f"amount {amount!r} is not a decimal number") from exc
    if not value.is_finite():
        raise ValidationError("amount must be finite")

    scaled = value.scaleb(exponent)
    return int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int, exponent: int = 2) -> Decimal:
    """Render integer minor units back as a unit Decimal (display only)."""
    return Decimal(amount).scaleb(-exponent)
