"""
Module: inventory_kernel.db.types
Responsibility: Decimal helpers for lot cost columns.  Centralizes
    rounding and coercion so that every service handles cost identically.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Unit costs use Decimal with explicit precision.  No floats.
"""

from decimal import ROUND_HALF_UP, Decimal


DEFAULT_ROUNDING = ROUND_HALF_UP


def round_money(
    value: Decimal,
    decimal_places: int = 2,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to specified decimal places.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to round to.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def to_money(value: Decimal | str | int | None) -> Decimal | None:
    """
    Coerce a cost value to Decimal, passing None through.

    Floats are rejected so binary rounding never reaches a cost column.

    Raises:
        TypeError: If value is a float.
    """
    if value is None:
        return None
    if isinstance(value, float):
        raise TypeError("Monetary values must not be float; pass Decimal or str")
    return Decimal(str(value))
