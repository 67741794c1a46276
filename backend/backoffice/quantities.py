# Overview: Decimal helpers for stock quantities.

from __future__ import annotations

from decimal import Decimal, InvalidOperation

# Matches Numeric(14, 3) on stock columns
QUANTITY_PLACES = Decimal("0.001")


def to_quantity(value, *, field: str = "quantity") -> Decimal:
    """
    Coerce an input quantity to a Decimal with 3 decimal places.

    Floats go through str() so 0.1 stays 0.1. Booleans are rejected.
    """
    if value is None or isinstance(value, bool):
        raise ValueError(f"{field} must be a number")
    if isinstance(value, float):
        value = str(value)
    try:
        qty = Decimal(value)
    except (InvalidOperation, TypeError):
        raise ValueError(f"{field} must be a number")
    if not qty.is_finite():
        raise ValueError(f"{field} must be finite")
    return qty.quantize(QUANTITY_PLACES)


def qty_str(value) -> str | None:
    """Serialize a quantity without trailing zeros ('99', '0.5', '-2.25')."""
    if value is None:
        return None
    qty = Decimal(value).quantize(QUANTITY_PLACES).normalize()
    return format(qty, "f")
