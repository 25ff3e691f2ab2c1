"""
Module: payroll_kernel.db.types
Responsibility: Annotated column type aliases and the rounding helpers used for
    every monetary value in the payroll engine.
Architecture position: Kernel > DB.  May be imported by engines, modules and
    batch.  MUST NOT import from any of those layers.

Invariants enforced:
    - round_to_unit() is the single rounding rule for pay amounts: round half
      up to the smallest whole currency unit.  Applying one rule to every
      component keeps summed totals reproducible.
    - No floats.  Ratios and tax rates are Decimals with explicit precision.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Annotated

from sqlalchemy import Numeric, String


# Whole-unit pay amounts (stored with 2 places, always integral after rounding)
Amount = Annotated[Decimal, Numeric(18, 2)]

# Pay ratio (paid_days / working_days), informational only
Ratio = Annotated[Decimal, Numeric(12, 8)]

# Marginal tax rate or cess percentage expressed as a fraction (0.05 == 5%)
Rate = Annotated[Decimal, Numeric(9, 6)]

# ISO 4217 currency code
Currency = Annotated[str, String(3)]

ShortCode = Annotated[str, String(50)]

LongText = Annotated[str, String(4000)]


UNIT = Decimal("1")
ZERO = Decimal("0")
DEFAULT_ROUNDING = ROUND_HALF_UP


def round_to_unit(value: Decimal) -> Decimal:
    """Round to the nearest whole currency unit, halves away from zero.

    Postconditions: result has exponent 0 (``Decimal("45455")``).
    """
    return value.quantize(UNIT, rounding=DEFAULT_ROUNDING)


def round_money(value: Decimal, decimal_places: int = 2) -> Decimal:
    """Round to ``decimal_places`` with ROUND_HALF_UP (reporting figures)."""
    return value.quantize(Decimal(1).scaleb(-decimal_places), rounding=DEFAULT_ROUNDING)


def to_decimal(value: object) -> Decimal:
    """Coerce config/DB values (str, int, Decimal) to Decimal without float loss.

    Raises:
        TypeError: for floats, which would smuggle binary error into pay figures.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("Booleans are not amounts")
    if isinstance(value, float):
        raise TypeError(f"Float {value!r} not accepted for monetary values; use str or Decimal")
    if isinstance(value, (int, str)):
        return Decimal(value)
    raise TypeError(f"Cannot convert {type(value).__name__} to Decimal")


def validate_currency(currency: str) -> str:
    """Return the upper-cased 3-letter code or raise ValueError."""
    if not isinstance(currency, str) or len(currency.strip()) != 3 or not currency.strip().isalpha():
        raise ValueError(f"Invalid ISO 4217 currency code: {currency!r}")
    return currency.strip().upper()
