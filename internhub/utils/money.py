"""
Helpers monétaires: tout calcul se fait en Decimal (jamais en float).
L'arrondi (2 décimales) n'intervient qu'à la présentation, après les additions/soustractions.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from internhub.errors import ValidationError

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


def to_decimal(val: Any, *, field: str = "amount") -> Decimal:
    """Convertit str/int/Decimal en Decimal. Les float passent par str() pour éviter les artefacts binaires."""
    if val is None:
        raise ValidationError(f"{field} is missing", hint=f"{field} is required", details={"field": field})
    if isinstance(val, Decimal):
        return val
    try:
        return Decimal(str(val))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(
            f"invalid {field}: {val}",
            hint=f"{field} must be a decimal number",
            details={"field": field},
        ) from e


def money2(x: Decimal) -> Decimal:
    return x.quantize(CENT, rounding=ROUND_HALF_UP)


def non_negative(x: Decimal) -> Decimal:
    return x if x > ZERO else ZERO


def percent_of(base: Decimal, percentage: Decimal) -> Decimal:
    return base * percentage / HUNDRED


def to_minor_units(x: Decimal) -> int:
    # centimes / paise
    return int(money2(x) * HUNDRED)
