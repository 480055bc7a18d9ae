"""
Logique panier pure (pas de DB).
- snapshot_line: fige le prix d'une ligne à partir du calcul de prix de l'internship
- aggregate_totals: somme des lignes vivantes, jamais un delta
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from internhub.errors import ValidationError
from internhub.pricing.calculator import PricingBreakdown
from internhub.utils.money import ZERO, to_decimal


@dataclass(frozen=True)
class LineSnapshot:
    currency: str
    per_unit_price: Decimal
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total: Decimal


@dataclass(frozen=True)
class CartTotals:
    subtotal: Decimal = ZERO
    discount_amount: Decimal = ZERO
    tax_amount: Decimal = ZERO
    total: Decimal = ZERO


def check_quantity(quantity: int) -> int:
    try:
        qty = int(quantity)
    except (TypeError, ValueError):
        qty = 0
    if qty <= 0:
        raise ValidationError(
            f"invalid quantity: {quantity}",
            hint="Quantity must be at least 1",
            details={"field": "quantity"},
        )
    return qty


def snapshot_line(breakdown: PricingBreakdown, quantity: int) -> LineSnapshot:
    qty = Decimal(check_quantity(quantity))
    subtotal = breakdown.original_price * qty
    discount = breakdown.internship_discount * qty
    # pas de calcul de taxe
    tax = ZERO
    return LineSnapshot(
        currency=breakdown.currency,
        per_unit_price=breakdown.original_price,
        subtotal=subtotal,
        discount_amount=discount,
        tax_amount=tax,
        total=subtotal - discount + tax,
    )


def aggregate_totals(items: Iterable) -> CartTotals:
    subtotal = discount = tax = total = ZERO
    for item in items or []:
        subtotal += to_decimal(item.subtotal, field="subtotal")
        discount += to_decimal(item.discount_amount, field="discount_amount")
        tax += to_decimal(item.tax_amount, field="tax_amount")
        total += to_decimal(item.total, field="total")
    return CartTotals(subtotal=subtotal, discount_amount=discount, tax_amount=tax, total=total)
