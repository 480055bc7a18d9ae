"""
Calcul de prix pur (pas de DB, pas d'I/O).

Ordre fixe:
1) base = prix de l'internship
2) remise internship = flat + base * pct / 100, plafonnée à base
3) base remisée = max(base - remise internship, 0)
4) coupons appliqués un par un sur le total courant (flat: min(valeur, total), pct: total * valeur / 100)
5) prix final = max(base remisée - somme coupons, 0)
6) paiement requis si prix final > 0

Aucun arrondi entre les étapes: money2() seulement à la présentation.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence

from internhub.config import DEFAULT_CURRENCY
from internhub.models import Discount, DiscountType, Internship, utcnow
from internhub.utils.money import HUNDRED, ZERO, money2, non_negative, percent_of, to_decimal


@dataclass(frozen=True)
class AppliedCoupon:
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    amount: Decimal
    description: Optional[str] = None


@dataclass
class PricingBreakdown:
    internship_id: str
    original_price: Decimal
    internship_discount: Decimal
    coupon_discount: Decimal
    total_discount: Decimal
    final_price: Decimal
    currency: str
    payment_required: bool
    applied_coupons: List[AppliedCoupon] = field(default_factory=list)
    calculated_at: datetime = field(default_factory=utcnow)

    @property
    def applied_codes(self) -> List[str]:
        return [c.code for c in self.applied_coupons]

    @property
    def savings_percent(self) -> Decimal:
        return savings_percent(self.total_discount, self.original_price)


def internship_discount(internship: Internship) -> Decimal:
    base = to_decimal(internship.price, field="price")
    total = ZERO
    if internship.flat_discount is not None:
        total += to_decimal(internship.flat_discount, field="flat_discount")
    if internship.percentage_discount is not None and to_decimal(internship.percentage_discount) > ZERO:
        total += percent_of(base, to_decimal(internship.percentage_discount, field="percentage_discount"))
    return min(non_negative(total), non_negative(base))


def coupon_amount(discount: Discount, running_total: Decimal) -> Decimal:
    value = to_decimal(discount.discount_value, field="discount_value")
    if discount.discount_type == DiscountType.FLAT:
        return min(value, running_total)
    if discount.discount_type == DiscountType.PERCENTAGE:
        return percent_of(running_total, value)
    return ZERO


def calculate_pricing(internship: Internship, discounts: Sequence[Discount] = ()) -> PricingBreakdown:
    """`discounts` doit être déjà validé et dans l'ordre d'application."""
    base = to_decimal(internship.price, field="price")
    inner = internship_discount(internship)
    discounted_base = non_negative(base - inner)

    running = discounted_base
    applied: List[AppliedCoupon] = []
    for discount in discounts:
        amount = non_negative(coupon_amount(discount, running))
        running = non_negative(running - amount)
        applied.append(AppliedCoupon(
            code=discount.code,
            discount_type=discount.discount_type,
            discount_value=to_decimal(discount.discount_value),
            amount=amount,
            description=discount.description,
        ))

    coupons = sum((c.amount for c in applied), ZERO)
    final_price = non_negative(discounted_base - coupons)
    return PricingBreakdown(
        internship_id=str(internship.id),
        original_price=base,
        internship_discount=inner,
        coupon_discount=coupons,
        total_discount=inner + coupons,
        final_price=final_price,
        currency=(internship.currency or DEFAULT_CURRENCY).upper(),
        payment_required=final_price > ZERO,
        applied_coupons=applied,
    )


def savings_percent(total_discount: Decimal, original_price: Decimal) -> Decimal:
    if original_price is None or original_price == ZERO:
        return ZERO
    return money2(total_discount / original_price * HUNDRED)


def pricing_message(breakdown: PricingBreakdown) -> str:
    currency = breakdown.currency
    final = money2(breakdown.final_price)
    if breakdown.total_discount > ZERO:
        if breakdown.final_price == ZERO:
            return "This internship is completely free!"
        return f"Final price: {currency} {final} (You're saving {currency} {money2(breakdown.total_discount)})"
    return f"Final price: {currency} {final}"
