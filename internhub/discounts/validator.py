"""
Validation des coupons.

Une validation est pure: elle lit le coupon et l'internship, ne modifie rien.
L'incrément du compteur d'utilisation appartient à l'appelant, après un paiement réussi.

Ordre des contrôles (le premier échec gagne):
1) le code existe (sinon NotFoundError, reason=not_found)
2) is_active
3) fenêtre [valid_from, valid_until]
4) min_order_value <= prix de l'internship
5) used_count < max_uses
"""
from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, List, Optional

from internhub.errors import (
    NotFoundError,
    ValidationError,
    REASON_BELOW_MINIMUM_ORDER,
    REASON_EXPIRED,
    REASON_INACTIVE,
    REASON_MAX_USES_EXCEEDED,
    REASON_NOT_COMBINABLE,
    REASON_NOT_FOUND,
    REASON_NOT_YET_VALID,
)
from internhub.models import Discount, Internship, utcnow
from internhub.utils.money import to_decimal

from .repository import DiscountRepository, normalize_code


def _fail(reason: str, message: str, code: str) -> ValidationError:
    return ValidationError(message, hint=message.capitalize(), details={"reason": reason, "code": code})


def check_discount(discount: Discount, order_value: Decimal, *, now: Optional[datetime] = None) -> None:
    """Contrôles 2 à 5 sur un coupon déjà résolu."""
    now = now or utcnow()
    code = discount.code
    if not discount.is_active:
        raise _fail(REASON_INACTIVE, "discount is not active", code)
    if discount.valid_from is not None and now < discount.valid_from:
        raise _fail(REASON_NOT_YET_VALID, "discount is not yet valid", code)
    if discount.valid_until is not None and now > discount.valid_until:
        raise _fail(REASON_EXPIRED, "discount has expired", code)
    if discount.min_order_value is not None and order_value < to_decimal(discount.min_order_value):
        raise _fail(
            REASON_BELOW_MINIMUM_ORDER,
            "order value does not meet minimum requirement for discount",
            code,
        )
    if discount.max_uses is not None and (discount.used_count or 0) >= discount.max_uses:
        raise _fail(REASON_MAX_USES_EXCEEDED, "discount has reached the maximum number of uses", code)


def check_combinable(discounts: List[Discount]) -> None:
    """Plusieurs coupons: tous doivent être cumulables."""
    if len(discounts) <= 1:
        return
    blocking = [d.code for d in discounts if not d.is_combinable]
    if blocking:
        raise ValidationError(
            "discount cannot be combined with other discounts",
            hint="Discount cannot be combined with other discounts",
            details={"reason": REASON_NOT_COMBINABLE, "codes": blocking},
        )


def canonical_codes(codes: Optional[Iterable[str]]) -> List[str]:
    """Codes normalisés, dédoublonnés et triés: l'ordre d'application est déterministe."""
    return sorted({normalize_code(c) for c in codes or [] if c and c.strip()})


class DiscountValidator:
    def __init__(self, repository: DiscountRepository, clock: Callable[[], datetime] = utcnow) -> None:
        self.repository = repository
        self.clock = clock

    def resolve(self, code: str) -> Discount:
        discount = self.repository.find_by_code(code)
        if discount is None:
            raise NotFoundError(
                "discount not found",
                hint="Discount not found",
                details={"reason": REASON_NOT_FOUND, "code": normalize_code(code)},
            )
        return discount

    def validate(self, code: str, internship: Internship) -> Discount:
        discount = self.resolve(code)
        check_discount(discount, to_decimal(internship.price, field="price"), now=self.clock())
        return discount

    def validate_all(self, codes: Optional[Iterable[str]], internship: Internship) -> List[Discount]:
        """Valide chaque code (ordre canonique) puis la règle de cumul. Retourne les coupons dans l'ordre d'application."""
        discounts = [self.validate(code, internship) for code in canonical_codes(codes)]
        check_combinable(discounts)
        return discounts
