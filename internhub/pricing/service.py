"""
Cas d'usage 'pricing': charge l'internship, valide les coupons, délègue le calcul à calculator.
"""
from typing import Iterable, Optional
import logging

from sqlalchemy.orm import Session

from internhub.catalog.repository import CatalogRepository
from internhub.discounts.repository import DiscountRepository, normalize_code
from internhub.discounts.validator import DiscountValidator
from internhub.errors import ServiceError, ValidationError
from internhub.models import Internship
from internhub.utils.money import ZERO, money2

from . import calculator
from .calculator import PricingBreakdown
from .schemas import AppliedCouponOut, DiscountInfo, PricingResponse

logger = logging.getLogger(__name__)


class PricingService:
    def __init__(
        self,
        session: Session,
        catalog: Optional[CatalogRepository] = None,
        validator: Optional[DiscountValidator] = None,
    ) -> None:
        self.session = session
        self.catalog = catalog or CatalogRepository(session)
        self.validator = validator or DiscountValidator(DiscountRepository(session))

    def calculate(self, internship: Internship, discount_codes: Optional[Iterable[str]] = None) -> PricingBreakdown:
        """Un coupon invalide fait échouer le calcul (l'erreur du validateur remonte telle quelle)."""
        discounts = self.validator.validate_all(discount_codes, internship)
        return calculator.calculate_pricing(internship, discounts)

    def calculate_for(self, internship_id: str, discount_codes: Optional[Iterable[str]] = None) -> PricingBreakdown:
        return self.calculate(self.catalog.get_internship(internship_id), discount_codes)

    def preview(self, internship_id: str, discount_codes: Optional[Iterable[str]] = None) -> PricingResponse:
        breakdown = self.calculate_for(internship_id, discount_codes)
        return to_response(breakdown)

    def validate_coupon(self, internship_id: str, code: str) -> DiscountInfo:
        """Aperçu d'un coupon pour l'UI: un code invalide renvoie is_valid=False, pas une erreur."""
        if not code or not code.strip():
            raise ValidationError(
                "discount code is required",
                hint="Please provide a discount code",
                details={"field": "code"},
            )
        internship = self.catalog.get_internship(internship_id)
        try:
            discount = self.validator.validate(code, internship)
        except ServiceError as e:
            logger.info("pricing.coupon invalid code=%s reason=%s", normalize_code(code), e.reason)
            return DiscountInfo(
                code=normalize_code(code),
                amount=ZERO,
                description="Invalid or expired coupon code",
                is_valid=False,
            )
        breakdown = calculator.calculate_pricing(internship, [discount])
        return DiscountInfo(
            code=discount.code,
            amount=money2(breakdown.coupon_discount),
            description=discount.description,
            is_valid=True,
        )


def to_response(breakdown: PricingBreakdown) -> PricingResponse:
    return PricingResponse(
        internship_id=breakdown.internship_id,
        original_price=money2(breakdown.original_price),
        internship_discount=money2(breakdown.internship_discount),
        coupon_discount=money2(breakdown.coupon_discount),
        total_discount=money2(breakdown.total_discount),
        final_price=money2(breakdown.final_price),
        currency=breakdown.currency,
        payment_required=breakdown.payment_required,
        savings_percent=breakdown.savings_percent,
        pricing_message=calculator.pricing_message(breakdown),
        applied_coupons=[
            AppliedCouponOut(
                code=c.code,
                discount_type=c.discount_type,
                discount_value=c.discount_value,
                amount=money2(c.amount),
                description=c.description,
            )
            for c in breakdown.applied_coupons
        ],
        calculated_at=breakdown.calculated_at,
    )
