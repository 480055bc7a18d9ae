from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from internhub.infra.database import get_db
from internhub.utils.security import require_user

from .schemas import CouponValidationRequest, DiscountInfo, PricingRequest, PricingResponse
from .service import PricingService

router = APIRouter(prefix="/api/v1/pricing", tags=["Pricing API"])


def get_pricing_service(db: Session = Depends(get_db)) -> PricingService:
    return PricingService(db)


@router.post("/calculate", response_model=PricingResponse)
def calculate_pricing(
    body: PricingRequest,
    user: Dict[str, Any] = Depends(require_user),
    service: PricingService = Depends(get_pricing_service),
):
    """
    Aperçu du prix d'une internship avec remises internes et coupons.
    - Coupons appliqués dans l'ordre de leur code, chacun sur le total courant
    - 400 si un coupon est invalide (raison dans error.details.reason), 404 si code inconnu
    """
    return service.preview(body.internship_id, body.discount_codes)


@router.post("/coupons/validate", response_model=DiscountInfo)
def validate_coupon(
    body: CouponValidationRequest,
    user: Dict[str, Any] = Depends(require_user),
    service: PricingService = Depends(get_pricing_service),
):
    """Retour UI: un coupon invalide renvoie is_valid=false (200), pas une erreur."""
    return service.validate_coupon(body.internship_id, body.code)
