from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from internhub.models import EnrollmentStatus, PaymentStatus
from internhub.utils.money import ZERO, money2, to_decimal


class InitializeEnrollmentRequest(BaseModel):
    internship_id: str
    batch_id: Optional[str] = None
    discount_codes: List[str] = Field(default_factory=list)
    provider: Optional[str] = None
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class PricingInfo(BaseModel):
    original_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    tax_amount: Decimal = ZERO
    net_payable: Decimal
    currency: Optional[str] = None


class PaymentSessionOut(BaseModel):
    payment_id: str
    provider: Optional[str] = None
    provider_payment_id: Optional[str] = None
    payment_url: Optional[str] = None
    expires_at: datetime


class EnrollmentResponse(BaseModel):
    enrollment_id: str
    user_id: str
    internship_id: str
    batch_id: Optional[str] = None
    status: EnrollmentStatus
    payment_status: PaymentStatus
    payment_id: Optional[str] = None
    payment_required: bool
    created: bool = False
    applied_discount_codes: List[str] = Field(default_factory=list)
    pricing: PricingInfo
    payment_session: Optional[PaymentSessionOut] = None
    enrolled_at: Optional[datetime] = None


def _amount(value) -> Decimal:
    return money2(to_decimal(value if value is not None else ZERO))


def to_response(result) -> EnrollmentResponse:
    """EnrollmentResult -> réponse API."""
    e = result.enrollment
    session = result.payment_session
    return EnrollmentResponse(
        enrollment_id=e.id,
        user_id=e.user_id,
        internship_id=e.internship_id,
        batch_id=e.batch_id,
        status=e.enrollment_status,
        payment_status=e.payment_status,
        payment_id=e.payment_id,
        payment_required=result.payment_required,
        created=result.created,
        applied_discount_codes=list(e.applied_discount_codes or []),
        pricing=PricingInfo(
            original_amount=_amount(e.original_amount),
            discount_amount=_amount(e.discount_amount),
            final_amount=_amount(e.final_amount),
            net_payable=_amount(e.final_amount),
            currency=e.currency,
        ),
        payment_session=PaymentSessionOut(
            payment_id=session.payment_id,
            provider=session.provider,
            provider_payment_id=session.provider_payment_id,
            payment_url=session.payment_url,
            expires_at=session.expires_at,
        ) if session is not None else None,
        enrolled_at=e.enrolled_at,
    )
