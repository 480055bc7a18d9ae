from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from internhub.models import DiscountType


class PricingRequest(BaseModel):
    internship_id: str
    discount_codes: List[str] = Field(default_factory=list)


class CouponValidationRequest(BaseModel):
    internship_id: str
    code: str = Field(min_length=1)


class AppliedCouponOut(BaseModel):
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    amount: Decimal
    description: Optional[str] = None


class PricingResponse(BaseModel):
    internship_id: str
    original_price: Decimal
    internship_discount: Decimal
    coupon_discount: Decimal
    total_discount: Decimal
    final_price: Decimal
    currency: str
    payment_required: bool
    savings_percent: Decimal
    pricing_message: str
    applied_coupons: List[AppliedCouponOut] = Field(default_factory=list)
    calculated_at: datetime


class DiscountInfo(BaseModel):
    type: str = "coupon"
    code: str
    amount: Decimal
    description: Optional[str] = None
    is_valid: bool
