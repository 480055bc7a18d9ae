from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from internhub.models import DiscountType


class DiscountCreate(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: bool = True
    is_combinable: bool = False
    max_uses: Optional[int] = None
    min_order_value: Optional[Decimal] = None
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("code")
    def strip_code(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("code is required")
        return v


class DiscountUpdate(BaseModel):
    description: Optional[str] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: Optional[bool] = None
    is_combinable: Optional[bool] = None
    max_uses: Optional[int] = None
    min_order_value: Optional[Decimal] = None
    metadata: Optional[Dict[str, Any]] = None


class DiscountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    code: str
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: bool
    is_combinable: bool
    max_uses: Optional[int] = None
    used_count: int = 0
    min_order_value: Optional[Decimal] = None
    metadata: Optional[Dict[str, Any]] = Field(default=None, validation_alias="metadata_")


class DiscountList(BaseModel):
    items: List[DiscountOut]
    total: int
    limit: int
    offset: int
