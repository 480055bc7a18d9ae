from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from internhub.models import CartType, LineItemEntityType


class LineItemIn(BaseModel):
    entity_id: str
    entity_type: LineItemEntityType = LineItemEntityType.INTERNSHIP
    quantity: int = Field(default=1, ge=1)


class CartCreate(BaseModel):
    type: CartType = CartType.DEFAULT
    line_items: List[LineItemIn] = Field(default_factory=list)
    expires_at: Optional[datetime] = None


class LineItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    cart_id: str
    entity_id: str
    entity_type: LineItemEntityType
    quantity: int
    currency: str
    per_unit_price: Decimal
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total: Decimal
    created_at: datetime


class CartOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    type: CartType
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total: Decimal
    expires_at: Optional[datetime] = None
    created_at: datetime
    line_items: List[LineItemOut] = Field(default_factory=list)
