from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from internhub.models import PaymentDestinationType, PaymentStatus


class PaymentAttemptOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    attempt_number: int
    payment_status: PaymentStatus
    gateway_payment_id: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    idempotency_key: str
    destination_type: PaymentDestinationType
    destination_id: str
    reference_id: Optional[str] = None
    amount: Decimal
    currency: str
    payment_status: PaymentStatus
    payment_gateway_provider: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    payment_url: Optional[str] = None
    error_message: Optional[str] = None
    succeeded_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    attempts: List[PaymentAttemptOut] = Field(default_factory=list)


class WebhookResponse(BaseModel):
    status: str
    event: Optional[str] = None
    event_id: Optional[str] = None
    payment_id: Optional[str] = None
    payment_status: Optional[str] = None
    enrollment_id: Optional[str] = None
