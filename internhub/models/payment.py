from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from internhub.infra.database import Base
from internhub.models.base import BaseColumns, enum_column, new_id, utcnow
from internhub.models.enums import PaymentDestinationType, PaymentStatus


class Payment(BaseColumns, Base):
    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_payments_idempotency_key"),
    )

    idempotency_key = Column(String(255), nullable=False)

    destination_type = enum_column(PaymentDestinationType, nullable=False)
    destination_id = Column(String(36), nullable=False, index=True)
    reference_type = enum_column(PaymentDestinationType, nullable=True)
    reference_id = Column(String(36), nullable=True, index=True)

    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    payment_status = enum_column(PaymentStatus, nullable=False, default=PaymentStatus.PENDING)

    payment_gateway_provider = Column(String(32), nullable=True)
    gateway_payment_id = Column(String(255), nullable=True, index=True)
    payment_url = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    track_attempts = Column(Boolean, nullable=False, default=True)

    succeeded_at = Column(DateTime, nullable=True)
    failed_at = Column(DateTime, nullable=True)
    refunded_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    metadata_ = Column("metadata", JSON, nullable=True)

    attempts = relationship(
        "PaymentAttempt",
        back_populates="payment",
        cascade="all, delete-orphan",
        order_by="PaymentAttempt.attempt_number",
    )


class PaymentAttempt(Base):
    """Historique immuable: une ligne par appel passerelle, jamais modifiée."""
    __tablename__ = "payment_attempts"
    __table_args__ = (
        UniqueConstraint("payment_id", "attempt_number", name="uq_payment_attempts_number"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    payment_id = Column(String(36), ForeignKey("payments.id", ondelete="CASCADE"), nullable=False, index=True)
    attempt_number = Column(Integer, nullable=False)
    payment_status = enum_column(PaymentStatus, nullable=False)
    gateway_payment_id = Column(String(255), nullable=True)
    error_message = Column(Text, nullable=True)
    metadata_ = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    payment = relationship("Payment", back_populates="attempts")
