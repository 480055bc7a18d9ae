from sqlalchemy import JSON, Column, DateTime, Numeric, String, UniqueConstraint

from internhub.infra.database import Base
from internhub.models.base import BaseColumns, enum_column
from internhub.models.enums import EnrollmentStatus, PaymentStatus


class Enrollment(BaseColumns, Base):
    __tablename__ = "enrollments"
    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_enrollments_idempotency_key"),
    )

    user_id = Column(String(36), nullable=False, index=True)
    internship_id = Column(String(36), nullable=False, index=True)
    batch_id = Column(String(36), nullable=True)

    enrollment_status = enum_column(EnrollmentStatus, nullable=False, default=EnrollmentStatus.PENDING)
    payment_status = enum_column(PaymentStatus, nullable=False, default=PaymentStatus.PENDING)
    idempotency_key = Column(String(255), nullable=False)

    # Référence faible: identifie le paiement sans le posséder (pas de FK)
    payment_id = Column(String(36), nullable=True)

    applied_discount_codes = Column(JSON, nullable=False, default=list)
    original_amount = Column(Numeric(12, 2), nullable=True)
    discount_amount = Column(Numeric(12, 2), nullable=True)
    final_amount = Column(Numeric(12, 2), nullable=True)
    currency = Column(String(3), nullable=True)

    enrolled_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    refunded_at = Column(DateTime, nullable=True)

    metadata_ = Column("metadata", JSON, nullable=True)
