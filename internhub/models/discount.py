from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, Numeric, String, Text, UniqueConstraint

from internhub.infra.database import Base
from internhub.models.base import BaseColumns, enum_column, utcnow
from internhub.models.enums import DiscountType


class Discount(BaseColumns, Base):
    __tablename__ = "discounts"
    __table_args__ = (
        UniqueConstraint("code", name="uq_discounts_code"),
    )

    code = Column(String(64), nullable=False, index=True)
    description = Column(Text, nullable=True)
    discount_type = enum_column(DiscountType, nullable=False)
    discount_value = Column(Numeric(12, 2), nullable=False)

    valid_from = Column(DateTime, nullable=False, default=utcnow)
    valid_until = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    max_uses = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0)
    min_order_value = Column(Numeric(12, 2), nullable=True)
    is_combinable = Column(Boolean, nullable=False, default=False)

    metadata_ = Column("metadata", JSON, nullable=True)
