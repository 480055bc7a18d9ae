from decimal import Decimal

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Numeric, String, text
from sqlalchemy.orm import relationship

from internhub.infra.database import Base
from internhub.models.base import BaseColumns, enum_column
from internhub.models.enums import CartType, LineItemEntityType

_DEFAULT_ACTIVE = text("type = 'default' AND status = 'published'")


class Cart(BaseColumns, Base):
    __tablename__ = "carts"
    __table_args__ = (
        # un seul panier 'default' actif par utilisateur
        Index(
            "uq_carts_user_default_active",
            "user_id",
            unique=True,
            sqlite_where=_DEFAULT_ACTIVE,
            postgresql_where=_DEFAULT_ACTIVE,
        ),
    )

    user_id = Column(String(36), nullable=False, index=True)
    type = enum_column(CartType, nullable=False, default=CartType.DEFAULT)

    # Dérivés des lignes, jamais saisis par un client
    subtotal = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    discount_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    tax_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    total = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    expires_at = Column(DateTime, nullable=True)

    line_items = relationship(
        "CartLineItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartLineItem.created_at",
    )


class CartLineItem(BaseColumns, Base):
    __tablename__ = "cart_line_items"

    cart_id = Column(String(36), ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    entity_id = Column(String(36), nullable=False)
    entity_type = enum_column(LineItemEntityType, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)

    # Snapshot de prix figé à l'ajout
    currency = Column(String(3), nullable=False)
    per_unit_price = Column(Numeric(12, 2), nullable=False)
    subtotal = Column(Numeric(12, 2), nullable=False)
    discount_amount = Column(Numeric(12, 2), nullable=False)
    tax_amount = Column(Numeric(12, 2), nullable=False)
    total = Column(Numeric(12, 2), nullable=False)

    cart = relationship("Cart", back_populates="line_items")
