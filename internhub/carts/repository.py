"""
Accès aux données 'carts' / 'cart_line_items'.
"""
from typing import List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from internhub.errors import AlreadyExistsError, NotFoundError
from internhub.models import Cart, CartLineItem, CartType, Status, active_only
from internhub.utils.money import money2

from .cart import CartTotals, aggregate_totals

logger = logging.getLogger(__name__)


class CartRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, cart: Cart) -> Cart:
        self.session.add(cart)
        try:
            self.session.flush()
        except IntegrityError as e:
            # index unique partiel: un seul panier 'default' actif par utilisateur
            raise AlreadyExistsError(
                f"default cart already exists for user {cart.user_id}",
                hint="You already have an active cart",
                details={"user_id": cart.user_id, "type": cart.type.value},
            ) from e
        return cart

    def get(self, cart_id: str, *, for_update: bool = False) -> Cart:
        stmt = active_only(select(Cart), Cart).where(Cart.id == str(cart_id))
        if for_update:
            stmt = stmt.with_for_update()
        cart = self.session.execute(stmt).scalar_one_or_none()
        if cart is None:
            raise NotFoundError(f"cart {cart_id} not found", hint="Cart not found", details={"cart_id": str(cart_id)})
        return cart

    def find_default(self, user_id: str) -> Optional[Cart]:
        stmt = (
            select(Cart)
            .where(Cart.user_id == str(user_id), Cart.type == CartType.DEFAULT, Cart.status == Status.PUBLISHED)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def list_by_user(self, user_id: str, *, cart_type: Optional[CartType] = None) -> List[Cart]:
        stmt = active_only(select(Cart), Cart).where(Cart.user_id == str(user_id))
        if cart_type is not None:
            stmt = stmt.where(Cart.type == cart_type)
        return list(self.session.execute(stmt.order_by(Cart.created_at.desc())).scalars())

    def soft_delete(self, cart: Cart) -> None:
        cart.status = Status.DELETED
        self.session.flush()

    def add_item(self, item: CartLineItem) -> CartLineItem:
        self.session.add(item)
        self.session.flush()
        return item

    def get_item(self, item_id: str) -> CartLineItem:
        stmt = active_only(select(CartLineItem), CartLineItem).where(CartLineItem.id == str(item_id))
        item = self.session.execute(stmt).scalar_one_or_none()
        if item is None:
            raise NotFoundError(
                f"cart line item {item_id} not found",
                hint="Cart item not found",
                details={"item_id": str(item_id)},
            )
        return item

    def list_items(self, cart_id: str) -> List[CartLineItem]:
        stmt = (
            active_only(select(CartLineItem), CartLineItem)
            .where(CartLineItem.cart_id == str(cart_id))
            .order_by(CartLineItem.created_at)
        )
        return list(self.session.execute(stmt).scalars())

    def soft_delete_item(self, item: CartLineItem) -> None:
        item.status = Status.DELETED
        self.session.flush()

    def recompute_totals(self, cart_id: str) -> CartTotals:
        """Verrouille la ligne du panier puis relit toutes les lignes vivantes (pas de delta)."""
        cart = self.get(cart_id, for_update=True)
        totals = aggregate_totals(self.list_items(cart.id))
        cart.subtotal = money2(totals.subtotal)
        cart.discount_amount = money2(totals.discount_amount)
        cart.tax_amount = money2(totals.tax_amount)
        cart.total = money2(totals.total)
        self.session.flush()
        return totals
