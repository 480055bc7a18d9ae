"""
Cas d'usage 'carts'.

- create_cart: panier + lignes + totaux dans une seule unité de travail (jamais de panier partiel visible)
- add_line_item / remove_line_item: la mutation est validée d'abord, puis les totaux sont recalculés
  au mieux; un échec du recalcul est journalisé et confié au réconciliateur
- contrôle de propriété: PermissionDeniedError si le panier appartient à un autre utilisateur
"""
from datetime import datetime
from typing import Iterable, List, Optional, Tuple
import logging

from sqlalchemy.orm import Session

from internhub.catalog.repository import CatalogRepository
from internhub.errors import AlreadyExistsError, PermissionDeniedError, ValidationError
from internhub.infra.database import transaction
from internhub.models import (
    Cart,
    CartLineItem,
    CartType,
    Internship,
    LineItemEntityType,
    Status,
)
from internhub.pricing.calculator import calculate_pricing
from internhub.utils.money import money2

from .cart import check_quantity, snapshot_line
from .reconciler import CartTotalsReconciler, reconciler as default_reconciler
from .repository import CartRepository
from .schemas import LineItemIn

logger = logging.getLogger(__name__)


class CartService:
    def __init__(
        self,
        session: Session,
        repository: Optional[CartRepository] = None,
        catalog: Optional[CatalogRepository] = None,
        reconciler: Optional[CartTotalsReconciler] = None,
    ) -> None:
        self.session = session
        self.repository = repository or CartRepository(session)
        self.catalog = catalog or CatalogRepository(session)
        self.reconciler = reconciler or default_reconciler

    # --- paniers ---

    def create_cart(
        self,
        user_id: str,
        cart_type: CartType = CartType.DEFAULT,
        line_items: Iterable[LineItemIn] = (),
        expires_at: Optional[datetime] = None,
    ) -> Cart:
        user_id = str(user_id)
        # Les prix sont résolus avant d'ouvrir la transaction
        resolved = [(self._resolve_internship(li.entity_id, li.entity_type), li) for li in line_items or []]

        with transaction(self.session):
            if cart_type == CartType.DEFAULT and self.repository.find_default(user_id) is not None:
                raise AlreadyExistsError(
                    f"default cart already exists for user {user_id}",
                    hint="You already have an active cart",
                    details={"user_id": user_id, "type": cart_type.value},
                )
            cart = self.repository.create(Cart(user_id=user_id, type=cart_type, expires_at=expires_at))
            for internship, li in resolved:
                self.repository.add_item(self._build_item(cart.id, internship, li))
            self.repository.recompute_totals(cart.id)

        logger.info("carts.create id=%s user_id=%s type=%s items=%s", cart.id, user_id, cart_type.value, len(resolved))
        return cart

    def get_cart(self, cart_id: str, user_id: str) -> Cart:
        cart = self.repository.get(cart_id)
        self._check_owner(cart, user_id)
        return cart

    def list_carts(self, user_id: str, cart_type: Optional[CartType] = None) -> List[Cart]:
        return self.repository.list_by_user(user_id, cart_type=cart_type)

    def delete_cart(self, cart_id: str, user_id: str) -> None:
        with transaction(self.session):
            cart = self.get_cart(cart_id, user_id)
            self.repository.soft_delete(cart)
        logger.info("carts.delete id=%s user_id=%s", cart_id, user_id)

    # --- lignes ---

    def add_line_item(self, cart_id: str, user_id: str, line_item: LineItemIn) -> CartLineItem:
        internship = self._resolve_internship(line_item.entity_id, line_item.entity_type)
        with transaction(self.session):
            cart = self.get_cart(cart_id, user_id)
            item = self.repository.add_item(self._build_item(cart.id, internship, line_item))
        self.refresh_totals(cart_id)
        return item

    def remove_line_item(self, item_id: str, user_id: str) -> Tuple[str, CartLineItem]:
        with transaction(self.session):
            item = self.repository.get_item(item_id)
            self.get_cart(item.cart_id, user_id)
            self.repository.soft_delete_item(item)
        self.refresh_totals(item.cart_id)
        return item.cart_id, item

    def get_line_item(self, item_id: str, user_id: str) -> CartLineItem:
        item = self.repository.get_item(item_id)
        self.get_cart(item.cart_id, user_id)
        return item

    def list_line_items(self, cart_id: str, user_id: str) -> List[CartLineItem]:
        cart = self.get_cart(cart_id, user_id)
        return self.repository.list_items(cart.id)

    # --- totaux ---

    def recalculate_totals(self, cart_id: str) -> Cart:
        with transaction(self.session):
            self.repository.recompute_totals(cart_id)
        return self.repository.get(cart_id)

    def refresh_totals(self, cart_id: str) -> bool:
        """Recalcul au mieux après une mutation déjà validée. False => panier confié au réconciliateur."""
        try:
            self.recalculate_totals(cart_id)
            return True
        except Exception:
            logger.exception("carts.totals recompute failed cart_id=%s", cart_id)
            self.reconciler.enqueue(cart_id)
            return False

    # --- helpers ---

    def _check_owner(self, cart: Cart, user_id: str) -> None:
        if str(cart.user_id) != str(user_id):
            raise PermissionDeniedError(
                "cart belongs to another user",
                hint="You do not have access to this cart",
                details={"cart_id": cart.id},
            )

    def _resolve_internship(self, entity_id: str, entity_type: LineItemEntityType) -> Internship:
        if entity_type == LineItemEntityType.INTERNSHIP_BATCH:
            batch = self.catalog.get_batch(entity_id)
            if batch.status != Status.PUBLISHED:
                raise ValidationError(
                    "internship batch is not available",
                    hint="This batch is not open for enrollment",
                    details={"batch_id": batch.id},
                )
            internship = self.catalog.get_internship(batch.internship_id)
        else:
            internship = self.catalog.get_internship(entity_id)
        if internship.status != Status.PUBLISHED:
            raise ValidationError(
                "internship is not published",
                hint="This internship is not available",
                details={"internship_id": internship.id},
            )
        return internship

    def _build_item(self, cart_id: str, internship: Internship, line_item: LineItemIn) -> CartLineItem:
        qty = check_quantity(line_item.quantity)
        snap = snapshot_line(calculate_pricing(internship), qty)
        return CartLineItem(
            cart_id=cart_id,
            entity_id=str(line_item.entity_id),
            entity_type=line_item.entity_type,
            quantity=qty,
            currency=snap.currency,
            per_unit_price=money2(snap.per_unit_price),
            subtotal=money2(snap.subtotal),
            discount_amount=money2(snap.discount_amount),
            tax_amount=money2(snap.tax_amount),
            total=money2(snap.total),
        )
