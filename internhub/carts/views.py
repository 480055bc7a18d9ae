import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from internhub.infra.database import get_db
from internhub.models import Cart, CartType
from internhub.utils.security import require_admin, require_user

from .reconciler import reconciler
from .schemas import CartCreate, CartOut, LineItemIn, LineItemOut
from .service import CartService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/carts", tags=["Carts API"])


def get_cart_service(db: Session = Depends(get_db)) -> CartService:
    return CartService(db, reconciler=reconciler)


def _cart_out(service: CartService, cart: Cart) -> CartOut:
    out = CartOut.model_validate(cart)
    out.line_items = [LineItemOut.model_validate(i) for i in service.repository.list_items(cart.id)]
    return out


@router.post("", response_model=CartOut, status_code=201)
def create_cart(
    body: CartCreate,
    user: Dict[str, Any] = Depends(require_user),
    service: CartService = Depends(get_cart_service),
):
    """
    Crée un panier et ses lignes dans une seule unité de travail.
    - 409 si l'utilisateur a déjà un panier 'default' actif
    - 400 si une internship référencée n'est pas publiée
    """
    cart = service.create_cart(user["id"], body.type, body.line_items, body.expires_at)
    return _cart_out(service, cart)


@router.get("", response_model=List[CartOut])
def list_carts(
    type: Optional[CartType] = None,
    user: Dict[str, Any] = Depends(require_user),
    service: CartService = Depends(get_cart_service),
):
    return [_cart_out(service, c) for c in service.list_carts(user["id"], type)]


@router.post("/reconcile")
def reconcile_totals(admin: Dict[str, Any] = Depends(require_admin)):
    """Rejoue le recalcul des totaux des paniers en attente de réconciliation."""
    repaired = reconciler.drain()
    return {"repaired": repaired, "pending": reconciler.pending()}


@router.get("/{cart_id}", response_model=CartOut)
def get_cart(
    cart_id: str,
    user: Dict[str, Any] = Depends(require_user),
    service: CartService = Depends(get_cart_service),
):
    return _cart_out(service, service.get_cart(cart_id, user["id"]))


@router.delete("/{cart_id}", status_code=204)
def delete_cart(
    cart_id: str,
    user: Dict[str, Any] = Depends(require_user),
    service: CartService = Depends(get_cart_service),
):
    service.delete_cart(cart_id, user["id"])


@router.get("/{cart_id}/items", response_model=List[LineItemOut])
def list_line_items(
    cart_id: str,
    user: Dict[str, Any] = Depends(require_user),
    service: CartService = Depends(get_cart_service),
):
    return service.list_line_items(cart_id, user["id"])


@router.post("/{cart_id}/items", response_model=CartOut, status_code=201)
def add_line_item(
    cart_id: str,
    body: LineItemIn,
    user: Dict[str, Any] = Depends(require_user),
    service: CartService = Depends(get_cart_service),
):
    """Ajoute une ligne (prix figé à l'ajout) puis renvoie le panier recalculé."""
    service.add_line_item(cart_id, user["id"], body)
    return _cart_out(service, service.get_cart(cart_id, user["id"]))


@router.get("/items/{item_id}", response_model=LineItemOut)
def get_line_item(
    item_id: str,
    user: Dict[str, Any] = Depends(require_user),
    service: CartService = Depends(get_cart_service),
):
    return service.get_line_item(item_id, user["id"])


@router.delete("/items/{item_id}", response_model=CartOut)
def remove_line_item(
    item_id: str,
    user: Dict[str, Any] = Depends(require_user),
    service: CartService = Depends(get_cart_service),
):
    cart_id, _ = service.remove_line_item(item_id, user["id"])
    return _cart_out(service, service.get_cart(cart_id, user["id"]))
