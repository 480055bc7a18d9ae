from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from internhub.infra.database import get_db
from internhub.models import DiscountType
from internhub.utils.security import require_admin

from .schemas import DiscountCreate, DiscountList, DiscountOut, DiscountUpdate
from .service import DiscountService

router = APIRouter(prefix="/api/v1/discounts", tags=["Discounts API"])


def get_discount_service(db: Session = Depends(get_db)) -> DiscountService:
    return DiscountService(db)


@router.post("", response_model=DiscountOut, status_code=201)
def create_discount(
    body: DiscountCreate,
    admin: Dict[str, Any] = Depends(require_admin),
    service: DiscountService = Depends(get_discount_service),
):
    """Création d'un coupon (admin). 409 si le code existe déjà."""
    return service.create(body)


@router.get("", response_model=DiscountList)
def list_discounts(
    is_active: Optional[bool] = None,
    discount_type: Optional[DiscountType] = None,
    codes: Optional[List[str]] = Query(default=None),
    limit: int = 50,
    offset: int = 0,
    admin: Dict[str, Any] = Depends(require_admin),
    service: DiscountService = Depends(get_discount_service),
):
    items, total = service.list(
        is_active=is_active, discount_type=discount_type, codes=codes, limit=limit, offset=offset
    )
    return DiscountList(items=items, total=total, limit=limit, offset=offset)


@router.get("/code/{code}", response_model=DiscountOut)
def get_discount_by_code(
    code: str,
    admin: Dict[str, Any] = Depends(require_admin),
    service: DiscountService = Depends(get_discount_service),
):
    return service.get_by_code(code)


@router.get("/{discount_id}", response_model=DiscountOut)
def get_discount(
    discount_id: str,
    admin: Dict[str, Any] = Depends(require_admin),
    service: DiscountService = Depends(get_discount_service),
):
    return service.get(discount_id)


@router.patch("/{discount_id}", response_model=DiscountOut)
def update_discount(
    discount_id: str,
    body: DiscountUpdate,
    admin: Dict[str, Any] = Depends(require_admin),
    service: DiscountService = Depends(get_discount_service),
):
    return service.update(discount_id, body)


@router.delete("/{discount_id}", status_code=204)
def delete_discount(
    discount_id: str,
    admin: Dict[str, Any] = Depends(require_admin),
    service: DiscountService = Depends(get_discount_service),
):
    service.delete(discount_id)
