"""
Cas d'usage 'discounts' (administration des coupons).
- create / update: règles métier (type, valeur, fenêtre, plafonds) avant écriture
- delete: suppression logique (status=deleted), jamais physique
- record_usage: incrémente used_count après un paiement réussi
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple
import logging

from sqlalchemy.orm import Session

from internhub.errors import NotFoundError, ValidationError
from internhub.infra.database import transaction
from internhub.models import Discount, DiscountType, utcnow
from internhub.utils.money import HUNDRED, ZERO

from .repository import DiscountRepository, normalize_code
from .schemas import DiscountCreate, DiscountUpdate

logger = logging.getLogger(__name__)


def _invalid(message: str, field: str) -> ValidationError:
    return ValidationError(message, hint=message.capitalize(), details={"field": field})


def _check_value(discount_type: DiscountType, value: Decimal) -> None:
    if value is None or value <= ZERO:
        raise _invalid("discount_value must be greater than zero", "discount_value")
    if discount_type == DiscountType.PERCENTAGE and value > HUNDRED:
        raise _invalid("percentage discount cannot exceed 100", "discount_value")


def _check_window(valid_from: Optional[datetime], valid_until: Optional[datetime]) -> None:
    if valid_from is not None and valid_until is not None and valid_until <= valid_from:
        raise _invalid("valid_from must be before valid_until", "valid_until")


def _check_caps(max_uses: Optional[int], min_order_value: Optional[Decimal]) -> None:
    if max_uses is not None and max_uses < 0:
        raise _invalid("max_uses must be greater than zero", "max_uses")
    if min_order_value is not None and min_order_value < ZERO:
        raise _invalid("min_order_value must be greater than zero", "min_order_value")


def _naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    # les colonnes DateTime stockent de l'UTC naïf
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


class DiscountService:
    def __init__(self, session: Session, repository: Optional[DiscountRepository] = None) -> None:
        self.session = session
        self.repository = repository or DiscountRepository(session)

    def create(self, data: DiscountCreate) -> Discount:
        valid_from = _naive_utc(data.valid_from) or utcnow()
        valid_until = _naive_utc(data.valid_until)
        _check_value(data.discount_type, data.discount_value)
        _check_window(valid_from, valid_until)
        _check_caps(data.max_uses, data.min_order_value)

        discount = Discount(
            code=normalize_code(data.code),
            description=data.description,
            discount_type=data.discount_type,
            discount_value=data.discount_value,
            valid_from=valid_from,
            valid_until=valid_until,
            is_active=data.is_active,
            is_combinable=data.is_combinable,
            max_uses=data.max_uses,
            min_order_value=data.min_order_value,
            used_count=0,
            metadata_=data.metadata,
        )
        with transaction(self.session):
            self.repository.create(discount)
        logger.info("discounts.create code=%s type=%s", discount.code, discount.discount_type.value)
        return discount

    def get(self, discount_id: str) -> Discount:
        return self.repository.get(discount_id)

    def get_by_code(self, code: str) -> Discount:
        discount = self.repository.find_by_code(code)
        if discount is None:
            raise NotFoundError("discount not found", hint="Discount not found", details={"code": normalize_code(code)})
        return discount

    def update(self, discount_id: str, data: DiscountUpdate) -> Discount:
        discount = self.repository.get(discount_id)
        changes = data.model_dump(exclude_unset=True)

        valid_from = _naive_utc(changes["valid_from"]) if changes.get("valid_from") else discount.valid_from
        valid_until = _naive_utc(changes["valid_until"]) if "valid_until" in changes else discount.valid_until
        _check_window(valid_from, valid_until)
        _check_caps(changes.get("max_uses"), changes.get("min_order_value"))

        with transaction(self.session):
            if changes.get("description"):
                discount.description = changes["description"]
            discount.valid_from = valid_from
            discount.valid_until = valid_until
            for field in ("is_active", "is_combinable"):
                if changes.get(field) is not None:
                    setattr(discount, field, changes[field])
            for field in ("max_uses", "min_order_value"):
                if field in changes:
                    setattr(discount, field, changes[field])
            if changes.get("metadata") is not None:
                discount.metadata_ = changes["metadata"]
            self.session.flush()
        return discount

    def delete(self, discount_id: str) -> None:
        with transaction(self.session):
            self.repository.soft_delete(discount_id)
        logger.info("discounts.delete id=%s", discount_id)

    def list(
        self,
        *,
        is_active: Optional[bool] = None,
        discount_type: Optional[DiscountType] = None,
        codes: Optional[List[str]] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Discount], int]:
        if limit <= 0 or limit > 500:
            raise _invalid("limit must be between 1 and 500", "limit")
        if offset < 0:
            raise _invalid("offset must be positive", "offset")
        filters = dict(is_active=is_active, discount_type=discount_type, codes=codes)
        return self.repository.list(limit=limit, offset=offset, **filters), self.repository.count(**filters)

    def record_usage(self, codes: Iterable[str]) -> int:
        """À appeler dans l'unité de travail qui constate le paiement réussi (pas de commit ici)."""
        codes = list(codes or [])
        updated = self.repository.increment_usage(codes)
        if updated:
            logger.info("discounts.usage recorded=%s codes=%s", updated, codes)
        return updated
