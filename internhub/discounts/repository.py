"""
Accès aux données des coupons (table 'discounts').
- get / find_by_code: ignorent les lignes supprimées (active_only)
- create: flush immédiat pour que la contrainte d'unicité sur 'code' lève dans l'unité de travail de l'appelant
"""
from typing import Iterable, List, Optional
import logging

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from internhub.errors import AlreadyExistsError, NotFoundError
from internhub.models import Discount, Status, active_only

logger = logging.getLogger(__name__)


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


class DiscountRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, discount: Discount) -> Discount:
        self.session.add(discount)
        try:
            self.session.flush()
        except IntegrityError as e:
            raise AlreadyExistsError(
                f"discount code {discount.code} already exists",
                hint="A discount with this code already exists",
                details={"code": discount.code},
            ) from e
        return discount

    def get(self, discount_id: str) -> Discount:
        stmt = active_only(select(Discount), Discount).where(Discount.id == str(discount_id))
        discount = self.session.execute(stmt).scalar_one_or_none()
        if discount is None:
            raise NotFoundError(
                f"discount {discount_id} not found",
                hint="Discount not found",
                details={"discount_id": str(discount_id)},
            )
        return discount

    def find_by_code(self, code: str) -> Optional[Discount]:
        stmt = active_only(select(Discount), Discount).where(Discount.code == normalize_code(code))
        return self.session.execute(stmt).scalar_one_or_none()

    def list(
        self,
        *,
        is_active: Optional[bool] = None,
        discount_type=None,
        codes: Optional[Iterable[str]] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Discount]:
        stmt = self._filtered(is_active=is_active, discount_type=discount_type, codes=codes)
        stmt = stmt.order_by(Discount.created_at.desc()).limit(limit).offset(offset)
        return list(self.session.execute(stmt).scalars())

    def count(self, *, is_active: Optional[bool] = None, discount_type=None, codes: Optional[Iterable[str]] = None) -> int:
        sub = self._filtered(is_active=is_active, discount_type=discount_type, codes=codes).subquery()
        return int(self.session.execute(select(func.count()).select_from(sub)).scalar_one())

    def soft_delete(self, discount_id: str) -> None:
        discount = self.get(discount_id)
        discount.status = Status.DELETED
        self.session.flush()

    def increment_usage(self, codes: Iterable[str]) -> int:
        """UPDATE atomique côté SQL (used_count = used_count + 1), pas de lecture-modification-écriture."""
        normalized = sorted({normalize_code(c) for c in codes or [] if c})
        if not normalized:
            return 0
        stmt = (
            update(Discount)
            .where(Discount.code.in_(normalized), Discount.status != Status.DELETED)
            .values(used_count=Discount.used_count + 1)
            .execution_options(synchronize_session="evaluate")
        )
        res = self.session.execute(stmt)
        return int(res.rowcount or 0)

    def _filtered(self, *, is_active=None, discount_type=None, codes=None):
        stmt = active_only(select(Discount), Discount)
        if is_active is not None:
            stmt = stmt.where(Discount.is_active == is_active)
        if discount_type is not None:
            stmt = stmt.where(Discount.discount_type == discount_type)
        if codes:
            stmt = stmt.where(Discount.code.in_([normalize_code(c) for c in codes]))
        return stmt
