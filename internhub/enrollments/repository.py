"""
Accès aux données 'enrollments'.
"""
from typing import List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from internhub.errors import AlreadyExistsError, NotFoundError
from internhub.models import Enrollment, active_only

logger = logging.getLogger(__name__)


class EnrollmentRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, enrollment: Enrollment) -> Enrollment:
        self.session.add(enrollment)
        try:
            self.session.flush()
        except IntegrityError as e:
            raise AlreadyExistsError(
                "enrollment with this idempotency key already exists",
                hint="Enrollment already exists",
                details={"idempotency_key": enrollment.idempotency_key},
            ) from e
        return enrollment

    def get(self, enrollment_id: str, *, for_update: bool = False) -> Enrollment:
        stmt = active_only(select(Enrollment), Enrollment).where(Enrollment.id == str(enrollment_id))
        if for_update:
            stmt = stmt.with_for_update()
        enrollment = self.session.execute(stmt).scalar_one_or_none()
        if enrollment is None:
            raise NotFoundError(
                f"enrollment {enrollment_id} not found",
                hint="Enrollment not found",
                details={"enrollment_id": str(enrollment_id)},
            )
        return enrollment

    def find_by_key(self, idempotency_key: str) -> Optional[Enrollment]:
        stmt = active_only(select(Enrollment), Enrollment).where(Enrollment.idempotency_key == idempotency_key)
        return self.session.execute(stmt).scalar_one_or_none()

    def find_by_payment_id(self, payment_id: str) -> Optional[Enrollment]:
        stmt = active_only(select(Enrollment), Enrollment).where(Enrollment.payment_id == str(payment_id))
        return self.session.execute(stmt).scalar_one_or_none()

    def list_by_user(self, user_id: str, *, limit: int = 50, offset: int = 0) -> List[Enrollment]:
        stmt = (
            active_only(select(Enrollment), Enrollment)
            .where(Enrollment.user_id == str(user_id))
            .order_by(Enrollment.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(self.session.execute(stmt).scalars())
