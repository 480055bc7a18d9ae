"""
Accès aux données 'payments' / 'payment_attempts'.
Les tentatives sont un historique en ajout seul: aucune méthode de mise à jour.
"""
from typing import List, Optional
import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from internhub.errors import AlreadyExistsError, NotFoundError
from internhub.models import Payment, PaymentAttempt, active_only

logger = logging.getLogger(__name__)


class PaymentRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, payment: Payment) -> Payment:
        self.session.add(payment)
        try:
            self.session.flush()
        except IntegrityError as e:
            raise AlreadyExistsError(
                "payment with this idempotency key already exists",
                hint="Payment already exists",
                details={"idempotency_key": payment.idempotency_key},
            ) from e
        return payment

    def get(self, payment_id: str, *, for_update: bool = False) -> Payment:
        stmt = active_only(select(Payment), Payment).where(Payment.id == str(payment_id))
        if for_update:
            stmt = stmt.with_for_update()
        payment = self.session.execute(stmt).scalar_one_or_none()
        if payment is None:
            raise NotFoundError(
                f"payment {payment_id} not found",
                hint="Payment not found",
                details={"payment_id": str(payment_id)},
            )
        return payment

    def find_by_key(self, idempotency_key: str) -> Optional[Payment]:
        stmt = active_only(select(Payment), Payment).where(Payment.idempotency_key == idempotency_key)
        return self.session.execute(stmt).scalar_one_or_none()

    def find_by_gateway_id(self, gateway_payment_id: str) -> Optional[Payment]:
        stmt = active_only(select(Payment), Payment).where(Payment.gateway_payment_id == gateway_payment_id)
        return self.session.execute(stmt).scalars().first()

    def list_attempts(self, payment_id: str) -> List[PaymentAttempt]:
        stmt = (
            select(PaymentAttempt)
            .where(PaymentAttempt.payment_id == str(payment_id))
            .order_by(PaymentAttempt.attempt_number)
        )
        return list(self.session.execute(stmt).scalars())

    def latest_attempt(self, payment_id: str) -> Optional[PaymentAttempt]:
        stmt = (
            select(PaymentAttempt)
            .where(PaymentAttempt.payment_id == str(payment_id))
            .order_by(PaymentAttempt.attempt_number.desc())
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def next_attempt_number(self, payment_id: str) -> int:
        stmt = select(func.max(PaymentAttempt.attempt_number)).where(PaymentAttempt.payment_id == str(payment_id))
        current = self.session.execute(stmt).scalar_one_or_none()
        return int(current or 0) + 1

    def add_attempt(self, attempt: PaymentAttempt) -> PaymentAttempt:
        self.session.add(attempt)
        try:
            self.session.flush()
        except IntegrityError as e:
            raise AlreadyExistsError(
                f"attempt {attempt.attempt_number} already recorded for payment {attempt.payment_id}",
                hint="Payment attempt already recorded",
                details={"payment_id": attempt.payment_id, "attempt_number": attempt.attempt_number},
            ) from e
        return attempt
