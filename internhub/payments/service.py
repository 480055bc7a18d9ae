"""
Cas d'usage 'payments': création idempotente, historique des tentatives, transitions d'état.

Toutes les méthodes d'écriture s'exécutent dans l'unité de travail de l'appelant
(flush, jamais de commit ici): l'orchestrateur d'inscription décide des frontières de transaction.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from internhub.errors import ValidationError
from internhub.models import (
    Payment,
    PaymentAttempt,
    PaymentDestinationType,
    PaymentStatus,
    utcnow,
)
from internhub.utils.idempotency import SCOPE_PAYMENT, generate_key
from internhub.utils.money import ZERO, money2

from . import lifecycle
from .repository import PaymentRepository

logger = logging.getLogger(__name__)

# statut -> horodatage posé à l'entrée dans ce statut
_STATUS_TIMESTAMPS = {
    PaymentStatus.SUCCESS: "succeeded_at",
    PaymentStatus.FAILED: "failed_at",
    PaymentStatus.REFUNDED: "refunded_at",
    PaymentStatus.CANCELLED: "cancelled_at",
}


class PaymentService:
    def __init__(self, session: Session, repository: Optional[PaymentRepository] = None) -> None:
        self.session = session
        self.repository = repository or PaymentRepository(session)

    def create_payment(
        self,
        *,
        destination_type: PaymentDestinationType,
        destination_id: str,
        amount: Decimal,
        currency: str,
        provider: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        reference_type: Optional[PaymentDestinationType] = None,
        reference_id: Optional[str] = None,
        track_attempts: bool = True,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Payment:
        """Retourne le paiement existant si la clé est déjà connue (pas de doublon)."""
        if amount is None or amount <= ZERO:
            raise ValidationError("payment amount must be greater than zero", details={"field": "amount"})
        key = idempotency_key or generate_key(SCOPE_PAYMENT, {
            "destination_type": destination_type.value,
            "destination_id": destination_id,
            "reference_id": reference_id,
            "amount": str(money2(amount)),
            "currency": currency,
        })
        existing = self.repository.find_by_key(key)
        if existing is not None:
            return existing

        payment = Payment(
            idempotency_key=key,
            destination_type=destination_type,
            destination_id=str(destination_id),
            reference_type=reference_type,
            reference_id=reference_id,
            amount=money2(amount),
            currency=currency.upper(),
            payment_status=PaymentStatus.PENDING,
            payment_gateway_provider=provider,
            track_attempts=track_attempts,
            metadata_=metadata,
        )
        # un conflit de clé concurrent remonte en AlreadyExistsError: l'appelant annule et relit
        self.repository.create(payment)
        logger.info("payments.create id=%s amount=%s currency=%s", payment.id, payment.amount, payment.currency)
        return payment

    def get(self, payment_id: str, *, for_update: bool = False) -> Payment:
        return self.repository.get(payment_id, for_update=for_update)

    def get_by_key(self, idempotency_key: str) -> Optional[Payment]:
        return self.repository.find_by_key(idempotency_key)

    def find_by_gateway_id(self, gateway_payment_id: str) -> Optional[Payment]:
        return self.repository.find_by_gateway_id(gateway_payment_id)

    def list_attempts(self, payment_id: str) -> List[PaymentAttempt]:
        return self.repository.list_attempts(payment_id)

    def latest_attempt(self, payment_id: str) -> Optional[PaymentAttempt]:
        return self.repository.latest_attempt(payment_id)

    def record_attempt(
        self,
        payment: Payment,
        status: PaymentStatus,
        *,
        gateway_payment_id: Optional[str] = None,
        error_message: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[PaymentAttempt]:
        """Ajoute la tentative n+1. Le verrou sur la ligne du paiement sérialise la numérotation."""
        if not payment.track_attempts:
            return None
        attempt = PaymentAttempt(
            payment_id=payment.id,
            attempt_number=self.repository.next_attempt_number(payment.id),
            payment_status=status,
            gateway_payment_id=gateway_payment_id,
            error_message=error_message,
            metadata_=metadata,
        )
        return self.repository.add_attempt(attempt)

    # --- transitions ---

    def transition(self, payment: Payment, target: PaymentStatus, *, error_message: Optional[str] = None) -> bool:
        if not lifecycle.check_transition(payment.payment_status, target):
            return False
        previous = payment.payment_status
        payment.payment_status = target
        stamp = _STATUS_TIMESTAMPS.get(target)
        if stamp:
            setattr(payment, stamp, utcnow())
        if error_message is not None:
            payment.error_message = error_message
        self.session.flush()
        logger.info("payments.status id=%s %s->%s", payment.id, previous.value, target.value)
        return True

    def mark_processing(
        self,
        payment: Payment,
        *,
        gateway_payment_id: Optional[str] = None,
        payment_url: Optional[str] = None,
    ) -> bool:
        if gateway_payment_id:
            payment.gateway_payment_id = gateway_payment_id
        if payment_url:
            payment.payment_url = payment_url
        payment.error_message = None
        return self.transition(payment, PaymentStatus.PROCESSING)

    def mark_success(self, payment: Payment) -> bool:
        return self.transition(payment, PaymentStatus.SUCCESS)

    def mark_failed(self, payment: Payment, error_message: Optional[str] = None) -> bool:
        return self.transition(payment, PaymentStatus.FAILED, error_message=error_message)

    def mark_refunded(self, payment: Payment) -> bool:
        return self.transition(payment, PaymentStatus.REFUNDED)

    def mark_cancelled(self, payment: Payment) -> bool:
        return self.transition(payment, PaymentStatus.CANCELLED)
