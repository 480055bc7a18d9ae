"""
Orchestrateur du cycle de vie inscription / paiement.

initialize_enrollment (idempotent par (user, internship[, batch])):
1) clé d'idempotence -> inscription existante ?
   - completed: AlreadyExistsError
   - sinon: reprise (on renvoie l'état courant, on relance la passerelle si besoin)
2) sinon: prix, puis Tx1 = Enrollment (+ Payment pending si paiement requis), commit
3) appel passerelle HORS transaction
4) Tx2 = tentative ajoutée + paiement processing (ou failed), commit

Un conflit d'unicité à l'insertion veut dire "un autre appel l'a déjà créé":
on relit et on renvoie l'existant, ce n'est pas une erreur.
Une erreur passerelle est enregistrée (tentative + paiement) puis renvoyée à l'appelant.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple
import logging

from sqlalchemy.orm import Session

from internhub.catalog.repository import CatalogRepository
from internhub.config import PAYMENT_SESSION_TTL_HOURS
from internhub.discounts.repository import DiscountRepository
from internhub.discounts.service import DiscountService
from internhub.errors import (
    AlreadyExistsError,
    GatewayTimeoutError,
    IntegrationError,
    InvalidOperationError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from internhub.gateways.base import GatewayProvider, PaymentOrderRequest
from internhub.gateways.registry import GatewayRegistry, registry as default_registry
from internhub.infra.database import transaction
from internhub.models import (
    Enrollment,
    EnrollmentStatus,
    Internship,
    Payment,
    PaymentDestinationType,
    PaymentStatus,
    Status,
    utcnow,
)
from internhub.payments.service import PaymentService
from internhub.pricing.service import PricingService
from internhub.utils.idempotency import SCOPE_INTERNSHIP_ENROLLMENT, SCOPE_PAYMENT, generate_key
from internhub.utils.money import ZERO, money2, to_decimal

from . import lifecycle
from .repository import EnrollmentRepository

logger = logging.getLogger(__name__)

_OPEN_PAYMENT = (PaymentStatus.PENDING, PaymentStatus.PROCESSING)


@dataclass
class PaymentSession:
    payment_id: str
    provider: Optional[str]
    provider_payment_id: Optional[str]
    payment_url: Optional[str]
    expires_at: datetime


@dataclass
class EnrollmentResult:
    enrollment: Enrollment
    payment: Optional[Payment]
    payment_session: Optional[PaymentSession]
    created: bool

    @property
    def payment_required(self) -> bool:
        return to_decimal(self.enrollment.final_amount or ZERO) > ZERO


def enrollment_key(user_id: str, internship_id: str, batch_id: Optional[str] = None) -> str:
    params = {"user_id": str(user_id), "internship_id": str(internship_id)}
    if batch_id:
        params["batch_id"] = str(batch_id)
    return generate_key(SCOPE_INTERNSHIP_ENROLLMENT, params)


def payment_key(enrollment_id: str, replaces: Optional[str] = None) -> str:
    params = {"enrollment_id": str(enrollment_id)}
    if replaces:
        params["replaces"] = str(replaces)
    return generate_key(SCOPE_PAYMENT, params)


class EnrollmentService:
    def __init__(
        self,
        session: Session,
        *,
        repository: Optional[EnrollmentRepository] = None,
        catalog: Optional[CatalogRepository] = None,
        pricing: Optional[PricingService] = None,
        payments: Optional[PaymentService] = None,
        discounts: Optional[DiscountService] = None,
        gateways: Optional[GatewayRegistry] = None,
        clock: Callable[[], datetime] = utcnow,
        session_ttl_hours: int = PAYMENT_SESSION_TTL_HOURS,
    ) -> None:
        self.session = session
        self.repository = repository or EnrollmentRepository(session)
        self.catalog = catalog or CatalogRepository(session)
        self.pricing = pricing or PricingService(session, catalog=self.catalog)
        self.payments = payments or PaymentService(session)
        self.discounts = discounts or DiscountService(session, DiscountRepository(session))
        self.gateways = gateways or default_registry
        self.clock = clock
        self.session_ttl = timedelta(hours=session_ttl_hours)

    # --- création idempotente ---

    def initialize_enrollment(
        self,
        *,
        user_id: str,
        internship_id: str,
        batch_id: Optional[str] = None,
        discount_codes: Optional[Iterable[str]] = None,
        provider: Optional[str] = None,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> EnrollmentResult:
        key = enrollment_key(user_id, internship_id, batch_id)
        existing = self.repository.find_by_key(key)
        if existing is not None:
            logger.info("enrollments.initialize retry id=%s status=%s", existing.id, existing.enrollment_status.value)
            return self._resume(existing, provider, success_url, cancel_url)

        internship = self._load_internship(internship_id, batch_id)
        breakdown = self.pricing.calculate(internship, discount_codes)
        # fournisseur résolu avant toute écriture: un nom inconnu ne crée rien
        gateway = self.gateways.get(provider) if breakdown.payment_required else None

        try:
            with transaction(self.session):
                enrollment = Enrollment(
                    user_id=str(user_id),
                    internship_id=str(internship.id),
                    batch_id=batch_id,
                    enrollment_status=EnrollmentStatus.PENDING,
                    payment_status=PaymentStatus.PENDING,
                    idempotency_key=key,
                    applied_discount_codes=breakdown.applied_codes,
                    original_amount=money2(breakdown.original_price),
                    discount_amount=money2(breakdown.total_discount),
                    final_amount=money2(breakdown.final_price),
                    currency=breakdown.currency,
                    metadata_=metadata,
                )
                if not breakdown.payment_required:
                    enrollment.enrollment_status = EnrollmentStatus.COMPLETED
                    enrollment.payment_status = PaymentStatus.SUCCESS
                    enrollment.enrolled_at = self.clock()
                self.repository.create(enrollment)

                payment = None
                if breakdown.payment_required:
                    payment = self._open_payment(enrollment, gateway.provider_name())
                else:
                    self.discounts.record_usage(breakdown.applied_codes)
        except AlreadyExistsError:
            logger.warning("enrollments.initialize race idempotency_key=%s", key)
            existing = self.repository.find_by_key(key)
            if existing is None:
                raise
            return self._resume(existing, provider, success_url, cancel_url, drive=False)

        logger.info(
            "enrollments.initialize created id=%s user_id=%s status=%s final=%s %s",
            enrollment.id, user_id, enrollment.enrollment_status.value, enrollment.final_amount, enrollment.currency,
        )
        if payment is None:
            return self._result(enrollment, None, created=True)
        return self._drive(enrollment, payment, gateway, success_url, cancel_url, created=True)

    def _resume(
        self,
        enrollment: Enrollment,
        provider: Optional[str],
        success_url: Optional[str],
        cancel_url: Optional[str],
        drive: bool = True,
    ) -> EnrollmentResult:
        status = enrollment.enrollment_status
        if status == EnrollmentStatus.COMPLETED:
            raise AlreadyExistsError(
                "enrollment already completed",
                hint="Enrollment already completed",
                details={"enrollment_id": enrollment.id},
            )
        payment = self._linked_payment(enrollment)
        if not drive or status not in (EnrollmentStatus.PENDING, EnrollmentStatus.FAILED):
            return self._result(enrollment, payment, created=False)

        if payment is not None:
            if payment.payment_status == PaymentStatus.PENDING:
                # la session n'a jamais été créée (échec réessayable): relance sur le même paiement
                gateway = self.gateways.get(payment.payment_gateway_provider or provider)
                return self._drive(enrollment, payment, gateway, success_url, cancel_url, created=False)
            if payment.payment_status == PaymentStatus.SUCCESS:
                with transaction(self.session):
                    self._mirror(enrollment, payment)
                return self._result(enrollment, payment, created=False)
            if payment.payment_status not in (PaymentStatus.FAILED, PaymentStatus.CANCELLED):
                return self._result(enrollment, payment, created=False)

        if not self._requires_payment(enrollment):
            return self._result(enrollment, payment, created=False)

        # paiement échoué, annulé ou absent: paiement de remplacement
        gateway = self.gateways.get(provider)
        replaced_id = payment.id if payment is not None else None
        enrollment_id = enrollment.id
        try:
            with transaction(self.session):
                enrollment = self.repository.get(enrollment_id, for_update=True)
                if enrollment.payment_id != replaced_id:
                    # un autre appel a déjà ouvert le remplacement
                    replacement = None
                else:
                    if enrollment.enrollment_status == EnrollmentStatus.FAILED:
                        self._set_status(enrollment, EnrollmentStatus.PENDING)
                    replacement = self._open_payment(enrollment, gateway.provider_name(), replaces=replaced_id)
        except AlreadyExistsError:
            logger.warning("enrollments.resume race enrollment_id=%s replaced=%s", enrollment_id, replaced_id)
            enrollment = self.repository.get(enrollment_id)
            return self._result(enrollment, self._linked_payment(enrollment), created=False)

        if replacement is None:
            return self._result(enrollment, self._linked_payment(enrollment), created=False)
        logger.info(
            "enrollments.resume replacement enrollment_id=%s payment_id=%s replaced=%s",
            enrollment.id, replacement.id, replaced_id,
        )
        return self._drive(enrollment, replacement, gateway, success_url, cancel_url, created=False)

    def _open_payment(self, enrollment: Enrollment, provider_name: str, replaces: Optional[str] = None) -> Payment:
        payment = self.payments.create_payment(
            destination_type=PaymentDestinationType.INTERNSHIP,
            destination_id=enrollment.internship_id,
            amount=to_decimal(enrollment.final_amount, field="final_amount"),
            currency=enrollment.currency,
            provider=provider_name,
            idempotency_key=payment_key(enrollment.id, replaces),
            reference_type=PaymentDestinationType.ENROLLMENT,
            reference_id=enrollment.id,
            metadata={"replaces": replaces} if replaces else None,
        )
        enrollment.payment_id = payment.id
        enrollment.payment_status = payment.payment_status
        self.session.flush()
        return payment

    # --- passerelle ---

    def _drive(
        self,
        enrollment: Enrollment,
        payment: Payment,
        gateway: GatewayProvider,
        success_url: Optional[str],
        cancel_url: Optional[str],
        created: bool,
    ) -> EnrollmentResult:
        """Crée la session de paiement: appel passerelle entre deux transactions, jamais dedans."""
        enrollment_id, payment_id = enrollment.id, payment.id
        internship = self.catalog.find_internship(enrollment.internship_id)
        request = PaymentOrderRequest(
            payment_id=payment_id,
            amount=to_decimal(payment.amount),
            currency=payment.currency,
            idempotency_key=payment.idempotency_key,
            description=internship.title if internship is not None else "Internship enrollment",
            customer_id=enrollment.user_id,
            success_url=success_url,
            cancel_url=cancel_url,
            metadata={"enrollment_id": enrollment_id, "internship_id": enrollment.internship_id},
        )

        try:
            result = gateway.create_payment_order(request)
        except GatewayTimeoutError as e:
            logger.error("enrollments.gateway timeout enrollment_id=%s payment_id=%s error=%s", enrollment_id, payment_id, e)
            self._record_gateway_failure(payment_id, e.message, mark_failed=False)
            e.details.update({"enrollment_id": enrollment_id, "payment_id": payment_id})
            raise
        except IntegrationError as e:
            logger.error("enrollments.gateway failed enrollment_id=%s payment_id=%s error=%s", enrollment_id, payment_id, e)
            self._record_gateway_failure(payment_id, e.message, mark_failed=True)
            e.details.update({"enrollment_id": enrollment_id, "payment_id": payment_id})
            raise
        except Exception as e:
            logger.exception("enrollments.gateway unexpected error enrollment_id=%s payment_id=%s", enrollment_id, payment_id)
            self._record_gateway_failure(payment_id, str(e), mark_failed=True)
            raise IntegrationError(
                f"payment gateway error: {e}",
                hint="Payment provider error, please retry later",
                details={"enrollment_id": enrollment_id, "payment_id": payment_id},
            ) from e

        with transaction(self.session):
            payment = self.payments.get(payment_id, for_update=True)
            enrollment = self.repository.get(enrollment_id)
            self.payments.record_attempt(
                payment,
                result.status,
                gateway_payment_id=result.provider_payment_id,
                metadata={"provider": gateway.provider_name()},
            )
            self.payments.mark_processing(
                payment,
                gateway_payment_id=result.provider_payment_id,
                payment_url=result.redirect_url,
            )
            if result.status not in _OPEN_PAYMENT:
                self.payments.transition(payment, result.status)
            self._mirror(enrollment, payment)
        logger.info(
            "enrollments.gateway session enrollment_id=%s payment_id=%s provider_payment_id=%s",
            enrollment_id, payment_id, result.provider_payment_id,
        )
        return self._result(enrollment, payment, created=created)

    def _record_gateway_failure(self, payment_id: str, message: str, *, mark_failed: bool) -> None:
        with transaction(self.session):
            payment = self.payments.get(payment_id, for_update=True)
            self.payments.record_attempt(payment, PaymentStatus.FAILED, error_message=message)
            if mark_failed:
                self.payments.mark_failed(payment, message)
                # la session n'existe pas: l'inscription reste pending, seul payment_status reflète l'échec
                enrollment = self.repository.find_by_payment_id(payment.id)
                if enrollment is not None:
                    enrollment.payment_status = payment.payment_status
            else:
                payment.error_message = message
            self.session.flush()

    # --- finalisation ---

    def finalize_enrollment(self, enrollment_id: str, user_id: Optional[str] = None) -> EnrollmentResult:
        with transaction(self.session):
            enrollment = self.repository.get(enrollment_id, for_update=True)
            self._check_owner(enrollment, user_id)
            payment = self._linked_payment(enrollment)
            if payment is not None:
                self._mirror(enrollment, payment)
        return self._result(enrollment, payment, created=False)

    def sync_payment(self, payment_id: str, user_id: Optional[str] = None) -> EnrollmentResult:
        """Interroge la passerelle (VerifyPaymentStatus) puis applique et répercute le statut."""
        payment = self.payments.get(payment_id)
        enrollment = self.repository.find_by_payment_id(payment.id)
        if enrollment is not None:
            self._check_owner(enrollment, user_id)
        if not payment.gateway_payment_id:
            raise InvalidOperationError(
                "payment has no gateway session yet",
                hint="Payment session was not created, retry the enrollment",
                details={"payment_id": payment.id},
            )
        gateway = self.gateways.get(payment.payment_gateway_provider)
        status = gateway.verify_payment_status(payment.gateway_payment_id)
        payment, enrollment = self._apply_gateway_status(payment.id, status)
        if enrollment is None:
            raise NotFoundError(
                f"no enrollment linked to payment {payment.id}",
                hint="Enrollment not found",
                details={"payment_id": payment.id},
            )
        return self._result(enrollment, payment, created=False)

    def handle_webhook(self, provider: str, payload: bytes, headers: Mapping[str, str]) -> Dict[str, Any]:
        gateway = self.gateways.get(provider)
        event = gateway.process_webhook(payload, headers)
        response = {"status": "ignored", "event": event.event_name, "event_id": event.event_id}
        if event.status is None:
            logger.info("payments.webhook ignored event=%s", event.event_name)
            return response

        payment = None
        if event.payment_id:
            try:
                payment = self.payments.get(event.payment_id)
            except NotFoundError:
                payment = None
        if payment is None and event.provider_payment_id:
            payment = self.payments.find_by_gateway_id(event.provider_payment_id)
        if payment is None:
            logger.warning(
                "payments.webhook unknown payment event=%s provider_payment_id=%s",
                event.event_name, event.provider_payment_id,
            )
            return response

        try:
            payment, enrollment = self._apply_gateway_status(payment.id, event.status, event.provider_payment_id)
        except InvalidOperationError as e:
            logger.warning(
                "payments.webhook transition refused event=%s payment_id=%s error=%s",
                event.event_name, payment.id, e,
            )
            return response

        logger.info(
            "payments.webhook event=%s payment_id=%s status=%s",
            event.event_name, payment.id, payment.payment_status.value,
        )
        response.update({
            "status": "ok",
            "payment_id": payment.id,
            "payment_status": payment.payment_status.value,
            "enrollment_id": enrollment.id if enrollment is not None else None,
        })
        return response

    def _apply_gateway_status(
        self,
        payment_id: str,
        status: PaymentStatus,
        provider_payment_id: Optional[str] = None,
    ) -> Tuple[Payment, Optional[Enrollment]]:
        with transaction(self.session):
            payment = self.payments.get(payment_id, for_update=True)
            if provider_payment_id and not payment.gateway_payment_id:
                payment.gateway_payment_id = provider_payment_id
            self.payments.transition(payment, status)
            enrollment = self.repository.find_by_payment_id(payment.id)
            if enrollment is not None:
                self._mirror(enrollment, payment)
        return payment, enrollment

    def _mirror(self, enrollment: Enrollment, payment: Payment) -> None:
        """Recopie le statut du paiement dans l'inscription (appelé dans une transaction ouverte)."""
        if enrollment.payment_id != payment.id:
            return
        enrollment.payment_status = payment.payment_status
        target = lifecycle.PAYMENT_TO_ENROLLMENT.get(payment.payment_status)
        if target is None or target == enrollment.enrollment_status:
            self.session.flush()
            return
        if target == EnrollmentStatus.FAILED and not payment.gateway_payment_id:
            # échec de création de session, pas un refus de paiement
            self.session.flush()
            return
        if not lifecycle.can_transition(enrollment.enrollment_status, target):
            logger.warning(
                "enrollments.mirror skipped id=%s %s->%s",
                enrollment.id, enrollment.enrollment_status.value, target.value,
            )
            self.session.flush()
            return
        self._set_status(enrollment, target)
        if target == EnrollmentStatus.COMPLETED:
            self.discounts.record_usage(enrollment.applied_discount_codes or [])

    # --- annulation / remboursement ---

    def cancel_enrollment(self, enrollment_id: str, user_id: Optional[str] = None) -> EnrollmentResult:
        with transaction(self.session):
            enrollment = self.repository.get(enrollment_id, for_update=True)
            self._check_owner(enrollment, user_id)
            if enrollment.enrollment_status == EnrollmentStatus.COMPLETED:
                raise InvalidOperationError(
                    "completed enrollment cannot be cancelled",
                    hint="Completed enrollments cannot be cancelled",
                    details={"enrollment_id": enrollment.id},
                )
            payment = self._linked_payment(enrollment)
            if enrollment.enrollment_status != EnrollmentStatus.CANCELLED:
                self._set_status(enrollment, EnrollmentStatus.CANCELLED)
                if payment is not None and payment.payment_status in _OPEN_PAYMENT:
                    self.payments.mark_cancelled(payment)
                enrollment.payment_status = payment.payment_status if payment is not None else PaymentStatus.CANCELLED
                self.session.flush()
                logger.info("enrollments.cancel id=%s payment_id=%s", enrollment.id, enrollment.payment_id)
        return self._result(enrollment, payment, created=False)

    def refund_enrollment(self, enrollment_id: str) -> EnrollmentResult:
        with transaction(self.session):
            enrollment = self.repository.get(enrollment_id, for_update=True)
            if enrollment.enrollment_status != EnrollmentStatus.COMPLETED:
                raise InvalidOperationError(
                    "only completed enrollments can be refunded",
                    hint="Only completed enrollments can be refunded",
                    details={"enrollment_id": enrollment.id, "status": enrollment.enrollment_status.value},
                )
            payment = self._linked_payment(enrollment)
            if payment is not None:
                self.payments.mark_refunded(payment)
            self._set_status(enrollment, EnrollmentStatus.REFUNDED)
            enrollment.payment_status = PaymentStatus.REFUNDED
            self.session.flush()
        logger.info("enrollments.refund id=%s payment_id=%s", enrollment_id, enrollment.payment_id)
        return self._result(enrollment, payment, created=False)

    # --- lecture ---

    def get_enrollment(self, enrollment_id: str, user_id: Optional[str] = None) -> Enrollment:
        enrollment = self.repository.get(enrollment_id)
        self._check_owner(enrollment, user_id)
        return enrollment

    def get_result(self, enrollment_id: str, user_id: Optional[str] = None) -> EnrollmentResult:
        enrollment = self.get_enrollment(enrollment_id, user_id)
        return self._result(enrollment, self._linked_payment(enrollment), created=False)

    def list_enrollments(self, user_id: str, *, limit: int = 50, offset: int = 0) -> List[Enrollment]:
        return self.repository.list_by_user(user_id, limit=limit, offset=offset)

    # --- helpers ---

    def _load_internship(self, internship_id: str, batch_id: Optional[str]) -> Internship:
        internship = self.catalog.get_internship(internship_id)
        if internship.status != Status.PUBLISHED:
            raise ValidationError(
                "internship is not published",
                hint="This internship is not available",
                details={"internship_id": internship.id},
            )
        if batch_id:
            batch = self.catalog.get_batch(batch_id)
            if batch.internship_id != internship.id or batch.status != Status.PUBLISHED:
                raise ValidationError(
                    "batch does not belong to this internship",
                    hint="This batch is not available for this internship",
                    details={"batch_id": batch_id, "internship_id": internship.id},
                )
        return internship

    def _linked_payment(self, enrollment: Enrollment) -> Optional[Payment]:
        if not enrollment.payment_id:
            return None
        try:
            return self.payments.get(enrollment.payment_id)
        except NotFoundError:
            logger.warning("enrollments.payment missing enrollment_id=%s payment_id=%s", enrollment.id, enrollment.payment_id)
            return None

    def _requires_payment(self, enrollment: Enrollment) -> bool:
        return to_decimal(enrollment.final_amount or ZERO) > ZERO

    def _set_status(self, enrollment: Enrollment, target: EnrollmentStatus) -> None:
        if not lifecycle.check_transition(enrollment.enrollment_status, target):
            return
        previous = enrollment.enrollment_status
        enrollment.enrollment_status = target
        now = self.clock()
        if target in (EnrollmentStatus.COMPLETED, EnrollmentStatus.ENROLLED) and enrollment.enrolled_at is None:
            enrollment.enrolled_at = now
        elif target == EnrollmentStatus.CANCELLED:
            enrollment.cancelled_at = now
        elif target == EnrollmentStatus.REFUNDED:
            enrollment.refunded_at = now
        self.session.flush()
        logger.info("enrollments.status id=%s %s->%s", enrollment.id, previous.value, target.value)

    def _check_owner(self, enrollment: Enrollment, user_id: Optional[str]) -> None:
        if user_id is not None and str(enrollment.user_id) != str(user_id):
            raise PermissionDeniedError(
                "enrollment belongs to another user",
                hint="You do not have access to this enrollment",
                details={"enrollment_id": enrollment.id},
            )

    def _result(self, enrollment: Enrollment, payment: Optional[Payment], created: bool) -> EnrollmentResult:
        return EnrollmentResult(
            enrollment=enrollment,
            payment=payment,
            payment_session=self._session_info(payment),
            created=created,
        )

    def _session_info(self, payment: Optional[Payment]) -> Optional[PaymentSession]:
        if payment is None or payment.payment_status not in _OPEN_PAYMENT:
            return None
        attempt = self.payments.latest_attempt(payment.id)
        started = attempt.created_at if attempt is not None else self.clock()
        return PaymentSession(
            payment_id=payment.id,
            provider=payment.payment_gateway_provider,
            provider_payment_id=payment.gateway_payment_id,
            payment_url=payment.payment_url,
            expires_at=started + self.session_ttl,
        )
