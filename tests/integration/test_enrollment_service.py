import json
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from internhub.enrollments.service import EnrollmentService, payment_key
from internhub.errors import (
    AlreadyExistsError,
    GatewayTimeoutError,
    IntegrationError,
    InvalidOperationError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from internhub.models import (
    DiscountType,
    Enrollment,
    EnrollmentStatus,
    Payment,
    PaymentStatus,
    Status,
)
from internhub.payments.service import PaymentService


@pytest.fixture()
def service(db, gateways):
    return EnrollmentService(db, gateways=gateways)


def _count(db, model):
    return db.scalar(select(func.count()).select_from(model))


def _start(service, internship, user_id="u1", **kwargs):
    kwargs.setdefault("provider", "fake")
    return service.initialize_enrollment(user_id=user_id, internship_id=internship.id, **kwargs)


def _webhook(**body):
    return json.dumps(body).encode()


# --- création ---

def test_paid_enrollment_opens_payment_session(db, service, gateway, make_internship):
    internship = make_internship(price="1000", flat="100")
    result = _start(service, internship, success_url="https://app.test/ok")

    assert result.created is True
    assert result.payment_required is True
    e = result.enrollment
    assert e.enrollment_status == EnrollmentStatus.PENDING
    assert e.payment_status == PaymentStatus.PROCESSING
    assert e.final_amount == Decimal("900.00")
    assert e.discount_amount == Decimal("100.00")

    p = result.payment
    assert p.payment_status == PaymentStatus.PROCESSING
    assert p.amount == Decimal("900.00")
    assert p.gateway_payment_id == "fake_1"
    assert p.reference_id == e.id
    assert p.idempotency_key == payment_key(e.id)

    session = result.payment_session
    assert session.payment_url == f"https://pay.example.test/{p.id}"
    attempt = service.payments.latest_attempt(p.id)
    assert session.expires_at == attempt.created_at + timedelta(hours=24)

    request = gateway.calls[0]
    assert request.amount == Decimal("900.00")
    assert request.idempotency_key == p.idempotency_key
    assert request.success_url == "https://app.test/ok"
    assert request.description == internship.title


def test_retry_returns_same_enrollment_without_second_payment(db, service, gateway, make_internship):
    internship = make_internship()
    first = _start(service, internship)
    second = _start(service, internship)

    assert second.created is False
    assert second.enrollment.id == first.enrollment.id
    assert second.payment.id == first.payment.id
    assert len(gateway.calls) == 1
    assert _count(db, Enrollment) == 1
    assert _count(db, Payment) == 1


def test_batch_is_part_of_the_idempotency_key(service, make_internship, make_batch):
    internship = make_internship()
    batch = make_batch(internship)
    a = _start(service, internship)
    b = _start(service, internship, batch_id=batch.id)
    assert a.enrollment.id != b.enrollment.id
    assert b.enrollment.batch_id == batch.id


def test_batch_of_another_internship_is_rejected(service, make_internship, make_batch):
    other = make_batch(make_internship(title="Other"))
    with pytest.raises(ValidationError):
        _start(service, make_internship(), batch_id=other.id)


def test_free_enrollment_completes_without_payment(db, service, gateway, make_internship, make_discount):
    internship = make_internship(price="500")
    coupon = make_discount("FREE100", DiscountType.PERCENTAGE, "100")
    result = _start(service, internship, discount_codes=["free100"])

    assert result.payment_required is False
    assert result.payment is None
    assert result.payment_session is None
    e = result.enrollment
    assert e.enrollment_status == EnrollmentStatus.COMPLETED
    assert e.payment_status == PaymentStatus.SUCCESS
    assert e.enrolled_at is not None
    assert e.applied_discount_codes == ["FREE100"]
    assert gateway.calls == []
    assert _count(db, Payment) == 0
    db.refresh(coupon)
    assert coupon.used_count == 1


def test_completed_enrollment_cannot_be_started_again(service, make_internship):
    internship = make_internship(price="1000", flat="1000")
    _start(service, internship)
    with pytest.raises(AlreadyExistsError):
        _start(service, internship)


def test_invalid_coupon_creates_nothing(db, service, make_internship, make_discount):
    internship = make_internship(price="400")
    make_discount("BIGSPEND", value="10", min_order_value=Decimal("500"))
    with pytest.raises(ValidationError) as exc:
        _start(service, internship, discount_codes=["BIGSPEND"])
    assert exc.value.reason == "below_minimum_order"
    with pytest.raises(NotFoundError):
        _start(service, internship, discount_codes=["NOPE"])
    assert _count(db, Enrollment) == 0


def test_unknown_provider_creates_nothing(db, service, make_internship):
    with pytest.raises(NotFoundError):
        _start(service, make_internship(), provider="paypal")
    assert _count(db, Enrollment) == 0
    assert _count(db, Payment) == 0


def test_unpublished_internship_is_rejected(service, make_internship):
    with pytest.raises(ValidationError):
        _start(service, make_internship(status=Status.ARCHIVED))


def test_coupons_are_combined_in_code_order(service, make_internship, make_discount):
    internship = make_internship(price="1000", flat="100")
    make_discount("B", DiscountType.FLAT, "50", is_combinable=True)
    make_discount("A", DiscountType.PERCENTAGE, "10", is_combinable=True)
    result = _start(service, internship, discount_codes=["B", "A"])
    assert result.enrollment.final_amount == Decimal("760.00")
    assert result.enrollment.applied_discount_codes == ["A", "B"]


# --- échecs passerelle ---

def test_gateway_error_fails_payment_and_keeps_enrollment_pending(db, service, gateway, make_internship):
    gateway.fail_with = IntegrationError("card network down")
    internship = make_internship()
    with pytest.raises(IntegrationError) as exc:
        _start(service, internship)

    enrollment = db.scalars(select(Enrollment)).one()
    payment = db.scalars(select(Payment)).one()
    assert exc.value.details["enrollment_id"] == enrollment.id
    assert exc.value.details["payment_id"] == payment.id
    assert payment.payment_status == PaymentStatus.FAILED
    assert payment.error_message == "card network down"
    assert enrollment.enrollment_status == EnrollmentStatus.PENDING
    assert enrollment.payment_status == PaymentStatus.FAILED
    attempts = service.payments.list_attempts(payment.id)
    assert [(a.attempt_number, a.payment_status) for a in attempts] == [(1, PaymentStatus.FAILED)]


def test_retry_after_gateway_error_opens_replacement_payment(db, service, gateway, make_internship):
    gateway.fail_with = IntegrationError("card network down")
    internship = make_internship()
    with pytest.raises(IntegrationError):
        _start(service, internship)
    failed = db.scalars(select(Payment)).one()

    gateway.fail_with = None
    result = _start(service, internship)

    assert result.created is False
    assert result.payment.id != failed.id
    assert result.payment.idempotency_key == payment_key(result.enrollment.id, failed.id)
    assert result.payment.payment_status == PaymentStatus.PROCESSING
    assert result.enrollment.payment_id == result.payment.id
    assert result.enrollment.enrollment_status == EnrollmentStatus.PENDING
    db.refresh(failed)
    assert failed.payment_status == PaymentStatus.FAILED
    assert _count(db, Enrollment) == 1


def test_timeout_keeps_payment_pending_and_retry_reuses_it(db, service, gateway, make_internship):
    gateway.fail_with = GatewayTimeoutError("stripe did not answer")
    internship = make_internship()
    with pytest.raises(GatewayTimeoutError):
        _start(service, internship)

    payment = db.scalars(select(Payment)).one()
    assert payment.payment_status == PaymentStatus.PENDING
    assert payment.gateway_payment_id is None

    gateway.fail_with = None
    result = _start(service, internship)
    assert result.payment.id == payment.id
    assert result.payment.payment_status == PaymentStatus.PROCESSING
    assert result.payment.error_message is None
    attempts = service.payments.list_attempts(payment.id)
    assert [a.attempt_number for a in attempts] == [1, 2]
    assert [a.payment_status for a in attempts] == [PaymentStatus.FAILED, PaymentStatus.PROCESSING]
    assert _count(db, Payment) == 1


def test_unexpected_gateway_exception_is_wrapped(db, service, gateway, make_internship):
    gateway.fail_with = RuntimeError("boom")
    with pytest.raises(IntegrationError) as exc:
        _start(service, make_internship())
    assert "payment_id" in exc.value.details
    assert db.scalars(select(Payment)).one().payment_status == PaymentStatus.FAILED


def test_concurrent_insert_returns_existing_enrollment(db, gateways, gateway, make_internship, monkeypatch):
    internship = make_internship()
    first = _start(EnrollmentService(db, gateways=gateways), internship)

    racer = EnrollmentService(db, gateways=gateways)
    real_find = racer.repository.find_by_key
    calls = []

    def stale_find(key):
        # première lecture "avant" l'insertion concurrente
        calls.append(key)
        return None if len(calls) == 1 else real_find(key)

    monkeypatch.setattr(racer.repository, "find_by_key", stale_find)
    result = _start(racer, internship)

    assert result.created is False
    assert result.enrollment.id == first.enrollment.id
    assert len(gateway.calls) == 1
    assert _count(db, Enrollment) == 1


# --- webhook / synchronisation ---

def test_webhook_success_completes_enrollment_once(db, service, make_internship, make_discount):
    internship = make_internship(price="1000")
    coupon = make_discount("WELCOME10", value="10")
    result = _start(service, internship, discount_codes=["WELCOME10"])
    payment_id = result.payment.id

    body = _webhook(type="payment.succeeded", id="evt_1", status="success", payment_id=payment_id)
    response = service.handle_webhook("fake", body, {})
    assert response["status"] == "ok"
    assert response["payment_status"] == "success"
    assert response["enrollment_id"] == result.enrollment.id

    enrollment = service.get_enrollment(result.enrollment.id)
    assert enrollment.enrollment_status == EnrollmentStatus.COMPLETED
    assert enrollment.payment_status == PaymentStatus.SUCCESS
    assert enrollment.enrolled_at is not None
    assert service.payments.get(payment_id).succeeded_at is not None

    # livraison rejouée: pas de double comptage du coupon
    service.handle_webhook("fake", body, {})
    db.refresh(coupon)
    assert coupon.used_count == 1


def test_webhook_found_by_provider_payment_id(service, make_internship):
    result = _start(service, make_internship())
    body = _webhook(type="payment.failed", status="failed", provider_payment_id="fake_1")
    response = service.handle_webhook("fake", body, {})
    assert response["status"] == "ok"
    enrollment = service.get_enrollment(result.enrollment.id)
    assert enrollment.enrollment_status == EnrollmentStatus.FAILED
    assert enrollment.payment_status == PaymentStatus.FAILED


def test_retry_after_declined_payment_reopens_enrollment(service, gateway, make_internship):
    internship = make_internship()
    first = _start(service, internship)
    service.handle_webhook("fake", _webhook(type="payment.failed", status="failed", payment_id=first.payment.id), {})

    result = _start(service, internship)
    assert result.enrollment.enrollment_status == EnrollmentStatus.PENDING
    assert result.payment.id != first.payment.id
    assert len(gateway.calls) == 2


def test_webhook_illegal_transition_is_ignored(service, make_internship):
    result = _start(service, make_internship())
    pid = result.payment.id
    service.handle_webhook("fake", _webhook(type="payment.succeeded", status="success", payment_id=pid), {})

    response = service.handle_webhook("fake", _webhook(type="payment.failed", status="failed", payment_id=pid), {})
    assert response["status"] == "ignored"
    assert service.payments.get(pid).payment_status == PaymentStatus.SUCCESS
    assert service.get_enrollment(result.enrollment.id).enrollment_status == EnrollmentStatus.COMPLETED


def test_webhook_unknown_payment_or_event_is_ignored(service):
    assert service.handle_webhook("fake", _webhook(type="payment.succeeded", status="success", payment_id="nope"), {})["status"] == "ignored"
    assert service.handle_webhook("fake", _webhook(type="customer.created"), {})["status"] == "ignored"


def test_expired_session_cancels_enrollment_and_retry_returns_it(service, gateway, make_internship):
    internship = make_internship()
    result = _start(service, internship)
    service.handle_webhook("fake", _webhook(type="session.expired", status="cancelled", payment_id=result.payment.id), {})

    again = _start(service, internship)
    assert again.enrollment.enrollment_status == EnrollmentStatus.CANCELLED
    assert again.payment_session is None
    assert len(gateway.calls) == 1


def test_sync_payment_asks_the_gateway(service, gateway, make_internship):
    result = _start(service, make_internship())
    gateway.verify_status = PaymentStatus.SUCCESS
    synced = service.sync_payment(result.payment.id, "u1")
    assert synced.enrollment.enrollment_status == EnrollmentStatus.COMPLETED
    assert synced.payment.payment_status == PaymentStatus.SUCCESS


def test_sync_payment_without_session_is_refused(service, gateway, make_internship):
    gateway.fail_with = GatewayTimeoutError("slow")
    with pytest.raises(GatewayTimeoutError) as exc:
        _start(service, make_internship())
    with pytest.raises(InvalidOperationError):
        service.sync_payment(exc.value.details["payment_id"], "u1")


def test_finalize_mirrors_payment_status(db, service, make_internship):
    result = _start(service, make_internship())
    payments = PaymentService(db)
    payments.mark_success(payments.get(result.payment.id))
    db.commit()

    final = service.finalize_enrollment(result.enrollment.id, "u1")
    assert final.enrollment.enrollment_status == EnrollmentStatus.COMPLETED
    assert final.enrollment.payment_status == PaymentStatus.SUCCESS


# --- annulation / remboursement / lecture ---

def test_cancel_pending_enrollment_cancels_open_payment(service, make_internship):
    result = _start(service, make_internship())
    cancelled = service.cancel_enrollment(result.enrollment.id, "u1")
    assert cancelled.enrollment.enrollment_status == EnrollmentStatus.CANCELLED
    assert cancelled.enrollment.payment_status == PaymentStatus.CANCELLED
    assert cancelled.enrollment.cancelled_at is not None
    assert service.payments.get(result.payment.id).payment_status == PaymentStatus.CANCELLED

    # déjà annulée: sans effet
    again = service.cancel_enrollment(result.enrollment.id, "u1")
    assert again.enrollment.enrollment_status == EnrollmentStatus.CANCELLED


def test_cancel_keeps_mirror_of_failed_payment(db, service, gateway, make_internship):
    gateway.fail_with = IntegrationError("card network down")
    with pytest.raises(IntegrationError):
        _start(service, make_internship())
    enrollment = db.scalars(select(Enrollment)).one()

    cancelled = service.cancel_enrollment(enrollment.id, "u1")

    payment = db.scalars(select(Payment)).one()
    assert cancelled.enrollment.enrollment_status == EnrollmentStatus.CANCELLED
    assert payment.payment_status == PaymentStatus.FAILED
    assert cancelled.enrollment.payment_status == PaymentStatus.FAILED


def test_completed_enrollment_cannot_be_cancelled(service, make_internship):
    result = _start(service, make_internship(price="100", flat="100"))
    with pytest.raises(InvalidOperationError):
        service.cancel_enrollment(result.enrollment.id, "u1")


def test_refund_completed_enrollment(service, make_internship):
    result = _start(service, make_internship())
    pid = result.payment.id
    service.handle_webhook("fake", _webhook(type="payment.succeeded", status="success", payment_id=pid), {})

    refunded = service.refund_enrollment(result.enrollment.id)
    assert refunded.enrollment.enrollment_status == EnrollmentStatus.REFUNDED
    assert refunded.enrollment.payment_status == PaymentStatus.REFUNDED
    assert refunded.enrollment.refunded_at is not None
    assert service.payments.get(pid).payment_status == PaymentStatus.REFUNDED


def test_refund_requires_completed_enrollment(service, make_internship):
    result = _start(service, make_internship())
    with pytest.raises(InvalidOperationError):
        service.refund_enrollment(result.enrollment.id)


def test_enrollment_is_private_to_its_user(service, make_internship):
    result = _start(service, make_internship())
    with pytest.raises(PermissionDeniedError):
        service.get_enrollment(result.enrollment.id, "someone-else")
    with pytest.raises(PermissionDeniedError):
        service.cancel_enrollment(result.enrollment.id, "someone-else")
    assert service.get_result(result.enrollment.id, "u1").enrollment.id == result.enrollment.id


def test_list_enrollments_by_user(service, make_internship):
    _start(service, make_internship(title="A"))
    _start(service, make_internship(title="B"))
    _start(service, make_internship(title="C"), user_id="u2")
    assert len(service.list_enrollments("u1")) == 2
    assert len(service.list_enrollments("u2")) == 1
