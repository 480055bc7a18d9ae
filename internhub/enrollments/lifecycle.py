"""
Machine d'états des inscriptions.

pending -> enrolled | completed | failed | cancelled
enrolled -> completed | cancelled
failed -> pending (reprise via la même clé d'idempotence) | cancelled
completed -> refunded
"""
from internhub.errors import InvalidOperationError
from internhub.models import EnrollmentStatus, PaymentStatus

TRANSITIONS = {
    EnrollmentStatus.PENDING: {
        EnrollmentStatus.ENROLLED,
        EnrollmentStatus.COMPLETED,
        EnrollmentStatus.FAILED,
        EnrollmentStatus.CANCELLED,
    },
    EnrollmentStatus.ENROLLED: {EnrollmentStatus.COMPLETED, EnrollmentStatus.CANCELLED},
    EnrollmentStatus.FAILED: {EnrollmentStatus.PENDING, EnrollmentStatus.CANCELLED},
    EnrollmentStatus.COMPLETED: {EnrollmentStatus.REFUNDED},
    EnrollmentStatus.CANCELLED: set(),
    EnrollmentStatus.REFUNDED: set(),
}

# Statut de paiement -> statut d'inscription visé lors de la finalisation
PAYMENT_TO_ENROLLMENT = {
    PaymentStatus.SUCCESS: EnrollmentStatus.COMPLETED,
    PaymentStatus.FAILED: EnrollmentStatus.FAILED,
    PaymentStatus.CANCELLED: EnrollmentStatus.CANCELLED,
    PaymentStatus.REFUNDED: EnrollmentStatus.REFUNDED,
}


def can_transition(current: EnrollmentStatus, target: EnrollmentStatus) -> bool:
    return target in TRANSITIONS.get(current, set())


def check_transition(current: EnrollmentStatus, target: EnrollmentStatus) -> bool:
    if current == target:
        return False
    if not can_transition(current, target):
        raise InvalidOperationError(
            f"enrollment cannot move from {current.value} to {target.value}",
            hint="This enrollment can no longer change to that status",
            details={"from": current.value, "to": target.value},
        )
    return True
