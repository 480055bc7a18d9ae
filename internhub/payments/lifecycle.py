"""
Machine d'états des paiements.

pending -> processing -> success | failed
tout état non terminal -> cancelled
success -> refunded
Une confirmation peut dépasser le passage à processing: pending -> success | failed est admis.
"""
from internhub.errors import InvalidOperationError
from internhub.models import PaymentStatus

TRANSITIONS = {
    PaymentStatus.PENDING: {
        PaymentStatus.PROCESSING,
        PaymentStatus.SUCCESS,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    },
    PaymentStatus.PROCESSING: {PaymentStatus.SUCCESS, PaymentStatus.FAILED, PaymentStatus.CANCELLED},
    PaymentStatus.SUCCESS: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),
    PaymentStatus.REFUNDED: set(),
    PaymentStatus.CANCELLED: set(),
}

TERMINAL = frozenset(s for s, targets in TRANSITIONS.items() if not targets) | {PaymentStatus.SUCCESS}


def can_transition(current: PaymentStatus, target: PaymentStatus) -> bool:
    return target in TRANSITIONS.get(current, set())


def check_transition(current: PaymentStatus, target: PaymentStatus) -> bool:
    """True si changement, False si statut identique (no-op). InvalidOperationError sinon."""
    if current == target:
        return False
    if not can_transition(current, target):
        raise InvalidOperationError(
            f"payment cannot move from {current.value} to {target.value}",
            hint="This payment can no longer change to that status",
            details={"from": current.value, "to": target.value},
        )
    return True
