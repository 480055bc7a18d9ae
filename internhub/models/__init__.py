# Façade ORM: importer ce module enregistre toutes les tables sur Base.metadata.
from .enums import (
    Status,
    DiscountType,
    CartType,
    LineItemEntityType,
    EnrollmentStatus,
    PaymentStatus,
    PaymentDestinationType,
)
from .base import active_only, new_id, utcnow
from .catalog import Internship, InternshipBatch
from .discount import Discount
from .cart import Cart, CartLineItem
from .enrollment import Enrollment
from .payment import Payment, PaymentAttempt

__all__ = [
    # enums
    "Status",
    "DiscountType",
    "CartType",
    "LineItemEntityType",
    "EnrollmentStatus",
    "PaymentStatus",
    "PaymentDestinationType",
    # helpers
    "active_only",
    "new_id",
    "utcnow",
    # tables
    "Internship",
    "InternshipBatch",
    "Discount",
    "Cart",
    "CartLineItem",
    "Enrollment",
    "Payment",
    "PaymentAttempt",
]
