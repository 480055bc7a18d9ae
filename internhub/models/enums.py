import enum


class Status(str, enum.Enum):
    PUBLISHED = "published"
    ARCHIVED = "archived"
    DELETED = "deleted"


class DiscountType(str, enum.Enum):
    FLAT = "flat"
    PERCENTAGE = "percentage"


class CartType(str, enum.Enum):
    DEFAULT = "default"
    ONE_TIME = "one-time"


class LineItemEntityType(str, enum.Enum):
    INTERNSHIP = "internship"
    INTERNSHIP_BATCH = "internship_batch"


class EnrollmentStatus(str, enum.Enum):
    PENDING = "pending"
    ENROLLED = "enrolled"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class PaymentDestinationType(str, enum.Enum):
    INTERNSHIP = "internship"
    ENROLLMENT = "enrollment"
    CART = "cart"
