import enum


class HoldStatus(str, enum.Enum):
    ACTIVE = "active"
    REMINDER_SENT = "reminder_sent"
    RELEASED = "released"
    DISPUTED = "disputed"
    REFUNDED = "refunded"


class DisputeStatus(str, enum.Enum):
    OPEN = "open"
    UNDER_REVIEW = "under_review"
    ESCALATED = "escalated"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class DisputeResolution(str, enum.Enum):
    BUYER_REFUND = "buyer_refund"
    SELLER_KEEP = "seller_keep"
    PARTIAL_REFUND = "partial_refund"


class EscalationLevel(str, enum.Enum):
    INITIAL = "initial"
    LEVEL1 = "level1"
    LEVEL2 = "level2"
    LEVEL3 = "level3"


class PayoutStatus(str, enum.Enum):
    IN_ESCROW = "in_escrow"
    PROCESSING = "processing"
    PAID = "paid"


class DeliveryStatus(str, enum.Enum):
    NOT_SHIPPED = "not_shipped"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"


class LedgerTransactionType(str, enum.Enum):
    SALE = "sale"
    REFUND_INITIATED = "refund_initiated"
    REFUND_COMPLETED = "refund_completed"
    PAYOUT = "payout"


class LedgerEntryStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class NotificationCategory(str, enum.Enum):
    RELEASE = "release"
    REMINDER = "reminder"
    ESCALATION = "escalation"
    DISPUTE = "dispute"
    REFUND = "refund"
    DELIVERY = "delivery"


class NotificationSeverity(str, enum.Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class NotificationAudience(str, enum.Enum):
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"


class DeliveryState(str, enum.Enum):
    QUEUED = "queued"
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"
