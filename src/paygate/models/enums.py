"""String enums shared across the gateway."""

from enum import StrEnum


class Network(StrEnum):
    """Networks a caller may declare on a payment request."""

    BITCOIN = "bitcoin"
    LIGHTNING = "lightning"
    LIQUID = "liquid"


class AddressKind(StrEnum):
    """Result of classifying a destination string."""

    LIGHTNING = "lightning"
    BITCOIN = "bitcoin"
    LIQUID = "liquid"
    UNKNOWN = "unknown"


class PaymentStatus(StrEnum):
    PENDING = "pending"
    SENT = "sent"
    ERROR = "error"


class WebhookEvent(StrEnum):
    PENDING = "payment.pending"
    COMPLETED = "payment.completed"
    FAILED = "payment.failed"
    TEST = "webhook.test"
