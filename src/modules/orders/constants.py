"""Order domain constants.

Delivery and payment progress are two independent axes of an order; each
has its own status enum and its own history entries.
"""

from django.db import models


class DeliveryStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    CONFIRMED = "CONFIRMED", "Confirmed"
    SHIPPED = "SHIPPED", "Shipped"
    DELIVERED = "DELIVERED", "Delivered"
    CANCELLED = "CANCELLED", "Cancelled"


class PaymentStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    CONFIRMED = "CONFIRMED", "Confirmed"
    FAILED = "FAILED", "Failed"
    REFUNDED = "REFUNDED", "Refunded"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED", "Partially refunded"


class HistoryAxis(models.TextChoices):
    DELIVERY = "DELIVERY", "Delivery"
    PAYMENT = "PAYMENT", "Payment"
    LEDGER = "LEDGER", "Ledger"


class PayoutStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    SCHEDULED = "SCHEDULED", "Scheduled"
    PROCESSING = "PROCESSING", "Processing"
    COMPLETED = "COMPLETED", "Completed"
    FAILED = "FAILED", "Failed"


class PayoutMethod(models.TextChoices):
    BANK_TRANSFER = "BANK_TRANSFER", "Bank transfer"
    MOBILE_MONEY = "MOBILE_MONEY", "Mobile money"


# Payouts still owed to the producer.
OPEN_PAYOUT_STATES: frozenset[str] = frozenset(
    {PayoutStatus.PENDING, PayoutStatus.SCHEDULED, PayoutStatus.PROCESSING}
)

# Payment statuses a refund may start from.
REFUNDABLE_PAYMENT_STATES: frozenset[str] = frozenset(
    {PaymentStatus.CONFIRMED, PaymentStatus.PARTIALLY_REFUNDED}
)

ORDER_NUMBER_MAX_RETRIES = 5

# Payment statuses under which a delivered order is anchored on the ledger.
# A refund landing before the anchor completes does not cancel anchoring.
ANCHORABLE_PAYMENT_STATES: frozenset[str] = frozenset(
    {
        PaymentStatus.CONFIRMED,
        PaymentStatus.PARTIALLY_REFUNDED,
        PaymentStatus.REFUNDED,
    }
)
