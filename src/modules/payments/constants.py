"""Payment domain constants."""

from django.db import models

from modules.orders.constants import PaymentStatus


class GatewayEventOutcome(models.TextChoices):
    APPLIED = "APPLIED", "Applied"
    REJECTED_TERMINAL = "REJECTED_TERMINAL", "Rejected: payment already final"
    UNKNOWN_REFERENCE = "UNKNOWN_REFERENCE", "Unknown reference"
    NEEDS_RECONCILIATION = "NEEDS_RECONCILIATION", "Needs reconciliation"
    IGNORED = "IGNORED", "Ignored"


# Gateway status (lower-cased) -> order payment status.  Anything else is
# stored and ignored.
GATEWAY_STATUS_MAP: dict[str, str] = {
    "success": PaymentStatus.CONFIRMED,
    "failed": PaymentStatus.FAILED,
    "cancelled": PaymentStatus.FAILED,
}

REFERENCE_MAX_LENGTH = 50
