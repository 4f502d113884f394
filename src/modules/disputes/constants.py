"""Dispute domain constants."""

from django.db import models


class DisputeStatus(models.TextChoices):
    OPEN = "OPEN", "Open"
    UNDER_REVIEW = "UNDER_REVIEW", "Under review"
    RESOLVED = "RESOLVED", "Resolved"
    REFUNDED = "REFUNDED", "Refunded"
    CANCELLED = "CANCELLED", "Cancelled"


class EvidenceType(models.TextChoices):
    PHOTO = "PHOTO", "Photo"
    DOCUMENT = "DOCUMENT", "Document"
    RECEIPT = "RECEIPT", "Receipt"
    COMMUNICATION = "COMMUNICATION", "Communication"
    OTHER = "OTHER", "Other"


class MessageType(models.TextChoices):
    MESSAGE = "MESSAGE", "Message"
    STATUS_CHANGE = "STATUS_CHANGE", "Status change"
    SYSTEM = "SYSTEM", "System"


# At most one dispute per order may be in one of these states.
ACTIVE_DISPUTE_STATES: frozenset[str] = frozenset(
    {DisputeStatus.OPEN, DisputeStatus.UNDER_REVIEW}
)

TERMINAL_DISPUTE_STATES: frozenset[str] = frozenset(
    {DisputeStatus.RESOLVED, DisputeStatus.REFUNDED, DisputeStatus.CANCELLED}
)
