"""Order, OrderItem, OrderStatusHistory and OrderPayout models.

Business rules implemented:
- Delivery and payment statuses are independent axes.
- Every accepted status change appends one ``OrderStatusHistory`` row,
  which can never be updated or deleted.
- Idempotency via the ``idempotency_key`` unique constraint.
- Order number auto-generated as human-readable identifier.
- OrderItem references an immutable product snapshot and copies its price;
  ``subtotal`` is ``quantity * unit_price`` fixed when the item is placed.
- ``shipping_address`` is a JSON copy taken at creation, never a live
  reference.
- ``ledger_recorded`` / ``ledger_error`` expose anchoring progress for UI
  polling; ``anchor_attempt`` only grows.
- Soft delete via ``deleted_at`` (inherited from SoftDeleteModel).
- ``OrderPayout`` moves PENDING -> SCHEDULED -> PROCESSING -> COMPLETED /
  FAILED; amounts never change once written.
"""

from __future__ import annotations

import secrets
from decimal import Decimal
from typing import Any

import structlog
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from modules.core.models import (
    AppendOnlyModel,
    BaseModel,
    SoftDeleteManager,
    SoftDeleteModel,
    SoftDeleteQuerySet,
)
from modules.orders.constants import (
    ANCHORABLE_PAYMENT_STATES,
    ORDER_NUMBER_MAX_RETRIES,
    DeliveryStatus,
    HistoryAxis,
    PaymentStatus,
    PayoutMethod,
    PayoutStatus,
)
from modules.participants.models import ActorRole
from shared.domain.events import DomainEventMixin

logger = structlog.get_logger(__name__)


# ``ledger_error`` values starting with this prefix are not retried.
SPLIT_ERROR_PREFIX = "split:"


class OrderQuerySet(SoftDeleteQuerySet):
    def involving_producer(self, producer_id) -> OrderQuerySet:
        """Orders with at least one item owned or co-produced by the producer."""
        return self.filter(
            models.Q(items__snapshot__owner_producer_id=producer_id)
            | models.Q(items__snapshot__shares__producer_id=producer_id)
        ).distinct()

    def awaiting_anchor(self) -> OrderQuerySet:
        """Settled orders without a ledger record and without a fatal error."""
        return self.alive().filter(
            delivery_status=DeliveryStatus.DELIVERED,
            payment_status__in=ANCHORABLE_PAYMENT_STATES,
            ledger_recorded=False,
            ledger_record__isnull=True,
        ).exclude(ledger_error__startswith=SPLIT_ERROR_PREFIX)


class OrderManager(SoftDeleteManager):
    def get_queryset(self) -> OrderQuerySet:
        return OrderQuerySet(self.model, using=self._db)

    def involving_producer(self, producer_id) -> OrderQuerySet:
        return self.get_queryset().involving_producer(producer_id)

    def awaiting_anchor(self) -> OrderQuerySet:
        return self.get_queryset().awaiting_anchor()


class Order(DomainEventMixin, SoftDeleteModel):
    """Order aggregate root.

    ``order_number`` is a human-readable identifier auto-generated on first
    save (format: ``ORD-YYYYMMDD-XXXXXX``).  The UUIDv7 ``id`` is used for
    all internal references and API lookups.
    """

    order_number = models.CharField(max_length=20, unique=True, editable=False)
    buyer = models.ForeignKey(
        "participants.Participant",
        on_delete=models.PROTECT,
        related_name="orders",
    )
    delivery_status = models.CharField(
        max_length=20,
        choices=DeliveryStatus.choices,
        default=DeliveryStatus.PENDING,
    )
    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    total_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    refunded_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    shipping_address = models.JSONField(default=dict)
    delivery_proof = models.CharField(max_length=500, null=True, blank=True)  # noqa: DJ01
    notes = models.TextField(blank=True, default="")
    idempotency_key = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
    )
    ledger_recorded = models.BooleanField(default=False)
    ledger_error = models.TextField(null=True, blank=True, default=None)  # noqa: DJ01
    anchor_attempt = models.PositiveIntegerField(default=0)

    objects = OrderManager()

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["delivery_status"], name="orders_delivery_status_idx"),
            models.Index(fields=["payment_status"], name="orders_payment_status_idx"),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(refunded_amount__lte=models.F("total_amount")),
                name="orders_refund_within_total",
            ),
        ]

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------

    @property
    def is_settled(self) -> bool:
        """Delivered and paid: ready for payout computation and anchoring."""
        return (
            self.delivery_status == DeliveryStatus.DELIVERED
            and self.payment_status == PaymentStatus.CONFIRMED
        )

    @property
    def is_anchorable(self) -> bool:
        return (
            self.delivery_status == DeliveryStatus.DELIVERED
            and self.payment_status in ANCHORABLE_PAYMENT_STATES
        )

    @property
    def refundable_amount(self) -> Decimal:
        return self.total_amount - self.refunded_amount

    # ------------------------------------------------------------------
    # Order number generation
    # ------------------------------------------------------------------

    @staticmethod
    def generate_order_number() -> str:
        """Generate a human-readable order number: ``ORD-YYYYMMDD-XXXXXX``."""
        now = timezone.now()
        suffix = secrets.token_hex(3).upper()
        return f"ORD-{now:%Y%m%d}-{suffix}"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self.order_number:
            for _ in range(ORDER_NUMBER_MAX_RETRIES):
                candidate = self.generate_order_number()
                if not Order.objects.filter(order_number=candidate).exists():
                    self.order_number = candidate
                    break
            else:
                raise RuntimeError(
                    f"Failed to generate unique order_number after "
                    f"{ORDER_NUMBER_MAX_RETRIES} attempts"
                )
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.order_number} ({self.delivery_status}/{self.payment_status})"


class OrderItem(BaseModel):
    """Line item linking an Order to an immutable product snapshot."""

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="items",
    )
    snapshot = models.ForeignKey(
        "catalog.ProductSnapshot",
        on_delete=models.PROTECT,
        related_name="order_items",
    )
    quantity = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
    )
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, editable=False)

    class Meta:
        db_table = "order_items"
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
        ]

    def clean(self) -> None:
        super().clean()
        if self.quantity is not None and self.quantity < 1:
            raise ValidationError({"quantity": "Quantity must be at least 1."})

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            raise ValidationError("Order items are immutable once the order is placed.")
        if not self.unit_price:
            self.unit_price = self.snapshot.unit_price
        self.subtotal = self.quantity * self.unit_price
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.snapshot_id} x{self.quantity} ({self.subtotal})"


class OrderStatusHistory(AppendOnlyModel):
    """Append-only audit trail of status changes on either axis.

    ``actor`` is ``None`` when the change was made by the SYSTEM actor
    (payment gateway reconciliation, ledger anchoring).
    """

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    axis = models.CharField(
        max_length=10,
        choices=HistoryAxis.choices,
        default=HistoryAxis.DELIVERY,
    )
    from_status = models.CharField(max_length=20, null=True, blank=True)  # noqa: DJ01
    to_status = models.CharField(max_length=20)
    actor = models.ForeignKey(
        "participants.Participant",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    actor_role = models.CharField(max_length=20, choices=ActorRole.choices)
    reason = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_status_history"
        ordering = ["created_at"]
        indexes = [
            models.Index(
                fields=["order", "created_at"],
                name="osh_order_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order_id} [{self.axis}] {self.from_status} -> {self.to_status}"


class OrderPayoutQuerySet(models.QuerySet):
    def queued(self) -> OrderPayoutQuerySet:
        """PENDING or SCHEDULED, earliest payout date first."""
        return self.filter(
            status__in=[PayoutStatus.PENDING, PayoutStatus.SCHEDULED]
        ).order_by(models.F("scheduled_for").asc(nulls_last=True), "created_at")

    def due(self, now=None) -> OrderPayoutQuerySet:
        """SCHEDULED payouts whose payout date has arrived."""
        return self.filter(
            status=PayoutStatus.SCHEDULED,
            scheduled_for__lte=now or timezone.now(),
        ).order_by("scheduled_for", "created_at")

    def of_producer(self, producer_id) -> OrderPayoutQuerySet:
        return self.filter(producer_id=producer_id)


class OrderPayout(BaseModel):
    """One producer's share of a settled order and its payout progress.

    Amounts are the persisted output of the split calculator and never
    change; only the lifecycle fields move.
    """

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="payouts",
    )
    producer = models.ForeignKey(
        "participants.Participant",
        on_delete=models.PROTECT,
        related_name="payouts",
    )
    gross_share = models.DecimalField(max_digits=12, decimal_places=2)
    commission = models.DecimalField(max_digits=12, decimal_places=2)
    net_payout = models.DecimalField(max_digits=12, decimal_places=2)

    status = models.CharField(
        max_length=20,
        choices=PayoutStatus.choices,
        default=PayoutStatus.PENDING,
    )
    scheduled_for = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    payout_method = models.CharField(
        max_length=20, choices=PayoutMethod.choices, blank=True, default=""
    )
    payout_reference = models.CharField(max_length=100, blank=True, default="")
    failure_reason = models.TextField(blank=True, default="")

    objects = OrderPayoutQuerySet.as_manager()

    class Meta:
        db_table = "order_payouts"
        ordering = ["producer_id"]
        indexes = [
            models.Index(
                fields=["status", "scheduled_for"],
                name="order_payouts_queue_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["order", "producer"], name="order_payouts_unique"
            ),
            models.CheckConstraint(
                condition=~models.Q(status=PayoutStatus.COMPLETED)
                | ~models.Q(payout_reference=""),
                name="order_payouts_completed_has_reference",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order_id} -> {self.producer_id}: {self.net_payout} [{self.status}]"
