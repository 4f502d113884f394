"""Catalog models: live products and the immutable snapshots orders reference.

Business rules implemented:
- SKU must be unique in the system (normalised to uppercase).
- Price must be greater than zero; stock can never be negative.
- Inactive products cannot be sold (enforced at service layer).
- ``ProductProducer`` rows split a product's proceeds between producers.
- ``ProductSnapshot`` freezes name, price, owner and shares at order time.
  Catalog corrections never alter a placed order: snapshots and their
  ``ProducerShare`` rows are append-only.
"""

from __future__ import annotations

from decimal import Decimal

import structlog
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from modules.core.models import AppendOnlyModel, BaseModel, SoftDeleteModel

logger = structlog.get_logger(__name__)

_PERCENT_VALIDATORS = [
    MinValueValidator(Decimal("0.01")),
    MaxValueValidator(Decimal("100")),
]


class ProductStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    INACTIVE = "inactive", "Inactive"


class Product(SoftDeleteModel):
    """Sellable product owned by one producer."""

    producer = models.ForeignKey(
        "participants.Participant",
        on_delete=models.PROTECT,
        related_name="products",
    )
    sku = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    stock_quantity = models.PositiveIntegerField(default=0)
    status = models.CharField(
        max_length=20,
        choices=ProductStatus.choices,
        default=ProductStatus.ACTIVE,
    )

    class Meta:
        db_table = "products"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["status"], name="products_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(price__gt=0),
                name="products_price_positive",
            ),
        ]

    def clean(self) -> None:
        super().clean()
        if self.sku:
            self.sku = self.sku.strip().upper()
        if self.price is not None and self.price <= 0:
            raise ValidationError({"price": "Price must be greater than zero."})

    def save(self, *args, **kwargs) -> None:
        if self.sku:
            self.sku = self.sku.strip().upper()
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.sku} - {self.name}"


class ProductProducer(BaseModel):
    """Live co-producer share of a product's proceeds."""

    product = models.ForeignKey(
        "catalog.Product",
        on_delete=models.CASCADE,
        related_name="co_producers",
    )
    producer = models.ForeignKey(
        "participants.Participant",
        on_delete=models.PROTECT,
        related_name="product_shares",
    )
    share_percentage = models.DecimalField(
        max_digits=5, decimal_places=2, validators=_PERCENT_VALIDATORS
    )
    role = models.CharField(max_length=100, blank=True, default="")

    class Meta:
        db_table = "product_producers"
        constraints = [
            models.UniqueConstraint(
                fields=["product", "producer"], name="product_producers_unique"
            ),
        ]

    def __str__(self) -> str:
        return f"{self.product_id} -> {self.producer_id} ({self.share_percentage}%)"


class ProductSnapshot(AppendOnlyModel):
    """Immutable copy of a product as it was sold.

    ``fingerprint`` is the SHA-256 of the snapshot content, so every order
    placed against the same catalog state reuses one snapshot row.
    """

    product = models.ForeignKey(
        "catalog.Product",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="snapshots",
    )
    name = models.CharField(max_length=255)
    sku = models.CharField(max_length=64)
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    owner_producer = models.ForeignKey(
        "participants.Participant",
        on_delete=models.PROTECT,
        related_name="owned_snapshots",
    )
    fingerprint = models.CharField(max_length=64, unique=True)

    class Meta:
        db_table = "product_snapshots"
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.sku} @ {self.unit_price}"


class ProducerShare(AppendOnlyModel):
    """Share of a snapshot's proceeds attributed to one producer."""

    snapshot = models.ForeignKey(
        "catalog.ProductSnapshot",
        on_delete=models.CASCADE,
        related_name="shares",
    )
    producer = models.ForeignKey(
        "participants.Participant",
        on_delete=models.PROTECT,
        related_name="snapshot_shares",
    )
    share_percentage = models.DecimalField(
        max_digits=5, decimal_places=2, validators=_PERCENT_VALIDATORS
    )

    class Meta:
        db_table = "producer_shares"
        ordering = ["producer_id"]
        constraints = [
            models.UniqueConstraint(
                fields=["snapshot", "producer"], name="producer_shares_unique"
            ),
            models.CheckConstraint(
                condition=models.Q(share_percentage__gt=0)
                & models.Q(share_percentage__lte=100),
                name="producer_shares_percentage_range",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.producer_id}: {self.share_percentage}%"
