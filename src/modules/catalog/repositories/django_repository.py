"""Django ORM implementation of the Product repository.

Lookups follow the Null Object pattern: methods return ``None`` instead of
raising, and the service layer decides how a missing entity surfaces.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F, QuerySet

from modules.catalog.constants import SHARE_TOLERANCE, SHARE_TOTAL
from modules.catalog.exceptions import InvalidShareDistribution
from modules.catalog.models import Product, ProducerShare, ProductSnapshot
from modules.catalog.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


class ProductDjangoRepository(IProductRepository):
    """Concrete Product repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Product]:
        """Retrieve a live product by primary key (``None`` if missing)."""
        try:
            return Product.objects.alive().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        queryset = Product.objects.alive().select_related("producer")
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    @transaction.atomic
    def save(self, entity: Product) -> Product:
        entity.save()
        logger.info("product.saved", product_id=str(entity.id), sku=entity.sku)
        return entity

    # ------------------------------------------------------------------
    # Stock
    # ------------------------------------------------------------------

    def lock_for_sale(self, product_ids: Iterable[UUID]) -> Dict[UUID, Product]:
        ids = sorted(set(product_ids), key=str)
        products = (
            Product.objects.alive()
            .select_for_update()
            .filter(id__in=ids)
            .order_by("id")
        )
        return {product.id: product for product in products}

    def adjust_stock(self, product: Product, delta: int) -> Product:
        product.stock_quantity += delta
        product.save(update_fields=["stock_quantity", "updated_at"])
        return product

    def release_stock(self, product_id: Optional[UUID], quantity: int) -> bool:
        if product_id is None:
            return False
        updated = Product.objects.filter(id=product_id).update(
            stock_quantity=F("stock_quantity") + quantity
        )
        return updated == 1

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    @transaction.atomic
    def snapshot(self, product: Product) -> ProductSnapshot:
        """Freeze the product and its co-producer shares.

        Raises:
            InvalidShareDistribution: shares exist but do not sum to 100%.
        """
        shares = sorted(
            ((row.producer_id, row.share_percentage) for row in product.co_producers.all()),
            key=lambda share: str(share[0]),
        )
        if shares:
            total = sum((pct for _, pct in shares), Decimal("0"))
            if abs(total - SHARE_TOTAL) > SHARE_TOLERANCE:
                raise InvalidShareDistribution(
                    f"Producer shares of {product.sku} sum to {total}%, expected 100%."
                )

        content = {
            "product_id": str(product.id),
            "name": product.name,
            "sku": product.sku,
            "unit_price": str(product.price),
            "owner_producer_id": str(product.producer_id),
            "shares": [[str(pid), str(pct)] for pid, pct in shares],
        }
        fingerprint = hashlib.sha256(
            json.dumps(content, sort_keys=True).encode("utf-8")
        ).hexdigest()

        snapshot, created = ProductSnapshot.objects.get_or_create(
            fingerprint=fingerprint,
            defaults={
                "product": product,
                "name": product.name,
                "sku": product.sku,
                "unit_price": product.price,
                "owner_producer_id": product.producer_id,
            },
        )
        if created:
            ProducerShare.objects.bulk_create(
                [
                    ProducerShare(
                        snapshot=snapshot,
                        producer_id=producer_id,
                        share_percentage=percentage,
                    )
                    for producer_id, percentage in shares
                ]
            )
            logger.info(
                "product.snapshot_created",
                product_id=str(product.id),
                snapshot_id=str(snapshot.id),
                share_count=len(shares),
            )
        return snapshot
