"""Unit tests for the abstract base models, exercised through domain models.

Covers:
- BaseModel: UUIDv7 primary keys and ``updated_at`` bookkeeping (Product).
- SoftDeleteModel: delete / restore / alive / dead (Product, Order).
- AppendOnlyModel: history, snapshots and ledger rows cannot be changed.
"""

from __future__ import annotations

import uuid

import pytest
from freezegun import freeze_time

from django.utils import timezone

from modules.catalog.models import Product, ProducerShare, ProductSnapshot
from modules.core.models import ImmutableRecordError, SoftDeleteManager, SoftDeleteQuerySet
from modules.orders.models import Order, OrderStatusHistory

pytestmark = pytest.mark.unit


# ---------------------------------------------------------------------------
# BaseModel
# ---------------------------------------------------------------------------


class TestBaseModel:
    def test_id_is_uuid_version_7(self, product):
        assert isinstance(product.id, uuid.UUID)
        assert product.id.version == 7

    def test_ids_are_time_ordered(self, product, shared_product):
        assert str(product.id) < str(shared_product.id)

    def test_save_with_update_fields_refreshes_updated_at(self, product):
        original_updated = product.updated_at
        product.stock_quantity = 3
        product.save(update_fields=["stock_quantity"])
        product.refresh_from_db()
        assert product.updated_at > original_updated
        assert product.stock_quantity == 3

    def test_created_at_does_not_change_on_save(self, product):
        original_created = product.created_at
        product.name = "Renamed"
        product.save()
        product.refresh_from_db()
        assert product.created_at == original_created


# ---------------------------------------------------------------------------
# SoftDeleteModel
# ---------------------------------------------------------------------------


class TestSoftDeleteModel:
    def test_delete_sets_deleted_at(self, product):
        result = product.delete()
        product.refresh_from_db()
        assert product.is_deleted is True
        assert result == (1, {"catalog.Product": 1})

    def test_delete_is_noop_if_already_deleted(self, product):
        product.delete()
        assert product.delete() == (0, {})

    def test_soft_deleted_excluded_from_alive_only(self, product, shared_product):
        product.delete()
        assert Product.objects.filter(pk=product.pk).exists()
        assert list(Product.objects.alive()) == [shared_product]
        assert list(Product.objects.dead()) == [product]

    def test_restore_clears_deleted_at(self, product):
        product.delete()
        product.restore()
        product.refresh_from_db()
        assert product.deleted_at is None

    @freeze_time("2026-10-19 12:00:00")
    def test_delete_records_exact_timestamp(self, product):
        product.delete()
        product.refresh_from_db()
        assert product.deleted_at == timezone.now()

    def test_queryset_bulk_delete_skips_already_deleted(self, product, shared_product):
        product.delete()
        count, _ = Product.objects.filter(pk__in=[product.pk, shared_product.pk]).delete()
        assert count == 1

    def test_soft_deleted_order_is_not_awaiting_anchor(self, settled_order):
        assert Order.objects.awaiting_anchor().filter(pk=settled_order.pk).exists()
        Order.objects.get(pk=settled_order.pk).delete()
        assert not Order.objects.awaiting_anchor().filter(pk=settled_order.pk).exists()

    def test_manager_types(self):
        assert isinstance(Product.objects, SoftDeleteManager)
        assert isinstance(Order.objects.all(), SoftDeleteQuerySet)


# ---------------------------------------------------------------------------
# AppendOnlyModel
# ---------------------------------------------------------------------------


class TestAppendOnlyModel:
    def test_history_entry_cannot_be_updated(self, delivered_order):
        entry = OrderStatusHistory.objects.filter(order=delivered_order).first()
        entry.reason = "rewritten"
        with pytest.raises(ImmutableRecordError):
            entry.save()

    def test_history_entry_cannot_be_deleted(self, delivered_order):
        entry = OrderStatusHistory.objects.filter(order=delivered_order).first()
        with pytest.raises(ImmutableRecordError):
            entry.delete()
        assert OrderStatusHistory.objects.filter(pk=entry.pk).exists()

    def test_snapshot_and_shares_are_frozen(self, shared_order):
        snapshot = ProductSnapshot.objects.get(order_items__order=shared_order)
        snapshot.unit_price = 1
        with pytest.raises(ImmutableRecordError):
            snapshot.save()

        share = ProducerShare.objects.filter(snapshot=snapshot).first()
        with pytest.raises(ImmutableRecordError):
            share.delete()

    def test_catalog_change_leaves_snapshot_untouched(self, shared_order, shared_product):
        shared_product.price = 999
        shared_product.save()
        snapshot = ProductSnapshot.objects.get(order_items__order=shared_order)
        assert str(snapshot.unit_price) == "150.00"
