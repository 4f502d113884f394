"""Ledger URL configuration."""

from __future__ import annotations

from rest_framework.routers import DefaultRouter

from modules.ledger.views import LedgerOrderViewSet

router = DefaultRouter(trailing_slash=True)
router.register("ledger/orders", LedgerOrderViewSet, basename="ledger-order")

urlpatterns = router.urls
