"""Payout URL configuration."""

from __future__ import annotations

from rest_framework.routers import DefaultRouter

from modules.payouts.views import PayoutViewSet

router = DefaultRouter(trailing_slash=True)
router.register("payouts", PayoutViewSet, basename="payout")

urlpatterns = router.urls
