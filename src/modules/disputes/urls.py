"""Dispute URL configuration."""

from __future__ import annotations

from rest_framework.routers import DefaultRouter

from modules.disputes.views import DisputeViewSet

router = DefaultRouter(trailing_slash=True)
router.register("disputes", DisputeViewSet, basename="dispute")

urlpatterns = router.urls
