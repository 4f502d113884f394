"""Ledger API views: verification for participants, re-anchoring for admins."""

from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.catalog.repositories.django_repository import ProductDjangoRepository
from modules.core.errors import WorkflowError, error_response
from modules.ledger.repositories.django_repository import LedgerDjangoRepository
from modules.ledger.services import LedgerReconciler
from modules.ledger.tasks import anchor_order
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.participants.permissions import IsAdminParticipant, IsParticipant, get_actor


class LedgerOrderViewSet(GenericViewSet):
    """``/api/v1/ledger/orders/{order_id}/...``"""

    queryset = Order.objects.none()
    permission_classes = [IsParticipant]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        order_repository = OrderDjangoRepository()
        self._orders = OrderService(
            order_repository=order_repository,
            product_repository=ProductDjangoRepository(),
        )
        self._reconciler = LedgerReconciler(
            ledger_repository=LedgerDjangoRepository(),
            order_repository=order_repository,
        )

    def get_permissions(self):
        if self.action == "anchor":
            return [IsAdminParticipant()]
        return super().get_permissions()

    @action(detail=True, methods=["get"])
    def verify(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/ledger/orders/{pk}/verify/ -> verified | unverifiable | pending"""
        try:
            order = self._orders.get_order(pk, get_actor(request))
        except WorkflowError as exc:
            return error_response(exc)

        result = self._reconciler.verify(order.id)
        record = getattr(order, "ledger_record", None)
        return Response(
            {
                "order_id": str(order.id),
                "status": result.status.value,
                "detail": result.detail,
                "external_reference": record.external_reference if record else None,
                "block_number": record.block_number if record else None,
                "confirmed_at": record.confirmed_at if record else None,
                "ledger_recorded": order.ledger_recorded,
                "ledger_error": order.ledger_error,
            }
        )

    @action(detail=True, methods=["post"])
    def anchor(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/ledger/orders/{pk}/anchor/ (admin): queue anchoring again."""
        try:
            order = self._orders.get_order(pk, get_actor(request))
        except WorkflowError as exc:
            return error_response(exc)

        attempt = self._reconciler.schedule(order.id, dispatch=anchor_order.delay)
        return Response(
            {"order_id": str(order.id), "anchor_attempt": attempt},
            status=status.HTTP_202_ACCEPTED,
        )
