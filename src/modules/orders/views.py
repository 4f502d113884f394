"""Order API views.

Exposes the ``OrderService`` via HTTP using DRF ViewSets.
Domain exceptions are caught and translated into the standard error
response; the view never swallows generic exceptions.
"""

from __future__ import annotations

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.catalog.repositories.django_repository import ProductDjangoRepository
from modules.core.errors import WorkflowError, error_response
from modules.core.pagination import StandardResultsSetPagination
from modules.orders.dtos import (
    CreateOrderDTO,
    CreateOrderItemDTO,
    ShippingAddressDTO,
    TransitionOrderDTO,
)
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import (
    CancelOrderSerializer,
    CreateOrderSerializer,
    OrderListSerializer,
    OrderPayoutSerializer,
    OrderSerializer,
    StatusHistorySerializer,
    TransitionOrderSerializer,
)
from modules.orders.services import OrderService
from modules.participants.permissions import IsParticipant, get_actor


class OrderViewSet(GenericViewSet):
    """ViewSet for Order operations.

    Uses ``OrderService`` with injected repositories (DIP).
    Does **not** extend ``ModelViewSet``: all ORM access goes through
    the service/repository layer.
    """

    queryset = Order.objects.all()
    permission_classes = [IsParticipant]
    filterset_class = OrderFilter
    search_fields = ["order_number"]
    ordering_fields = ["created_at", "total_amount", "delivery_status", "payment_status"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = OrderService(
            order_repository=OrderDjangoRepository(),
            product_repository=ProductDjangoRepository(),
        )

    def get_queryset(self):
        return self._service.list_orders(get_actor(self.request))

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/

        Supports idempotency via the ``Idempotency-Key`` header.
        Returns 200 if the key was already used, 201 for new orders.
        """
        create_serializer = CreateOrderSerializer(data=request.data)
        create_serializer.is_valid(raise_exception=True)

        data = create_serializer.validated_data
        dto = CreateOrderDTO(
            items=[
                CreateOrderItemDTO(
                    product_id=item["product_id"],
                    quantity=item["quantity"],
                )
                for item in data["items"]
            ],
            shipping_address=ShippingAddressDTO(**data["shipping_address"]),
            notes=data.get("notes", ""),
            idempotency_key=request.headers.get("Idempotency-Key"),
        )

        try:
            order = self._service.create_order(dto, get_actor(request))
        except WorkflowError as exc:
            return error_response(exc)

        replayed = getattr(order, "_idempotent_replay", False)
        out = OrderSerializer(order)
        return Response(
            out.data,
            status=status.HTTP_200_OK if replayed else status.HTTP_201_CREATED,
        )

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/

        Scoped to the caller: buyers see their own orders, producers the
        orders they take part in, admins everything.  Filtering is handled
        by ``OrderFilter``; results are paginated.
        """
        try:
            queryset = self.filter_queryset(self.get_queryset())
        except WorkflowError as exc:
            return error_response(exc)

        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(queryset, request)
        serializer = OrderListSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        try:
            order = self._service.get_order(pk, get_actor(request))
        except WorkflowError as exc:
            return error_response(exc)
        serializer = OrderSerializer(order)
        return Response(serializer.data)

    @action(detail=True, methods=["get"])
    def history(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/history/"""
        try:
            entries = self._service.get_history(pk, get_actor(request))
        except WorkflowError as exc:
            return error_response(exc)
        return Response(StatusHistorySerializer(entries, many=True).data)

    @action(detail=True, methods=["get"])
    def payouts(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/payouts/"""
        try:
            payouts = self._service.get_payouts(pk, get_actor(request))
        except WorkflowError as exc:
            return error_response(exc)
        return Response(OrderPayoutSerializer(payouts, many=True).data)

    # ------------------------------------------------------------------
    # Status transition
    # ------------------------------------------------------------------

    def partial_update(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/orders/{pk}/

        Moves the order along the delivery axis.  Which targets are legal
        depends on the caller's role and the current status.
        """
        serializer = TransitionOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dto = TransitionOrderDTO(**serializer.validated_data)

        try:
            order = self._service.transition(
                order_id=pk,
                requested_status=dto.status,
                actor=get_actor(request),
                reason=dto.reason,
                delivery_proof=dto.delivery_proof,
                expected_status=dto.expected_status,
            )
        except WorkflowError as exc:
            return error_response(exc)

        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Cancel (dedicated action)
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/

        Buyer cancellation of a pending order; releases reserved stock.
        """
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            order = self._service.cancel_order(
                order_id=pk,
                actor=get_actor(request),
                reason=serializer.validated_data["reason"],
            )
        except WorkflowError as exc:
            return error_response(exc)

        return Response(OrderSerializer(order).data)
