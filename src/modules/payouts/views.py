"""Payout API views.

Producers read their own payouts and earnings; administrators work the
payout queues and record each transfer.
"""

from __future__ import annotations

from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.core.errors import WorkflowError, error_response
from modules.core.pagination import StandardResultsSetPagination
from modules.orders.models import OrderPayout
from modules.participants.permissions import IsParticipant, get_actor
from modules.payouts.dtos import CompletePayoutDTO, FailPayoutDTO
from modules.payouts.repositories.django_repository import PayoutDjangoRepository
from modules.payouts.serializers import (
    CompletePayoutSerializer,
    EarningsSerializer,
    FailPayoutSerializer,
    PayoutSerializer,
)
from modules.payouts.services import PayoutService


class PayoutViewSet(GenericViewSet):
    """ViewSet for payout operations (service + injected repository)."""

    queryset = OrderPayout.objects.all()
    permission_classes = [IsParticipant]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = PayoutService(PayoutDjangoRepository())

    def _page(self, queryset, request: Request) -> Response:
        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(queryset, request)
        return paginator.get_paginated_response(PayoutSerializer(page, many=True).data)

    # ------------------------------------------------------------------
    # Producer
    # ------------------------------------------------------------------

    @action(detail=False, methods=["get"], url_path="my-payouts")
    def my_payouts(self, request: Request) -> Response:
        """GET /api/v1/payouts/my-payouts/"""
        try:
            queryset = self._service.list_own(get_actor(request))
        except WorkflowError as exc:
            return error_response(exc)
        return self._page(queryset, request)

    @action(detail=False, methods=["get"], url_path="my-earnings")
    def my_earnings(self, request: Request) -> Response:
        """GET /api/v1/payouts/my-earnings/"""
        try:
            summary = self._service.earnings(get_actor(request))
        except WorkflowError as exc:
            return error_response(exc)
        return Response(EarningsSerializer(summary.model_dump()).data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/payouts/{pk}/"""
        try:
            payout = self._service.get_payout(pk, get_actor(request))
        except WorkflowError as exc:
            return error_response(exc)
        return Response(PayoutSerializer(payout).data)

    # ------------------------------------------------------------------
    # Admin queues
    # ------------------------------------------------------------------

    @action(detail=False, methods=["get"])
    def pending(self, request: Request) -> Response:
        """GET /api/v1/payouts/pending/ (PENDING and SCHEDULED)"""
        try:
            queryset = self._service.queued(get_actor(request))
        except WorkflowError as exc:
            return error_response(exc)
        return self._page(queryset, request)

    @action(detail=False, methods=["get"])
    def due(self, request: Request) -> Response:
        """GET /api/v1/payouts/due/"""
        try:
            queryset = self._service.due(get_actor(request))
        except WorkflowError as exc:
            return error_response(exc)
        return self._page(queryset, request)

    @action(detail=False, methods=["get"], url_path=r"producer/(?P<producer_id>[^/.]+)")
    def producer(self, request: Request, producer_id: str | None = None) -> Response:
        """GET /api/v1/payouts/producer/{producer_id}/"""
        try:
            queryset = self._service.list_for_producer(producer_id, get_actor(request))
        except WorkflowError as exc:
            return error_response(exc)
        return self._page(queryset, request)

    # ------------------------------------------------------------------
    # Admin transitions
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def process(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/payouts/{pk}/process/"""
        try:
            payout = self._service.process(pk, get_actor(request))
        except WorkflowError as exc:
            return error_response(exc)
        return Response(PayoutSerializer(payout).data)

    @action(detail=True, methods=["post"])
    def complete(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/payouts/{pk}/complete/"""
        serializer = CompletePayoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            payout = self._service.complete(
                pk, CompletePayoutDTO(**serializer.validated_data), get_actor(request)
            )
        except WorkflowError as exc:
            return error_response(exc)
        return Response(PayoutSerializer(payout).data)

    @action(detail=True, methods=["post"])
    def fail(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/payouts/{pk}/fail/"""
        serializer = FailPayoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            payout = self._service.fail(
                pk, FailPayoutDTO(**serializer.validated_data), get_actor(request)
            )
        except WorkflowError as exc:
            return error_response(exc)
        return Response(PayoutSerializer(payout).data)
