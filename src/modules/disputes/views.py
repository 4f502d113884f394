"""Dispute API views.

Exposes the ``DisputeService`` via HTTP.  Domain exceptions are
translated into the standard error response.
"""

from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.catalog.repositories.django_repository import ProductDjangoRepository
from modules.core.errors import WorkflowError, error_response
from modules.core.pagination import StandardResultsSetPagination
from modules.disputes.dtos import (
    AddEvidenceDTO,
    AddMessageDTO,
    OpenDisputeDTO,
    UpdateDisputeStatusDTO,
)
from modules.disputes.models import Dispute
from modules.disputes.repositories.django_repository import DisputeDjangoRepository
from modules.disputes.serializers import (
    AddEvidenceSerializer,
    AddMessageSerializer,
    CloseDisputeSerializer,
    DisputeEvidenceSerializer,
    DisputeListSerializer,
    DisputeMessageSerializer,
    DisputeSerializer,
    OpenDisputeSerializer,
    UpdateDisputeStatusSerializer,
)
from modules.disputes.services import DisputeService
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.participants.permissions import IsParticipant, get_actor


class DisputeViewSet(GenericViewSet):
    """ViewSet for Dispute operations (service + injected repositories)."""

    queryset = Dispute.objects.all()
    permission_classes = [IsParticipant]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        order_repository = OrderDjangoRepository()
        self._service = DisputeService(
            dispute_repository=DisputeDjangoRepository(),
            order_repository=order_repository,
            order_service=OrderService(
                order_repository=order_repository,
                product_repository=ProductDjangoRepository(),
            ),
        )

    def _detail(self, dispute: Dispute, request: Request) -> dict:
        data = DisputeSerializer(dispute).data
        data["messages"] = DisputeMessageSerializer(
            self._service.get_messages(dispute.id, get_actor(request)), many=True
        ).data
        return data

    # ------------------------------------------------------------------
    # Create / Read
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/disputes/"""
        serializer = OpenDisputeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dto = OpenDisputeDTO(**serializer.validated_data)

        try:
            dispute = self._service.open_dispute(dto, get_actor(request))
            body = self._detail(dispute, request)
        except WorkflowError as exc:
            return error_response(exc)
        return Response(body, status=status.HTTP_201_CREATED)

    def list(self, request: Request) -> Response:
        """GET /api/v1/disputes/?status=OPEN"""
        try:
            queryset = self._service.list_disputes(
                get_actor(request), status=request.query_params.get("status")
            )
        except WorkflowError as exc:
            return error_response(exc)

        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(queryset, request)
        return paginator.get_paginated_response(DisputeListSerializer(page, many=True).data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/disputes/{pk}/"""
        try:
            dispute = self._service.get_dispute(pk, get_actor(request))
            body = self._detail(dispute, request)
        except WorkflowError as exc:
            return error_response(exc)
        return Response(body)

    # ------------------------------------------------------------------
    # Evidence / messages
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def evidence(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/disputes/{pk}/evidence/"""
        serializer = AddEvidenceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            evidence = self._service.add_evidence(
                pk, AddEvidenceDTO(**serializer.validated_data), get_actor(request)
            )
        except WorkflowError as exc:
            return error_response(exc)
        return Response(DisputeEvidenceSerializer(evidence).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["get", "post"])
    def messages(self, request: Request, pk: str | None = None) -> Response:
        """GET/POST /api/v1/disputes/{pk}/messages/"""
        if request.method == "GET":
            try:
                thread = self._service.get_messages(pk, get_actor(request))
            except WorkflowError as exc:
                return error_response(exc)
            return Response(DisputeMessageSerializer(thread, many=True).data)

        serializer = AddMessageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            message = self._service.add_message(
                pk, AddMessageDTO(**serializer.validated_data), get_actor(request)
            )
        except WorkflowError as exc:
            return error_response(exc)
        return Response(DisputeMessageSerializer(message).data, status=status.HTTP_201_CREATED)

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    def partial_update(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/disputes/{pk}/ (administrators)"""
        serializer = UpdateDisputeStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            dispute = self._service.update_status(
                pk, UpdateDisputeStatusDTO(**serializer.validated_data), get_actor(request)
            )
            body = self._detail(dispute, request)
        except WorkflowError as exc:
            return error_response(exc)
        return Response(body)

    @action(detail=True, methods=["post"])
    def resolve(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/disputes/{pk}/resolve/ (raiser, no refund)"""
        serializer = CloseDisputeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            dispute = self._service.resolve(
                pk, get_actor(request), resolution=serializer.validated_data["resolution"]
            )
            body = self._detail(dispute, request)
        except WorkflowError as exc:
            return error_response(exc)
        return Response(body)

    @action(detail=True, methods=["post"])
    def withdraw(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/disputes/{pk}/withdraw/ (raiser)"""
        serializer = CloseDisputeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            dispute = self._service.withdraw(
                pk, get_actor(request), reason=serializer.validated_data["resolution"]
            )
            body = self._detail(dispute, request)
        except WorkflowError as exc:
            return error_response(exc)
        return Response(body)
