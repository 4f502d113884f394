"""Payment API views.

The gateway webhook is public and always answers 200: the gateway only
needs to know the callback arrived, and every outcome is recorded on the
stored ``GatewayEvent`` for reconciliation.
"""

from __future__ import annotations

import structlog
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.exceptions import ParseError, UnsupportedMediaType
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response

from modules.catalog.repositories.django_repository import ProductDjangoRepository
from modules.core.errors import WorkflowError, error_response
from modules.core.pagination import StandardResultsSetPagination
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.participants.permissions import IsAdminParticipant, IsParticipant, get_actor
from modules.payments.dtos import GatewayEventDTO
from modules.payments.repositories.django_repository import PaymentDjangoRepository
from modules.payments.serializers import (
    GatewayEventSerializer,
    GatewayWebhookSerializer,
    PaymentReferenceSerializer,
)
from modules.payments.services import PaymentReconciler, PaymentService

logger = structlog.get_logger(__name__)


def _order_service() -> OrderService:
    return OrderService(
        order_repository=OrderDjangoRepository(),
        product_repository=ProductDjangoRepository(),
    )


@api_view(["POST"])
@authentication_classes([])
@permission_classes([AllowAny])
def gateway_webhook(request: Request) -> Response:
    """POST /api/v1/payments/webhook/"""
    try:
        body = request.data
    except (ParseError, UnsupportedMediaType) as exc:
        logger.warning("payment.webhook_unreadable", error=str(exc))
        return Response({"accepted": False, "errors": {"body": [str(exc)]}})

    serializer = GatewayWebhookSerializer(data=body)
    if not serializer.is_valid():
        logger.warning("payment.webhook_malformed", errors=serializer.errors)
        return Response({"accepted": False, "errors": serializer.errors})

    data = serializer.validated_data
    dto = GatewayEventDTO(
        reference=data["tx_ref"],
        status=data["status"],
        transaction_id=data.get("reference", ""),
        amount=data.get("amount"),
        payload=dict(body),
    )
    reconciler = PaymentReconciler(PaymentDjangoRepository(), _order_service())
    ack = reconciler.apply_gateway_event(dto)
    return Response({"accepted": True, **ack.model_dump()})


@api_view(["GET"])
@permission_classes([IsAdminParticipant])
def reconciliation_queue(request: Request) -> Response:
    """GET /api/v1/payments/reconciliation/ (admin)"""
    queryset = PaymentDjangoRepository().needing_reconciliation()
    paginator = StandardResultsSetPagination()
    page = paginator.paginate_queryset(queryset, request)
    return paginator.get_paginated_response(GatewayEventSerializer(page, many=True).data)


@api_view(["POST"])
@permission_classes([IsParticipant])
def create_payment_reference(request: Request, order_id) -> Response:
    """POST /api/v1/orders/{order_id}/payment-reference/ (buyer)"""
    service = PaymentService(PaymentDjangoRepository(), _order_service())
    try:
        reference = service.create_reference(order_id, get_actor(request))
    except WorkflowError as exc:
        return error_response(exc)
    return Response(PaymentReferenceSerializer(reference).data, status=status.HTTP_201_CREATED)


@api_view(["GET"])
@permission_classes([IsParticipant])
def payment_status(request: Request, order_id) -> Response:
    """GET /api/v1/payments/orders/{order_id}/status/"""
    try:
        order = _order_service().get_order(order_id, get_actor(request))
    except WorkflowError as exc:
        return error_response(exc)
    references = PaymentDjangoRepository().list({"order_id": order.id})
    return Response(
        {
            "order_id": str(order.id),
            "payment_status": order.payment_status,
            "total_amount": str(order.total_amount),
            "refunded_amount": str(order.refunded_amount),
            "references": PaymentReferenceSerializer(references, many=True).data,
        }
    )
