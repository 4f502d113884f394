"""Order DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.orders.constants import DeliveryStatus
from modules.orders.models import Order, OrderItem, OrderPayout, OrderStatusHistory

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class CreateOrderItemSerializer(serializers.Serializer):
    """Validates a single item in an order creation request."""

    product_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)


class ShippingAddressSerializer(serializers.Serializer):
    recipient = serializers.CharField(max_length=255)
    line1 = serializers.CharField(max_length=255)
    line2 = serializers.CharField(max_length=255, required=False, default="", allow_blank=True)
    city = serializers.CharField(max_length=120)
    region = serializers.CharField(max_length=120, required=False, default="", allow_blank=True)
    postal_code = serializers.CharField(
        max_length=20, required=False, default="", allow_blank=True
    )
    country = serializers.CharField(max_length=2)
    phone = serializers.CharField(max_length=30, required=False, default="", allow_blank=True)


class CreateOrderSerializer(serializers.Serializer):
    """Validates the order creation request payload."""

    items = CreateOrderItemSerializer(many=True, allow_empty=False)
    shipping_address = ShippingAddressSerializer()
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class TransitionOrderSerializer(serializers.Serializer):
    """Validates a delivery-status change request (``PATCH /orders/{id}/``)."""

    status = serializers.ChoiceField(choices=DeliveryStatus.choices)
    reason = serializers.CharField(required=False, default="", allow_blank=True)
    delivery_proof = serializers.CharField(
        required=False, allow_null=True, allow_blank=True, max_length=500
    )
    expected_status = serializers.ChoiceField(
        choices=DeliveryStatus.choices, required=False, allow_null=True
    )

    def to_internal_value(self, data):
        if hasattr(data, "copy"):
            data = data.copy()
            for field in ("status", "expected_status"):
                if isinstance(data.get(field), str):
                    data[field] = data[field].strip().upper()
        return super().to_internal_value(data)


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, default="", allow_blank=True)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class OrderItemSerializer(serializers.ModelSerializer):
    """Read serializer for order items with the product snapshot."""

    product_id = serializers.UUIDField(source="snapshot.product_id", read_only=True)
    product_name = serializers.CharField(source="snapshot.name", read_only=True)
    product_sku = serializers.CharField(source="snapshot.sku", read_only=True)
    owner_producer_id = serializers.UUIDField(
        source="snapshot.owner_producer_id", read_only=True
    )

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product_id",
            "product_name",
            "product_sku",
            "owner_producer_id",
            "quantity",
            "unit_price",
            "subtotal",
        ]
        read_only_fields = fields


class StatusHistorySerializer(serializers.ModelSerializer):
    """Read serializer for order status history records."""

    class Meta:
        model = OrderStatusHistory
        fields = [
            "id",
            "axis",
            "from_status",
            "to_status",
            "actor_id",
            "actor_role",
            "reason",
            "created_at",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Read serializer for orders with nested items and history."""

    items = OrderItemSerializer(many=True, read_only=True)
    status_history = StatusHistorySerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "buyer_id",
            "delivery_status",
            "payment_status",
            "total_amount",
            "refunded_amount",
            "shipping_address",
            "delivery_proof",
            "notes",
            "ledger_recorded",
            "ledger_error",
            "created_at",
            "updated_at",
            "items",
            "status_history",
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for order list (no nested relations)."""

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "buyer_id",
            "delivery_status",
            "payment_status",
            "total_amount",
            "ledger_recorded",
            "created_at",
        ]
        read_only_fields = fields


class OrderPayoutSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderPayout
        fields = [
            "id",
            "producer_id",
            "gross_share",
            "commission",
            "net_payout",
            "status",
            "scheduled_for",
            "paid_at",
        ]
        read_only_fields = fields
