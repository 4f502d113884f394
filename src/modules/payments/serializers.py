"""Payment DRF serializers."""

from __future__ import annotations

from rest_framework import serializers

from modules.payments.models import GatewayEvent, PaymentReference


class GatewayWebhookSerializer(serializers.Serializer):
    """Gateway callback body: ``tx_ref`` is our reference, ``reference`` the gateway's."""

    tx_ref = serializers.CharField(max_length=50)
    status = serializers.CharField(max_length=30)
    reference = serializers.CharField(required=False, default="", allow_blank=True)
    amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, required=False, allow_null=True
    )


class PaymentReferenceSerializer(serializers.ModelSerializer):
    class Meta:
        model = PaymentReference
        fields = ["id", "order_id", "reference", "used_at", "created_at"]
        read_only_fields = fields


class GatewayEventSerializer(serializers.ModelSerializer):
    class Meta:
        model = GatewayEvent
        fields = [
            "id",
            "reference",
            "event_status",
            "transaction_id",
            "amount",
            "outcome",
            "error_message",
            "payload",
            "created_at",
        ]
        read_only_fields = fields
