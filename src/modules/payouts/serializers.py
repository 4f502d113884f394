"""Payout DRF serializers for API input/output."""

from __future__ import annotations

from rest_framework import serializers

from modules.orders.constants import PayoutMethod
from modules.orders.models import OrderPayout

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class CompletePayoutSerializer(serializers.Serializer):
    payout_reference = serializers.CharField(max_length=100)
    payout_method = serializers.ChoiceField(
        choices=PayoutMethod.choices, required=False, default=PayoutMethod.BANK_TRANSFER
    )


class FailPayoutSerializer(serializers.Serializer):
    reason = serializers.CharField()


# ---------------------------------------------------------------------------
# Output Serializers
# ---------------------------------------------------------------------------


class PayoutSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source="order.order_number", read_only=True)

    class Meta:
        model = OrderPayout
        fields = [
            "id",
            "order_id",
            "order_number",
            "producer_id",
            "gross_share",
            "commission",
            "net_payout",
            "status",
            "scheduled_for",
            "paid_at",
            "payout_method",
            "payout_reference",
            "failure_reason",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class EarningsSerializer(serializers.Serializer):
    pending = serializers.DecimalField(max_digits=14, decimal_places=2)
    completed = serializers.DecimalField(max_digits=14, decimal_places=2)
    total = serializers.DecimalField(max_digits=14, decimal_places=2)
