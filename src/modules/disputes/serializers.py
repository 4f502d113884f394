"""Dispute DRF serializers for API input/output."""

from __future__ import annotations

from rest_framework import serializers

from modules.disputes.constants import DisputeStatus, EvidenceType
from modules.disputes.models import Dispute, DisputeEvidence, DisputeMessage

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class OpenDisputeSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    reason = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, default="", allow_blank=True)


class AddEvidenceSerializer(serializers.Serializer):
    evidence_type = serializers.ChoiceField(
        choices=EvidenceType.choices, required=False, default=EvidenceType.OTHER
    )
    file_reference = serializers.CharField(max_length=500)
    filename = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, default="", allow_blank=True)


class AddMessageSerializer(serializers.Serializer):
    content = serializers.CharField()
    is_internal = serializers.BooleanField(required=False, default=False)


class UpdateDisputeStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=DisputeStatus.choices)
    resolution = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    refund_amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, required=False, allow_null=True
    )


class CloseDisputeSerializer(serializers.Serializer):
    """Body of the raiser's resolve / withdraw actions."""

    resolution = serializers.CharField(required=False, default="", allow_blank=True)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class DisputeEvidenceSerializer(serializers.ModelSerializer):
    class Meta:
        model = DisputeEvidence
        fields = [
            "id",
            "uploaded_by_id",
            "uploaded_by_role",
            "evidence_type",
            "file_reference",
            "filename",
            "description",
            "created_at",
        ]
        read_only_fields = fields


class DisputeMessageSerializer(serializers.ModelSerializer):
    class Meta:
        model = DisputeMessage
        fields = [
            "id",
            "sender_id",
            "sender_role",
            "content",
            "message_type",
            "is_internal",
            "created_at",
        ]
        read_only_fields = fields


class DisputeSerializer(serializers.ModelSerializer):
    """Read serializer with evidence; the thread is rendered by the view."""

    evidence = DisputeEvidenceSerializer(many=True, read_only=True)

    class Meta:
        model = Dispute
        fields = [
            "id",
            "order_id",
            "raised_by_id",
            "raised_by_role",
            "reason",
            "description",
            "status",
            "resolution",
            "refund_amount",
            "resolved_by_id",
            "resolved_at",
            "created_at",
            "updated_at",
            "evidence",
        ]
        read_only_fields = fields


class DisputeListSerializer(serializers.ModelSerializer):
    class Meta:
        model = Dispute
        fields = ["id", "order_id", "raised_by_role", "reason", "status", "created_at"]
        read_only_fields = fields
