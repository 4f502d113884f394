"""Dispute DTOs for the Service Layer (Pydantic v2, immutable)."""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Optional
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict, field_validator

from modules.disputes.constants import DisputeStatus, EvidenceType


def _not_blank(v: str) -> str:
    if not v.strip():
        raise ValueError("This field may not be blank.")
    return v.strip()


RequiredText = Annotated[str, AfterValidator(_not_blank)]


class OpenDisputeDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: UUID
    reason: RequiredText
    description: str = ""


class AddEvidenceDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    evidence_type: EvidenceType = EvidenceType.OTHER
    file_reference: RequiredText
    filename: RequiredText
    description: str = ""


class AddMessageDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: RequiredText
    is_internal: bool = False


class UpdateDisputeStatusDTO(BaseModel):
    """Administrative status change; ``refund_amount`` is needed for REFUNDED."""

    model_config = ConfigDict(frozen=True)

    status: DisputeStatus
    resolution: Optional[str] = None
    refund_amount: Optional[Decimal] = None

    @field_validator("refund_amount")
    @classmethod
    def refund_must_be_positive(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        if v is not None and v <= 0:
            raise ValueError("Refund amount must be greater than zero.")
        return v
