"""Payment DTOs (Pydantic v2, immutable)."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class GatewayEventDTO(BaseModel):
    """A payment-gateway callback reduced to what reconciliation needs."""

    model_config = ConfigDict(frozen=True)

    reference: str = Field(min_length=1, max_length=50)
    status: str = Field(min_length=1, max_length=30)
    transaction_id: str = ""
    amount: Optional[Decimal] = None
    payload: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("status")
    @classmethod
    def normalise_status(cls, v: str) -> str:
        return v.strip().lower()


class GatewayAck(BaseModel):
    """What the webhook answers; always returned with HTTP 200."""

    model_config = ConfigDict(frozen=True)

    reference: str
    status: str
    outcome: Optional[str] = None
    duplicate: bool = False
