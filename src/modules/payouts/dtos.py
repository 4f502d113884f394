"""Payout DTOs for the Service Layer (Pydantic v2, immutable)."""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict

from modules.orders.constants import PayoutMethod


def _not_blank(v: str) -> str:
    if not v.strip():
        raise ValueError("This field may not be blank.")
    return v.strip()


RequiredText = Annotated[str, AfterValidator(_not_blank)]


class CompletePayoutDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    payout_reference: RequiredText
    payout_method: PayoutMethod = PayoutMethod.BANK_TRANSFER


class FailPayoutDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    reason: RequiredText


class EarningsSummary(BaseModel):
    """Net amounts of one producer.

    ``pending`` is still owed, ``completed`` was paid, ``total`` counts every
    payout ever computed, failed ones included.
    """

    model_config = ConfigDict(frozen=True)

    pending: Decimal = Decimal("0.00")
    completed: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")
