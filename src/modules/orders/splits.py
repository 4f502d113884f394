"""Revenue split calculator.

Pure and deterministic: turns the line items of an order into one payout
per producer.  All arithmetic is ``Decimal``; amounts are rounded half-up
to the currency minor unit and the rounding residual goes to the producer
with the largest gross share (ties broken by producer id), so that

    sum(net_payout) + total_commission == order_total

holds exactly.  A violation raises ``SplitInvariantError``.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from django.conf import settings

from modules.catalog.constants import SHARE_TOLERANCE, SHARE_TOTAL
from modules.orders.exceptions import SplitInvariantError

if TYPE_CHECKING:
    from modules.orders.models import Order

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class SplitLine:
    """One line item reduced to what the calculator needs.

    ``shares`` holds ``(producer_id, share_percentage)`` pairs; an empty
    tuple means the whole subtotal belongs to ``owner_producer_id``.
    """

    subtotal: Decimal
    owner_producer_id: UUID
    shares: Tuple[Tuple[UUID, Decimal], ...] = ()


@dataclass(frozen=True)
class ProducerPayout:
    producer_id: UUID
    gross_share: Decimal
    commission: Decimal
    net_payout: Decimal


@dataclass(frozen=True)
class SplitResult:
    order_total: Decimal
    total_commission: Decimal
    payouts: Tuple[ProducerPayout, ...]

    def for_producer(self, producer_id: UUID) -> Optional[ProducerPayout]:
        return next((p for p in self.payouts if p.producer_id == producer_id), None)


def get_commission_rate() -> Decimal:
    """Configured marketplace commission, as a percentage."""
    rate = Decimal(str(settings.MARKETPLACE_COMMISSION_RATE))
    if not Decimal("0") <= rate <= HUNDRED:
        raise SplitInvariantError(f"Commission rate {rate}% is outside 0-100.")
    return rate


def minor_unit() -> Decimal:
    return Decimal(1).scaleb(-settings.CURRENCY_DECIMAL_PLACES)


def compute_shares(
    lines: Iterable[SplitLine],
    commission_rate: Optional[Decimal] = None,
    order_total: Optional[Decimal] = None,
    quantum: Optional[Decimal] = None,
) -> SplitResult:
    """Compute gross share, commission and net payout per producer.

    Raises:
        SplitInvariantError: shares of a line do not sum to 100%, the
            supplied ``order_total`` differs from the sum of subtotals, or
            the rounded figures do not add up.
    """
    rate = get_commission_rate() if commission_rate is None else Decimal(commission_rate)
    quantum = quantum or minor_unit()
    lines = list(lines)

    total = sum((line.subtotal for line in lines), Decimal("0"))
    if order_total is not None and Decimal(order_total) != total:
        raise SplitInvariantError(
            f"Order total {order_total} differs from the sum of line subtotals {total}."
        )
    if total != total.quantize(quantum):
        raise SplitInvariantError(f"Order total {total} is not in minor units of {quantum}.")

    exact: Dict[UUID, Decimal] = defaultdict(Decimal)
    for line in lines:
        if not line.shares:
            exact[line.owner_producer_id] += line.subtotal
            continue
        share_sum = sum((pct for _, pct in line.shares), Decimal("0"))
        if abs(share_sum - SHARE_TOTAL) > SHARE_TOLERANCE:
            raise SplitInvariantError(f"Line shares sum to {share_sum}%, expected 100%.")
        for producer_id, percentage in line.shares:
            exact[producer_id] += line.subtotal * Decimal(percentage) / HUNDRED

    gross = {
        producer_id: amount.quantize(quantum, rounding=ROUND_HALF_UP)
        for producer_id, amount in exact.items()
    }
    residual = total - sum(gross.values(), Decimal("0"))
    if residual and gross:
        largest = sorted(gross, key=lambda pid: (-exact[pid], str(pid)))[0]
        gross[largest] += residual

    payouts: List[ProducerPayout] = []
    for producer_id in sorted(gross, key=str):
        gross_share = gross[producer_id]
        commission = (gross_share * rate / HUNDRED).quantize(quantum, rounding=ROUND_HALF_UP)
        payouts.append(
            ProducerPayout(
                producer_id=producer_id,
                gross_share=gross_share,
                commission=commission,
                net_payout=gross_share - commission,
            )
        )

    total_commission = sum((p.commission for p in payouts), Decimal("0"))
    total_net = sum((p.net_payout for p in payouts), Decimal("0"))
    if total_net + total_commission != total or any(p.net_payout < 0 for p in payouts):
        raise SplitInvariantError(
            f"Payouts {total_net} + commission {total_commission} != order total {total}."
        )

    return SplitResult(
        order_total=total,
        total_commission=total_commission,
        payouts=tuple(payouts),
    )


def lines_from_order(order: Order) -> List[SplitLine]:
    """Adapt an order (items with snapshots and shares) to split lines."""
    lines = []
    for item in order.items.select_related("snapshot").prefetch_related("snapshot__shares"):
        snapshot = item.snapshot
        lines.append(
            SplitLine(
                subtotal=item.subtotal,
                owner_producer_id=snapshot.owner_producer_id,
                shares=tuple(
                    (share.producer_id, share.share_percentage)
                    for share in snapshot.shares.all()
                ),
            )
        )
    return lines
