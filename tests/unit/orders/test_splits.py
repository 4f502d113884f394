"""Unit tests for the revenue split calculator."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

import pytest

from modules.orders.exceptions import SplitInvariantError
from modules.orders.splits import SplitLine, compute_shares, lines_from_order

pytestmark = pytest.mark.unit

A = UUID("00000000-0000-7000-8000-00000000000a")
B = UUID("00000000-0000-7000-8000-00000000000b")
C = UUID("00000000-0000-7000-8000-00000000000c")


def _assert_balanced(result):
    net = sum(p.net_payout for p in result.payouts)
    assert net + result.total_commission == result.order_total


class TestComputeShares:
    def test_two_producers_seventy_thirty(self):
        line = SplitLine(
            subtotal=Decimal("300.00"),
            owner_producer_id=A,
            shares=((A, Decimal("70")), (B, Decimal("30"))),
        )

        result = compute_shares([line], commission_rate=Decimal("10"))

        a, b = result.for_producer(A), result.for_producer(B)
        assert a.gross_share == Decimal("210.00")
        assert a.net_payout == Decimal("189.00")
        assert b.gross_share == Decimal("90.00")
        assert b.net_payout == Decimal("81.00")
        assert result.total_commission == Decimal("30.00")
        _assert_balanced(result)

    def test_line_without_shares_goes_to_owner(self):
        result = compute_shares(
            [SplitLine(subtotal=Decimal("49.90"), owner_producer_id=C)],
            commission_rate=Decimal("10"),
        )

        assert len(result.payouts) == 1
        payout = result.payouts[0]
        assert payout.producer_id == C
        assert payout.gross_share == Decimal("49.90")
        assert payout.commission == Decimal("4.99")
        assert payout.net_payout == Decimal("44.91")

    def test_producer_shares_aggregate_across_lines(self):
        lines = [
            SplitLine(subtotal=Decimal("100.00"), owner_producer_id=A),
            SplitLine(
                subtotal=Decimal("50.00"),
                owner_producer_id=B,
                shares=((A, Decimal("40")), (B, Decimal("60"))),
            ),
        ]

        result = compute_shares(lines, commission_rate=Decimal("10"))

        assert result.for_producer(A).gross_share == Decimal("120.00")
        assert result.for_producer(B).gross_share == Decimal("30.00")
        _assert_balanced(result)

    def test_rounding_residual_goes_to_largest_share(self):
        line = SplitLine(
            subtotal=Decimal("10.00"),
            owner_producer_id=A,
            shares=((A, Decimal("33.33")), (B, Decimal("33.33")), (C, Decimal("33.34"))),
        )

        result = compute_shares([line], commission_rate=Decimal("10"))

        assert result.for_producer(A).gross_share == Decimal("3.33")
        assert result.for_producer(B).gross_share == Decimal("3.33")
        assert result.for_producer(C).gross_share == Decimal("3.34")
        _assert_balanced(result)

    def test_zero_commission_pays_everything_out(self):
        result = compute_shares(
            [SplitLine(subtotal=Decimal("75.00"), owner_producer_id=A)],
            commission_rate=Decimal("0"),
        )
        assert result.total_commission == Decimal("0")
        assert result.payouts[0].net_payout == Decimal("75.00")

    def test_payouts_are_ordered_by_producer(self):
        line = SplitLine(
            subtotal=Decimal("20.00"),
            owner_producer_id=C,
            shares=((C, Decimal("50")), (A, Decimal("50"))),
        )
        result = compute_shares([line], commission_rate=Decimal("10"))
        assert [p.producer_id for p in result.payouts] == [A, C]

    def test_uses_configured_commission_rate(self, settings):
        settings.MARKETPLACE_COMMISSION_RATE = Decimal("15")
        result = compute_shares([SplitLine(subtotal=Decimal("100.00"), owner_producer_id=A)])
        assert result.total_commission == Decimal("15.00")


class TestInvariantViolations:
    def test_shares_not_summing_to_hundred(self):
        line = SplitLine(
            subtotal=Decimal("100.00"),
            owner_producer_id=A,
            shares=((A, Decimal("60")), (B, Decimal("30"))),
        )
        with pytest.raises(SplitInvariantError, match="100%"):
            compute_shares([line], commission_rate=Decimal("10"))

    def test_order_total_differs_from_lines(self):
        line = SplitLine(subtotal=Decimal("100.00"), owner_producer_id=A)
        with pytest.raises(SplitInvariantError, match="differs"):
            compute_shares([line], commission_rate=Decimal("10"), order_total=Decimal("90.00"))

    def test_commission_rate_out_of_range(self, settings):
        settings.MARKETPLACE_COMMISSION_RATE = Decimal("120")
        line = SplitLine(subtotal=Decimal("100.00"), owner_producer_id=A)
        with pytest.raises(SplitInvariantError, match="outside"):
            compute_shares([line])


class TestLinesFromOrder:
    def test_order_items_become_split_lines(self, shared_order, producer, co_producer):
        lines = lines_from_order(shared_order)

        assert len(lines) == 1
        assert lines[0].subtotal == Decimal("300.00")
        assert lines[0].owner_producer_id == producer.id
        assert dict(lines[0].shares) == {
            producer.id: Decimal("70.00"),
            co_producer.id: Decimal("30.00"),
        }

    def test_settled_order_scenario(self, shared_order, producer, co_producer):
        result = compute_shares(
            lines_from_order(shared_order),
            commission_rate=Decimal("10"),
            order_total=shared_order.total_amount,
        )
        assert result.for_producer(producer.id).net_payout == Decimal("189.00")
        assert result.for_producer(co_producer.id).net_payout == Decimal("81.00")
        assert result.total_commission == Decimal("30.00")
