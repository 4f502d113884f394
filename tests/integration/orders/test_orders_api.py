"""Integration tests for the Orders API.

Covers:
- POST /api/v1/orders/ with Idempotency-Key replay (201 then 200).
- List scoping by role, filters and search.
- PATCH status transitions and their error codes.
- Cancel, history and payouts actions.
"""

from decimal import Decimal

import pytest

from modules.catalog.models import Product, ProductStatus
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.splits import compute_shares, lines_from_order

pytestmark = pytest.mark.integration

ORDERS_URL = "/api/v1/orders/"


def _payload(*lines):
    return {
        "items": [{"product_id": str(product.id), "quantity": qty} for product, qty in lines],
        "shipping_address": {
            "recipient": "Selam Girma",
            "line1": "12 Bole Road",
            "city": "Addis Ababa",
            "country": "ET",
        },
    }


def _detail_url(order):
    return f"{ORDERS_URL}{order.id}/"


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


class TestCreateOrder:
    def test_buyer_creates_order(self, client_for, buyer, product, shared_product):
        response = client_for(buyer).post(
            ORDERS_URL, _payload((product, 2), (shared_product, 1)), format="json"
        )

        assert response.status_code == 201
        data = response.json()
        assert data["delivery_status"] == "PENDING"
        assert data["payment_status"] == "PENDING"
        assert Decimal(data["total_amount"]) == Decimal("350.00")
        assert data["order_number"].startswith("ORD-")
        assert data["shipping_address"]["city"] == "Addis Ababa"
        assert len(data["items"]) == 2
        assert data["status_history"][0]["to_status"] == "PENDING"
        assert Product.objects.get(id=product.id).stock_quantity == 8

    def test_idempotent_replay_returns_200(self, client_for, buyer, product):
        client = client_for(buyer)
        first = client.post(
            ORDERS_URL, _payload((product, 1)), format="json", HTTP_IDEMPOTENCY_KEY="abc-1"
        )
        second = client.post(
            ORDERS_URL, _payload((product, 1)), format="json", HTTP_IDEMPOTENCY_KEY="abc-1"
        )

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json()["id"] == first.json()["id"]
        assert Order.objects.count() == 1
        assert Product.objects.get(id=product.id).stock_quantity == 9

    def test_producer_cannot_order(self, client_for, producer, product):
        response = client_for(producer).post(ORDERS_URL, _payload((product, 1)), format="json")
        assert response.status_code == 403
        assert response.json()["errors"][0]["code"] == "FORBIDDEN"

    def test_insufficient_stock_is_invalid_state(self, client_for, buyer, product):
        response = client_for(buyer).post(ORDERS_URL, _payload((product, 11)), format="json")
        assert response.status_code == 409
        assert response.json()["errors"][0]["code"] == "INVALID_STATE"
        assert Product.objects.get(id=product.id).stock_quantity == 10

    def test_inactive_product_is_rejected(self, client_for, buyer, product):
        Product.objects.filter(id=product.id).update(status=ProductStatus.INACTIVE)
        response = client_for(buyer).post(ORDERS_URL, _payload((product, 1)), format="json")
        assert response.status_code == 400
        assert response.json()["errors"][0]["code"] == "VALIDATION"

    def test_missing_shipping_address(self, client_for, buyer, product):
        body = _payload((product, 1))
        del body["shipping_address"]
        response = client_for(buyer).post(ORDERS_URL, body, format="json")
        assert response.status_code == 400
        assert response.json()["errors"][0]["attr"] == "shipping_address"


# ---------------------------------------------------------------------------
# Listing and visibility
# ---------------------------------------------------------------------------


class TestListOrders:
    @pytest.fixture()
    def orders(self, place_order, buyer, other_buyer, product, shared_product):
        return {
            "own": place_order(buyer, [(product, 1)]),
            "shared": place_order(buyer, [(shared_product, 1)]),
            "other": place_order(other_buyer, [(product, 3)]),
        }

    def _ids(self, response):
        assert response.status_code == 200
        return {row["id"] for row in response.json()["results"]}

    def test_buyer_sees_own_orders(self, client_for, buyer, orders):
        ids = self._ids(client_for(buyer).get(ORDERS_URL))
        assert ids == {str(orders["own"].id), str(orders["shared"].id)}

    def test_co_producer_sees_only_shared_order(self, client_for, co_producer, orders):
        ids = self._ids(client_for(co_producer).get(ORDERS_URL))
        assert ids == {str(orders["shared"].id)}

    def test_uninvolved_producer_sees_nothing(self, client_for, outsider_producer, orders):
        assert self._ids(client_for(outsider_producer).get(ORDERS_URL)) == set()

    def test_admin_sees_everything(self, client_for, admin, orders):
        assert len(self._ids(client_for(admin).get(ORDERS_URL))) == 3

    def test_filters(self, client_for, admin, orders, other_buyer):
        client = client_for(admin)
        ids = self._ids(client.get(ORDERS_URL, {"min_total": "200"}))
        assert ids == {str(orders["other"].id)}
        ids = self._ids(client.get(ORDERS_URL, {"buyer": str(other_buyer.id)}))
        assert ids == {str(orders["other"].id)}
        ids = self._ids(client.get(ORDERS_URL, {"status": "pending"}))
        assert len(ids) == 3

    def test_search_by_order_number(self, client_for, admin, orders):
        number = orders["own"].order_number
        ids = self._ids(client_for(admin).get(ORDERS_URL, {"search": number}))
        assert ids == {str(orders["own"].id)}

    def test_outsider_cannot_retrieve(self, client_for, other_buyer, orders):
        response = client_for(other_buyer).get(_detail_url(orders["own"]))
        assert response.status_code == 403


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


class TestTransitions:
    def test_producer_ships_and_delivers(self, client_for, producer, shared_order):
        client = client_for(producer)
        response = client.patch(_detail_url(shared_order), {"status": "shipped"}, format="json")
        assert response.status_code == 200
        assert response.json()["delivery_status"] == "SHIPPED"

        response = client.patch(
            _detail_url(shared_order),
            {"status": "DELIVERED", "delivery_proof": "proof://pod-9"},
            format="json",
        )
        assert response.status_code == 200
        assert response.json()["delivery_proof"] == "proof://pod-9"

    def test_delivery_without_proof_is_422(
        self, client_for, producer, order_service, shared_order, actor_of
    ):
        order_service.transition(shared_order.id, "SHIPPED", actor_of(producer))
        response = client_for(producer).patch(
            _detail_url(shared_order), {"status": "DELIVERED"}, format="json"
        )
        assert response.status_code == 422
        assert response.json()["errors"][0]["code"] == "PROOF_REQUIRED"

    def test_buyer_cannot_ship(self, client_for, buyer, shared_order):
        response = client_for(buyer).patch(
            _detail_url(shared_order), {"status": "SHIPPED"}, format="json"
        )
        assert response.status_code == 400
        assert response.json()["errors"][0]["code"] == "ILLEGAL_TRANSITION"

    def test_stale_expected_status_is_409(self, client_for, producer, shared_order):
        response = client_for(producer).patch(
            _detail_url(shared_order),
            {"status": "SHIPPED", "expected_status": "CONFIRMED"},
            format="json",
        )
        assert response.status_code == 409
        assert response.json()["errors"][0]["code"] == "CONFLICT"

    def test_uninvolved_producer_is_forbidden(self, client_for, outsider_producer, shared_order):
        response = client_for(outsider_producer).patch(
            _detail_url(shared_order), {"status": "SHIPPED"}, format="json"
        )
        assert response.status_code == 403

    def test_unknown_status_is_validation(self, client_for, producer, shared_order):
        response = client_for(producer).patch(
            _detail_url(shared_order), {"status": "TELEPORTED"}, format="json"
        )
        assert response.status_code == 400
        assert response.json()["errors"][0]["attr"] == "status"


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class TestOrderActions:
    def test_buyer_cancels_and_stock_returns(self, client_for, buyer, shared_order, shared_product):
        response = client_for(buyer).post(
            f"{_detail_url(shared_order)}cancel/", {"reason": "Changed my mind"}, format="json"
        )
        assert response.status_code == 200
        assert response.json()["delivery_status"] == "CANCELLED"
        assert Product.objects.get(id=shared_product.id).stock_quantity == 10

    def test_cancel_after_shipping_is_illegal(
        self, client_for, buyer, producer, order_service, shared_order, actor_of
    ):
        order_service.transition(shared_order.id, "SHIPPED", actor_of(producer))
        response = client_for(buyer).post(f"{_detail_url(shared_order)}cancel/", {}, format="json")
        assert response.status_code == 400

    def test_history_lists_both_axes(self, client_for, buyer, settled_order):
        response = client_for(buyer).get(f"{_detail_url(settled_order)}history/")
        assert response.status_code == 200
        entries = [(row["axis"], row["to_status"]) for row in response.json()]
        assert entries == [
            ("DELIVERY", "PENDING"),
            ("DELIVERY", "SHIPPED"),
            ("DELIVERY", "DELIVERED"),
            ("PAYMENT", "CONFIRMED"),
        ]

    def test_payouts_scoped_to_producer(self, client_for, producer, admin, buyer, settled_order):
        split = compute_shares(lines_from_order(settled_order), order_total=settled_order.total_amount)
        OrderDjangoRepository().save_payouts(settled_order.id, split.payouts)
        url = f"{_detail_url(settled_order)}payouts/"

        own = client_for(producer).get(url).json()
        assert [row["net_payout"] for row in own] == ["189.00"]
        assert len(client_for(admin).get(url).json()) == 2
        assert client_for(buyer).get(url).status_code == 403
