from __future__ import annotations

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from django.contrib.auth import get_user_model

from rest_framework.test import APIClient

from modules.catalog.models import Product, ProductProducer, ProductStatus
from modules.catalog.repositories.django_repository import ProductDjangoRepository
from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO, ShippingAddressDTO
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.participants.actors import Actor
from modules.participants.models import ActorRole, Participant

User = get_user_model()


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


# ---------------------------------------------------------------------------
# Participants
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_participant():
    def _make(username: str, role: str, display_name: str = "") -> Participant:
        user = User.objects.create_user(username=username, password="testpass123")
        return Participant.objects.create(
            user=user,
            role=role,
            display_name=display_name or username.title(),
        )

    return _make


@pytest.fixture()
def admin(make_participant):
    return make_participant("admin", ActorRole.ADMIN)


@pytest.fixture()
def buyer(make_participant):
    return make_participant("buyer", ActorRole.BUYER)


@pytest.fixture()
def other_buyer(make_participant):
    return make_participant("other-buyer", ActorRole.BUYER)


@pytest.fixture()
def producer(make_participant):
    return make_participant("producer-a", ActorRole.PRODUCER)


@pytest.fixture()
def co_producer(make_participant):
    return make_participant("producer-b", ActorRole.PRODUCER)


@pytest.fixture()
def outsider_producer(make_participant):
    return make_participant("producer-c", ActorRole.PRODUCER)


@pytest.fixture()
def actor_of():
    return Actor.from_participant


@pytest.fixture()
def client_for():
    """APIClient authenticated as the given participant's user."""

    def _client(participant: Participant) -> APIClient:
        client = APIClient()
        client.force_authenticate(user=participant.user)
        return client

    return _client


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@pytest.fixture()
def product(producer):
    return Product.objects.create(
        producer=producer,
        sku="COF-001",
        name="Sidama Coffee 1kg",
        price=Decimal("100.00"),
        stock_quantity=10,
        status=ProductStatus.ACTIVE,
    )


@pytest.fixture()
def shared_product(producer, co_producer):
    """Product whose proceeds are split 70/30 between two producers."""
    product = Product.objects.create(
        producer=producer,
        sku="GFT-001",
        name="Coffee Ceremony Gift Basket",
        price=Decimal("150.00"),
        stock_quantity=10,
        status=ProductStatus.ACTIVE,
    )
    ProductProducer.objects.create(
        product=product, producer=producer, share_percentage=Decimal("70")
    )
    ProductProducer.objects.create(
        product=product, producer=co_producer, share_percentage=Decimal("30")
    )
    return product


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


@pytest.fixture()
def anchor_scheduler():
    return MagicMock(name="anchor_scheduler")


@pytest.fixture()
def order_service(anchor_scheduler):
    return OrderService(
        order_repository=OrderDjangoRepository(),
        product_repository=ProductDjangoRepository(),
        anchor_scheduler=anchor_scheduler,
    )


@pytest.fixture()
def shipping_address():
    return ShippingAddressDTO(
        recipient="Selam Girma",
        line1="12 Bole Road",
        city="Addis Ababa",
        country="ET",
    )


@pytest.fixture()
def place_order(order_service, shipping_address):
    """Place an order as ``buyer`` for ``[(product, quantity), ...]``."""

    def _place(buyer: Participant, lines, idempotency_key=None):
        dto = CreateOrderDTO(
            items=[
                CreateOrderItemDTO(product_id=product.id, quantity=quantity)
                for product, quantity in lines
            ],
            shipping_address=shipping_address,
            idempotency_key=idempotency_key,
        )
        return order_service.create_order(dto, Actor.from_participant(buyer))

    return _place


@pytest.fixture()
def shared_order(place_order, buyer, shared_product):
    """PENDING order of total 300: two gift baskets split 70/30."""
    return place_order(buyer, [(shared_product, 2)])


@pytest.fixture()
def delivered_order(order_service, shared_order, producer, actor_of):
    order_service.transition(shared_order.id, "SHIPPED", actor_of(producer))
    return order_service.transition(
        shared_order.id, "DELIVERED", actor_of(producer), delivery_proof="proof://pod-1"
    )


@pytest.fixture()
def settled_order(order_service, delivered_order):
    """DELIVERED and payment CONFIRMED (total 300)."""
    return order_service.apply_payment_status(
        delivered_order.id, "CONFIRMED", reason="Gateway success"
    )
