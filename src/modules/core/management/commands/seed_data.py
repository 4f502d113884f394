from __future__ import annotations

import random
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction

from modules.catalog.models import Product, ProductProducer, ProductStatus
from modules.catalog.repositories.django_repository import ProductDjangoRepository
from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO, ShippingAddressDTO
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.participants.actors import Actor
from modules.participants.models import ActorRole, Participant

SEED_PASSWORD = "marketplace123"


class Command(BaseCommand):
    help = "Seed database with realistic development data."

    def add_arguments(self, parser):
        parser.add_argument("--orders", type=int, default=20)

    @transaction.atomic
    def handle(self, *args, **options):
        random.seed(42)
        self.stdout.write("Seeding development data...")

        participants = self._seed_participants()
        producers = [p for p in participants if p.role == ActorRole.PRODUCER]
        buyers = [p for p in participants if p.role == ActorRole.BUYER]
        products = self._seed_products(producers)
        orders_created = self._seed_orders(buyers, products, options["orders"])

        self.stdout.write(
            self.style.SUCCESS(
                "Seed completed: "
                f"participants={len(participants)}, "
                f"products={len(products)}, "
                f"orders={orders_created}"
            )
        )

    def _seed_participants(self) -> list[Participant]:
        self.stdout.write("Creating participants...")
        User = get_user_model()
        seed = [
            ("admin", ActorRole.ADMIN, "Marketplace Admin", ""),
            ("abebe", ActorRole.PRODUCER, "Abebe Kebede", "Sidama Highland Coffee"),
            ("hana", ActorRole.PRODUCER, "Hana Tesfaye", "Hana Weaving Collective"),
            ("dawit", ActorRole.PRODUCER, "Dawit Alemu", "Alemu Spice House"),
            ("selam", ActorRole.BUYER, "Selam Girma", ""),
            ("yonas", ActorRole.BUYER, "Yonas Bekele", ""),
            ("meron", ActorRole.BUYER, "Meron Haile", ""),
        ]
        participants: list[Participant] = []
        for username, role, display_name, business_name in seed:
            user = User.objects.filter(username=username).first()
            if user is None:
                user = User.objects.create_user(
                    username,
                    password=SEED_PASSWORD,
                    is_staff=role == ActorRole.ADMIN,
                )
            participant, _ = Participant.objects.get_or_create(
                user=user,
                defaults={
                    "role": role,
                    "display_name": display_name,
                    "business_name": business_name,
                },
            )
            participants.append(participant)
        self.stdout.write(self.style.SUCCESS("Creating participants... Done!"))
        return participants

    def _seed_products(self, producers: list[Participant]) -> list[Product]:
        self.stdout.write("Creating products...")
        catalog = [
            ("COF-001", "Sidama Coffee 1kg", Decimal("24.00"), 0, ()),
            ("COF-002", "Yirgacheffe Coffee 500g", Decimal("15.50"), 0, ()),
            ("TEX-001", "Handwoven Gabi", Decimal("80.00"), 1, ()),
            ("TEX-002", "Netela Scarf", Decimal("35.00"), 1, ()),
            ("SPI-001", "Berbere 250g", Decimal("9.90"), 2, ()),
            # Jointly supplied: coffee grown by one producer, packaged in a
            # basket woven by another.
            ("GFT-001", "Coffee Ceremony Gift Basket", Decimal("120.00"), 0, ((0, "70"), (1, "30"))),
            ("GFT-002", "Spice & Scarf Bundle", Decimal("45.00"), 2, ((2, "60"), (1, "40"))),
        ]
        products: list[Product] = []
        for sku, name, price, owner_index, shares in catalog:
            product, created = Product.objects.get_or_create(
                sku=sku,
                defaults={
                    "producer": producers[owner_index],
                    "name": name,
                    "price": price,
                    "stock_quantity": random.randint(20, 200),
                    "status": ProductStatus.ACTIVE,
                },
            )
            if created:
                for producer_index, percentage in shares:
                    ProductProducer.objects.create(
                        product=product,
                        producer=producers[producer_index],
                        share_percentage=Decimal(percentage),
                    )
            products.append(product)
        self.stdout.write(self.style.SUCCESS("Creating products... Done!"))
        return products

    def _seed_orders(self, buyers: list[Participant], products: list[Product], count: int) -> int:
        self.stdout.write("Creating orders...")
        if not buyers or not products:
            self.stdout.write(self.style.WARNING("Skipping orders (no buyers/products)."))
            return 0

        service = OrderService(
            order_repository=OrderDjangoRepository(),
            product_repository=ProductDjangoRepository(),
            anchor_scheduler=lambda order_id: None,
        )
        created = 0
        for i in range(count):
            buyer = random.choice(buyers)
            items = random.sample(products, k=random.randint(1, 3))
            dto = CreateOrderDTO(
                items=[
                    CreateOrderItemDTO(product_id=product.id, quantity=random.randint(1, 3))
                    for product in items
                ],
                shipping_address=ShippingAddressDTO(
                    recipient=buyer.display_name,
                    line1=f"{100 + i} Bole Road",
                    city="Addis Ababa",
                    country="ET",
                ),
                notes=f"Seed order {i + 1}",
                idempotency_key=f"seed-{i + 1}",
            )
            service.create_order(dto, Actor.from_participant(buyer))
            created += 1

        self.stdout.write(self.style.SUCCESS("Creating orders... Done!"))
        return created
