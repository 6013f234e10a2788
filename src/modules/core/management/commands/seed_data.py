from __future__ import annotations

import random
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from modules.orders.constants import PaymentMethod
from modules.orders.dtos import PlaceOrderDTO, PlaceOrderItemDTO
from modules.orders.exceptions import OrderPlacementError
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.products.models import Category, Product
from modules.products.repositories.django_repository import ProductDjangoRepository

DEFAULT_CATEGORIES = [
    "Flours",
    "Drinks",
    "Fruit",
    "Sweets",
    "Ice cream",
    "Cookies",
    "Copies",
    "Supplies",
]

CATALOG = [
    ("Empanada", "Flours", Decimal("2500.00")),
    ("Arepa con queso", "Flours", Decimal("3000.00")),
    ("Pandebono", "Flours", Decimal("1500.00")),
    ("Jugo de mora", "Drinks", Decimal("2000.00")),
    ("Agua 600 ml", "Drinks", Decimal("1500.00")),
    ("Gaseosa 400 ml", "Drinks", Decimal("2500.00")),
    ("Manzana", "Fruit", Decimal("1000.00")),
    ("Banano", "Fruit", Decimal("500.00")),
    ("Chocolatina", "Sweets", Decimal("1200.00")),
    ("Bon Bon Bum", "Sweets", Decimal("300.00")),
    ("Paleta de agua", "Ice cream", Decimal("1500.00")),
    ("Galletas de avena", "Cookies", Decimal("1000.00")),
    ("Copia blanco y negro", "Copies", Decimal("200.00")),
    ("Copia a color", "Copies", Decimal("1000.00")),
    ("Cuaderno 100 hojas", "Supplies", Decimal("5000.00")),
    ("Lápiz", "Supplies", Decimal("800.00")),
]

CUSTOMERS = [
    ("Ana Gómez", "ana@tiendaescolar.com"),
    ("Bruno Díaz", "bruno@tiendaescolar.com"),
    ("Carla Ruiz", "carla@tiendaescolar.com"),
]


class Command(BaseCommand):
    help = "Seed database with realistic development data."

    def add_arguments(self, parser):
        parser.add_argument(
            "--orders",
            type=int,
            default=10,
            help="Number of sample orders to place through the order service.",
        )

    def handle(self, *args, **options):
        random.seed(42)
        self.stdout.write("Seeding development data...")

        users_created = self._seed_users()
        categories = self._seed_categories()
        products = self._seed_products(categories)
        orders_created = self._seed_orders(products, options["orders"])

        self.stdout.write(
            self.style.SUCCESS(
                "Seed completed: "
                f"users={users_created}, "
                f"categories={len(categories)}, "
                f"products={len(products)}, "
                f"orders={orders_created}"
            )
        )

    def _seed_users(self) -> int:
        User = get_user_model()
        created = 0
        admin_email = "admin@tiendaescolar.com"
        if not User.objects.filter(username=admin_email).exists():
            User.objects.create_superuser(
                admin_email,
                email=admin_email,
                password="admin123",
                first_name="Administrador",
            )
            created += 1
        for name, email in CUSTOMERS:
            if not User.objects.filter(username=email).exists():
                User.objects.create_user(
                    email, email=email, password="customer123", first_name=name
                )
                created += 1
        return created

    def _seed_categories(self) -> dict[str, Category]:
        self.stdout.write("Creating categories...")
        categories = {
            name: Category.objects.get_or_create(name=name)[0]
            for name in DEFAULT_CATEGORIES
        }
        self.stdout.write(self.style.SUCCESS("Creating categories... Done!"))
        return categories

    def _seed_products(self, categories: dict[str, Category]) -> list[Product]:
        self.stdout.write("Creating products...")
        products: list[Product] = []
        for name, category, price in CATALOG:
            product, _ = Product.objects.get_or_create(
                name=name,
                defaults={
                    "category": categories[category],
                    "price": price,
                    "stock_quantity": random.randint(5, 60),
                },
            )
            products.append(product)
        self.stdout.write(self.style.SUCCESS("Creating products... Done!"))
        return products

    def _seed_orders(self, products: list[Product], count: int) -> int:
        self.stdout.write("Creating orders...")
        User = get_user_model()
        customers = list(User.objects.filter(is_staff=False))
        if not customers or not products:
            self.stdout.write(
                self.style.WARNING("Skipping orders (no customers/products).")
            )
            return 0

        service = OrderService(
            order_repository=OrderDjangoRepository(),
            product_repository=ProductDjangoRepository(),
        )
        placed = 0
        for i in range(count):
            customer = random.choice(customers)
            lines = random.sample(products, k=random.randint(1, 3))
            dto = PlaceOrderDTO(
                user_id=customer.pk,
                items=[
                    PlaceOrderItemDTO(product_id=p.id, quantity=random.randint(1, 3))
                    for p in lines
                ],
                payment_method=random.choice(PaymentMethod.values),
                idempotency_key=f"seed-{i + 1}",
            )
            try:
                service.place_order(dto)
            except OrderPlacementError as exc:
                self.stdout.write(self.style.WARNING(f"Order {i + 1} skipped: {exc}"))
                continue
            placed += 1

        self.stdout.write(self.style.SUCCESS("Creating orders... Done!"))
        return placed
