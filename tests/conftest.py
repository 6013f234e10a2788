from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.products.models import Category, Product
from modules.products.repositories.django_repository import ProductDjangoRepository

User = get_user_model()


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _media_root(settings, tmp_path):
    """Keep uploaded payment proofs out of the source tree."""
    settings.MEDIA_ROOT = str(tmp_path / "media")


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
# Users
# ---------------------------------------------------------------------------


@pytest.fixture()
def customer_user():
    return User.objects.create_user(
        username="student@example.com",
        email="student@example.com",
        password="student123",
        first_name="Student",
    )


@pytest.fixture()
def other_customer():
    return User.objects.create_user(
        username="other@example.com",
        email="other@example.com",
        password="other123",
        first_name="Other",
    )


@pytest.fixture()
def admin_user():
    return User.objects.create_user(
        username="admin@example.com",
        email="admin@example.com",
        password="admin123",
        first_name="Admin",
        is_staff=True,
    )


@pytest.fixture()
def customer_client(customer_user):
    client = APIClient()
    client.force_authenticate(user=customer_user)
    return client


@pytest.fixture()
def admin_client(admin_user):
    client = APIClient()
    client.force_authenticate(user=admin_user)
    return client


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@pytest.fixture()
def category():
    return Category.objects.create(name="Drinks")


@pytest.fixture()
def make_product(category):
    def _make(name="Juice", price="1000.00", stock=10, is_active=True):
        return Product.objects.create(
            name=name,
            category=category,
            price=Decimal(price),
            stock_quantity=stock,
            is_active=is_active,
        )

    return _make


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture()
def order_service():
    return OrderService(
        order_repository=OrderDjangoRepository(),
        product_repository=ProductDjangoRepository(),
    )
