"""Catalog models: Category and Product.

Business rules implemented:
- Category names are unique.
- Price must be greater than zero (DB check constraint).
- Stock quantity can never be negative (DB check constraint).
- Inactive products cannot be ordered (enforced at the order service).
- Product images live in default storage under ``PRODUCT_IMAGE_DIR``.
"""

from __future__ import annotations

import secrets
from decimal import Decimal

import structlog

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import BaseModel

logger = structlog.get_logger(__name__)


def product_image_path(instance: "Product", filename: str) -> str:
    extension = filename.rsplit(".", 1)[-1].lower()
    return (
        f"{settings.PRODUCT_IMAGE_DIR}/{instance.id}-{secrets.token_hex(4)}.{extension}"
    )


class Category(BaseModel):
    name = models.CharField(max_length=50, unique=True)

    class Meta:
        db_table = "categories"
        ordering = ["name"]
        verbose_name_plural = "categories"

    def __str__(self) -> str:
        return self.name


class Product(BaseModel):
    """Sellable catalog item.

    ``stock_quantity`` is only ever decremented through the order service's
    conditional update, so the check constraint is a last line of defence
    rather than the primary guard against overselling.
    """

    name = models.CharField(max_length=100)
    description = models.TextField(blank=True, default="")
    category = models.ForeignKey(
        "products.Category",
        on_delete=models.PROTECT,
        related_name="products",
        null=True,
        blank=True,
    )
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    stock_quantity = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)
    image = models.FileField(upload_to=product_image_path, blank=True, default="")

    class Meta:
        db_table = "products"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["is_active"], name="products_active_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                check=models.Q(price__gt=0),
                name="products_price_positive",
            ),
            models.CheckConstraint(
                check=models.Q(stock_quantity__gte=0),
                name="products_stock_non_negative",
            ),
        ]

    def clean(self) -> None:
        super().clean()
        if self.name:
            self.name = self.name.strip()
        if self.price is not None and self.price <= 0:
            raise ValidationError({"price": "Price must be greater than zero."})
        if self.stock_quantity is not None and self.stock_quantity < 0:
            raise ValidationError(
                {"stock_quantity": "Stock quantity cannot be negative."}
            )

    @property
    def is_available(self) -> bool:
        return self.is_active and self.stock_quantity > 0

    def __str__(self) -> str:
        return f"{self.name} (${self.price})"
