"""Django ORM implementations of the catalog repositories.

Error handling follows the Null Object pattern: look-ups return ``None``
instead of raising, the Service Layer decides how to translate a missing
entity into a domain error.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, Iterable, List, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db.models import F

from modules.products.models import Category, Product
from modules.products.repositories.interfaces import (
    ICategoryRepository,
    IProductRepository,
)

logger = structlog.get_logger(__name__)


def _as_uuid(value: Any) -> Optional[uuid.UUID]:
    try:
        return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
    except ValueError:
        return None


class ProductDjangoRepository(IProductRepository):
    """Concrete Product repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Product]:
        try:
            return Product.objects.select_related("category").filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None):
        """Return a QuerySet so DRF filter backends can keep refining it."""
        queryset = Product.objects.select_related("category")
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def get_by_id_for_update(self, id: str) -> Optional[Product]:
        try:
            return Product.objects.select_for_update().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def save(
        self, entity: Product, update_fields: Optional[Iterable[str]] = None
    ) -> Product:
        if update_fields is None:
            entity.save()
        else:
            entity.save(update_fields=sorted(update_fields))
        logger.info("product.saved", product_id=str(entity.id))
        return entity

    def get_for_update(self, ids: Iterable[str]) -> Dict[str, Product]:
        valid_ids = sorted({parsed for parsed in map(_as_uuid, ids) if parsed})
        locked = (
            Product.objects.select_for_update().filter(id__in=valid_ids).order_by("id")
        )
        return {str(product.id): product for product in locked}

    def decrement_stock(self, id: str, quantity: int) -> bool:
        updated = Product.objects.filter(id=id, stock_quantity__gte=quantity).update(
            stock_quantity=F("stock_quantity") - quantity
        )
        if updated:
            logger.debug(
                "product.stock_decremented", product_id=str(id), quantity=quantity
            )
        return updated == 1

    def restore_stock(self, id: str, quantity: int) -> None:
        Product.objects.filter(id=id).update(
            stock_quantity=F("stock_quantity") + quantity
        )
        logger.debug("product.stock_restored", product_id=str(id), quantity=quantity)

    def low_stock(self, ids: Iterable[str], threshold: int) -> List[Product]:
        return list(
            Product.objects.filter(
                id__in=[str(i) for i in ids], stock_quantity__lte=threshold
            ).order_by("name")
        )


class CategoryDjangoRepository(ICategoryRepository):
    """Concrete Category repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Category]:
        try:
            return Category.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_by_name(self, name: str) -> Optional[Category]:
        return Category.objects.filter(name__iexact=name.strip()).first()

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Category]:
        queryset = Category.objects.all()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset.order_by("name"))

    def save(self, entity: Category) -> Category:
        entity.save()
        logger.info("category.saved", category_id=str(entity.id), name=entity.name)
        return entity
