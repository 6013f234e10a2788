"""Catalog service layer (Use Cases).

Orchestrates business logic for products and categories, delegating
persistence to the injected repositories.

Business rules enforced here:
- Category names are unique (case-insensitive).
- Price must be greater than zero (validated by DTO).
- Stock cannot be negative (validated by DTO).
- Deleting a product only deactivates it; order lines keep referencing it.
- Catalog writes lock the row and save only the columns they change, so
  they never overwrite stock reserved by a concurrent order.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

import structlog
from django.conf import settings
from django.db import transaction

from modules.products.exceptions import (
    CategoryAlreadyExists,
    CategoryNotFound,
    ProductImageRejected,
    ProductNotFound,
)
from modules.products.models import Category, Product

if TYPE_CHECKING:
    from django.core.files.uploadedfile import UploadedFile

    from modules.products.dtos import CreateProductDTO, UpdateProductDTO
    from modules.products.repositories.interfaces import (
        ICategoryRepository,
        IProductRepository,
    )

logger = structlog.get_logger(__name__)


class ProductService:
    """Application service for catalog use-cases.

    Receives its repositories via constructor injection (DIP).
    """

    def __init__(
        self,
        repository: IProductRepository,
        category_repository: ICategoryRepository,
    ) -> None:
        self._repo = repository
        self._categories = category_repository

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def create_product(
        self, dto: CreateProductDTO, image: Optional[UploadedFile] = None
    ) -> Product:
        """Create a new product, optionally with its catalog image.

        Raises:
            CategoryNotFound: if ``category_id`` does not reference a category.
            ProductImageRejected: if the image has a bad type or size.
        """
        if image is not None:
            self._check_image(image)
        product = Product(
            name=dto.name,
            description=dto.description,
            category=self._resolve_category(dto.category_id),
            price=dto.price,
            stock_quantity=dto.stock_quantity,
        )
        if image is not None:
            product.image.save(image.name, image, save=False)
        product = self._repo.save(product)
        logger.info("product.created", product_id=str(product.id), name=product.name)
        return product

    @transaction.atomic
    def update_product(
        self,
        id: str,
        dto: UpdateProductDTO,
        image: Optional[UploadedFile] = None,
    ) -> Product:
        """Update an existing product with the supplied fields.

        The row is locked and only the supplied columns are written, so an
        order committed meanwhile keeps its stock decrement.  Price edits
        never touch existing order lines; those keep the price captured when
        the order was placed.  A new image replaces the stored one, which is
        deleted once the transaction commits.

        Raises:
            ProductNotFound: if the product does not exist.
            CategoryNotFound: if a new ``category_id`` is unknown.
            ProductImageRejected: if the image has a bad type or size.
        """
        if image is not None:
            self._check_image(image)
        product = self._repo.get_by_id_for_update(id)
        if not product:
            raise ProductNotFound(f"Product {id} not found.")

        log = logger.bind(product_id=str(id))

        changed = dto.model_dump(exclude_unset=True, exclude_none=True)
        fields = set()
        if "category_id" in changed:
            product.category = self._resolve_category(changed.pop("category_id"))
            fields.add("category")
        for field, value in changed.items():
            setattr(product, field, value)
            fields.add(field)

        if image is not None:
            previous = product.image.name
            product.image.save(image.name, image, save=False)
            fields.add("image")
            if previous:
                storage = product.image.storage
                transaction.on_commit(lambda: storage.delete(previous))

        product = self._repo.save(product, update_fields=fields)
        log.info("product.updated", fields=sorted(fields))
        return product

    @transaction.atomic
    def set_stock(self, id: str, quantity: int) -> Product:
        """Overwrite the stock count (inventory correction).

        Raises:
            ProductNotFound: if the product does not exist.
        """
        product = self._repo.get_by_id_for_update(id)
        if not product:
            raise ProductNotFound(f"Product {id} not found.")
        previous = product.stock_quantity
        product.stock_quantity = quantity
        product = self._repo.save(product, update_fields=["stock_quantity"])
        logger.info(
            "product.stock_set",
            product_id=str(id),
            previous=previous,
            current=quantity,
        )
        return product

    @transaction.atomic
    def deactivate_product(self, id: str) -> None:
        """Hide a product from the catalog.

        Raises:
            ProductNotFound: if the product does not exist.
        """
        product = self._repo.get_by_id_for_update(id)
        if not product:
            raise ProductNotFound(f"Product {id} not found.")
        product.is_active = False
        self._repo.save(product, update_fields=["is_active"])
        logger.info("product.deactivated", product_id=str(id))

    def create_category(self, name: str) -> Category:
        """Raises ``CategoryAlreadyExists`` on a duplicate name."""
        name = name.strip()
        if self._categories.get_by_name(name):
            logger.warning("category.duplicate_name", name=name)
            raise CategoryAlreadyExists(f"Category '{name}' already exists.")
        return self._categories.save(Category(name=name))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_products(
        self, filters: Optional[Dict[str, Any]] = None, include_inactive: bool = False
    ):
        filters = dict(filters or {})
        if not include_inactive:
            filters["is_active"] = True
        return self._repo.list(filters)

    def get_product(self, id: str, include_inactive: bool = False) -> Product:
        """Retrieve a single product by ID.

        Raises:
            ProductNotFound: if the product does not exist, or is inactive
                and ``include_inactive`` is false.
        """
        product = self._repo.get_by_id(id)
        if not product or (not product.is_active and not include_inactive):
            raise ProductNotFound(f"Product {id} not found.")
        return product

    def list_categories(self) -> List[Category]:
        return self._categories.list()

    def _resolve_category(self, category_id) -> Optional[Category]:
        if category_id is None:
            return None
        category = self._categories.get_by_id(str(category_id))
        if not category:
            raise CategoryNotFound(f"Category {category_id} not found.")
        return category

    @staticmethod
    def _check_image(image: UploadedFile) -> None:
        _, dot, extension = image.name.rpartition(".")
        extension = extension.lower() if dot else ""
        content_type = (getattr(image, "content_type", "") or "").lower()
        if (
            extension not in settings.PRODUCT_IMAGE_EXTENSIONS
            or content_type not in settings.PRODUCT_IMAGE_CONTENT_TYPES
        ):
            raise ProductImageRejected(
                "Only "
                + ", ".join(settings.PRODUCT_IMAGE_EXTENSIONS)
                + " images are accepted."
            )
        if image.size > settings.PRODUCT_IMAGE_MAX_BYTES:
            raise ProductImageRejected(
                f"Image exceeds {settings.PRODUCT_IMAGE_MAX_BYTES // (1024 * 1024)} MB."
            )
