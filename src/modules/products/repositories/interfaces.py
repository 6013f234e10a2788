"""Catalog repository interfaces.

Extend ``IRepository`` with the look-ups the order placement needs:
row-locked reads and conditional stock movements.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.products.models import Category, Product


class IProductRepository(IRepository["Product"]):
    """Repository contract for the Product aggregate."""

    @abstractmethod
    def get_by_id_for_update(self, id: str) -> Optional["Product"]:
        """Retrieve a single product with a row-level lock (SELECT FOR UPDATE)."""

    @abstractmethod
    def save(
        self, entity: "Product", update_fields: Optional[Iterable[str]] = None
    ) -> "Product":
        """Persist the product, writing only ``update_fields`` when given."""

    @abstractmethod
    def get_for_update(self, ids: Iterable[str]) -> Dict[str, "Product"]:
        """Lock and return the given products keyed by ``str(id)``.

        Rows are locked (SELECT FOR UPDATE) in ascending id order. Missing
        ids are simply absent from the result. Must run inside
        ``transaction.atomic()``.
        """

    @abstractmethod
    def decrement_stock(self, id: str, quantity: int) -> bool:
        """Subtract ``quantity`` only if enough stock remains.

        Returns ``False`` when the conditional update touched no row.
        """

    @abstractmethod
    def restore_stock(self, id: str, quantity: int) -> None:
        """Add ``quantity`` back to the product's stock."""

    @abstractmethod
    def low_stock(self, ids: Iterable[str], threshold: int) -> List["Product"]:
        """Products among ``ids`` whose stock is at or below ``threshold``."""


class ICategoryRepository(IRepository["Category"]):
    """Repository contract for categories."""

    @abstractmethod
    def get_by_name(self, name: str) -> Optional["Category"]:
        """Case-insensitive look-up by name."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> List["Category"]:
        """List categories ordered by name."""
