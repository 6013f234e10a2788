"""Catalog exceptions.

Raised by the Service Layer when business rules are violated.
The API layer (Views) catches these and translates them into
appropriate HTTP responses.
"""

from __future__ import annotations


class ProductNotFound(Exception):
    """The requested product does not exist."""


class CategoryNotFound(Exception):
    """The referenced category does not exist."""


class CategoryAlreadyExists(Exception):
    """A category with the same name already exists."""


class ProductImageRejected(Exception):
    """The uploaded product image is not acceptable."""
