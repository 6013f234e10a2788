"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
DTOs are immutable (``frozen=True``).

Structural checks (positive quantities, notes length) live here.  An empty
cart and an unknown payment method are *business* failures and are
reported by ``OrderService.place_order`` as ``EmptyCart`` /
``InvalidPaymentMethod``, so the DTO deliberately accepts them.
"""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from django.conf import settings
from pydantic import BaseModel, ConfigDict, Field, field_validator

from modules.orders.constants import IDEMPOTENCY_KEY_MAX_LENGTH


class PlaceOrderItemDTO(BaseModel):
    """One cart line: the storefront sends only ``product_id`` and ``quantity``.

    Name and price are resolved by the service from the locked product row.
    """

    model_config = ConfigDict(frozen=True)

    product_id: UUID
    quantity: int

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1.")
        return v


class PlaceOrderDTO(BaseModel):
    """Immutable DTO for order placement requests.

    The same product may appear on several lines; the service checks the
    combined quantity against stock.
    """

    model_config = ConfigDict(frozen=True)

    user_id: int
    items: List[PlaceOrderItemDTO] = Field(default_factory=list)
    payment_method: str = ""
    notes: str = ""
    idempotency_key: Optional[str] = None

    @field_validator("notes", mode="before")
    @classmethod
    def notes_length(cls, v: Optional[str]) -> str:
        v = (v or "").strip()
        if len(v) > settings.ORDER_NOTES_MAX_LENGTH:
            raise ValueError(
                f"Notes cannot exceed {settings.ORDER_NOTES_MAX_LENGTH} characters."
            )
        return v

    @field_validator("idempotency_key")
    @classmethod
    def idempotency_key_length(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            v = v.strip() or None
        if v is not None and len(v) > IDEMPOTENCY_KEY_MAX_LENGTH:
            raise ValueError("Idempotency key is too long.")
        return v

    def demand_by_product(self) -> dict[UUID, int]:
        """Total requested quantity per product across all lines."""
        demand: dict[UUID, int] = {}
        for item in self.items:
            demand[item.product_id] = demand.get(item.product_id, 0) + item.quantity
        return demand
