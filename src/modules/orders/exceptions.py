"""Order domain exceptions.

Placement failures share ``OrderPlacementError`` so the API layer can
render ``code``, ``retryable`` and the structured ``context`` uniformly.
The remaining exceptions cover the order lifecycle after placement.
"""

from __future__ import annotations

from typing import Any, Dict


class OrderPlacementError(Exception):
    """Base class for every reason an order cannot be placed."""

    code = "order_placement_error"
    retryable = False
    default_message = "The order could not be placed."

    def __init__(self, message: str | None = None, **context: Any) -> None:
        self.context: Dict[str, Any] = context
        super().__init__(message or self.default_message.format(**context))

    @property
    def message(self) -> str:
        return str(self)


class EmptyCart(OrderPlacementError):
    code = "empty_cart"
    default_message = "The cart is empty."


class InvalidPaymentMethod(OrderPlacementError):
    code = "invalid_payment_method"
    default_message = "Payment method '{payment_method}' is not accepted."


class ProductNotFound(OrderPlacementError):
    """A cart line references a missing or inactive product."""

    code = "product_not_found"
    default_message = "Product {product_id} does not exist or is not available."


class InsufficientStock(OrderPlacementError):
    code = "insufficient_stock"
    default_message = (
        "Insufficient stock for {product_name}: "
        "requested {requested}, available {available}."
    )


class PersistenceFailure(OrderPlacementError):
    """The backing store failed; the whole placement was rolled back."""

    code = "persistence_failure"
    retryable = True
    default_message = "The order could not be saved. Please try again."


class OrderNotFound(Exception):
    """The requested order does not exist or is not visible to the caller."""


class InvalidOrderStatus(Exception):
    """An invalid status transition was attempted."""


class OrderNotCancellable(Exception):
    """The caller may not cancel this order in its current state."""


class PaymentProofRejected(Exception):
    """The uploaded payment proof is not acceptable."""


class PaymentProofMissing(Exception):
    """The order has no stored payment proof to download."""
