"""Event handlers for Orders domain events.

Invoked by the outbox relay, outside the request that produced the event.
"""

from __future__ import annotations

import structlog
from django.conf import settings

from modules.orders.events import OrderCancelled, OrderPlaced, OrderStatusChanged
from modules.products.repositories.django_repository import ProductDjangoRepository
from modules.products.repositories.interfaces import IProductRepository
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class OrderPlacedHandler(IEventHandler[OrderPlaced]):
    """Logs the placement and warns about products running low."""

    def __init__(self, product_repository: IProductRepository) -> None:
        self._products = product_repository

    def handle(self, event: OrderPlaced) -> None:
        log = logger.bind(order_id=str(event.aggregate_id))
        log.info(
            "order.placed_event_handled",
            user_id=event.user_id,
            total_amount=event.total_amount,
        )
        product_ids = {item["product_id"] for item in event.items}
        for product in self._products.low_stock(
            product_ids, settings.LOW_STOCK_THRESHOLD
        ):
            log.warning(
                "product.low_stock",
                product_id=str(product.id),
                product_name=product.name,
                stock_quantity=product.stock_quantity,
                threshold=settings.LOW_STOCK_THRESHOLD,
            )


class OrderCancelledHandler(IEventHandler[OrderCancelled]):
    def handle(self, event: OrderCancelled) -> None:
        logger.info(
            "order.cancelled_event_handled",
            order_id=str(event.aggregate_id),
            previous_status=event.previous_status,
        )


class OrderStatusChangedHandler(IEventHandler[OrderStatusChanged]):
    def handle(self, event: OrderStatusChanged) -> None:
        logger.info(
            "order.status_changed_event_handled",
            order_id=str(event.aggregate_id),
            old_status=event.old_status,
            new_status=event.new_status,
        )


order_placed_handler = OrderPlacedHandler(product_repository=ProductDjangoRepository())
order_cancelled_handler = OrderCancelledHandler()
order_status_changed_handler = OrderStatusChangedHandler()
