"""Unit tests for the outbox model and the relay task."""

from __future__ import annotations

import logging
from unittest.mock import patch
from uuid import uuid4

import pytest

from modules.core.models import EventStatus, OutboxEvent
from modules.core.tasks import OUTBOX_MAX_RETRIES, relay_outbox_events
from modules.orders.constants import PaymentMethod
from modules.orders.dtos import PlaceOrderDTO, PlaceOrderItemDTO
from modules.orders.events import OrderPlaced
from modules.orders.handlers import OrderPlacedHandler
from modules.products.repositories.django_repository import ProductDjangoRepository

pytestmark = pytest.mark.unit


def _outbox_row(**overrides) -> OutboxEvent:
    values = {
        "event_type": "OrderCancelled",
        "payload": {"aggregate_id": str(uuid4()), "previous_status": "placed"},
        "aggregate_id": str(uuid4()),
        "topic": "orders",
    }
    values.update(overrides)
    return OutboxEvent.objects.create(**values)


class TestRelayableQuerySet:
    def test_includes_pending_and_retryable_failures(self):
        pending = _outbox_row()
        retryable = _outbox_row(status=EventStatus.FAILED, retry_count=1)
        _outbox_row(status=EventStatus.FAILED, retry_count=OUTBOX_MAX_RETRIES)
        _outbox_row(status=EventStatus.PUBLISHED)

        relayable = list(OutboxEvent.objects.relayable(OUTBOX_MAX_RETRIES))

        assert relayable == [pending, retryable]

    def test_mark_as_failed_counts_retries(self):
        row = _outbox_row()
        row.mark_as_failed("boom")
        row.refresh_from_db()
        assert row.status == EventStatus.FAILED
        assert row.retry_count == 1
        assert row.error_message == "boom"


class TestRelayTask:
    def test_publishes_order_events(self, order_service, customer_user, make_product):
        product = make_product(stock=10)
        order_service.place_order(
            PlaceOrderDTO(
                user_id=customer_user.pk,
                items=[PlaceOrderItemDTO(product_id=product.id, quantity=1)],
                payment_method=PaymentMethod.CASH,
            )
        )

        result = relay_outbox_events()

        assert result == {"published": 1, "failed": 0}
        row = OutboxEvent.objects.get()
        assert row.status == EventStatus.PUBLISHED
        assert row.processed_at is not None

    def test_unknown_event_type_is_marked_failed(self):
        row = _outbox_row(event_type="SomethingElse")

        result = relay_outbox_events()

        assert result == {"published": 0, "failed": 1}
        row.refresh_from_db()
        assert row.status == EventStatus.FAILED
        assert "SomethingElse" in row.error_message

    def test_handler_error_marks_row_failed(self):
        row = _outbox_row()

        with patch(
            "modules.orders.handlers.OrderCancelledHandler.handle",
            side_effect=RuntimeError("handler down"),
        ):
            result = relay_outbox_events()

        assert result == {"published": 0, "failed": 1}
        row.refresh_from_db()
        assert row.error_message == "handler down"
        assert row.retry_count == 1

    def test_published_rows_are_not_relayed_again(self):
        _outbox_row()
        relay_outbox_events()
        assert relay_outbox_events() == {"published": 0, "failed": 0}


class TestLowStockWarning:
    def test_warns_for_products_under_threshold(
        self, order_service, customer_user, make_product, settings, caplog
    ):
        settings.LOW_STOCK_THRESHOLD = 3
        scarce = make_product(name="Pandebono", stock=4)
        plenty = make_product(name="Agua", stock=50)
        order = order_service.place_order(
            PlaceOrderDTO(
                user_id=customer_user.pk,
                items=[
                    PlaceOrderItemDTO(product_id=scarce.id, quantity=2),
                    PlaceOrderItemDTO(product_id=plenty.id, quantity=2),
                ],
                payment_method=PaymentMethod.CASH,
            )
        )
        event = OrderPlaced.from_payload(
            OutboxEvent.objects.get(aggregate_id=str(order.id)).payload
        )
        with caplog.at_level(logging.WARNING):
            OrderPlacedHandler(ProductDjangoRepository()).handle(event)

        messages = [r.getMessage() for r in caplog.records]
        warnings = [m for m in messages if "product.low_stock" in m]
        assert len(warnings) == 1
        assert "Pandebono" in warnings[0]
