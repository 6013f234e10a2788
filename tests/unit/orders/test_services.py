"""Unit tests for OrderService.place_order.

Covers:
- Happy path: lines, totals, price snapshot, stock decrement, history.
- Validation failures raised before any write (empty cart, payment method).
- Missing / inactive products and insufficient stock, with rollback.
- Duplicate product lines checked against their combined quantity.
- Idempotency keys.
- Database failures surfaced as a retryable ``PersistenceFailure``.
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4

import pytest
from django.db import DatabaseError

from modules.core.models import OutboxEvent
from modules.orders.constants import OrderStatus, PaymentMethod
from modules.orders.dtos import PlaceOrderDTO, PlaceOrderItemDTO
from modules.orders.exceptions import (
    EmptyCart,
    InsufficientStock,
    InvalidPaymentMethod,
    OrderPlacementError,
    PersistenceFailure,
    ProductNotFound,
)
from modules.orders.models import Order, OrderItem, OrderStatusHistory

pytestmark = pytest.mark.unit


def _dto(user, *lines, payment_method=PaymentMethod.CASH, **kwargs) -> PlaceOrderDTO:
    return PlaceOrderDTO(
        user_id=user.pk,
        items=[
            PlaceOrderItemDTO(product_id=product.id, quantity=quantity)
            for product, quantity in lines
        ],
        payment_method=payment_method,
        **kwargs,
    )


def _assert_nothing_written() -> None:
    assert Order.objects.count() == 0
    assert OrderItem.objects.count() == 0
    assert OrderStatusHistory.objects.count() == 0
    assert OutboxEvent.objects.count() == 0


# ===========================================================================
# Happy path
# ===========================================================================


class TestPlaceOrderSuccess:
    def test_single_line_order(self, order_service, customer_user, make_product):
        product = make_product(name="P", price="1000.00", stock=5)

        order = order_service.place_order(_dto(customer_user, (product, 3)))

        assert order.status == OrderStatus.PLACED
        assert order.total_amount == Decimal("3000.00")
        assert order.user_id == customer_user.pk
        product.refresh_from_db()
        assert product.stock_quantity == 2

    def test_second_order_over_remaining_stock_fails(
        self, order_service, customer_user, make_product
    ):
        product = make_product(name="P", price="1000.00", stock=5)
        order_service.place_order(_dto(customer_user, (product, 3)))

        with pytest.raises(InsufficientStock) as exc_info:
            order_service.place_order(_dto(customer_user, (product, 3)))

        assert exc_info.value.context["available"] == 2
        assert exc_info.value.context["requested"] == 3
        product.refresh_from_db()
        assert product.stock_quantity == 2
        assert Order.objects.count() == 1

    def test_lines_follow_cart_order_with_snapshots(
        self, order_service, customer_user, make_product
    ):
        bread = make_product(name="Pandebono", price="1500.00", stock=10)
        juice = make_product(name="Jugo", price="2000.00", stock=10)

        order = order_service.place_order(
            _dto(customer_user, (juice, 1), (bread, 2))
        )
        items = list(order.items.all())

        assert [i.product_name for i in items] == ["Jugo", "Pandebono"]
        assert [i.unit_price for i in items] == [Decimal("2000.00"), Decimal("1500.00")]
        assert [i.subtotal for i in items] == [Decimal("2000.00"), Decimal("3000.00")]

    def test_total_equals_sum_of_subtotals(
        self, order_service, customer_user, make_product
    ):
        a = make_product(name="A", price="333.33", stock=10)
        b = make_product(name="B", price="1250.50", stock=10)

        order = order_service.place_order(_dto(customer_user, (a, 3), (b, 2)))

        assert order.total_amount == sum(i.subtotal for i in order.items.all())
        assert order.total_amount == Decimal("3500.99")

    def test_price_edit_after_placement_does_not_change_line(
        self, order_service, customer_user, make_product
    ):
        product = make_product(price="1000.00")
        order = order_service.place_order(_dto(customer_user, (product, 1)))

        product.price = Decimal("9999.00")
        product.save()

        item = OrderItem.objects.get(order_id=order.id)
        assert item.unit_price == Decimal("1000.00")

    def test_records_initial_history(self, order_service, customer_user, make_product):
        order = order_service.place_order(_dto(customer_user, (make_product(), 1)))
        history = list(order.status_history.all())

        assert len(history) == 1
        assert history[0].old_status is None
        assert history[0].new_status == OrderStatus.PLACED
        assert history[0].user_id == customer_user.pk

    def test_writes_order_placed_outbox_event(
        self, order_service, customer_user, make_product
    ):
        product = make_product()
        order = order_service.place_order(_dto(customer_user, (product, 2)))

        event = OutboxEvent.objects.get(aggregate_id=str(order.id))
        assert event.event_type == "OrderPlaced"
        assert event.topic == "orders"
        assert event.payload["user_id"] == customer_user.pk
        assert event.payload["items"] == [
            {"product_id": str(product.id), "quantity": 2}
        ]

    def test_stores_notes_and_payment_method(
        self, order_service, customer_user, make_product
    ):
        order = order_service.place_order(
            _dto(
                customer_user,
                (make_product(), 1),
                payment_method=PaymentMethod.NEQUI,
                notes="Recoger en el descanso",
            )
        )
        assert order.payment_method == PaymentMethod.NEQUI
        assert order.notes == "Recoger en el descanso"

    def test_exact_stock_can_be_sold_out(
        self, order_service, customer_user, make_product
    ):
        product = make_product(stock=4)
        order_service.place_order(_dto(customer_user, (product, 4)))
        product.refresh_from_db()
        assert product.stock_quantity == 0


# ===========================================================================
# Duplicate lines
# ===========================================================================


class TestDuplicateProductLines:
    def test_combined_demand_within_stock(
        self, order_service, customer_user, make_product
    ):
        product = make_product(price="500.00", stock=5)

        order = order_service.place_order(
            _dto(customer_user, (product, 2), (product, 3))
        )

        assert order.items.count() == 2
        assert order.total_amount == Decimal("2500.00")
        product.refresh_from_db()
        assert product.stock_quantity == 0

    def test_combined_demand_over_stock_fails(
        self, order_service, customer_user, make_product
    ):
        product = make_product(stock=4)

        with pytest.raises(InsufficientStock) as exc_info:
            order_service.place_order(_dto(customer_user, (product, 2), (product, 3)))

        assert exc_info.value.context["requested"] == 5
        assert exc_info.value.context["available"] == 4
        product.refresh_from_db()
        assert product.stock_quantity == 4
        _assert_nothing_written()


# ===========================================================================
# Failures before any write
# ===========================================================================


class TestRejectedBeforeWrites:
    def test_empty_cart(self, order_service, customer_user):
        with pytest.raises(EmptyCart) as exc_info:
            order_service.place_order(PlaceOrderDTO(user_id=customer_user.pk))

        assert exc_info.value.code == "empty_cart"
        assert exc_info.value.retryable is False
        _assert_nothing_written()

    def test_invalid_payment_method(self, order_service, customer_user, make_product):
        product = make_product(stock=3)

        with pytest.raises(InvalidPaymentMethod) as exc_info:
            order_service.place_order(
                _dto(customer_user, (product, 1), payment_method="credit_card")
            )

        assert exc_info.value.context == {"payment_method": "credit_card"}
        assert "credit_card" in str(exc_info.value)
        product.refresh_from_db()
        assert product.stock_quantity == 3
        _assert_nothing_written()


# ===========================================================================
# Product validation and rollback
# ===========================================================================


class TestProductValidation:
    def test_missing_product(self, order_service, customer_user, make_product):
        product = make_product(stock=10)
        missing = uuid4()
        dto = PlaceOrderDTO(
            user_id=customer_user.pk,
            items=[
                PlaceOrderItemDTO(product_id=product.id, quantity=1),
                PlaceOrderItemDTO(product_id=missing, quantity=1),
            ],
            payment_method=PaymentMethod.CASH,
        )

        with pytest.raises(ProductNotFound) as exc_info:
            order_service.place_order(dto)

        assert exc_info.value.context == {"product_id": str(missing)}
        product.refresh_from_db()
        assert product.stock_quantity == 10
        _assert_nothing_written()

    def test_inactive_product_is_not_orderable(
        self, order_service, customer_user, make_product
    ):
        product = make_product(is_active=False)

        with pytest.raises(ProductNotFound):
            order_service.place_order(_dto(customer_user, (product, 1)))
        _assert_nothing_written()

    def test_one_line_out_of_stock_rolls_back_everything(
        self, order_service, customer_user, make_product
    ):
        a = make_product(name="A", price="500.00", stock=10)
        b = make_product(name="B", price="800.00", stock=0)

        with pytest.raises(InsufficientStock) as exc_info:
            order_service.place_order(_dto(customer_user, (a, 2), (b, 1)))

        assert exc_info.value.context == {
            "product_id": str(b.id),
            "product_name": "B",
            "requested": 1,
            "available": 0,
        }
        a.refresh_from_db()
        b.refresh_from_db()
        assert a.stock_quantity == 10
        assert b.stock_quantity == 0
        _assert_nothing_written()

    def test_conditional_decrement_miss_rolls_back(
        self, order_service, customer_user, make_product
    ):
        a = make_product(name="A", stock=10)
        b = make_product(name="B", stock=10)

        with patch(
            "modules.products.repositories.django_repository."
            "ProductDjangoRepository.decrement_stock",
            side_effect=[True, False],
        ):
            with pytest.raises(InsufficientStock):
                order_service.place_order(_dto(customer_user, (a, 1), (b, 1)))

        a.refresh_from_db()
        b.refresh_from_db()
        assert a.stock_quantity == 10
        assert b.stock_quantity == 10
        _assert_nothing_written()


# ===========================================================================
# Idempotency
# ===========================================================================


class TestIdempotency:
    def test_same_key_returns_existing_order(
        self, order_service, customer_user, make_product
    ):
        product = make_product(stock=10)
        first = order_service.place_order(
            _dto(customer_user, (product, 2), idempotency_key="cart-42")
        )
        second = order_service.place_order(
            _dto(customer_user, (product, 2), idempotency_key="cart-42")
        )

        assert second.id == first.id
        assert Order.objects.count() == 1
        product.refresh_from_db()
        assert product.stock_quantity == 8

    def test_key_is_scoped_to_the_user(
        self, order_service, customer_user, other_customer, make_product
    ):
        product = make_product(stock=10)
        first = order_service.place_order(
            _dto(customer_user, (product, 1), idempotency_key="same")
        )
        second = order_service.place_order(
            _dto(other_customer, (product, 1), idempotency_key="same")
        )

        assert first.id != second.id
        product.refresh_from_db()
        assert product.stock_quantity == 8


# ===========================================================================
# Persistence failures
# ===========================================================================


class TestPersistenceFailure:
    def test_database_error_becomes_retryable_failure(
        self, order_service, customer_user, make_product
    ):
        product = make_product(stock=10)

        with patch(
            "modules.orders.repositories.django_repository."
            "OrderDjangoRepository.add_history",
            side_effect=DatabaseError("disk full"),
        ):
            with pytest.raises(PersistenceFailure) as exc_info:
                order_service.place_order(_dto(customer_user, (product, 3)))

        assert exc_info.value.retryable is True
        assert exc_info.value.code == "persistence_failure"
        assert isinstance(exc_info.value.__cause__, DatabaseError)
        product.refresh_from_db()
        assert product.stock_quantity == 10
        _assert_nothing_written()

    def test_order_number_collisions_become_retryable_failure(
        self, order_service, customer_user, make_product
    ):
        product = make_product(stock=10)
        existing = order_service.place_order(_dto(customer_user, (product, 1)))

        with patch(
            "modules.orders.models.Order.generate_order_number",
            return_value=existing.order_number,
        ):
            with pytest.raises(PersistenceFailure) as exc_info:
                order_service.place_order(_dto(customer_user, (product, 3)))

        assert exc_info.value.retryable is True
        product.refresh_from_db()
        assert product.stock_quantity == 9
        assert Order.objects.count() == 1

    def test_failed_read_after_commit_is_not_reported_as_retryable(
        self, order_service, customer_user, make_product
    ):
        product = make_product(stock=10)

        with patch(
            "modules.orders.repositories.django_repository."
            "OrderDjangoRepository.get_by_id",
            side_effect=DatabaseError("connection reset"),
        ):
            with pytest.raises(DatabaseError):
                order_service.place_order(_dto(customer_user, (product, 3)))

        assert Order.objects.count() == 1
        product.refresh_from_db()
        assert product.stock_quantity == 7

    def test_all_placement_errors_share_base_class(self):
        for exc_class in (
            EmptyCart,
            InvalidPaymentMethod,
            ProductNotFound,
            InsufficientStock,
            PersistenceFailure,
        ):
            assert issubclass(exc_class, OrderPlacementError)
