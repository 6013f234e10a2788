"""Unit tests for status transitions, cancellation and payment proofs."""

from __future__ import annotations

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile

from modules.core.models import OutboxEvent
from modules.orders.constants import OrderStatus, PaymentMethod
from modules.orders.dtos import PlaceOrderDTO, PlaceOrderItemDTO
from modules.orders.exceptions import (
    InvalidOrderStatus,
    OrderNotCancellable,
    OrderNotFound,
    PaymentProofMissing,
    PaymentProofRejected,
)

pytestmark = pytest.mark.unit


@pytest.fixture()
def juice(make_product):
    return make_product(name="Jugo", price="2000.00", stock=10)


@pytest.fixture()
def placed_order(order_service, customer_user, juice):
    return order_service.place_order(
        PlaceOrderDTO(
            user_id=customer_user.pk,
            items=[
                PlaceOrderItemDTO(product_id=juice.id, quantity=2),
                PlaceOrderItemDTO(product_id=juice.id, quantity=1),
            ],
            payment_method=PaymentMethod.DAVIPLATA,
        )
    )


class TestUpdateStatus:
    def test_valid_transition_records_history_and_event(
        self, order_service, placed_order, admin_user
    ):
        order = order_service.update_status(
            str(placed_order.id),
            OrderStatus.CONFIRMED,
            acting_user_id=admin_user.pk,
            notes="Payment checked",
        )

        assert order.status == OrderStatus.CONFIRMED
        last = list(order.status_history.all())[-1]
        assert last.old_status == OrderStatus.PLACED
        assert last.new_status == OrderStatus.CONFIRMED
        assert last.user_id == admin_user.pk
        assert last.notes == "Payment checked"
        assert OutboxEvent.objects.filter(
            aggregate_id=str(order.id), event_type="OrderStatusChanged"
        ).exists()

    def test_full_happy_lifecycle(self, order_service, placed_order):
        for status in (
            OrderStatus.CONFIRMED,
            OrderStatus.IN_PREPARATION,
            OrderStatus.READY,
            OrderStatus.DELIVERED,
        ):
            order = order_service.update_status(str(placed_order.id), status)
        assert order.status == OrderStatus.DELIVERED
        assert order.status_history.count() == 5

    def test_skipping_a_step_is_rejected(self, order_service, placed_order):
        with pytest.raises(InvalidOrderStatus):
            order_service.update_status(str(placed_order.id), OrderStatus.READY)

    def test_unknown_status_is_rejected(self, order_service, placed_order):
        with pytest.raises(InvalidOrderStatus):
            order_service.update_status(str(placed_order.id), "lost")

    def test_cancelled_is_not_a_plain_status_update(
        self, order_service, placed_order, juice
    ):
        with pytest.raises(InvalidOrderStatus):
            order_service.update_status(str(placed_order.id), OrderStatus.CANCELLED)

        placed_order.refresh_from_db()
        assert placed_order.status == OrderStatus.PLACED
        juice.refresh_from_db()
        assert juice.stock_quantity == 7

    def test_missing_order(self, order_service):
        with pytest.raises(OrderNotFound):
            order_service.update_status(
                "00000000-0000-0000-0000-000000000000", OrderStatus.CONFIRMED
            )


class TestCancelOrder:
    def test_owner_cancels_placed_order_and_stock_returns(
        self, order_service, placed_order, customer_user, juice
    ):
        juice.refresh_from_db()
        assert juice.stock_quantity == 7

        order = order_service.cancel_order(str(placed_order.id), customer_user)

        assert order.status == OrderStatus.CANCELLED
        juice.refresh_from_db()
        assert juice.stock_quantity == 10
        last = list(order.status_history.all())[-1]
        assert last.new_status == OrderStatus.CANCELLED
        assert last.notes == "Order cancelled"
        assert OutboxEvent.objects.filter(
            aggregate_id=str(order.id), event_type="OrderCancelled"
        ).exists()

    def test_owner_cannot_cancel_after_confirmation(
        self, order_service, placed_order, customer_user, juice
    ):
        order_service.update_status(str(placed_order.id), OrderStatus.CONFIRMED)

        with pytest.raises(OrderNotCancellable):
            order_service.cancel_order(str(placed_order.id), customer_user)
        juice.refresh_from_db()
        assert juice.stock_quantity == 7

    def test_staff_can_cancel_confirmed_order(
        self, order_service, placed_order, admin_user, juice
    ):
        order_service.update_status(str(placed_order.id), OrderStatus.CONFIRMED)

        order = order_service.cancel_order(
            str(placed_order.id), admin_user, notes="Out of ice"
        )

        assert order.status == OrderStatus.CANCELLED
        juice.refresh_from_db()
        assert juice.stock_quantity == 10

    def test_order_in_preparation_cannot_be_cancelled(
        self, order_service, placed_order, admin_user
    ):
        order_service.update_status(str(placed_order.id), OrderStatus.CONFIRMED)
        order_service.update_status(str(placed_order.id), OrderStatus.IN_PREPARATION)

        with pytest.raises(InvalidOrderStatus):
            order_service.cancel_order(str(placed_order.id), admin_user)

    def test_cancelling_twice_does_not_release_stock_twice(
        self, order_service, placed_order, admin_user, juice
    ):
        order_service.cancel_order(str(placed_order.id), admin_user)

        with pytest.raises(InvalidOrderStatus):
            order_service.cancel_order(str(placed_order.id), admin_user)
        juice.refresh_from_db()
        assert juice.stock_quantity == 10

    def test_other_customer_gets_not_found(
        self, order_service, placed_order, other_customer
    ):
        with pytest.raises(OrderNotFound):
            order_service.cancel_order(str(placed_order.id), other_customer)


class TestPaymentProof:
    def test_owner_attaches_receipt(self, order_service, placed_order, customer_user):
        upload = SimpleUploadedFile(
            "receipt.png", b"\x89PNG fake", content_type="image/png"
        )

        order = order_service.attach_payment_proof(
            str(placed_order.id), customer_user, upload
        )

        assert order.payment_proof.name.startswith(
            f"payment_proofs/{order.order_number}"
        )

    def test_rejects_unknown_extension(
        self, order_service, placed_order, customer_user
    ):
        upload = SimpleUploadedFile("receipt.exe", b"MZ")
        with pytest.raises(PaymentProofRejected):
            order_service.attach_payment_proof(
                str(placed_order.id), customer_user, upload
            )

    def test_rejects_content_type_that_does_not_match(
        self, order_service, placed_order, customer_user
    ):
        upload = SimpleUploadedFile(
            "receipt.png", b"<html>", content_type="text/html"
        )
        with pytest.raises(PaymentProofRejected):
            order_service.attach_payment_proof(
                str(placed_order.id), customer_user, upload
            )
        placed_order.refresh_from_db()
        assert not placed_order.payment_proof

    def test_rejects_oversized_file(
        self, order_service, placed_order, customer_user, settings
    ):
        settings.PAYMENT_PROOF_MAX_BYTES = 4
        upload = SimpleUploadedFile(
            "receipt.pdf", b"%PDF-1.7", content_type="application/pdf"
        )
        with pytest.raises(PaymentProofRejected):
            order_service.attach_payment_proof(
                str(placed_order.id), customer_user, upload
            )

    def test_rejects_after_confirmation(
        self, order_service, placed_order, customer_user
    ):
        order_service.update_status(str(placed_order.id), OrderStatus.CONFIRMED)
        upload = SimpleUploadedFile("receipt.jpg", b"jpeg", content_type="image/jpeg")
        with pytest.raises(PaymentProofRejected):
            order_service.attach_payment_proof(
                str(placed_order.id), customer_user, upload
            )

    def test_other_customer_gets_not_found(
        self, order_service, placed_order, other_customer
    ):
        upload = SimpleUploadedFile("receipt.jpg", b"jpeg", content_type="image/jpeg")
        with pytest.raises(OrderNotFound):
            order_service.attach_payment_proof(
                str(placed_order.id), other_customer, upload
            )


class TestOpenPaymentProof:
    @pytest.fixture()
    def order_with_proof(self, order_service, placed_order, customer_user):
        upload = SimpleUploadedFile(
            "receipt.pdf", b"%PDF-1.7 receipt", content_type="application/pdf"
        )
        return order_service.attach_payment_proof(
            str(placed_order.id), customer_user, upload
        )

    def test_owner_reads_stored_bytes(
        self, order_service, order_with_proof, customer_user
    ):
        with order_service.open_payment_proof(
            str(order_with_proof.id), customer_user
        ) as stored:
            assert stored.read() == b"%PDF-1.7 receipt"

    def test_staff_reads_any_receipt(self, order_service, order_with_proof, admin_user):
        with order_service.open_payment_proof(
            str(order_with_proof.id), admin_user
        ) as stored:
            assert stored.read().startswith(b"%PDF")

    def test_other_customer_gets_not_found(
        self, order_service, order_with_proof, other_customer
    ):
        with pytest.raises(OrderNotFound):
            order_service.open_payment_proof(str(order_with_proof.id), other_customer)

    def test_order_without_receipt(self, order_service, placed_order, customer_user):
        with pytest.raises(PaymentProofMissing):
            order_service.open_payment_proof(str(placed_order.id), customer_user)

    def test_receipt_deleted_from_storage(
        self, order_service, order_with_proof, customer_user
    ):
        order_with_proof.payment_proof.storage.delete(
            order_with_proof.payment_proof.name
        )
        with pytest.raises(PaymentProofMissing):
            order_service.open_payment_proof(str(order_with_proof.id), customer_user)


class TestQueries:
    def test_customer_lists_only_own_orders(
        self, order_service, placed_order, customer_user, other_customer
    ):
        assert list(order_service.list_orders(customer_user)) == [placed_order]
        assert list(order_service.list_orders(other_customer)) == []

    def test_staff_sees_everything(self, order_service, placed_order, admin_user):
        assert order_service.get_order(str(placed_order.id), admin_user) == placed_order

    def test_hidden_order_is_not_found(
        self, order_service, placed_order, other_customer
    ):
        with pytest.raises(OrderNotFound):
            order_service.get_order(str(placed_order.id), other_customer)
