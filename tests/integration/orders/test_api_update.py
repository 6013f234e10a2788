"""Integration tests for status updates, cancellation and payment proofs."""

from __future__ import annotations

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile

from modules.orders.constants import OrderStatus, PaymentMethod
from modules.orders.dtos import PlaceOrderDTO, PlaceOrderItemDTO

pytestmark = pytest.mark.integration

URL = "/api/v1/orders/"


@pytest.fixture()
def product(make_product):
    return make_product(name="Arepa", price="3000.00", stock=10)


@pytest.fixture()
def order(order_service, customer_user, product):
    return order_service.place_order(
        PlaceOrderDTO(
            user_id=customer_user.pk,
            items=[PlaceOrderItemDTO(product_id=product.id, quantity=3)],
            payment_method=PaymentMethod.NEQUI,
        )
    )


class TestStatusUpdate:
    def test_admin_confirms_order(self, admin_client, admin_user, order):
        response = admin_client.patch(
            f"{URL}{order.id}/",
            {"status": "confirmed", "notes": "Transfer received"},
            format="json",
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "confirmed"
        last = body["status_history"][-1]
        assert (last["old_status"], last["new_status"]) == ("placed", "confirmed")
        assert last["user_id"] == admin_user.pk
        assert last["notes"] == "Transfer received"

    def test_invalid_transition(self, admin_client, order):
        response = admin_client.patch(
            f"{URL}{order.id}/", {"status": "delivered"}, format="json"
        )
        assert response.status_code == 400

    def test_cancellation_is_not_allowed_here(self, admin_client, order):
        response = admin_client.patch(
            f"{URL}{order.id}/", {"status": "cancelled"}, format="json"
        )
        assert response.status_code == 400
        assert "/cancel/" in response.json()["detail"]

    def test_customer_cannot_change_status(self, customer_client, order):
        response = customer_client.patch(
            f"{URL}{order.id}/", {"status": "confirmed"}, format="json"
        )
        assert response.status_code == 403


class TestCancelEndpoint:
    def test_owner_cancels_and_stock_returns(self, customer_client, order, product):
        response = customer_client.post(f"{URL}{order.id}/cancel/")

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        product.refresh_from_db()
        assert product.stock_quantity == 10

    def test_owner_cannot_cancel_confirmed_order(
        self, customer_client, order_service, order
    ):
        order_service.update_status(str(order.id), OrderStatus.CONFIRMED)
        response = customer_client.post(f"{URL}{order.id}/cancel/")
        assert response.status_code == 403

    def test_admin_cancels_confirmed_order(
        self, admin_client, order_service, order, product
    ):
        order_service.update_status(str(order.id), OrderStatus.CONFIRMED)

        response = admin_client.post(
            f"{URL}{order.id}/cancel/", {"notes": "Out of stock"}, format="json"
        )

        assert response.status_code == 200
        assert response.json()["status_history"][-1]["notes"] == "Out of stock"
        product.refresh_from_db()
        assert product.stock_quantity == 10

    def test_second_cancel_is_rejected(self, admin_client, order):
        admin_client.post(f"{URL}{order.id}/cancel/")
        response = admin_client.post(f"{URL}{order.id}/cancel/")
        assert response.status_code == 400

    def test_other_customer_gets_not_found(self, api_client, other_customer, order):
        api_client.force_authenticate(user=other_customer)
        assert api_client.post(f"{URL}{order.id}/cancel/").status_code == 404


class TestPaymentProofEndpoint:
    def _upload(
        self,
        client,
        order,
        name="receipt.png",
        content=b"\x89PNG data",
        content_type="image/png",
    ):
        return client.post(
            f"{URL}{order.id}/payment-proof/",
            {"file": SimpleUploadedFile(name, content, content_type=content_type)},
            format="multipart",
        )

    def test_owner_uploads_receipt(self, customer_client, order):
        response = self._upload(customer_client, order)

        assert response.status_code == 200
        assert response.json()["payment_proof"] == f"{URL}{order.id}/payment-proof/"

    def test_wrong_extension(self, customer_client, order):
        response = self._upload(customer_client, order, name="receipt.gif")
        assert response.status_code == 400

    def test_wrong_content_type(self, customer_client, order):
        response = self._upload(customer_client, order, content_type="text/html")
        assert response.status_code == 400

    def test_file_too_large(self, customer_client, order, settings):
        settings.PAYMENT_PROOF_MAX_BYTES = 8
        response = self._upload(customer_client, order, content=b"0" * 9)
        assert response.status_code == 400

    def test_missing_file(self, customer_client, order):
        response = customer_client.post(
            f"{URL}{order.id}/payment-proof/", {}, format="multipart"
        )
        assert response.status_code == 400

    def test_admin_cannot_upload(self, admin_client, order):
        assert self._upload(admin_client, order).status_code == 403

    def test_other_customer_gets_not_found(self, api_client, other_customer, order):
        api_client.force_authenticate(user=other_customer)
        assert self._upload(api_client, order).status_code == 404


class TestPaymentProofDownload:
    @pytest.fixture()
    def order_with_proof(self, order_service, customer_user, order):
        return order_service.attach_payment_proof(
            str(order.id),
            customer_user,
            SimpleUploadedFile(
                "receipt.pdf", b"%PDF-1.7 nequi", content_type="application/pdf"
            ),
        )

    def test_owner_downloads_receipt(self, customer_client, order_with_proof):
        response = customer_client.get(f"{URL}{order_with_proof.id}/payment-proof/")

        assert response.status_code == 200
        assert b"".join(response.streaming_content) == b"%PDF-1.7 nequi"
        assert response["Content-Type"] == "application/pdf"

    def test_admin_downloads_receipt(self, admin_client, order_with_proof):
        response = admin_client.get(f"{URL}{order_with_proof.id}/payment-proof/")
        assert response.status_code == 200

    def test_anonymous_is_rejected(self, api_client, order_with_proof):
        response = api_client.get(f"{URL}{order_with_proof.id}/payment-proof/")
        assert response.status_code == 401

    def test_other_customer_gets_not_found(
        self, api_client, other_customer, order_with_proof
    ):
        api_client.force_authenticate(user=other_customer)
        response = api_client.get(f"{URL}{order_with_proof.id}/payment-proof/")
        assert response.status_code == 404

    def test_order_without_receipt(self, customer_client, order):
        response = customer_client.get(f"{URL}{order.id}/payment-proof/")
        assert response.status_code == 404

    def test_media_url_does_not_serve_receipts(self, client, order_with_proof):
        response = client.get(f"/media/{order_with_proof.payment_proof.name}")
        assert response.status_code == 404
