"""Order DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.
"""

from __future__ import annotations

from django.conf import settings
from django.urls import reverse
from rest_framework import serializers

from modules.orders.constants import OrderStatus
from modules.orders.models import Order, OrderItem, OrderStatusHistory

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class PlaceOrderItemSerializer(serializers.Serializer):
    """Validates a single cart line."""

    product_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)


class PlaceOrderSerializer(serializers.Serializer):
    """Validates the shape of an order placement request.

    An empty ``items`` list and an unknown ``payment_method`` pass through
    on purpose: the service reports them with their own error codes.
    """

    items = PlaceOrderItemSerializer(many=True, required=False, default=list)
    payment_method = serializers.CharField(
        required=False, default="", allow_blank=True
    )
    notes = serializers.CharField(
        required=False,
        default="",
        allow_blank=True,
        allow_null=True,
        max_length=settings.ORDER_NOTES_MAX_LENGTH,
    )


class OrderStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class PaymentProofSerializer(serializers.Serializer):
    file = serializers.FileField()


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class OrderItemSerializer(serializers.ModelSerializer):
    """Order line with its name and price snapshots."""

    name = serializers.CharField(source="product_name", read_only=True)

    class Meta:
        model = OrderItem
        fields = [
            "product_id",
            "name",
            "unit_price",
            "quantity",
            "subtotal",
        ]
        read_only_fields = fields


class StatusHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderStatusHistory
        fields = [
            "old_status",
            "new_status",
            "user_id",
            "notes",
            "created_at",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Read serializer for orders with nested lines and history."""

    order_id = serializers.UUIDField(source="id", read_only=True)
    total = serializers.DecimalField(
        source="total_amount", max_digits=10, decimal_places=2, read_only=True
    )
    payment_proof = serializers.SerializerMethodField()
    items = OrderItemSerializer(many=True, read_only=True)
    status_history = StatusHistorySerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "order_id",
            "order_number",
            "user_id",
            "status",
            "total",
            "payment_method",
            "payment_proof",
            "notes",
            "created_at",
            "updated_at",
            "items",
            "status_history",
        ]
        read_only_fields = fields

    def get_payment_proof(self, obj: Order) -> str | None:
        # Receipts are only served through the authenticated download action.
        if not obj.payment_proof:
            return None
        return reverse("order-payment-proof", kwargs={"pk": obj.pk})
