"""Order API views.

Exposes the ``OrderService`` via HTTP using DRF ViewSets.
Domain exceptions are caught and translated into appropriate
HTTP status codes; the view never swallows generic exceptions.
"""

from __future__ import annotations

import os

from django.http import FileResponse
from django_filters.rest_framework import DjangoFilterBackend
from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.core.permissions import IsCustomer, IsStoreAdmin, StoreIsOpen
from modules.orders.constants import OrderStatus
from modules.orders.dtos import PlaceOrderDTO, PlaceOrderItemDTO
from modules.orders.exceptions import (
    EmptyCart,
    InsufficientStock,
    InvalidOrderStatus,
    InvalidPaymentMethod,
    OrderNotCancellable,
    OrderNotFound,
    OrderPlacementError,
    PaymentProofMissing,
    PaymentProofRejected,
    PersistenceFailure,
    ProductNotFound,
)
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import (
    OrderSerializer,
    OrderStatusUpdateSerializer,
    PaymentProofSerializer,
    PlaceOrderSerializer,
)
from modules.orders.services import OrderService
from modules.products.repositories.django_repository import ProductDjangoRepository

PLACEMENT_ERROR_STATUS = {
    EmptyCart: status.HTTP_400_BAD_REQUEST,
    InvalidPaymentMethod: status.HTTP_400_BAD_REQUEST,
    ProductNotFound: status.HTTP_404_NOT_FOUND,
    InsufficientStock: status.HTTP_409_CONFLICT,
    PersistenceFailure: status.HTTP_503_SERVICE_UNAVAILABLE,
}

_NOT_FOUND = {"detail": "Order not found."}


def placement_error_response(exc: OrderPlacementError) -> Response:
    """Render ``{detail, code, retryable, ...context}`` for a placement failure."""
    body = {
        "detail": exc.message,
        "code": exc.code,
        "retryable": exc.retryable,
        **exc.context,
    }
    return Response(
        body,
        status=PLACEMENT_ERROR_STATUS.get(
            type(exc), status.HTTP_400_BAD_REQUEST
        ),
    )


class OrderViewSet(GenericViewSet):
    """ViewSet for Order operations.

    Uses ``OrderService`` with injected repositories (DIP).
    Does **not** extend ``ModelViewSet``; all ORM access goes through
    the service/repository layer.
    """

    queryset = Order.objects.none()
    serializer_class = OrderSerializer
    filterset_class = OrderFilter
    ordering_fields = ["created_at", "total_amount", "status"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = OrderService(
            order_repository=OrderDjangoRepository(),
            product_repository=ProductDjangoRepository(),
        )

    def get_permissions(self):
        if self.action == "create":
            return [IsCustomer(), StoreIsOpen()]
        if self.action == "partial_update":
            return [IsStoreAdmin()]
        if self.action == "payment_proof":
            return [IsCustomer()]
        return [IsAuthenticated()]

    def get_throttles(self) -> list[BaseThrottle]:
        """Per-action throttling scopes."""
        throttle_scope: str | None
        if self.action == "create":
            throttle_scope = "order_creation"
        elif self.action in {"list", "retrieve"}:
            throttle_scope = "order_listing"
        else:
            throttle_scope = None
        self.throttle_scope = throttle_scope
        return super().get_throttles()

    def get_queryset(self):
        if getattr(self, "swagger_fake_view", False):
            return Order.objects.none()
        return self._service.list_orders(self.request.user)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/

        Supports idempotency via the ``Idempotency-Key`` header: repeating
        a key returns the order created the first time.
        """
        serializer = PlaceOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            dto = PlaceOrderDTO(
                user_id=request.user.pk,
                items=[
                    PlaceOrderItemDTO(
                        product_id=item["product_id"], quantity=item["quantity"]
                    )
                    for item in data["items"]
                ],
                payment_method=data["payment_method"],
                notes=data.get("notes") or "",
                idempotency_key=request.headers.get("Idempotency-Key"),
            )
        except (PydanticValidationError, ValueError) as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        try:
            order = self._service.place_order(dto)
        except OrderPlacementError as exc:
            return placement_error_response(exc)

        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/

        Filtering is handled by ``OrderFilter``, ordering by
        ``OrderingFilter``.  Results are paginated.
        """
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(OrderSerializer(page, many=True).data)
        return Response(OrderSerializer(queryset, many=True).data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        try:
            order = self._service.get_order(pk, request.user)
        except OrderNotFound:
            return Response(_NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Status Update
    # ------------------------------------------------------------------

    def partial_update(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/orders/{pk}/

        Updates order status.  Cancellations are **not** allowed via
        this endpoint; use ``POST /orders/{id}/cancel/`` instead.
        """
        serializer = OrderStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        new_status = serializer.validated_data["status"]

        if new_status == OrderStatus.CANCELLED:
            return Response(
                {"detail": "Use the /cancel/ endpoint for cancellations."},
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            order = self._service.update_status(
                order_id=pk,
                new_status=new_status,
                acting_user_id=request.user.pk,
                notes=serializer.validated_data["notes"],
            )
        except OrderNotFound:
            return Response(_NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
        except InvalidOrderStatus as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Cancel (dedicated action)
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/

        Cancels an order and releases its reserved stock.
        """
        try:
            order = self._service.cancel_order(
                order_id=pk,
                user=request.user,
                notes=request.data.get("notes", ""),
            )
        except OrderNotFound:
            return Response(_NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
        except OrderNotCancellable as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_403_FORBIDDEN)
        except InvalidOrderStatus as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Payment proof
    # ------------------------------------------------------------------

    @action(
        detail=True,
        methods=["post"],
        url_path="payment-proof",
        parser_classes=[MultiPartParser, FormParser],
    )
    def payment_proof(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/payment-proof/ (multipart, field ``file``)"""
        serializer = PaymentProofSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            order = self._service.attach_payment_proof(
                order_id=pk,
                user=request.user,
                upload=serializer.validated_data["file"],
            )
        except OrderNotFound:
            return Response(_NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
        except PaymentProofRejected as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(OrderSerializer(order).data)

    @payment_proof.mapping.get
    def download_payment_proof(
        self, request: Request, pk: str | None = None
    ) -> Response | FileResponse:
        """GET /api/v1/orders/{pk}/payment-proof/

        Streams the stored receipt to the order owner or to staff.
        """
        try:
            stored = self._service.open_payment_proof(pk, request.user)
        except OrderNotFound:
            return Response(_NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
        except PaymentProofMissing as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_404_NOT_FOUND)
        return FileResponse(stored, filename=os.path.basename(stored.name))
