"""Order service layer (Use Cases).

Orchestrates order placement, status management, cancellation and
payment-proof upload and download.  The service defines the unit-of-work boundary:
every write runs inside one ``transaction.atomic()`` block.

Business rules enforced:
- An order needs at least one line and an accepted payment method.
- Products must exist and be active.
- Stock is reserved under ``SELECT FOR UPDATE`` (sorted by product id)
  and decremented with a conditional update, so it never goes negative.
- Name and price are snapshotted on each line at placement time.
- Status transitions are validated against the state machine and each
  one is recorded in the history.
- Cancellation releases the reserved stock.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction

from modules.orders.constants import OrderStatus, PaymentMethod
from modules.orders.events import OrderCancelled, OrderPlaced, OrderStatusChanged
from modules.orders.exceptions import (
    EmptyCart,
    InsufficientStock,
    InvalidOrderStatus,
    InvalidPaymentMethod,
    OrderNotCancellable,
    OrderNotFound,
    PaymentProofMissing,
    PaymentProofRejected,
    PersistenceFailure,
    ProductNotFound,
)

if TYPE_CHECKING:
    from django.core.files import File
    from django.core.files.uploadedfile import UploadedFile

    from modules.orders.dtos import PlaceOrderDTO
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


class OrderService:
    """Application service for Order use-cases.

    Receives repositories via constructor injection (DIP).
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        product_repository: IProductRepository,
    ) -> None:
        self._order_repo = order_repository
        self._product_repo = product_repository

    # ------------------------------------------------------------------
    # Placement
    # ------------------------------------------------------------------

    def place_order(self, dto: PlaceOrderDTO) -> Order:
        """Place an order, reserving stock atomically.

        Steps:
        1. Reject an empty cart or an unknown payment method (no writes).
        2. Return the existing order if the idempotency key was used before.
        3. Inside one transaction:
           - Lock every referenced product (sorted by PK to avoid deadlocks).
           - Validate existence, active flag and combined demand vs. stock.
           - Snapshot name and price.
           - Persist the order and one line per cart entry.
           - Decrement stock with a conditional update.
           - Record the initial history and the ``OrderPlaced`` event.

        Raises:
            EmptyCart: the cart has no lines.
            InvalidPaymentMethod: payment method is not accepted.
            ProductNotFound: a product does not exist or is inactive.
            InsufficientStock: a product cannot cover the requested quantity.
            PersistenceFailure: the database failed; nothing was written.
        """
        log = logger.bind(user_id=dto.user_id)

        if not dto.items:
            log.warning("order.rejected", code=EmptyCart.code)
            raise EmptyCart()
        if dto.payment_method not in PaymentMethod.values:
            log.warning(
                "order.rejected",
                code=InvalidPaymentMethod.code,
                payment_method=dto.payment_method,
            )
            raise InvalidPaymentMethod(payment_method=dto.payment_method)

        if dto.idempotency_key:
            existing = self._order_repo.get_by_idempotency_key(
                dto.user_id, dto.idempotency_key
            )
            if existing:
                log.info("order.idempotency_hit", order_id=str(existing.id))
                return existing

        log.info("order.placement_started", line_count=len(dto.items))
        try:
            with transaction.atomic():
                order = self._reserve_and_persist(dto, log)
        except IntegrityError as exc:
            # A concurrent request with the same idempotency key won the race.
            if dto.idempotency_key:
                existing = self._order_repo.get_by_idempotency_key(
                    dto.user_id, dto.idempotency_key
                )
                if existing:
                    log.info("order.idempotency_hit", order_id=str(existing.id))
                    return existing
            log.error("order.persistence_failed", error=str(exc))
            raise PersistenceFailure() from exc
        except DatabaseError as exc:
            log.error("order.persistence_failed", error=str(exc))
            raise PersistenceFailure() from exc

        placed = self._order_repo.get_by_id(str(order.id)) or order
        log.info(
            "order.placed",
            order_id=str(placed.id),
            order_number=placed.order_number,
            total_amount=str(placed.total_amount),
        )
        return placed

    def _reserve_and_persist(self, dto: PlaceOrderDTO, log: Any) -> Order:
        demand = dto.demand_by_product()
        products = self._product_repo.get_for_update(demand.keys())

        snapshots: Dict[UUID, Dict[str, Any]] = {}
        for product_id, requested in demand.items():
            product = products.get(str(product_id))
            if product is None or not product.is_active:
                log.warning(
                    "order.rejected",
                    code=ProductNotFound.code,
                    product_id=str(product_id),
                )
                raise ProductNotFound(product_id=str(product_id))
            if product.stock_quantity < requested:
                log.warning(
                    "order.rejected",
                    code=InsufficientStock.code,
                    product_id=str(product_id),
                    requested=requested,
                    available=product.stock_quantity,
                )
                raise InsufficientStock(
                    product_id=str(product_id),
                    product_name=product.name,
                    requested=requested,
                    available=product.stock_quantity,
                )
            snapshots[product_id] = {"name": product.name, "price": product.price}

        lines = [
            {
                "product_id": item.product_id,
                "product_name": snapshots[item.product_id]["name"],
                "quantity": item.quantity,
                "unit_price": snapshots[item.product_id]["price"],
            }
            for item in dto.items
        ]
        order = self._order_repo.create(
            {
                "user_id": dto.user_id,
                "payment_method": dto.payment_method,
                "items": lines,
                "notes": dto.notes,
                "idempotency_key": dto.idempotency_key,
            }
        )

        for product_id in sorted(demand, key=str):
            quantity = demand[product_id]
            if not self._product_repo.decrement_stock(str(product_id), quantity):
                current = self._product_repo.get_by_id(str(product_id))
                raise InsufficientStock(
                    product_id=str(product_id),
                    product_name=snapshots[product_id]["name"],
                    requested=quantity,
                    available=current.stock_quantity if current else 0,
                )
            log.info(
                "order.stock_reserved",
                order_id=str(order.id),
                product_id=str(product_id),
                quantity=quantity,
            )

        self._order_repo.add_history(
            order,
            new_status=OrderStatus.PLACED,
            user_id=dto.user_id,
            notes="Order placed",
        )
        order.add_domain_event(
            OrderPlaced(
                aggregate_id=order.id,
                user_id=dto.user_id,
                total_amount=str(order.total_amount),
                items=[
                    {
                        "product_id": str(line["product_id"]),
                        "quantity": line["quantity"],
                    }
                    for line in lines
                ],
            )
        )
        self._order_repo.save(order)
        return order

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @transaction.atomic
    def update_status(
        self,
        order_id: str,
        new_status: str,
        acting_user_id: Optional[int] = None,
        notes: str = "",
    ) -> Order:
        """Transition an order to a new status.

        Acquires a row-level lock on the order before validating the
        transition, preventing concurrent mutations.  Cancellation has to go
        through ``cancel_order`` so the reserved stock is released.

        Raises:
            OrderNotFound: order does not exist.
            InvalidOrderStatus: unknown status, cancellation, or transition
                not allowed.
        """
        order = self._order_repo.get_for_update(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")

        log = logger.bind(
            order_id=str(order.id),
            current_status=order.status,
            new_status=new_status,
        )

        if new_status == OrderStatus.CANCELLED:
            log.warning("order.invalid_transition", reason="use_cancel_order")
            raise InvalidOrderStatus("Use cancel_order to cancel an order.")
        if new_status not in OrderStatus.values or not order.can_transition_to(
            new_status
        ):
            log.warning("order.invalid_transition")
            raise InvalidOrderStatus(
                f"Cannot transition from {order.status} to {new_status}."
            )

        old_status = order.status
        order.status = new_status
        order.add_domain_event(
            OrderStatusChanged(
                aggregate_id=order.id,
                old_status=old_status,
                new_status=new_status,
                changed_by=acting_user_id,
            )
        )
        self._order_repo.save(order)
        self._order_repo.add_history(
            order,
            new_status=new_status,
            old_status=old_status,
            user_id=acting_user_id,
            notes=notes,
        )

        log.info("order.status_updated")
        return self._order_repo.get_by_id(str(order.id))

    @transaction.atomic
    def cancel_order(self, order_id: str, user: Any, notes: str = "") -> Order:
        """Cancel an order and release its reserved stock.

        Staff may cancel wherever the state machine allows it; the owner
        only while the order is still ``placed``.  The order row is locked
        first so concurrent cancellations cannot release stock twice.

        Raises:
            OrderNotFound: order does not exist or belongs to someone else.
            OrderNotCancellable: the owner tried to cancel after confirmation.
            InvalidOrderStatus: cancellation not allowed from current status.
        """
        order = self._order_repo.get_for_update(order_id)
        if not order or not self._can_see(user, order):
            raise OrderNotFound(f"Order {order_id} not found.")

        log = logger.bind(order_id=str(order.id), current_status=order.status)

        if not user.is_staff and order.status != OrderStatus.PLACED:
            log.warning("order.cancel_not_allowed", reason="already_confirmed")
            raise OrderNotCancellable(
                "Orders can only be cancelled by their owner before confirmation."
            )
        if not order.can_transition_to(OrderStatus.CANCELLED):
            log.warning("order.cancel_not_allowed")
            raise InvalidOrderStatus(f"Cannot cancel order in status {order.status}.")

        released: Dict[str, int] = {}
        for item in order.items.all():
            key = str(item.product_id)
            released[key] = released.get(key, 0) + item.quantity
        self._product_repo.get_for_update(released.keys())
        for product_id in sorted(released):
            self._product_repo.restore_stock(product_id, released[product_id])
            log.info(
                "order.stock_released",
                product_id=product_id,
                quantity=released[product_id],
            )

        old_status = order.status
        order.status = OrderStatus.CANCELLED
        order.add_domain_event(
            OrderCancelled(
                aggregate_id=order.id,
                previous_status=old_status,
                cancelled_by=user.pk,
            )
        )
        self._order_repo.save(order)
        self._order_repo.add_history(
            order,
            new_status=OrderStatus.CANCELLED,
            old_status=old_status,
            user_id=user.pk,
            notes=notes or "Order cancelled",
        )

        log.info("order.cancelled")
        return self._order_repo.get_by_id(str(order.id))

    @transaction.atomic
    def attach_payment_proof(
        self, order_id: str, user: Any, upload: UploadedFile
    ) -> Order:
        """Store a transfer receipt for one of the user's pending orders.

        Raises:
            OrderNotFound: order does not exist or belongs to someone else.
            PaymentProofRejected: bad file type/size, or order not pending.
        """
        _, dot, extension = upload.name.rpartition(".")
        extension = extension.lower() if dot else ""
        if extension not in settings.PAYMENT_PROOF_EXTENSIONS:
            raise PaymentProofRejected(
                "Only "
                + ", ".join(settings.PAYMENT_PROOF_EXTENSIONS)
                + " files are accepted."
            )
        content_type = (getattr(upload, "content_type", "") or "").lower()
        if content_type not in settings.PAYMENT_PROOF_CONTENT_TYPES:
            raise PaymentProofRejected(
                f"Content type '{content_type or 'unknown'}' is not accepted."
            )
        if upload.size > settings.PAYMENT_PROOF_MAX_BYTES:
            raise PaymentProofRejected(
                f"File exceeds {settings.PAYMENT_PROOF_MAX_BYTES // (1024 * 1024)} MB."
            )

        order = self._order_repo.get_for_update(order_id)
        if not order or order.user_id != user.pk:
            raise OrderNotFound(f"Order {order_id} not found.")
        if order.status != OrderStatus.PLACED:
            raise PaymentProofRejected(
                "Payment proof can only be uploaded while the order is placed."
            )

        order.payment_proof.save(upload.name, upload, save=False)
        self._order_repo.save(order)
        logger.info(
            "order.payment_proof_attached",
            order_id=str(order.id),
            file=order.payment_proof.name,
            size=upload.size,
        )
        return self._order_repo.get_by_id(str(order.id))

    def open_payment_proof(self, order_id: str, user: Any) -> File:
        """Open the stored receipt of an order visible to *user* for reading.

        Raises:
            OrderNotFound: order does not exist or belongs to someone else.
            PaymentProofMissing: no receipt was uploaded, or the stored file
                is gone.
        """
        order = self.get_order(order_id, user)
        if not order.payment_proof:
            raise PaymentProofMissing(f"Order {order_id} has no payment proof.")
        if not order.payment_proof.storage.exists(order.payment_proof.name):
            logger.error(
                "order.payment_proof_missing_file",
                order_id=str(order.id),
                file=order.payment_proof.name,
            )
            raise PaymentProofMissing(f"Order {order_id} has no payment proof.")
        logger.info(
            "order.payment_proof_downloaded",
            order_id=str(order.id),
            user_id=user.pk,
        )
        return order.payment_proof.open("rb")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str, user: Any) -> Order:
        """Retrieve an order visible to *user*.

        Raises:
            OrderNotFound: missing, or owned by another customer.
        """
        order = self._order_repo.get_by_id(order_id)
        if not order or not self._can_see(user, order):
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def list_orders(
        self, user: Any, filters: Optional[Dict[str, Any]] = None
    ) -> List[Order]:
        """Staff see every order; customers only their own."""
        filters = dict(filters or {})
        if not user.is_staff:
            filters["user_id"] = user.pk
        return self._order_repo.list(filters)

    @staticmethod
    def _can_see(user: Any, order: Order) -> bool:
        return bool(user.is_staff or order.user_id == user.pk)
