# app/services/order_service.py
import uuid
from decimal import Decimal

from fastapi import HTTPException, status
from sqlmodel import Session

from app.core.errors import OrderNotFound
from app.models.order import Order, OrderItem
from app.repositories.order_repo import OrderRepository
from app.repositories.order_store import SqlOrderStore
from app.schemas.checkout import ShippingAddress
from app.schemas.order import (
    OrderItemRead,
    OrderRead,
    OrderStatusUpdate,
    OrderWithItemsRead,
)

# Status changes made by fulfillment staff after checkout:
#
#   pending   -> confirmed, cancelled, failed
#   confirmed -> shipped, cancelled
#   shipped   -> delivered
#   delivered / cancelled / failed -> (no change)
ALLOWED_STATUS_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"confirmed", "cancelled", "failed"},
    "confirmed": {"shipped", "cancelled"},
    "shipped": {"delivered"},
    "delivered": set(),
    "cancelled": set(),
    "failed": set(),
}


class OrderService:
    """
    Read side of orders plus admin status changes.

    Order creation lives in OrderFinalizer; this service only reads
    what it wrote and moves status along the fulfillment lifecycle.
    """

    def __init__(self, order_repo: OrderRepository):
        self.order_repo = order_repo

    # -------- User-facing operations --------

    def list_user_orders(
        self,
        session: Session,
        user_id: uuid.UUID,
        skip: int = 0,
        limit: int = 50,
    ) -> list[OrderRead]:
        """
        List orders for the given user (without items).
        """
        orders = self.order_repo.list_for_user(session, user_id, skip, limit)
        return [self._build_order_dto(o) for o in orders]

    def get_user_order(
        self,
        session: Session,
        user_id: uuid.UUID,
        order_id: uuid.UUID,
    ) -> OrderWithItemsRead:
        """
        Get a single order for the user, including items.

        - 404 if order not found or does not belong to this user.
        """
        order = self.order_repo.get_by_id(session, order_id)
        if not order or order.user_id != user_id:
            raise OrderNotFound()

        items = self.order_repo.list_items_for_order(session, order.id)
        return self._build_order_with_items_dto(order, items)

    # -------- Admin operations --------

    def list_all_orders(
        self,
        session: Session,
        skip: int = 0,
        limit: int = 50,
        status: str | None = None,
    ) -> list[OrderRead]:
        """
        List all orders (admin only), optionally filtered by status.
        """
        orders = self.order_repo.list_all(session, skip, limit, status)
        return [self._build_order_dto(o) for o in orders]

    def get_order_admin(
        self,
        session: Session,
        order_id: uuid.UUID,
    ) -> OrderWithItemsRead:
        """
        Get any order with items (admin only).
        """
        order = self.order_repo.get_by_id(session, order_id)
        if not order:
            raise OrderNotFound()
        items = self.order_repo.list_items_for_order(session, order.id)
        return self._build_order_with_items_dto(order, items)

    def update_status(
        self,
        session: Session,
        order_id: uuid.UUID,
        payload: OrderStatusUpdate,
    ) -> OrderRead:
        """
        Admin-only status update following ALLOWED_STATUS_TRANSITIONS.

        Any invalid transition raises 400.
        """
        order = self.order_repo.get_by_id(session, order_id)
        if not order:
            raise OrderNotFound()

        current = order.status
        new = payload.status

        if current == new:
            return self._build_order_dto(order)

        if current not in ALLOWED_STATUS_TRANSITIONS or new not in ALLOWED_STATUS_TRANSITIONS[current]:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid status transition: {current} -> {new}",
            )

        order = SqlOrderStore(session, order_repo=self.order_repo).update_order_status(
            order_id, new
        )
        return self._build_order_dto(order)

    # -------- Helper DTO builders --------

    @staticmethod
    def _build_order_dto(order: Order) -> OrderRead:
        return OrderRead(
            id=order.id,
            user_id=order.user_id,
            status=order.status,
            shipping_address=ShippingAddress.model_validate(order.shipping_address),
            total_amount=order.total_amount,
            created_at=order.created_at,
        )

    def _build_order_with_items_dto(
        self,
        order: Order,
        items: list[OrderItem],
    ) -> OrderWithItemsRead:
        """
        Compose OrderWithItemsRead from ORM models, including subtotal.
        """
        item_dtos: list[OrderItemRead] = []
        subtotal = Decimal("0")

        for it in items:
            line_total = it.unit_price * it.quantity
            subtotal += line_total
            item_dtos.append(
                OrderItemRead(
                    id=it.id,
                    order_id=it.order_id,
                    product_id=it.product_id,
                    product_name=it.product_name,
                    variant=it.variant,
                    quantity=it.quantity,
                    unit_price=it.unit_price,
                    line_total=line_total,
                    image_ref=it.image_ref,
                )
            )

        base = self._build_order_dto(order)
        return OrderWithItemsRead(**base.model_dump(), items=item_dtos, subtotal=subtotal)
