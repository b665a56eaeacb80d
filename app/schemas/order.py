# app/schemas/order.py
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import ConfigDict
from sqlmodel import SQLModel

from app.schemas.checkout import ShippingAddress

OrderStatus = Literal["pending", "confirmed", "shipped", "delivered", "cancelled", "failed"]


class OrderRead(SQLModel):
    """
    Lightweight representation of an order (without items).
    """

    id: uuid.UUID
    user_id: uuid.UUID
    status: OrderStatus
    shipping_address: ShippingAddress
    total_amount: Decimal
    created_at: datetime


class OrderItemRead(SQLModel):
    """
    Representation of a single order line item.
    """

    id: uuid.UUID
    order_id: uuid.UUID
    product_id: str
    product_name: str
    variant: str | None = None
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    image_ref: str | None = None


class OrderWithItemsRead(OrderRead):
    """
    Full order view including items.
    """

    items: list[OrderItemRead]
    subtotal: Decimal


class OrderStatusUpdate(SQLModel):
    """
    Admin payload to change order status.
    """

    model_config = ConfigDict(extra="forbid")

    status: OrderStatus
