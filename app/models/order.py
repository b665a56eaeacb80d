# app/models/order.py
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field

# pending | confirmed | shipped | delivered | cancelled | failed
ORDER_STATUSES = ("pending", "confirmed", "shipped", "delivered", "cancelled", "failed")


class Order(SQLModel, table=True):
    """
    Customer order header.

    The shipping address is a JSON snapshot taken at checkout, not a
    reference to the account's saved address. Once created, only
    `status` (and `updated_at`) change.
    """

    __tablename__ = "orders"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    user_id: uuid.UUID = Field(
        foreign_key="users.id",
        index=True,
    )

    # One per checkout session; failed attempts may share it.
    idempotency_key: str | None = Field(
        default=None,
        index=True,
        max_length=100,
    )

    status: str = Field(
        default="pending",
        index=True,
        description="Order status lifecycle",
    )

    shipping_address: dict = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )

    total_amount: Decimal = Field(
        max_digits=12,
        decimal_places=2,
        description="Cart total plus checkout charges at order time",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )

    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


class OrderItem(SQLModel, table=True):
    """
    Line item inside an order.

    Name, price and variant are snapshots so later catalog edits
    never alter historical orders.
    """

    __tablename__ = "order_items"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    order_id: uuid.UUID = Field(
        foreign_key="orders.id",
        index=True,
    )

    # Catalog lives outside this service; no FK.
    product_id: str = Field(index=True, max_length=100)

    product_name: str

    unit_price: Decimal = Field(
        max_digits=12,
        decimal_places=2,
        description="Unit price at time of order",
    )

    quantity: int = Field(
        gt=0,
        description="Quantity ordered (>=1)",
    )

    variant: str | None = Field(
        default=None,
        description="Size or other variant key",
    )

    image_ref: str | None = None
