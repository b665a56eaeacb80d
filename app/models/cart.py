# app/models/cart.py
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class CartSnapshotRecord(SQLModel, table=True):
    """
    Durable key-value entry holding one shopper's cart.

    `payload` is the serialized snapshot ({"items": [...]}); the
    in-memory CartStore is the source of truth, this row only lets
    the cart survive reloads and restarts.
    """

    __tablename__ = "cart_snapshots"

    cart_key: str = Field(
        primary_key=True,
        max_length=100,
    )

    payload: str = Field(
        description="JSON snapshot of the cart lines",
    )

    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
