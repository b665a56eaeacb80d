# app/schemas/cart.py
from decimal import Decimal

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field


class CartItem(SQLModel):
    """
    One cart line. A line is identified by (product_id, variant_key).

    Prices are decimals and currency-agnostic; the catalog supplies
    name / unit_price / image_ref when the shopper adds the item.
    """

    model_config = ConfigDict(extra="ignore")

    product_id: str = Field(min_length=1)
    variant_key: str | None = None
    name: str
    unit_price: Decimal = Field(ge=0)
    quantity: int = Field(ge=1)
    image_ref: str | None = None

    @field_validator("variant_key", "image_ref")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        return v or None

    @property
    def key(self) -> tuple[str, str | None]:
        return (self.product_id, self.variant_key)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class CartSnapshot(SQLModel):
    """
    Persisted cart format:

        {"items": [{product_id, variant_key, name, unit_price, quantity, image_ref}, ...]}
    """

    items: list[CartItem] = Field(default_factory=list)


class CartItemCreate(CartItem):
    """
    Payload for adding to cart.
    """

    model_config = ConfigDict(extra="forbid")


class CartItemUpdate(SQLModel):
    """
    Payload for updating quantity of a cart line.

    No lower bound here: the store itself rejects quantities below 1
    with a ValidationError so the client gets field-level feedback.
    """

    quantity: int
    variant_key: str | None = None


class CartItemRead(SQLModel):
    """
    Read model for a single cart line, including line_total.
    """

    product_id: str
    variant_key: str | None = None
    name: str
    unit_price: Decimal
    quantity: int
    image_ref: str | None = None
    line_total: Decimal


class CartSummary(SQLModel):
    """
    Full cart response model with totals.
    """

    cart_id: str
    items: list[CartItemRead]
    total_quantity: int
    total_price: Decimal
