# app/schemas/checkout.py
import uuid
from decimal import Decimal
from enum import Enum

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel


class CheckoutStep(str, Enum):
    SHIPPING = "shipping"
    IDENTITY_RESOLUTION = "identity_resolution"
    CONFIRMATION = "confirmation"


class IdentityKind(str, Enum):
    # not signed in; a guest account is created at finalization
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"
    # guest account already created by an earlier finalize attempt
    GUEST = "guest"


REQUIRED_SHIPPING_FIELDS = (
    "full_name",
    "email",
    "phone",
    "address_line1",
    "city",
    "state",
    "postal_code",
    "country",
)


class ShippingAddress(SQLModel):
    """
    Shipping / contact info captured once per checkout attempt.

    Every field defaults to "" so a partially filled form can be
    stored on the session and reported with field-level errors
    instead of a generic 422.
    """

    model_config = ConfigDict(extra="forbid")

    full_name: str = ""
    email: str = ""
    phone: str = ""
    address_line1: str = ""
    address_line2: str | None = None
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""

    @field_validator(
        "full_name",
        "phone",
        "address_line1",
        "city",
        "state",
        "postal_code",
        "country",
    )
    @classmethod
    def strip(cls, v: str) -> str:
        return v.strip()

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("address_line2")
    @classmethod
    def normalize_line2(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        return v or None

    def missing_fields(self) -> list[str]:
        return [name for name in REQUIRED_SHIPPING_FIELDS if not getattr(self, name)]


class Identity(SQLModel):
    kind: IdentityKind = IdentityKind.ANONYMOUS
    account_id: uuid.UUID | None = None


class LoginRequest(SQLModel):
    model_config = ConfigDict(extra="forbid")

    email: str
    password: str


class CheckoutSessionRead(SQLModel):
    """
    Client view of the checkout state machine.
    """

    id: uuid.UUID
    step: CheckoutStep
    shipping_address: ShippingAddress
    identity: IdentityKind
    login_email: str | None = None
    error: str | None = None
    in_flight: bool = False


class CheckoutSummary(SQLModel):
    """
    Pricing preview shown on the confirmation step.
    """

    subtotal: Decimal
    shipping: Decimal
    tax: Decimal
    total: Decimal
    item_count: int


class PlaceOrderResult(SQLModel):
    order_id: uuid.UUID
    status: str


class SignupRedirect(SQLModel):
    redirect: str = "signup"
    email: str | None = None
