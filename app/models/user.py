# app/models/user.py
import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class User(SQLModel, table=True):
    """
    Persistent account / profile row.

    Identity:
      - signed-up shoppers: id MUST match Supabase auth.users.id
      - guests: id is generated locally at checkout

    Role:
      - "user" | "admin" | "guest"

    The unique index on email is the store-level guarantee of
    "at most one account per email". Password hashes live in
    Supabase Auth, never here.
    """

    __tablename__ = "users"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
        description="Supabase auth.users.id, or a local id for guests",
    )

    email: str = Field(
        unique=True,
        index=True,
        description="Normalized (trimmed, lower-case) email",
    )

    name: str = Field(
        max_length=200,
        description="Customer display name; first part of email by default",
    )

    phone: str | None = Field(
        default=None,
        max_length=50,
    )

    role: str = Field(
        default="user",
        index=True,
        description="Application role: user | admin | guest",
    )

    default_address_id: uuid.UUID | None = Field(
        default=None,
        description="Address reused to pre-fill the next checkout",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )

    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


class Address(SQLModel, table=True):
    """
    Saved shipping address of an account.
    """

    __tablename__ = "addresses"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    user_id: uuid.UUID = Field(
        foreign_key="users.id",
        index=True,
    )

    address_line1: str
    address_line2: str | None = None
    city: str
    state: str
    postal_code: str
    country: str

    is_default: bool = Field(default=True)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
