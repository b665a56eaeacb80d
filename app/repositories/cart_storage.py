# app/repositories/cart_storage.py
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from app.models.cart import CartSnapshotRecord


class CartStorageError(Exception):
    """A cart snapshot could not be read or written."""


class CartStorage(Protocol):
    """
    Key-value persistence for serialized carts.

    Failures are raised as CartStorageError (OSError is also accepted
    for file- or socket-backed stores); CartStore treats both as
    best-effort and retries on the next mutation. Anything else is a
    bug in the storage and propagates.
    """

    def load(self, cart_key: str) -> str | None: ...

    def save(self, cart_key: str, payload: str) -> None: ...

    def delete(self, cart_key: str) -> None: ...


class SqlCartStorage:
    """
    Cart snapshots in the `cart_snapshots` table.

    Each call opens its own short-lived session and commits, so a
    failed cart write can never poison a request's order session.
    Database errors surface as CartStorageError.
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    @contextmanager
    def _session(self, action: str, cart_key: str):
        try:
            with Session(self.engine) as session:
                yield session
        except SQLAlchemyError as exc:
            raise CartStorageError(f"Could not {action} cart {cart_key}") from exc

    def load(self, cart_key: str) -> str | None:
        with self._session("load", cart_key) as session:
            row = session.get(CartSnapshotRecord, cart_key)
            return row.payload if row else None

    def save(self, cart_key: str, payload: str) -> None:
        with self._session("save", cart_key) as session:
            row = session.get(CartSnapshotRecord, cart_key)
            if row is None:
                row = CartSnapshotRecord(cart_key=cart_key, payload=payload)
            else:
                row.payload = payload
                row.updated_at = datetime.now(timezone.utc)
            session.add(row)
            session.commit()

    def delete(self, cart_key: str) -> None:
        with self._session("delete", cart_key) as session:
            row = session.get(CartSnapshotRecord, cart_key)
            if row is not None:
                session.delete(row)
                session.commit()


class MemoryCartStorage:
    """Dict-backed storage for tests and single-process demos."""

    def __init__(self):
        self.entries: dict[str, str] = {}

    def load(self, cart_key: str) -> str | None:
        return self.entries.get(cart_key)

    def save(self, cart_key: str, payload: str) -> None:
        self.entries[cart_key] = payload

    def delete(self, cart_key: str) -> None:
        self.entries.pop(cart_key, None)
