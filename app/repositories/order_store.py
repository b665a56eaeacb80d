# app/repositories/order_store.py
import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlmodel import Session

from app.core.errors import (
    FinalizationError,
    IdentityConflict,
    OrderNotFound,
    TransientStoreError,
)
from app.models.order import Order, OrderItem
from app.models.user import Address, User
from app.repositories.order_repo import OrderRepository
from app.repositories.user_repo import AddressRepository, UserRepository
from app.schemas.cart import CartItem
from app.schemas.checkout import ShippingAddress

logger = logging.getLogger(__name__)


def _default_name_from_email(email: str) -> str:
    if "@" in email:
        return email.split("@", 1)[0]
    return email


class SqlOrderStore:
    """
    Durable store for accounts, profiles, orders and order items.

    Each public method is one step of order finalization and commits
    on its own; a failing step is rolled back before its error is
    raised, so the session stays usable for compensating writes.

    Errors:
      - IdentityConflict    : email already taken (unique index)
      - TransientStoreError : connection / timeout problems, retryable
      - FinalizationError   : any other database failure
    """

    def __init__(
        self,
        session: Session,
        user_repo: UserRepository | None = None,
        address_repo: AddressRepository | None = None,
        order_repo: OrderRepository | None = None,
    ):
        self.session = session
        self.user_repo = user_repo or UserRepository()
        self.address_repo = address_repo or AddressRepository()
        self.order_repo = order_repo or OrderRepository()

    @contextmanager
    def _step(self, name: str):
        try:
            yield
        except IntegrityError as exc:
            self.session.rollback()
            logger.exception("Order store step %s violated a constraint", name)
            raise FinalizationError() from exc
        except OperationalError as exc:
            self.session.rollback()
            logger.warning("Order store step %s hit a transient error: %s", name, exc)
            raise TransientStoreError() from exc
        except DBAPIError as exc:
            self.session.rollback()
            if exc.connection_invalidated:
                logger.warning("Order store step %s lost its connection", name)
                raise TransientStoreError() from exc
            logger.exception("Order store step %s failed", name)
            raise FinalizationError() from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Order store step %s failed", name)
            raise FinalizationError() from exc

    # ---- Accounts ----

    def find_account_by_email(self, email: str) -> User | None:
        with self._step("find_account_by_email"):
            return self.user_repo.get_by_email(self.session, email.strip().lower())

    def create_guest_account(
        self,
        email: str,
        name: str | None = None,
        phone: str | None = None,
    ) -> User:
        """
        Insert a role='guest' account.

        The unique index on users.email is the real guard: a
        violation here is the authoritative IdentityConflict.
        """
        email = email.strip().lower()
        user = User(
            email=email,
            name=name or _default_name_from_email(email),
            phone=phone,
            role="guest",
        )
        with self._step("create_guest_account"):
            try:
                user = self.user_repo.create(self.session, user)
                self.session.commit()
            except IntegrityError as exc:
                self.session.rollback()
                logger.info("Guest account for %s rejected by unique index", email)
                raise IdentityConflict() from exc
            self.session.refresh(user)
            return user

    def ensure_member_account(self, account_id: uuid.UUID, email: str) -> User:
        """
        Local profile row for a shopper who just logged in.

        Lookup order: auth id, then email. A guest row found by email
        is upgraded to role='user' (the login proved the email is
        theirs); otherwise a new row mirrors the auth account.
        """
        email = email.strip().lower()
        with self._step("ensure_member_account"):
            user = self.user_repo.get_by_id(self.session, account_id)
            if user is None:
                user = self.user_repo.get_by_email(self.session, email)
            if user is None:
                user = self.user_repo.create(
                    self.session,
                    User(
                        id=account_id,
                        email=email,
                        name=_default_name_from_email(email),
                        role="user",
                    ),
                )
            elif user.role == "guest":
                user.role = "user"
                user.updated_at = datetime.now(timezone.utc)
                self.user_repo.update(self.session, user)
            self.session.commit()
            self.session.refresh(user)
            return user

    def upsert_profile(self, account_id: uuid.UUID, address: ShippingAddress) -> User:
        """
        Overwrite contact fields and the default address of an account.

        Safe to repeat: the default address is updated in place when
        one exists, created otherwise.
        """
        with self._step("upsert_profile"):
            user = self.user_repo.get_by_id(self.session, account_id)
            if user is None:
                raise FinalizationError("Account not found for this checkout")

            now = datetime.now(timezone.utc)
            user.name = address.full_name or user.name
            user.phone = address.phone or user.phone
            user.updated_at = now

            current = None
            if user.default_address_id is not None:
                current = self.address_repo.get_by_id(self.session, user.default_address_id)

            fields = dict(
                address_line1=address.address_line1,
                address_line2=address.address_line2,
                city=address.city,
                state=address.state,
                postal_code=address.postal_code,
                country=address.country,
            )
            if current is None:
                current = self.address_repo.create(
                    self.session,
                    Address(user_id=user.id, is_default=True, **fields),
                )
                user.default_address_id = current.id
            else:
                for key, value in fields.items():
                    setattr(current, key, value)
                current.updated_at = now
                self.address_repo.update(self.session, current)

            self.user_repo.update(self.session, user)
            self.session.commit()
            self.session.refresh(user)
            return user

    def get_default_address(self, account_id: uuid.UUID) -> Address | None:
        with self._step("get_default_address"):
            user = self.user_repo.get_by_id(self.session, account_id)
            if user is None or user.default_address_id is None:
                return None
            return self.address_repo.get_by_id(self.session, user.default_address_id)

    # ---- Orders ----

    def find_order_by_idempotency_key(self, idempotency_key: str) -> Order | None:
        with self._step("find_order_by_idempotency_key"):
            return self.order_repo.get_by_idempotency_key(self.session, idempotency_key)

    def get_order(self, order_id: uuid.UUID) -> Order | None:
        with self._step("get_order"):
            return self.order_repo.get_by_id(self.session, order_id)

    def create_order(
        self,
        account_id: uuid.UUID,
        address: ShippingAddress,
        total: Decimal,
        idempotency_key: str | None = None,
    ) -> Order:
        """
        Insert the order header as 'pending' and commit it.
        """
        with self._step("create_order"):
            order = Order(
                user_id=account_id,
                idempotency_key=idempotency_key,
                status="pending",
                shipping_address=address.model_dump(),
                total_amount=total,
            )
            order = self.order_repo.create_order(self.session, order)
            self.session.commit()
            self.session.refresh(order)
            return order

    def create_order_line_items(
        self,
        order_id: uuid.UUID,
        items: list[CartItem],
    ) -> list[OrderItem]:
        """
        Insert one row per cart line, all or nothing.
        """
        with self._step("create_order_line_items"):
            rows = [
                OrderItem(
                    order_id=order_id,
                    product_id=it.product_id,
                    product_name=it.name,
                    unit_price=it.unit_price,
                    quantity=it.quantity,
                    variant=it.variant_key,
                    image_ref=it.image_ref,
                )
                for it in items
            ]
            rows = self.order_repo.create_items(self.session, rows)
            self.session.commit()
            for row in rows:
                self.session.refresh(row)
            return rows

    def list_order_items(self, order_id: uuid.UUID) -> list[OrderItem]:
        with self._step("list_order_items"):
            return self.order_repo.list_items_for_order(self.session, order_id)

    def update_order_status(self, order_id: uuid.UUID, status: str) -> Order:
        with self._step("update_order_status"):
            order = self.order_repo.get_by_id(self.session, order_id)
            if order is None:
                raise OrderNotFound()
            order.status = status
            order.updated_at = datetime.now(timezone.utc)
            self.order_repo.update_order(self.session, order)
            self.session.commit()
            self.session.refresh(order)
            return order
