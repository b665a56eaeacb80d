"""Tests for OrderFinalizer: identity resolution, order writes and compensation."""

from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from app.core.errors import (
    EmptyCart,
    FinalizationError,
    IdentityConflict,
    TransientStoreError,
)
from app.models.order import Order, OrderItem
from app.models.user import Address, User
from app.repositories.order_repo import OrderRepository
from app.repositories.order_store import SqlOrderStore
from app.schemas.cart import CartItem
from app.schemas.checkout import Identity, IdentityKind
from app.services.identity_resolver import IdentityLookup
from app.services.order_finalizer import OrderFinalizer


class FlakyOrderRepository(OrderRepository):
    """Fails the line-item insert a given number of times."""

    def __init__(self, failures: int = 1):
        self.failures = failures

    def create_items(self, session, items):
        if self.failures > 0:
            self.failures -= 1
            raise OperationalError("INSERT INTO order_items", {}, Exception("connection reset"))
        return super().create_items(session, items)


class BlindResolver:
    """Pre-check that never sees existing accounts."""

    def resolve(self, email):
        return IdentityLookup(exists=False)


def all_rows(db_session, model):
    return db_session.exec(select(model)).all()


@pytest.fixture
def finalizer(store):
    return OrderFinalizer(store)


class TestGuestFinalization:
    def test_fresh_guest_scenario(self, db_session, finalizer, scenario_cart, address):
        identity = Identity(kind=IdentityKind.ANONYMOUS)

        order = finalizer.finalize(scenario_cart, address, identity, idempotency_key="checkout-1")

        users = all_rows(db_session, User)
        assert len(users) == 1
        assert users[0].email == "asha@example.com"
        assert users[0].role == "guest"

        orders = all_rows(db_session, Order)
        assert [o.id for o in orders] == [order.id]
        assert order.status == "pending"
        assert order.total_amount == Decimal("1300")
        assert order.user_id == users[0].id
        assert order.shipping_address["address_line1"] == "12 MG Road"

        items = sorted(all_rows(db_session, OrderItem), key=lambda it: it.product_id)
        assert [(it.product_id, it.variant, it.quantity, it.unit_price) for it in items] == [
            ("P1", "M", 2, Decimal("500")),
            ("P2", None, 1, Decimal("300")),
        ]
        assert {it.product_name for it in items} == {"Shirt", "Cap"}

        assert scenario_cart.is_empty

    def test_guest_identity_is_adopted(self, finalizer, scenario_cart, address):
        identity = Identity(kind=IdentityKind.ANONYMOUS)

        order = finalizer.finalize(scenario_cart, address, identity)

        assert identity.kind is IdentityKind.GUEST
        assert identity.account_id == order.user_id

    def test_profile_is_saved_for_reuse(self, db_session, finalizer, scenario_cart, address):
        finalizer.finalize(scenario_cart, address, Identity())

        user = all_rows(db_session, User)[0]
        saved = db_session.get(Address, user.default_address_id)
        assert user.name == "Asha Rao"
        assert user.phone == "9876543210"
        assert saved.postal_code == "560001"

    def test_existing_email_is_a_conflict(self, db_session, store, finalizer, scenario_cart, address):
        store.create_guest_account("ASHA@example.com ", name="Someone")

        with pytest.raises(IdentityConflict) as exc:
            finalizer.finalize(scenario_cart, address, Identity())

        assert exc.value.redirect == "login"
        assert len(all_rows(db_session, User)) == 1
        assert all_rows(db_session, Order) == []
        assert scenario_cart.item_count() == 3

    def test_unique_index_catches_what_precheck_misses(
        self, db_session, store, scenario_cart, address
    ):
        store.create_guest_account("asha@example.com")
        finalizer = OrderFinalizer(store, resolver=BlindResolver())

        with pytest.raises(IdentityConflict):
            finalizer.finalize(scenario_cart, address, Identity())

        assert len(all_rows(db_session, User)) == 1
        assert all_rows(db_session, Order) == []
        assert not scenario_cart.is_empty


class TestAuthenticatedFinalization:
    def test_uses_account_and_updates_profile(self, db_session, store, finalizer, scenario_cart, address):
        member = store.create_guest_account("member@example.com", name="Old Name")
        identity = Identity(kind=IdentityKind.AUTHENTICATED, account_id=member.id)

        order = finalizer.finalize(scenario_cart, address, identity)

        assert order.user_id == member.id
        assert len(all_rows(db_session, User)) == 1
        db_session.refresh(member)
        assert member.name == "Asha Rao"

    def test_profile_upsert_overwrites_default_address(
        self, db_session, store, finalizer, scenario_cart, address
    ):
        member = store.create_guest_account("member@example.com")
        store.upsert_profile(member.id, address)
        moved = address.model_copy(update={"city": "Mysuru"})

        finalizer.finalize(
            scenario_cart,
            moved,
            Identity(kind=IdentityKind.AUTHENTICATED, account_id=member.id),
        )

        addresses = all_rows(db_session, Address)
        assert len(addresses) == 1
        assert addresses[0].city == "Mysuru"

    def test_missing_account_id_is_rejected(self, finalizer, scenario_cart, address):
        with pytest.raises(FinalizationError):
            finalizer.finalize(
                scenario_cart, address, Identity(kind=IdentityKind.AUTHENTICATED)
            )
        assert not scenario_cart.is_empty


class TestPartialFailure:
    def test_line_item_failure_marks_order_failed(self, db_session, scenario_cart, address):
        store = SqlOrderStore(db_session, order_repo=FlakyOrderRepository(failures=1))
        finalizer = OrderFinalizer(store)

        with pytest.raises(TransientStoreError):
            finalizer.finalize(scenario_cart, address, Identity())

        orders = all_rows(db_session, Order)
        assert len(orders) == 1
        assert orders[0].status == "failed"
        assert all_rows(db_session, OrderItem) == []
        assert scenario_cart.item_count() == 3
        assert scenario_cart.total_price() == Decimal("1300")

    def test_guest_retry_reuses_created_account(self, db_session, scenario_cart, address):
        store = SqlOrderStore(db_session, order_repo=FlakyOrderRepository(failures=1))
        finalizer = OrderFinalizer(store)
        identity = Identity()

        with pytest.raises(FinalizationError):
            finalizer.finalize(scenario_cart, address, identity, idempotency_key="checkout-2")

        order = finalizer.finalize(scenario_cart, address, identity, idempotency_key="checkout-2")

        assert len(all_rows(db_session, User)) == 1
        statuses = sorted(o.status for o in all_rows(db_session, Order))
        assert statuses == ["failed", "pending"]
        assert order.status == "pending"
        assert len(all_rows(db_session, OrderItem)) == 2
        assert scenario_cart.is_empty


class TestIdempotency:
    def test_same_key_returns_existing_order(self, db_session, finalizer, scenario_cart, address):
        identity = Identity()
        first = finalizer.finalize(scenario_cart, address, identity, idempotency_key="checkout-3")

        scenario_cart.add_item(
            CartItem(product_id="P1", variant_key="M", name="Shirt", unit_price=Decimal("500"), quantity=1)
        )
        second = finalizer.finalize(scenario_cart, address, identity, idempotency_key="checkout-3")

        assert second.id == first.id
        assert len(all_rows(db_session, Order)) == 1
        assert scenario_cart.is_empty

    def test_empty_cart_is_rejected(self, finalizer, cart, address):
        with pytest.raises(EmptyCart):
            finalizer.finalize(cart, address, Identity())


class TestExtraCharges:
    def test_charges_are_added_to_total(self, finalizer, scenario_cart, address):
        order = finalizer.finalize(
            scenario_cart, address, Identity(), extra_charges=Decimal("234.00")
        )
        assert order.total_amount == Decimal("1534.00")


class OutageOrderRepository(OrderRepository):
    """Line-item inserts and status updates fail while `down` is set."""

    def __init__(self):
        self.down = True

    def _check(self, statement):
        if self.down:
            raise OperationalError(statement, {}, Exception("connection reset"))

    def create_items(self, session, items):
        self._check("INSERT INTO order_items")
        return super().create_items(session, items)

    def update_order(self, session, order):
        self._check("UPDATE orders")
        return super().update_order(session, order)


class TestUnfinishedOrderReplay:
    def test_retry_after_lost_compensation_completes_order(
        self, db_session, scenario_cart, address
    ):
        repo = OutageOrderRepository()
        finalizer = OrderFinalizer(SqlOrderStore(db_session, order_repo=repo))
        identity = Identity()

        with pytest.raises(FinalizationError):
            finalizer.finalize(scenario_cart, address, identity, idempotency_key="checkout-4")

        stranded = all_rows(db_session, Order)
        assert [o.status for o in stranded] == ["pending"]
        assert all_rows(db_session, OrderItem) == []
        assert scenario_cart.item_count() == 3

        repo.down = False
        order = finalizer.finalize(scenario_cart, address, identity, idempotency_key="checkout-4")

        assert order.id != stranded[0].id
        assert sorted(o.status for o in all_rows(db_session, Order)) == ["failed", "pending"]
        assert len(finalizer.store.list_order_items(order.id)) == 2
        assert scenario_cart.is_empty

    def test_cart_kept_while_store_still_down(self, db_session, scenario_cart, address):
        repo = OutageOrderRepository()
        finalizer = OrderFinalizer(SqlOrderStore(db_session, order_repo=repo))
        identity = Identity()

        for _ in range(2):
            with pytest.raises(FinalizationError):
                finalizer.finalize(
                    scenario_cart, address, identity, idempotency_key="checkout-5"
                )

        assert len(all_rows(db_session, Order)) == 1
        assert all_rows(db_session, OrderItem) == []
        assert scenario_cart.item_count() == 3
