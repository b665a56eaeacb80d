"""Tests for CartStore mutations, derived totals and persistence."""

import json
from decimal import Decimal

import pytest

from app.core.errors import ValidationError
from app.repositories.cart_storage import CartStorageError, MemoryCartStorage
from app.schemas.cart import CartItem
from app.services.cart_store import CartStore, dumps, loads


def make_item(product_id="P1", variant_key=None, quantity=1, price="100", name=None):
    return CartItem(
        product_id=product_id,
        variant_key=variant_key,
        name=name or f"Product {product_id}",
        unit_price=Decimal(price),
        quantity=quantity,
        image_ref=f"img/{product_id}.png",
    )


class FlakyStorage(MemoryCartStorage):
    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures
        self.writes = 0

    def save(self, cart_key, payload):
        self.writes += 1
        if self.failures > 0:
            self.failures -= 1
            raise OSError("disk full")
        super().save(cart_key, payload)


class TestAddItem:
    def test_new_line_is_appended(self, cart):
        cart.add_item(make_item("P1"))
        cart.add_item(make_item("P2"))
        assert [it.product_id for it in cart.items] == ["P1", "P2"]

    def test_same_product_and_variant_merge(self, cart):
        for qty in (1, 3, 2):
            cart.add_item(make_item("P1", "M", quantity=qty))

        assert len(cart.items) == 1
        assert cart.line("P1", "M").quantity == 6

    def test_different_variants_are_separate_lines(self, cart):
        cart.add_item(make_item("P1", "M"))
        cart.add_item(make_item("P1", "L"))
        cart.add_item(make_item("P1", None))

        assert len(cart.items) == 3
        assert cart.item_count() == 3

    def test_blank_variant_counts_as_no_variant(self, cart):
        cart.add_item(make_item("P1", None))
        cart.add_item(make_item("P1", "  "))

        assert len(cart.items) == 1
        assert cart.line("P1").quantity == 2

    def test_items_are_copies(self, cart):
        cart.add_item(make_item("P1", quantity=2))
        cart.items[0].quantity = 99
        assert cart.line("P1").quantity == 2


class TestRemoveItem:
    def test_removed_line_is_not_counted(self, cart):
        cart.add_item(make_item("P1", quantity=2))
        cart.add_item(make_item("P2", quantity=5))

        cart.remove_item("P2")

        assert cart.item_count() == 2
        assert cart.line("P2") is None

    def test_remove_matches_variant(self, cart):
        cart.add_item(make_item("P1", "M"))
        cart.add_item(make_item("P1", "L"))

        cart.remove_item("P1", "L")

        assert [it.variant_key for it in cart.items] == ["M"]

    def test_removing_unknown_line_is_noop(self, cart, storage):
        cart.add_item(make_item("P1", "M", quantity=2))
        before = storage.load(cart.cart_key)

        cart.remove_item("P9")
        cart.remove_item("P1", "XL")

        assert cart.item_count() == 2
        assert storage.load(cart.cart_key) == before


class TestUpdateQuantity:
    def test_replaces_quantity(self, cart):
        cart.add_item(make_item("P1", "M", quantity=2))
        cart.update_quantity("P1", 7, "M")
        assert cart.line("P1", "M").quantity == 7

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_below_one_is_rejected(self, cart, quantity):
        cart.add_item(make_item("P1", quantity=2))

        with pytest.raises(ValidationError) as exc:
            cart.update_quantity("P1", quantity)

        assert exc.value.fields == {"quantity": "must be at least 1"}
        assert cart.line("P1").quantity == 2

    def test_unknown_line_is_ignored(self, cart):
        cart.add_item(make_item("P1", "M"))
        cart.update_quantity("P1", 4, "L")
        assert cart.items == [make_item("P1", "M")]


class TestDerivedValues:
    def test_empty_cart(self, cart):
        assert cart.is_empty
        assert cart.item_count() == 0
        assert cart.total_price() == Decimal("0")

    def test_total_follows_every_mutation(self, cart):
        cart.add_item(make_item("P1", price="19.99", quantity=2))
        assert cart.total_price() == Decimal("39.98")

        cart.add_item(make_item("P2", price="5.01"))
        assert cart.total_price() == Decimal("44.99")

        cart.update_quantity("P1", 1)
        assert cart.total_price() == Decimal("25.00")

        cart.remove_item("P2")
        assert cart.total_price() == Decimal("19.99")

        cart.clear()
        assert cart.total_price() == Decimal("0")

    def test_scenario_total(self, scenario_cart):
        assert scenario_cart.total_price() == Decimal("1300")
        assert scenario_cart.item_count() == 3

    def test_summary_line_totals(self, scenario_cart):
        summary = scenario_cart.summary()

        assert summary.cart_id == "cart-1"
        assert [line.line_total for line in summary.items] == [Decimal("1000"), Decimal("300")]
        assert summary.total_quantity == 3
        assert summary.total_price == Decimal("1300")


class TestPersistence:
    def test_every_mutation_writes_snapshot(self, cart, storage):
        cart.add_item(make_item("P1", quantity=2))
        assert json.loads(storage.load("cart-1"))["items"][0]["quantity"] == 2

        cart.update_quantity("P1", 3)
        assert json.loads(storage.load("cart-1"))["items"][0]["quantity"] == 3

        cart.clear()
        assert json.loads(storage.load("cart-1")) == {"items": []}

    def test_round_trip_mixed_variants(self):
        items = [
            make_item("P1", "M", quantity=2, price="500"),
            make_item("P1", "L", quantity=1, price="520.50"),
            make_item("P2", None, quantity=4, price="300"),
            make_item("P3", "XS", quantity=1, price="0.99"),
        ]

        restored = loads(dumps(items))

        assert restored == items

    def test_reload_reproduces_cart(self, storage):
        first = CartStore("cart-7", storage)
        first.add_item(make_item("P1", "M", quantity=2, price="500"))
        first.add_item(make_item("P2", None, quantity=1, price="300"))
        first.add_item(make_item("P3", "S", quantity=3, price="12.5"))

        second = CartStore.load("cart-7", storage)

        assert sorted(second.items, key=lambda it: it.key) == sorted(
            first.items, key=lambda it: (it.product_id, it.variant_key)
        )
        assert second.total_price() == first.total_price()

    def test_unknown_key_loads_empty(self, storage):
        assert CartStore.load("nobody", storage).is_empty

    def test_unreadable_snapshot_loads_empty(self, storage):
        storage.save("broken", '{"items": [{"product_id": "P1"}]}')
        assert CartStore.load("broken", storage).is_empty

    def test_write_failure_is_swallowed_and_retried(self):
        storage = FlakyStorage(failures=1)
        cart = CartStore("cart-9", storage)

        cart.add_item(make_item("P1"))

        assert cart.dirty
        assert cart.item_count() == 1
        assert storage.load("cart-9") is None

        cart.add_item(make_item("P2"))

        assert not cart.dirty
        assert len(json.loads(storage.load("cart-9"))["items"]) == 2

    def test_flush_retries_pending_write(self):
        storage = FlakyStorage(failures=1)
        cart = CartStore("cart-9", storage)
        cart.add_item(make_item("P1"))

        assert cart.flush() is True
        assert json.loads(storage.load("cart-9"))["items"][0]["product_id"] == "P1"

    def test_storage_error_on_write_is_swallowed(self):
        class UnavailableStorage(MemoryCartStorage):
            def save(self, cart_key, payload):
                raise CartStorageError("backend unavailable")

        cart = CartStore("cart-10", UnavailableStorage())

        cart.add_item(make_item("P1", quantity=2))
        cart.update_quantity("P1", 3)

        assert cart.dirty
        assert cart.line("P1").quantity == 3

    def test_storage_error_on_read_loads_empty(self):
        class UnreadableStorage(MemoryCartStorage):
            def load(self, cart_key):
                raise CartStorageError("backend unavailable")

        assert CartStore.load("cart-11", UnreadableStorage()).is_empty
