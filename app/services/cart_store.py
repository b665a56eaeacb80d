# app/services/cart_store.py
import logging
from decimal import Decimal

from pydantic import ValidationError as PydanticValidationError

from app.core.errors import ValidationError
from app.repositories.cart_storage import CartStorage, CartStorageError
from app.schemas.cart import CartItem, CartItemRead, CartSnapshot, CartSummary

logger = logging.getLogger(__name__)


def dumps(items: list[CartItem]) -> str:
    """Serialize cart lines to the persisted snapshot format."""
    return CartSnapshot(items=items).model_dump_json()


def loads(payload: str) -> list[CartItem]:
    """Parse a persisted snapshot back into cart lines."""
    return CartSnapshot.model_validate_json(payload).items


class CartStore:
    """
    One shopper's cart: an explicit state container, not a singleton.

    Responsibilities:
      - merge lines by (product_id, variant_key)
      - keep every quantity >= 1
      - derive item_count / total_price from current lines on each read
      - write the full snapshot to storage after every mutation

    Storage failures are logged and swallowed; the store stays dirty
    and the next mutation (or flush()) writes the full snapshot again.
    No stock checks here: that is the catalog's job.
    """

    def __init__(
        self,
        cart_key: str,
        storage: CartStorage,
        items: list[CartItem] | None = None,
    ):
        self.cart_key = cart_key
        self.storage = storage
        self._items: list[CartItem] = list(items or [])
        self.dirty = False

    @classmethod
    def load(cls, cart_key: str, storage: CartStorage) -> "CartStore":
        """
        Restore a cart from storage.

        Missing or unreadable snapshots give an empty cart.
        """
        try:
            payload = storage.load(cart_key)
        except (CartStorageError, OSError):
            logger.warning("Could not read cart %s, starting empty", cart_key, exc_info=True)
            payload = None

        items: list[CartItem] = []
        if payload:
            try:
                items = loads(payload)
            except PydanticValidationError:
                logger.warning("Discarding unreadable cart snapshot for %s", cart_key)
        return cls(cart_key, storage, items)

    # ---- internal helpers ----

    def _find(self, product_id: str, variant_key: str | None) -> int:
        for idx, it in enumerate(self._items):
            if it.product_id == product_id and it.variant_key == variant_key:
                return idx
        return -1

    def _persist(self) -> None:
        try:
            self.storage.save(self.cart_key, dumps(self._items))
        except (CartStorageError, OSError):
            self.dirty = True
            logger.warning(
                "Cart %s not persisted; will retry on next change",
                self.cart_key,
                exc_info=True,
            )
        else:
            self.dirty = False

    # ---- reads ----

    @property
    def items(self) -> list[CartItem]:
        return [it.model_copy() for it in self._items]

    @property
    def is_empty(self) -> bool:
        return not self._items

    def line(self, product_id: str, variant_key: str | None = None) -> CartItem | None:
        idx = self._find(product_id, variant_key)
        return self._items[idx].model_copy() if idx != -1 else None

    def item_count(self) -> int:
        return sum(it.quantity for it in self._items)

    def total_price(self) -> Decimal:
        return sum((it.unit_price * it.quantity for it in self._items), Decimal("0"))

    def summary(self) -> CartSummary:
        """
        Return full cart summary:
          - lines with line_total
          - total_quantity
          - total_price
        """
        return CartSummary(
            cart_id=self.cart_key,
            items=[
                CartItemRead(**it.model_dump(), line_total=it.line_total)
                for it in self._items
            ],
            total_quantity=self.item_count(),
            total_price=self.total_price(),
        )

    # ---- mutations ----

    def add_item(self, item: CartItem) -> None:
        """
        Add a line, or grow the existing line with the same
        (product_id, variant_key) by item.quantity.
        """
        if item.quantity < 1:
            raise ValidationError(
                "Quantity must be at least 1",
                fields={"quantity": "must be at least 1"},
            )

        idx = self._find(item.product_id, item.variant_key)
        if idx != -1:
            existing = self._items[idx]
            self._items[idx] = existing.model_copy(
                update={"quantity": existing.quantity + item.quantity}
            )
        else:
            self._items.append(item.model_copy())
        self._persist()

    def remove_item(self, product_id: str, variant_key: str | None = None) -> None:
        """Remove the matching line; unknown lines are a no-op."""
        idx = self._find(product_id, variant_key)
        if idx == -1:
            return
        del self._items[idx]
        self._persist()

    def update_quantity(
        self,
        product_id: str,
        new_quantity: int,
        variant_key: str | None = None,
    ) -> None:
        """
        Replace a line's quantity.

        Quantities below 1 are rejected; use remove_item to delete.
        """
        if new_quantity < 1:
            raise ValidationError(
                "Quantity must be at least 1; remove the item instead",
                fields={"quantity": "must be at least 1"},
            )

        idx = self._find(product_id, variant_key)
        if idx == -1:
            return
        self._items[idx] = self._items[idx].model_copy(update={"quantity": new_quantity})
        self._persist()

    def clear(self) -> None:
        """Empty the cart. Only called once an order is finalized."""
        self._items = []
        self._persist()

    def flush(self) -> bool:
        """Retry a pending snapshot write. Returns True when storage is current."""
        if self.dirty:
            self._persist()
        return not self.dirty
