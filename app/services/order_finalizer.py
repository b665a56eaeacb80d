# app/services/order_finalizer.py
import logging
import uuid
from decimal import Decimal

from app.core.errors import (
    EmptyCart,
    FinalizationError,
    IdentityConflict,
    StorefrontError,
)
from app.models.order import Order
from app.repositories.order_store import SqlOrderStore
from app.schemas.checkout import Identity, IdentityKind, ShippingAddress
from app.services.cart_store import CartStore
from app.services.identity_resolver import IdentityResolver

logger = logging.getLogger(__name__)


class OrderFinalizer:
    """
    Turns a cart into a durable order.

    Steps (each depends on the previous one succeeding):
      1. Anonymous shopper -> check email, create guest account.
      2. Upsert profile contact fields + default address.
      3. Create the order header (status='pending'), committed as the
         recorded intent, with address and total snapshots.
      4. Create one order item per cart line.
      5. Clear the cart and return the order.

    Steps run as a saga: once the header exists, any later failure
    marks it 'failed' (compensation) before the error is raised, so
    no order is ever left 'pending' with a partial item set. The cart
    is only cleared on full success.
    """

    def __init__(self, store: SqlOrderStore, resolver: IdentityResolver | None = None):
        self.store = store
        self.resolver = resolver or IdentityResolver(store)

    def finalize(
        self,
        cart: CartStore,
        shipping_address: ShippingAddress,
        identity: Identity,
        idempotency_key: str | None = None,
        extra_charges: Decimal = Decimal("0"),
    ) -> Order:
        """
        Run steps 1-5.

        `identity` is updated in place when a guest account is created
        (kind=GUEST, account_id set) so a retry of the same checkout
        reuses that account instead of tripping the email check.

        Raises:
            EmptyCart, IdentityConflict, FinalizationError,
            TransientStoreError
        """
        if cart.is_empty:
            raise EmptyCart()

        # 0) Replays of an already placed checkout return the same order
        if idempotency_key:
            existing = self._replay(idempotency_key)
            if existing is not None:
                cart.clear()
                return existing

        items = cart.items
        total = cart.total_price() + extra_charges

        # 1) Identity
        account_id = self._ensure_account(shipping_address, identity)

        # 2) Profile (idempotent; nothing to compensate)
        self.store.upsert_profile(account_id, shipping_address)

        # 3) Order header
        order = self.store.create_order(
            account_id,
            shipping_address,
            total,
            idempotency_key=idempotency_key,
        )
        order_id = order.id
        logger.info("Order %s created for account %s (pending)", order_id, account_id)

        # 4) Line items
        try:
            self.store.create_order_line_items(order_id, items)
        except Exception as exc:
            self._mark_failed(order_id)
            if isinstance(exc, StorefrontError):
                raise
            raise FinalizationError() from exc

        # 5) Done
        cart.clear()
        logger.info("Order %s finalized with %d line(s)", order_id, len(items))
        return order

    def _replay(self, idempotency_key: str) -> Order | None:
        """
        The completed order for this key, if any.

        A header without line items means an earlier attempt stopped
        between steps 3 and 4 and its compensation never landed. It is
        marked 'failed' here so finalization runs again; if that write
        fails too, the error propagates and the cart is left alone.
        """
        existing = self.store.find_order_by_idempotency_key(idempotency_key)
        if existing is None:
            return None

        if self.store.list_order_items(existing.id):
            logger.info(
                "Checkout %s already produced order %s", idempotency_key, existing.id
            )
            return existing

        logger.warning(
            "Order %s for checkout %s has no line items; marking failed and retrying",
            existing.id,
            idempotency_key,
        )
        self.store.update_order_status(existing.id, "failed")
        return None

    def _ensure_account(self, address: ShippingAddress, identity: Identity) -> uuid.UUID:
        if identity.kind in (IdentityKind.AUTHENTICATED, IdentityKind.GUEST):
            if identity.account_id is None:
                raise FinalizationError("Checkout identity has no account")
            return identity.account_id

        lookup = self.resolver.resolve(address.email)
        if lookup.exists:
            logger.info("Guest checkout blocked: %s already has an account", address.email)
            raise IdentityConflict()

        account = self.store.create_guest_account(
            address.email,
            name=address.full_name,
            phone=address.phone,
        )
        identity.kind = IdentityKind.GUEST
        identity.account_id = account.id
        logger.info("Guest account %s created for checkout", account.id)
        return account.id

    def _mark_failed(self, order_id: uuid.UUID) -> None:
        try:
            self.store.update_order_status(order_id, "failed")
        except StorefrontError:
            # Left 'pending'; only happens when the store is unreachable.
            logger.exception("Could not mark order %s as failed", order_id)
        else:
            logger.warning("Order %s marked failed after partial finalization", order_id)
