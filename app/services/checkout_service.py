# app/services/checkout_service.py
import logging
import threading
import uuid
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from fastapi import BackgroundTasks
from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from app.core.auth import AuthProvider
from app.core.config import Settings, get_settings
from app.core.errors import (
    AuthError,
    CheckoutNotFound,
    EmptyCart,
    FinalizationError,
    FinalizationInProgress,
    IdentityConflict,
    InvalidTransition,
    StorefrontError,
    ValidationError,
)
from app.models.order import Order
from app.models.user import User
from app.repositories.order_store import SqlOrderStore
from app.schemas.checkout import (
    CheckoutSessionRead,
    CheckoutStep,
    CheckoutSummary,
    Identity,
    IdentityKind,
    ShippingAddress,
    SignupRedirect,
)
from app.services.cart_store import CartStore
from app.services.notification_service import NotificationService
from app.services.order_finalizer import OrderFinalizer

logger = logging.getLogger(__name__)

_email_adapter = TypeAdapter(EmailStr)

CENTS = Decimal("0.01")

# Legal moves of the checkout state machine. Anything else is an
# InvalidTransition. CONFIRMATION -> IDENTITY_RESOLUTION only happens
# when a guest email turns out to belong to an account.
TRANSITIONS: dict[CheckoutStep, frozenset[CheckoutStep]] = {
    CheckoutStep.SHIPPING: frozenset(
        {CheckoutStep.IDENTITY_RESOLUTION, CheckoutStep.CONFIRMATION}
    ),
    CheckoutStep.IDENTITY_RESOLUTION: frozenset({CheckoutStep.CONFIRMATION}),
    CheckoutStep.CONFIRMATION: frozenset({CheckoutStep.IDENTITY_RESOLUTION}),
}


@dataclass
class CheckoutSession:
    """
    Transient state of one shopper's checkout. Never persisted.
    """

    cart_key: str
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    step: CheckoutStep = CheckoutStep.SHIPPING
    shipping_address: ShippingAddress = field(default_factory=ShippingAddress)
    identity: Identity = field(default_factory=Identity)
    login_email: str | None = None
    error: str | None = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def idempotency_key(self) -> str:
        return f"checkout-{self.id}"

    @property
    def in_flight(self) -> bool:
        return self.lock.locked()

    def to_read(self) -> CheckoutSessionRead:
        return CheckoutSessionRead(
            id=self.id,
            step=self.step,
            shipping_address=self.shipping_address,
            identity=self.identity.kind,
            login_email=self.login_email,
            error=self.error,
            in_flight=self.in_flight,
        )


class CheckoutSessionRegistry:
    """
    In-memory checkout sessions, one per cart key.

    Sessions of different shoppers never share state; the registry
    lock only protects the dict itself.
    """

    def __init__(self):
        self._sessions: dict[str, CheckoutSession] = {}
        self._lock = threading.Lock()

    def get(self, cart_key: str) -> CheckoutSession | None:
        with self._lock:
            return self._sessions.get(cart_key)

    def get_or_create(self, cart_key: str) -> tuple[CheckoutSession, bool]:
        with self._lock:
            session = self._sessions.get(cart_key)
            if session is not None:
                return session, False
            session = CheckoutSession(cart_key=cart_key)
            self._sessions[cart_key] = session
            return session, True

    def discard(self, cart_key: str) -> None:
        with self._lock:
            self._sessions.pop(cart_key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


class CheckoutService:
    """
    Checkout state machine: shipping -> identity resolution -> confirmation.

    Responsibilities:
      - validate shipping info (field-level errors)
      - fast path for signed-in shoppers (skip identity resolution)
      - login / guest / signup choices
      - single in-flight order placement per session
      - hand off to OrderFinalizer, then send the confirmation email

    Every operation first checks the cart: an empty cart tears the
    session down and raises EmptyCart (redirect to the cart view).
    """

    def __init__(
        self,
        store: SqlOrderStore,
        registry: CheckoutSessionRegistry,
        auth_provider: AuthProvider,
        notifier: NotificationService | None = None,
        finalizer: OrderFinalizer | None = None,
        settings: Settings | None = None,
    ):
        self.store = store
        self.registry = registry
        self.auth_provider = auth_provider
        self.notifier = notifier or NotificationService()
        self.finalizer = finalizer or OrderFinalizer(store)
        self.settings = settings or get_settings()

    # ---- internal helpers ----

    def _guard(self, cart: CartStore) -> CheckoutSession:
        if cart.is_empty:
            self.registry.discard(cart.cart_key)
            raise EmptyCart()
        session = self.registry.get(cart.cart_key)
        if session is None:
            raise CheckoutNotFound()
        return session

    def _require_step(self, session: CheckoutSession, step: CheckoutStep) -> None:
        if session.step is not step:
            raise InvalidTransition(
                f"Expected checkout step '{step.value}', currently '{session.step.value}'"
            )

    def _move(self, session: CheckoutSession, target: CheckoutStep) -> None:
        if target not in TRANSITIONS[session.step]:
            raise InvalidTransition(
                f"Cannot move from '{session.step.value}' to '{target.value}'"
            )
        logger.info("Checkout %s: %s -> %s", session.id, session.step.value, target.value)
        session.step = target

    def _prefill(self, session: CheckoutSession, user: User) -> None:
        address = self.store.get_default_address(user.id)
        session.shipping_address = ShippingAddress(
            full_name=user.name or "",
            email=user.email,
            phone=user.phone or "",
            address_line1=address.address_line1 if address else "",
            address_line2=address.address_line2 if address else None,
            city=address.city if address else "",
            state=address.state if address else "",
            postal_code=address.postal_code if address else "",
            country=address.country if address else self.settings.DEFAULT_COUNTRY,
        )

    @staticmethod
    def _field_errors(address: ShippingAddress) -> dict[str, str]:
        errors = {name: "is required" for name in address.missing_fields()}
        if "email" not in errors:
            try:
                _email_adapter.validate_python(address.email)
            except PydanticValidationError:
                errors["email"] = "is not a valid email address"
        return errors

    # ---- public operations ----

    def price(self, cart: CartStore) -> CheckoutSummary:
        """
        Pricing preview:
          - shipping: flat fee, free above FREE_SHIPPING_THRESHOLD
          - tax: TAX_RATE of the subtotal, rounded to cents
        """
        subtotal = cart.total_price()
        if cart.is_empty or subtotal > self.settings.FREE_SHIPPING_THRESHOLD:
            shipping = Decimal("0")
        else:
            shipping = self.settings.SHIPPING_FEE
        tax = (subtotal * self.settings.TAX_RATE).quantize(CENTS, rounding=ROUND_HALF_UP)
        return CheckoutSummary(
            subtotal=subtotal,
            shipping=shipping,
            tax=tax,
            total=subtotal + shipping + tax,
            item_count=cart.item_count(),
        )

    def begin(self, cart: CartStore, current_user: User | None = None) -> CheckoutSession:
        """
        Start (or resume) checkout for this cart at the shipping step.

        Signed-in shoppers get an AUTHENTICATED identity and a form
        pre-filled from their profile.
        """
        if cart.is_empty:
            self.registry.discard(cart.cart_key)
            raise EmptyCart()

        session, created = self.registry.get_or_create(cart.cart_key)
        if created:
            session.shipping_address = ShippingAddress(country=self.settings.DEFAULT_COUNTRY)
            logger.info("Checkout %s started for cart %s", session.id, cart.cart_key)

        if current_user is not None and session.identity.kind is not IdentityKind.AUTHENTICATED:
            session.identity = Identity(
                kind=IdentityKind.AUTHENTICATED, account_id=current_user.id
            )
            if session.step is CheckoutStep.SHIPPING:
                self._prefill(session, current_user)
        return session

    def get(self, cart: CartStore) -> CheckoutSession:
        return self._guard(cart)

    def submit_shipping(self, cart: CartStore, address: ShippingAddress) -> CheckoutSession:
        """
        Shipping -> IdentityResolution (or -> Confirmation when signed in).

        Invalid input keeps the shopper on the shipping step.
        """
        session = self._guard(cart)
        self._require_step(session, CheckoutStep.SHIPPING)

        session.shipping_address = address
        errors = self._field_errors(address)
        if errors:
            exc = ValidationError(fields=errors)
            session.error = exc.message
            raise exc

        session.error = None
        if session.identity.kind is IdentityKind.AUTHENTICATED:
            self._move(session, CheckoutStep.CONFIRMATION)
        else:
            session.login_email = address.email
            self._move(session, CheckoutStep.IDENTITY_RESOLUTION)
        return session

    def login(self, cart: CartStore, email: str, password: str) -> CheckoutSession:
        """
        IdentityResolution -> Confirmation on valid credentials.

        Failures keep the shopper here with a generic message; retries
        are unlimited.
        """
        session = self._guard(cart)
        self._require_step(session, CheckoutStep.IDENTITY_RESOLUTION)
        session.login_email = email.strip().lower()

        try:
            auth = self.auth_provider.login(session.login_email, password)
        except AuthError as exc:
            session.error = exc.message
            raise

        account = self.store.ensure_member_account(auth.account_id, auth.email)
        session.identity = Identity(kind=IdentityKind.AUTHENTICATED, account_id=account.id)
        session.error = None
        self._move(session, CheckoutStep.CONFIRMATION)
        return session

    def continue_as_guest(self, cart: CartStore) -> CheckoutSession:
        """
        IdentityResolution -> Confirmation without an account.

        The guest account is only created when the order is placed.
        """
        session = self._guard(cart)
        self._require_step(session, CheckoutStep.IDENTITY_RESOLUTION)
        if session.identity.kind is not IdentityKind.GUEST:
            session.identity = Identity(kind=IdentityKind.ANONYMOUS)
        session.error = None
        self._move(session, CheckoutStep.CONFIRMATION)
        return session

    def exit_to_signup(self, cart: CartStore) -> SignupRedirect:
        """Leave checkout for account creation. Ends the session."""
        session = self._guard(cart)
        self._require_step(session, CheckoutStep.IDENTITY_RESOLUTION)
        self.registry.discard(cart.cart_key)
        logger.info("Checkout %s left for signup", session.id)
        return SignupRedirect(email=session.login_email or session.shipping_address.email)

    def abandon(self, cart: CartStore) -> None:
        self.registry.discard(cart.cart_key)

    def place_order(
        self,
        cart: CartStore,
        background_tasks: BackgroundTasks | None = None,
    ) -> Order:
        """
        Confirmation -> done.

        A second call while one is running fails fast with
        FinalizationInProgress; it is never queued. On failure the
        session stays (retry allowed) and the cart keeps its items.
        """
        session = self._guard(cart)
        self._require_step(session, CheckoutStep.CONFIRMATION)

        if not session.lock.acquire(blocking=False):
            raise FinalizationInProgress()
        try:
            session.error = None
            pricing = self.price(cart)
            try:
                order = self.finalizer.finalize(
                    cart,
                    session.shipping_address,
                    session.identity,
                    idempotency_key=session.idempotency_key,
                    extra_charges=pricing.total - pricing.subtotal,
                )
            except IdentityConflict as exc:
                session.error = exc.message
                session.login_email = session.shipping_address.email
                self._move(session, CheckoutStep.IDENTITY_RESOLUTION)
                raise
            except (FinalizationError, EmptyCart) as exc:
                session.error = exc.message
                raise
            order_id = order.id
            # Drop the session before releasing the lock so a late second
            # click finds no checkout instead of replaying this one.
            self.registry.discard(cart.cart_key)
        finally:
            session.lock.release()

        logger.info("Checkout %s placed order %s", session.id, order_id)
        self._notify(order_id, session.shipping_address, background_tasks)
        return order

    def _notify(
        self,
        order_id: uuid.UUID,
        address: ShippingAddress,
        background_tasks: BackgroundTasks | None,
    ) -> None:
        try:
            order = self.store.get_order(order_id)
            items = self.store.list_order_items(order_id)
        except StorefrontError:
            logger.exception("Skipping confirmation email for order %s", order_id)
            return

        if background_tasks is not None:
            background_tasks.add_task(
                self.notifier.send_order_confirmation, order, items, address
            )
        else:
            self.notifier.send_order_confirmation(order, items, address)
