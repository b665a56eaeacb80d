import uuid
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app.core.auth import AuthSession
from app.core.config import Settings
from app.core.errors import AuthError
from app.models import cart as _cart_models  # noqa: F401
from app.models import order as _order_models  # noqa: F401
from app.models import user as _user_models  # noqa: F401
from app.repositories.cart_storage import MemoryCartStorage
from app.repositories.order_store import SqlOrderStore
from app.schemas.cart import CartItem
from app.schemas.checkout import ShippingAddress
from app.services.cart_store import CartStore
from app.services.checkout_service import CheckoutService, CheckoutSessionRegistry
from app.services.notification_service import NotificationService


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = str(Path(item.fspath))

        if "/domain/" in test_path:
            item.add_marker(pytest.mark.domain)
        elif "/application/" in test_path:
            item.add_marker(pytest.mark.application)
        elif "/api/" in test_path:
            item.add_marker(pytest.mark.api)


class FakeAuthProvider:
    """Accepts exactly the credentials it was given."""

    def __init__(self):
        self.accounts: dict[str, tuple[str, uuid.UUID]] = {}
        self.attempts = 0

    def register(self, email: str, password: str) -> uuid.UUID:
        account_id = uuid.uuid4()
        self.accounts[email] = (password, account_id)
        return account_id

    def login(self, email: str, password: str) -> AuthSession:
        self.attempts += 1
        known = self.accounts.get(email)
        if known is None or known[0] != password:
            raise AuthError()
        return AuthSession(account_id=known[1], email=email, access_token="token")


class RecordingSender:
    def __init__(self, fail: bool = False):
        self.sent: list[dict] = []
        self.fail = fail

    def __call__(self, **kwargs):
        if self.fail:
            raise OSError("smtp down")
        self.sent.append(kwargs)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def storage():
    return MemoryCartStorage()


@pytest.fixture
def cart(storage):
    return CartStore("cart-1", storage)


@pytest.fixture
def scenario_cart(cart):
    """P1/M x2 @ 500 and P2 x1 @ 300 -> 1300."""
    cart.add_item(
        CartItem(product_id="P1", variant_key="M", name="Shirt", unit_price=Decimal("500"), quantity=2)
    )
    cart.add_item(
        CartItem(product_id="P2", variant_key=None, name="Cap", unit_price=Decimal("300"), quantity=1)
    )
    return cart


@pytest.fixture
def address():
    return ShippingAddress(
        full_name="Asha Rao",
        email="asha@example.com",
        phone="9876543210",
        address_line1="12 MG Road",
        city="Bengaluru",
        state="Karnataka",
        postal_code="560001",
        country="India",
    )


@pytest.fixture
def store(db_session):
    return SqlOrderStore(db_session)


@pytest.fixture
def auth_provider():
    return FakeAuthProvider()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def notifier(sender):
    return NotificationService(sender=sender)


@pytest.fixture
def registry():
    return CheckoutSessionRegistry()


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        SHIPPING_FEE=Decimal("100"),
        FREE_SHIPPING_THRESHOLD=Decimal("1000"),
        TAX_RATE=Decimal("0"),
        DEFAULT_COUNTRY="India",
    )


@pytest.fixture
def checkout(store, registry, auth_provider, notifier, settings):
    return CheckoutService(
        store=store,
        registry=registry,
        auth_provider=auth_provider,
        notifier=notifier,
        settings=settings,
    )
