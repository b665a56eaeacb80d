# app/routers/checkout.py
from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlmodel import Session

from app.core.auth import AuthProvider, get_auth_provider, get_current_user
from app.database import get_session
from app.models.user import User
from app.repositories.order_store import SqlOrderStore
from app.routers.cart import get_cart_store
from app.schemas.checkout import (
    CheckoutSessionRead,
    CheckoutSummary,
    LoginRequest,
    PlaceOrderResult,
    ShippingAddress,
    SignupRedirect,
)
from app.services.cart_store import CartStore
from app.services.checkout_service import CheckoutService, CheckoutSessionRegistry
from app.services.notification_service import NotificationService

router = APIRouter(prefix="/checkout", tags=["Checkout"])

registry = CheckoutSessionRegistry()
notifier = NotificationService()

# Documented error shape for every checkout endpoint.
ERROR_RESPONSES = {
    status.HTTP_401_UNAUTHORIZED: {"description": "AuthError"},
    status.HTTP_404_NOT_FOUND: {"description": "CheckoutNotFound"},
    status.HTTP_409_CONFLICT: {
        "description": "EmptyCart | IdentityConflict | InvalidTransition | FinalizationInProgress"
    },
    status.HTTP_422_UNPROCESSABLE_ENTITY: {"description": "ValidationError"},
    status.HTTP_502_BAD_GATEWAY: {"description": "FinalizationError"},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"description": "TransientStoreError"},
}


def get_checkout_registry() -> CheckoutSessionRegistry:
    return registry


def get_notifier() -> NotificationService:
    return notifier


def get_checkout_service(
    session: Session = Depends(get_session),
    sessions: CheckoutSessionRegistry = Depends(get_checkout_registry),
    auth_provider: AuthProvider = Depends(get_auth_provider),
    notification_service: NotificationService = Depends(get_notifier),
) -> CheckoutService:
    return CheckoutService(
        store=SqlOrderStore(session),
        registry=sessions,
        auth_provider=auth_provider,
        notifier=notification_service,
    )


@router.post("/start", response_model=CheckoutSessionRead, responses=ERROR_RESPONSES)
def start_checkout(
    cart: CartStore = Depends(get_cart_store),
    service: CheckoutService = Depends(get_checkout_service),
    current_user: User | None = Depends(get_current_user),
):
    """
    Begin (or resume) checkout at the shipping step.

    Signed-in shoppers get their saved profile pre-filled.
    """
    return service.begin(cart, current_user).to_read()


@router.get("", response_model=CheckoutSessionRead, responses=ERROR_RESPONSES)
def get_checkout(
    cart: CartStore = Depends(get_cart_store),
    service: CheckoutService = Depends(get_checkout_service),
):
    return service.get(cart).to_read()


@router.get("/summary", response_model=CheckoutSummary)
def get_summary(
    cart: CartStore = Depends(get_cart_store),
    service: CheckoutService = Depends(get_checkout_service),
):
    """
    Subtotal, shipping, tax and total for the current cart.
    """
    return service.price(cart)


@router.post("/shipping", response_model=CheckoutSessionRead, responses=ERROR_RESPONSES)
def submit_shipping(
    payload: ShippingAddress,
    cart: CartStore = Depends(get_cart_store),
    service: CheckoutService = Depends(get_checkout_service),
):
    """
    Save shipping info and continue.

    Missing fields -> 422 ValidationError with per-field messages.
    """
    return service.submit_shipping(cart, payload).to_read()


@router.post("/login", response_model=CheckoutSessionRead, responses=ERROR_RESPONSES)
def login(
    payload: LoginRequest,
    cart: CartStore = Depends(get_cart_store),
    service: CheckoutService = Depends(get_checkout_service),
):
    return service.login(cart, payload.email, payload.password).to_read()


@router.post("/guest", response_model=CheckoutSessionRead, responses=ERROR_RESPONSES)
def continue_as_guest(
    cart: CartStore = Depends(get_cart_store),
    service: CheckoutService = Depends(get_checkout_service),
):
    return service.continue_as_guest(cart).to_read()


@router.post("/signup", response_model=SignupRedirect, responses=ERROR_RESPONSES)
def exit_to_signup(
    cart: CartStore = Depends(get_cart_store),
    service: CheckoutService = Depends(get_checkout_service),
):
    """
    Leave checkout for account creation (ends the checkout session).
    """
    return service.exit_to_signup(cart)


@router.post(
    "/place-order",
    response_model=PlaceOrderResult,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
def place_order(
    background_tasks: BackgroundTasks,
    cart: CartStore = Depends(get_cart_store),
    service: CheckoutService = Depends(get_checkout_service),
):
    """
    Turn the cart into an order.

    Returns {order_id, status}; failures return {error_kind, message}.
    The confirmation email is sent after the response.
    """
    order = service.place_order(cart, background_tasks)
    return PlaceOrderResult(order_id=order.id, status=order.status)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
def abandon_checkout(
    cart: CartStore = Depends(get_cart_store),
    service: CheckoutService = Depends(get_checkout_service),
):
    service.abandon(cart)
