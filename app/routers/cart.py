# app/routers/cart.py
import uuid

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.engine import Engine

from app.core.config import get_settings
from app.core.errors import ValidationError
from app.database import get_engine
from app.repositories.cart_storage import CartStorage, SqlCartStorage
from app.schemas.cart import CartItem, CartItemCreate, CartItemUpdate, CartSummary
from app.services.cart_store import CartStore

router = APIRouter(prefix="/cart", tags=["Cart"])

MAX_CART_KEY_LENGTH = 100


def get_cart_storage(engine: Engine = Depends(get_engine)) -> CartStorage:
    return SqlCartStorage(engine)


def get_cart_store(
    request: Request,
    response: Response,
    storage: CartStorage = Depends(get_cart_storage),
) -> CartStore:
    """
    Load the calling shopper's cart.

    The cart key comes from the X-Cart-Id header or the cart_id cookie;
    a new key is minted when neither is present. The key is always
    echoed back as a cookie.
    """
    settings = get_settings()
    cart_key = request.headers.get(settings.CART_HEADER_NAME) or request.cookies.get(
        settings.CART_COOKIE_NAME
    )
    if not cart_key:
        cart_key = uuid.uuid4().hex
    elif len(cart_key) > MAX_CART_KEY_LENGTH:
        raise ValidationError("Invalid cart id", fields={"cart_id": "is too long"})

    response.set_cookie(settings.CART_COOKIE_NAME, cart_key, httponly=True, samesite="lax")
    return CartStore.load(cart_key, storage)


@router.get("", response_model=CartSummary)
def get_my_cart(cart: CartStore = Depends(get_cart_store)):
    """
    Get the shopper's cart summary.
    """
    return cart.summary()


@router.post("", response_model=CartSummary)
def add_to_cart(
    payload: CartItemCreate,
    cart: CartStore = Depends(get_cart_store),
):
    """
    Add an item; an existing line with the same product and variant
    grows by the given quantity.
    """
    cart.add_item(CartItem(**payload.model_dump()))
    return cart.summary()


@router.patch("/{product_id}", response_model=CartSummary)
def update_cart_item(
    product_id: str,
    payload: CartItemUpdate,
    cart: CartStore = Depends(get_cart_store),
):
    """
    Replace the quantity of a line. Quantities below 1 are rejected.
    """
    cart.update_quantity(product_id, payload.quantity, payload.variant_key)
    return cart.summary()


@router.delete("/{product_id}", response_model=CartSummary)
def remove_cart_item(
    product_id: str,
    variant: str | None = None,
    cart: CartStore = Depends(get_cart_store),
):
    """
    Remove a line (no-op if it is not in the cart).
    """
    cart.remove_item(product_id, variant or None)
    return cart.summary()


@router.delete("", response_model=CartSummary)
def clear_cart(cart: CartStore = Depends(get_cart_store)):
    """
    Clear the entire cart.
    """
    cart.clear()
    return cart.summary()
