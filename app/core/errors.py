# app/core/errors.py
"""
Error taxonomy for the cart-to-order pipeline.

Every error is an HTTPException so routers can let it propagate and
FastAPI renders it through the handler registered in app/main.py as:

    {"error_kind": "...", "message": "...", "fields": {...}, "redirect": "..."}

`fields` and `redirect` are only present when set. `redirect` is a
navigation hint for the storefront ("cart", "login", "signup").
"""

from fastapi import status
from fastapi import HTTPException


class StorefrontError(HTTPException):
    error_kind: str = "StorefrontError"
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Request could not be completed"

    def __init__(
        self,
        message: str | None = None,
        *,
        fields: dict[str, str] | None = None,
        redirect: str | None = None,
    ):
        self.message = message or self.default_message
        self.fields = fields or {}
        self.redirect = redirect
        super().__init__(status_code=self.status_code, detail=self.message)

    def to_payload(self) -> dict:
        payload: dict = {"error_kind": self.error_kind, "message": self.message}
        if self.fields:
            payload["fields"] = self.fields
        if self.redirect:
            payload["redirect"] = self.redirect
        return payload


class ValidationError(StorefrontError):
    """Missing or invalid input; recovered locally with field-level messages."""

    error_kind = "ValidationError"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Please fill all required fields"


class AuthError(StorefrontError):
    """Bad credentials. The message never says which part was wrong."""

    error_kind = "AuthError"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Login failed. Please check your credentials."


class IdentityConflict(StorefrontError):
    """Guest checkout with an email that already belongs to an account."""

    error_kind = "IdentityConflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "This email already exists. Please log in to continue."

    def __init__(self, message: str | None = None, **kwargs):
        kwargs.setdefault("redirect", "login")
        super().__init__(message, **kwargs)


class FinalizationError(StorefrontError):
    error_kind = "FinalizationError"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Your order could not be placed, please retry."


class TransientStoreError(FinalizationError):
    """Network/timeout talking to the order store. Safe to retry."""

    error_kind = "TransientStoreError"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "The store is temporarily unavailable, please retry."


class EmptyCart(StorefrontError):
    error_kind = "EmptyCart"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Your cart is empty"

    def __init__(self, message: str | None = None, **kwargs):
        kwargs.setdefault("redirect", "cart")
        super().__init__(message, **kwargs)


class FinalizationInProgress(StorefrontError):
    error_kind = "FinalizationInProgress"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Your order is already being placed"


class InvalidTransition(StorefrontError):
    error_kind = "InvalidTransition"
    status_code = status.HTTP_409_CONFLICT
    default_message = "This action is not available at the current checkout step"


class CheckoutNotFound(StorefrontError):
    error_kind = "CheckoutNotFound"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "No checkout in progress"


class OrderNotFound(StorefrontError):
    error_kind = "OrderNotFound"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Order not found"
