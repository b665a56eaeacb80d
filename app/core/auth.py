# app/core/auth.py
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Protocol

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlmodel import Session, select
from supabase import AuthError as SupabaseAuthError

from app.core.config import get_settings
from app.core.errors import AuthError
from app.core.supabase_client import supabase_public
from app.database import get_session
from app.models.user import User

logger = logging.getLogger(__name__)

# HTTP Bearer scheme:
# - auto_error=False => missing Authorization header will NOT raise immediately
#   so we can support "guest" mode (unauthenticated).
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthSession:
    """Result of a successful password login."""

    account_id: uuid.UUID
    email: str
    access_token: str | None = None


class AuthProvider(Protocol):
    def login(self, email: str, password: str) -> AuthSession: ...


class SupabaseAuthProvider:
    """
    Password login against Supabase Auth.

    Every failure is reported as the same generic AuthError so the
    response never reveals whether the email is registered.
    """

    def login(self, email: str, password: str) -> AuthSession:
        try:
            client = supabase_public()
        except RuntimeError:
            logger.warning("Password login attempted but Supabase is not configured")
            raise AuthError()

        try:
            response = client.auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        except SupabaseAuthError as exc:
            logger.info("Supabase rejected login: %s", exc)
            raise AuthError()

        user = response.user
        if user is None:
            raise AuthError()

        return AuthSession(
            account_id=uuid.UUID(str(user.id)),
            email=(user.email or email).strip().lower(),
            access_token=response.session.access_token if response.session else None,
        )


def get_auth_provider() -> AuthProvider:
    """FastAPI dependency; overridden with a fake in tests."""
    return SupabaseAuthProvider()


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Decode and verify a Supabase access token (JWT).

    Verification:
      - signature (HS256 using SUPABASE_JWT_SECRET)
      - expiration time (exp)
      - audience is NOT verified (Supabase 'aud' may vary)

    Raises:
        HTTPException(401): if token is invalid/expired.
    """
    settings = get_settings()
    if not settings.SUPABASE_JWT_SECRET:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token verification is not configured",
        )
    try:
        return jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.SUPABASE_JWT_ALG],
            options={"verify_aud": False},
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )


def _default_name_from_email(email: str) -> str:
    """
    Derive a default display name from email if the user has not
    completed their profile yet.
    """
    if "@" in email:
        return email.split("@", 1)[0]
    return email


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> User | None:
    """
    Resolve the current user from a Supabase JWT.

    Flow:
      1. If no Authorization header => shopper is anonymous => None.
      2. Decode JWT => extract 'sub' (auth user id) and 'email'.
      3. Find the profile row in users.
      4. If missing, auto-provision a minimal profile.

    Raises:
        HTTPException(401): if token is malformed or missing required claims.
    """
    if credentials is None:
        return None

    payload = decode_access_token(credentials.credentials)
    sub = payload.get("sub")
    email = payload.get("email")

    if not sub or not email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token missing sub/email",
        )

    # Supabase provides sub as a string; enforce UUID
    try:
        sub_uuid = uuid.UUID(sub)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid sub in token",
        )

    user = session.exec(select(User).where(User.id == sub_uuid)).first()

    if user is None:
        email = email.strip().lower()
        user = User(
            id=sub_uuid,
            email=email,
            name=_default_name_from_email(email),
            role="user",
        )
        session.add(user)
        session.commit()
        session.refresh(user)

    return user


def require_auth(user: User | None = Depends(get_current_user)) -> User:
    """
    Enforce authentication.

    Raises:
        HTTPException(401): if user is None.
    """
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return user


def require_admin(user: User = Depends(require_auth)) -> User:
    """
    Enforce admin role.

    Raises:
        HTTPException(403): if role is not admin.
    """
    if user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user
