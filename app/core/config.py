# app/core/config.py
from decimal import Decimal
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized application settings loaded from environment.

    Common env vars (.env):
      - DATABASE_URL (Postgres connection string; SQLite file by default)
      - SUPABASE_URL / SUPABASE_KEY (password login at checkout)
      - SUPABASE_JWT_SECRET (verifying bearer tokens of signed-in shoppers)

    Checkout pricing:
      - SHIPPING_FEE, FREE_SHIPPING_THRESHOLD, TAX_RATE

    Email (order confirmations):
      - SMTP_HOST, SMTP_PORT, SMTP_USERNAME, SMTP_PASSWORD, ...
    """

    PROJECT_NAME: str = "Storefront Checkout API"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./storefront.db"
    DATABASE_ECHO: bool = False

    # Supabase auth (optional; without it password login always fails)
    SUPABASE_URL: str | None = None
    SUPABASE_KEY: str | None = None
    SUPABASE_JWT_SECRET: str | None = None
    SUPABASE_JWT_ALG: str = "HS256"

    # Browser origins allowed to call the API
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Cart scoping
    CART_COOKIE_NAME: str = "cart_id"
    CART_HEADER_NAME: str = "X-Cart-Id"

    # Checkout pricing
    SHIPPING_FEE: Decimal = Decimal("100")
    FREE_SHIPPING_THRESHOLD: Decimal = Decimal("1000")
    TAX_RATE: Decimal = Decimal("0")
    DEFAULT_COUNTRY: str = "India"

    # SMTP
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_FROM_EMAIL: str | None = None
    SMTP_FROM_NAME: str = "Storefront"
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Ensures we don't re-parse .env on every import / request.
    """
    return Settings()
