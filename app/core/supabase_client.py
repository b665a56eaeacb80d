# app/core/supabase_client.py
from supabase import create_client, Client

from app.core.config import get_settings


def supabase_public() -> Client:
    """
    Create a Supabase client with the anon/public key.

    Use cases:
      - password sign-in during checkout

    Not cached: sign-in stores the session on the client, and a
    shared client would carry one shopper's session into another's
    request.

    Raises:
        RuntimeError: if SUPABASE_URL / SUPABASE_KEY are not set.
    """
    settings = get_settings()
    if not (settings.SUPABASE_URL and settings.SUPABASE_KEY):
        raise RuntimeError("Missing SUPABASE_URL / SUPABASE_KEY in .env")
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)
