# app/services/identity_resolver.py
import uuid
from dataclasses import dataclass

from app.repositories.order_store import SqlOrderStore


@dataclass(frozen=True)
class IdentityLookup:
    exists: bool
    account_id: uuid.UUID | None = None


class IdentityResolver:
    """
    Answers "does an account already use this email?" for guest checkout.

    This is a fast-path check only. The unique index on users.email
    is what actually guarantees one account per email; the order
    store reports a violation there as IdentityConflict.
    """

    def __init__(self, store: SqlOrderStore):
        self.store = store

    def resolve(self, email: str) -> IdentityLookup:
        account = self.store.find_account_by_email(email)
        if account is None:
            return IdentityLookup(exists=False)
        return IdentityLookup(exists=True, account_id=account.id)
