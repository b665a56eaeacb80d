# app/repositories/user_repo.py
import uuid

from sqlmodel import Session, select

from app.models.user import Address, User


class UserRepository:
    """
    Data access layer for User.

    Responsibilities:
      - Pure DB operations (CRUD + queries)
      - No FastAPI, no HTTP, no business logic

    NOTE:
      - No commits here; callers own the transaction boundary.
    """

    def get_by_id(self, session: Session, user_id: uuid.UUID) -> User | None:
        """Return a User by primary key, or None if not found."""
        return session.get(User, user_id)

    def get_by_email(self, session: Session, email: str) -> User | None:
        """Return a User by unique email, or None if not found."""
        stmt = select(User).where(User.email == email)
        return session.exec(stmt).first()

    def create(self, session: Session, user: User) -> User:
        """Insert a new User; flush so unique violations surface here."""
        session.add(user)
        session.flush()
        session.refresh(user)
        return user

    def update(self, session: Session, user: User) -> User:
        """Persist changes to an existing User."""
        session.add(user)
        session.flush()
        session.refresh(user)
        return user


class AddressRepository:
    """
    Data access layer for saved addresses.
    """

    def get_by_id(self, session: Session, address_id: uuid.UUID) -> Address | None:
        return session.get(Address, address_id)

    def create(self, session: Session, address: Address) -> Address:
        session.add(address)
        session.flush()
        session.refresh(address)
        return address

    def update(self, session: Session, address: Address) -> Address:
        session.add(address)
        session.flush()
        session.refresh(address)
        return address
