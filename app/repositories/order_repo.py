# app/repositories/order_repo.py
import uuid

from sqlmodel import Session, select

from app.models.order import Order, OrderItem


class OrderRepository:
    """
    Queries over orders and order_items.

    Writes only flush (so generated ids are available); committing
    and rolling back belong to SqlOrderStore, which runs each
    finalization step as its own transaction.
    """

    # ---- Orders ----

    def _newest_first(self, stmt, skip: int, limit: int):
        return stmt.order_by(Order.created_at.desc()).offset(skip).limit(limit)

    def list_for_user(
        self,
        session: Session,
        user_id: uuid.UUID,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Order]:
        stmt = select(Order).where(Order.user_id == user_id)
        return session.exec(self._newest_first(stmt, skip, limit)).all()

    def list_all(
        self,
        session: Session,
        skip: int = 0,
        limit: int = 50,
        status: str | None = None,
    ) -> list[Order]:
        """All orders, optionally only those in one status."""
        stmt = select(Order)
        if status is not None:
            stmt = stmt.where(Order.status == status)
        return session.exec(self._newest_first(stmt, skip, limit)).all()

    def get_by_id(self, session: Session, order_id: uuid.UUID) -> Order | None:
        return session.get(Order, order_id)

    def get_by_idempotency_key(
        self,
        session: Session,
        idempotency_key: str,
    ) -> Order | None:
        """
        The live order placed under this key, if any. Orders marked
        'failed' don't count, so a checkout can be retried.
        """
        stmt = select(Order).where(
            Order.idempotency_key == idempotency_key,
            Order.status != "failed",
        )
        return session.exec(self._newest_first(stmt, 0, 1)).first()

    def create_order(self, session: Session, order: Order) -> Order:
        session.add(order)
        session.flush()
        return order

    def update_order(self, session: Session, order: Order) -> Order:
        session.add(order)
        session.flush()
        return order

    # ---- Order items ----

    def list_items_for_order(
        self,
        session: Session,
        order_id: uuid.UUID,
    ) -> list[OrderItem]:
        stmt = (
            select(OrderItem)
            .where(OrderItem.order_id == order_id)
            .order_by(OrderItem.product_id, OrderItem.variant)
        )
        return session.exec(stmt).all()

    def create_items(
        self,
        session: Session,
        items: list[OrderItem],
    ) -> list[OrderItem]:
        session.add_all(items)
        session.flush()
        return items
