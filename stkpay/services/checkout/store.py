"""Order persistence, including the guarded status transition.

Every transition is a single conditional `UPDATE` on
`(checkout_request_id, status)`; its row count decides whether the change
applied, so concurrent handlers for the same notification cannot both win.
"""

from datetime import datetime, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError

from stkpay.common.errors import NotFoundError, StoreError
from stkpay.common.logging import logger
from stkpay.common.state_machine import PENDING, validate_transition
from stkpay.services.checkout.models import Order, OrderTimeline, Product


class OrderStore:
    """Owns reads and writes of `orders` and `order_timeline`."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def create_pending(
        self,
        *,
        phone: str,
        amount: int,
        checkout_request_id: str,
        merchant_request_id: str | None,
        request_timestamp: str | None,
        business_short_code: str | None,
    ) -> Order:
        """Insert a `pending` order and its first timeline row in one transaction."""

        try:
            with self.session_factory() as db:
                order = Order(
                    phone=phone,
                    amount=amount,
                    status=PENDING,
                    checkout_request_id=checkout_request_id,
                    merchant_request_id=merchant_request_id,
                    request_timestamp=request_timestamp,
                    business_short_code=business_short_code,
                    callback_received=False,
                )
                db.add(order)
                db.flush()
                db.add(
                    OrderTimeline(
                        order_id=order.id,
                        from_state=None,
                        to_state=PENDING,
                        reason="stk_push_accepted",
                    )
                )
                db.commit()
                db.refresh(order)
                return order
        except SQLAlchemyError as exc:
            raise StoreError("Failed to record order") from exc

    def get(self, order_id: str) -> Order:
        try:
            with self.session_factory() as db:
                order = db.get(Order, order_id)
        except SQLAlchemyError as exc:
            raise StoreError("Failed to fetch order status") from exc
        if order is None:
            raise NotFoundError("Order not found")
        return order

    def find_by_checkout_request_id(self, checkout_request_id: str) -> Order | None:
        try:
            with self.session_factory() as db:
                return db.execute(
                    select(Order).where(Order.checkout_request_id == checkout_request_id)
                ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StoreError("Failed to fetch order") from exc

    def lookup_by_checkout_request_id(self, checkout_request_id: str) -> tuple[bool, Order | None]:
        """Diagnostic lookup; absence is reported, never raised."""

        order = self.find_by_checkout_request_id(checkout_request_id)
        return order is not None, order

    def apply_transition(
        self,
        checkout_request_id: str,
        from_status: str,
        new_status: str,
        reason: str,
        **values,
    ) -> Order | None:
        """Move the order from `from_status` to `new_status` if it is still there.

        Returns the updated order, or None when no row matched (unknown id or
        the order already left `from_status`). Nothing is written in that case.
        """

        validate_transition(from_status, new_status)
        now = datetime.now(timezone.utc)
        try:
            with self.session_factory() as db:
                result = db.execute(
                    update(Order)
                    .where(
                        Order.checkout_request_id == checkout_request_id,
                        Order.status == from_status,
                    )
                    .values(status=new_status, updated_at=now, **values)
                )
                if result.rowcount != 1:
                    db.rollback()
                    return None
                order = db.execute(
                    select(Order).where(Order.checkout_request_id == checkout_request_id)
                ).scalar_one()
                db.add(
                    OrderTimeline(
                        order_id=order.id,
                        from_state=from_status,
                        to_state=new_status,
                        reason=reason,
                    )
                )
                db.commit()
                return order
        except SQLAlchemyError as exc:
            raise StoreError("Failed to update order") from exc

    def timeline(self, order_id: str) -> list[OrderTimeline]:
        try:
            with self.session_factory() as db:
                return list(
                    db.execute(
                        select(OrderTimeline)
                        .where(OrderTimeline.order_id == order_id)
                        .order_by(OrderTimeline.created_at, OrderTimeline.timeline_id)
                    ).scalars()
                )
        except SQLAlchemyError as exc:
            raise StoreError("Failed to fetch order timeline") from exc


class ProductCatalog:
    """Read-mostly product list."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def list_products(self) -> list[Product]:
        try:
            with self.session_factory() as db:
                return list(db.execute(select(Product).order_by(Product.id)).scalars())
        except SQLAlchemyError as exc:
            raise StoreError("Failed to load products") from exc

    def seed(self, products: list[dict]) -> int:
        """Replace the catalog with `products`; returns the number inserted."""

        try:
            with self.session_factory() as db:
                db.execute(delete(Product))
                db.add_all(Product(**item) for item in products)
                db.commit()
        except SQLAlchemyError as exc:
            raise StoreError("Failed to seed products") from exc
        logger.info("products_seeded count=%s", len(products))
        return len(products)
