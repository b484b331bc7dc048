"""Checkout database models.

This DB is the source of truth for order status; the gateway's
`CheckoutRequestID` joins result notifications back to their order.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from stkpay.common.db import Base


class Order(Base):
    """One STK push payment attempt."""

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    phone: Mapped[str] = mapped_column(String(12))
    amount: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(16), index=True, default="pending")
    checkout_request_id: Mapped[str] = mapped_column(String, unique=True, index=True)
    merchant_request_id: Mapped[str | None] = mapped_column(String, nullable=True)
    receipt_code: Mapped[str | None] = mapped_column(String, nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(String, nullable=True)
    failure_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Audit metadata: what was sent, and what the gateway reported back.
    request_timestamp: Mapped[str | None] = mapped_column(String(14), nullable=True)
    business_short_code: Mapped[str | None] = mapped_column(String, nullable=True)
    callback_received: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    callback_received_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    raw_callback: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class OrderTimeline(Base):
    """Immutable audit trail of every applied status transition."""

    __tablename__ = "order_timeline"

    timeline_id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id"), index=True)
    from_state: Mapped[str | None] = mapped_column(String, nullable=True)
    to_state: Mapped[str] = mapped_column(String)
    reason: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Product(Base):
    """Static catalog entry."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String)
    price: Mapped[int] = mapped_column(Integer)
    description: Mapped[str] = mapped_column(String, default="")
