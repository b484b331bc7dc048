"""API request/response schemas for checkout endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from stkpay.services.checkout.models import Order, Product


class CheckoutRequest(BaseModel):
    """Body of `POST /api/checkout`; presence and minimums are checked by the service."""

    phone: str | None = None
    amount: int | None = None

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_not_bool(cls, value):
        # JSON true/false would otherwise coerce to 1/0.
        if isinstance(value, bool):
            raise ValueError("Amount must be a number")
        return value


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrderMetadata(_CamelModel):
    timestamp: str | None = None
    business_short_code: str | None = None
    callback_received: bool = False
    callback_received_at: datetime | None = None
    raw_callback: str | None = None


class OrderResponse(_CamelModel):
    """Order as returned by the status endpoints."""

    id: str
    phone: str
    amount: int
    status: str
    checkout_request_id: str
    merchant_request_id: str | None = None
    receipt_code: str | None = None
    failure_reason: str | None = None
    failure_code: int | None = None
    metadata: OrderMetadata
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        return cls(
            id=order.id,
            phone=order.phone,
            amount=order.amount,
            status=order.status,
            checkout_request_id=order.checkout_request_id,
            merchant_request_id=order.merchant_request_id,
            receipt_code=order.receipt_code,
            failure_reason=order.failure_reason,
            failure_code=order.failure_code,
            metadata=OrderMetadata(
                timestamp=order.request_timestamp,
                business_short_code=order.business_short_code,
                callback_received=order.callback_received,
                callback_received_at=order.callback_received_at,
                raw_callback=order.raw_callback,
            ),
            created_at=order.created_at,
            updated_at=order.updated_at,
            completed_at=order.completed_at,
        )


class OrderLookupResponse(_CamelModel):
    found: bool
    order: OrderResponse | None = None
    checkout_request_id: str


class ProductResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    price: int
    description: str

    @classmethod
    def from_product(cls, product: Product) -> "ProductResponse":
        return cls.model_validate(product)
