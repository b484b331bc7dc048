"""Checkout orchestration: validation, gateway retries, pending order creation."""

import asyncio

import httpx
import pytest
from sqlalchemy import func, select

from conftest import SHORT_CODE, make_checkout_service
from stkpay.common.errors import (
    AuthenticationError,
    GatewayError,
    GatewayTimeoutError,
    StoreError,
    ValidationError,
)
from stkpay.common.logging import checkout_request_id_ctx, order_id_ctx
from stkpay.services.checkout.models import Order
from stkpay.services.checkout.store import OrderStore


def order_count(session_factory) -> int:
    with session_factory() as db:
        return db.execute(select(func.count()).select_from(Order)).scalar_one()


def test_checkout_creates_one_pending_order(checkout_service, store, session_factory):
    result = asyncio.run(checkout_service.checkout("0712345678", 5))

    assert order_count(session_factory) == 1
    order = store.get(result.order_id)
    assert order.status == "pending"
    assert order.phone == "254712345678"
    assert order.amount == 5
    assert order.checkout_request_id == result.gateway_response.checkout_request_id
    assert order.merchant_request_id == result.gateway_response.merchant_request_id
    assert order.business_short_code == SHORT_CODE
    assert len(order.request_timestamp) == 14
    assert order.callback_received is False
    assert [(t.from_state, t.to_state) for t in store.timeline(order.id)] == [(None, "pending")]


@pytest.mark.parametrize("phone,amount", [(None, 10), ("", 10), ("0712345678", None)])
def test_missing_fields_rejected(checkout_service, phone, amount):
    with pytest.raises(ValidationError, match="required"):
        asyncio.run(checkout_service.checkout(phone, amount))


def test_amount_below_minimum_rejected_before_any_io(checkout_service, fake_daraja, session_factory):
    with pytest.raises(ValidationError, match="at least 1"):
        asyncio.run(checkout_service.checkout("0712345678", 0))

    assert fake_daraja.requests == []
    assert order_count(session_factory) == 0


def test_boolean_amount_rejected(checkout_service, fake_daraja):
    with pytest.raises(ValidationError, match="number"):
        asyncio.run(checkout_service.checkout("0712345678", True))

    assert fake_daraja.requests == []


def test_configured_minimum_amount(store, gateway, fake_daraja):
    service = make_checkout_service(store, gateway, minimum_amount=10)

    with pytest.raises(ValidationError):
        asyncio.run(service.checkout("0712345678", 9))
    assert fake_daraja.requests == []


def test_invalid_phone_rejected_before_gateway(checkout_service, fake_daraja, session_factory):
    with pytest.raises(ValidationError, match="phone number"):
        asyncio.run(checkout_service.checkout("123", 10))

    assert fake_daraja.requests == []
    assert order_count(session_factory) == 0


def test_gateway_rejection_creates_no_order(checkout_service, fake_daraja, session_factory):
    fake_daraja.stk_queue.append(httpx.Response(400, json={"errorMessage": "Invalid Amount"}))

    with pytest.raises(GatewayError):
        asyncio.run(checkout_service.checkout("0712345678", 10))

    assert len(fake_daraja.stk_requests()) == 1
    assert order_count(session_factory) == 0


def test_transient_gateway_failure_is_retried(checkout_service, fake_daraja, session_factory):
    fake_daraja.stk_queue.append(httpx.Response(500, text="Internal Server Error"))

    result = asyncio.run(checkout_service.checkout("0712345678", 10))

    assert len(fake_daraja.stk_requests()) == 2
    assert order_count(session_factory) == 1
    assert result.order_id


def test_authentication_failure_is_retried(checkout_service, fake_daraja):
    fake_daraja.auth_queue.append(httpx.Response(500, text="oops"))

    asyncio.run(checkout_service.checkout("0712345678", 10))

    assert fake_daraja.paths().count("/oauth/v1/generate") == 2


def test_rejected_credentials_are_not_retried(checkout_service, fake_daraja, session_factory):
    """A 4xx from the OAuth endpoint means bad credentials; retrying cannot help."""

    fake_daraja.auth_queue.append(httpx.Response(401, text="unauthorized"))

    with pytest.raises(AuthenticationError) as exc_info:
        asyncio.run(checkout_service.checkout("0712345678", 10))

    assert exc_info.value.status_code == 401
    assert not exc_info.value.transient
    assert fake_daraja.paths() == ["/oauth/v1/generate"]
    assert order_count(session_factory) == 0


def test_unreachable_oauth_endpoint_is_retried_until_budget(checkout_service, fake_daraja, session_factory):
    for _ in range(3):
        fake_daraja.auth_queue.append(httpx.ConnectError("connection refused"))

    with pytest.raises(AuthenticationError) as exc_info:
        asyncio.run(checkout_service.checkout("0712345678", 10))

    assert exc_info.value.status_code is None
    assert fake_daraja.paths().count("/oauth/v1/generate") == 3
    assert fake_daraja.stk_requests() == []
    assert order_count(session_factory) == 0


def test_timeouts_exhaust_retry_budget(checkout_service, fake_daraja, session_factory):
    for _ in range(3):
        fake_daraja.stk_queue.append(httpx.ReadTimeout("timed out"))

    with pytest.raises(GatewayTimeoutError):
        asyncio.run(checkout_service.checkout("0712345678", 10))

    assert len(fake_daraja.stk_requests()) == 3
    assert order_count(session_factory) == 0


def test_store_failure_after_accepted_push(gateway, broken_session_factory):
    service = make_checkout_service(OrderStore(broken_session_factory), gateway)

    with pytest.raises(StoreError):
        asyncio.run(service.checkout("0712345678", 10))


def test_log_context_is_restored_after_checkout(checkout_service):
    """Correlation ids bound for one checkout must not stick to the caller's context."""

    async def run():
        await checkout_service.checkout("0712345678", 10)
        return checkout_request_id_ctx.get(), order_id_ctx.get()

    assert asyncio.run(run()) == ("", "")
