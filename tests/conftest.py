"""Shared fixtures: in-memory database, fake Daraja gateway, wired services."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("DARAJA_CONSUMER_KEY", "test-key")
os.environ.setdefault("DARAJA_CONSUMER_SECRET", "test-secret")
os.environ.setdefault("DARAJA_BUSINESS_SHORT_CODE", "174379")
os.environ.setdefault("DARAJA_PASSKEY", "test-passkey")
os.environ.setdefault("DARAJA_CALLBACK_URL", "https://example.test/callback")
os.environ.setdefault("TRACING_ENABLED", "false")

import itertools
from collections import deque

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from stkpay.common.config import Settings
from stkpay.common.db import Base, make_session_factory
from stkpay.services.checkout import models  # noqa: F401  (registers tables)
from stkpay.services.checkout.service import CheckoutService, ReconciliationService
from stkpay.services.checkout.store import OrderStore
from stkpay.services.gateway.client import DarajaClient

BASE_URL = "https://sandbox.test"
SHORT_CODE = "174379"
PASSKEY = "test-passkey"


class FakeDaraja:
    """`httpx.MockTransport` handler standing in for the Daraja sandbox.

    Queue an `httpx.Response` or an exception on `auth_queue` / `stk_queue` to
    make the next call to that endpoint fail; empty queues answer with success.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.auth_queue: deque = deque()
        self.stk_queue: deque = deque()
        self._ids = itertools.count(1)

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]

    def stk_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith("/processrequest")]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.auth_queue if request.url.path.startswith("/oauth") else self.stk_queue
        if queue:
            item = queue.popleft()
            if isinstance(item, Exception):
                raise item
            return item
        if queue is self.auth_queue:
            return httpx.Response(200, json={"access_token": "token-abc", "expires_in": "3599"})
        n = next(self._ids)
        return httpx.Response(
            200,
            json={
                "MerchantRequestID": f"29115-34620561-{n}",
                "CheckoutRequestID": f"ws_CO_19102026_{n:06d}",
                "ResponseCode": "0",
                "ResponseDescription": "Success. Request accepted for processing",
                "CustomerMessage": "Success. Request accepted for processing",
            },
        )


def success_callback(checkout_request_id: str, receipt: str = "NLJ7RT61SV", amount: int = 1) -> dict:
    return {
        "Body": {
            "stkCallback": {
                "MerchantRequestID": "29115-34620561-1",
                "CheckoutRequestID": checkout_request_id,
                "ResultCode": 0,
                "ResultDesc": "The service request is processed successfully.",
                "CallbackMetadata": {
                    "Item": [
                        {"Name": "Amount", "Value": amount},
                        {"Name": "MpesaReceiptNumber", "Value": receipt},
                        {"Name": "TransactionDate", "Value": 20261019102115},
                        {"Name": "PhoneNumber", "Value": 254712345678},
                    ]
                },
            }
        }
    }


def failure_callback(checkout_request_id: str, code: int = 1032, desc: str = "Request cancelled by user") -> dict:
    return {
        "Body": {
            "stkCallback": {
                "MerchantRequestID": "29115-34620561-1",
                "CheckoutRequestID": checkout_request_id,
                "ResultCode": code,
                "ResultDesc": desc,
            }
        }
    }


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def broken_session_factory(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path}/missing/dir/orders.db")
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return OrderStore(session_factory)


@pytest.fixture
def fake_daraja():
    return FakeDaraja()


@pytest.fixture
def gateway(fake_daraja):
    return DarajaClient(
        BASE_URL,
        "test-key",
        "test-secret",
        timeout_seconds=2.0,
        transport=httpx.MockTransport(fake_daraja),
    )


def make_checkout_service(store, gateway, **overrides) -> CheckoutService:
    options = dict(
        business_short_code=SHORT_CODE,
        passkey=PASSKEY,
        callback_url="https://example.test/callback",
        account_reference="StkPay",
        transaction_desc="Payment for goods",
        minimum_amount=1,
        max_attempts=3,
        backoff_seconds=0,
    )
    options.update(overrides)
    return CheckoutService(store, gateway, **options)


@pytest.fixture
def checkout_service(store, gateway):
    return make_checkout_service(store, gateway)


@pytest.fixture
def reconciliation(store):
    return ReconciliationService(store)


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        database_url="sqlite://",
        daraja_base_url=BASE_URL,
        daraja_consumer_key="test-key",
        daraja_consumer_secret="test-secret",
        daraja_business_short_code=SHORT_CODE,
        daraja_passkey=PASSKEY,
        daraja_callback_url="https://example.test/callback",
        daraja_backoff_seconds=0,
        tracing_enabled=False,
        frontend_dir=str(tmp_path),
    )
