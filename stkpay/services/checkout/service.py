"""Checkout and reconciliation logic.

`CheckoutService` validates a payment request, drives the STK push through
the gateway and records a `pending` order. `ReconciliationService` applies the
gateway's asynchronous result notification to that order exactly once.
"""

import asyncio
import enum
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError as SchemaValidationError

from stkpay.common.errors import (
    AuthenticationError,
    GatewayError,
    StkPayError,
    StoreError,
    ValidationError,
)
from stkpay.common.logging import checkout_request_id_ctx, logger, order_id_ctx
from stkpay.common.metrics import (
    callbacks_received_total,
    checkout_failures_total,
    order_terminal_seconds,
    retries_total,
)
from stkpay.common.phone import normalize_phone
from stkpay.common.state_machine import COMPLETED, FAILED, PENDING, is_terminal
from stkpay.services.checkout.models import Order
from stkpay.services.checkout.store import OrderStore
from stkpay.services.gateway.client import DarajaClient
from stkpay.services.gateway.schemas import CallbackEnvelope, StkCallback, StkPushResponse

RECEIPT_ITEM = "MpesaReceiptNumber"
AMOUNT_ITEM = "Amount"
PHONE_ITEM = "PhoneNumber"


@dataclass
class CheckoutResult:
    order_id: str
    gateway_response: StkPushResponse


class CheckoutService:
    """Turns a `(phone, amount)` request into an STK push and a pending order."""

    def __init__(
        self,
        store: OrderStore,
        gateway: DarajaClient,
        *,
        business_short_code: str,
        passkey: str,
        callback_url: str,
        account_reference: str,
        transaction_desc: str,
        minimum_amount: int = 1,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        service_name: str = "stkpay-checkout",
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.business_short_code = business_short_code
        self.passkey = passkey
        self.callback_url = callback_url
        self.account_reference = account_reference
        self.transaction_desc = transaction_desc
        self.minimum_amount = minimum_amount
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self.service_name = service_name

    def _validate(self, phone: str | None, amount: int | None) -> None:
        if not phone or amount is None:
            raise ValidationError("Phone number and amount are required")
        if isinstance(amount, bool):
            raise ValidationError("Amount must be a number")
        if amount < self.minimum_amount:
            raise ValidationError(f"Amount must be at least {self.minimum_amount} KSH")

    async def _push(self, phone: str, amount: int) -> tuple[StkPushResponse, str]:
        """Token fetch + STK push with exponential backoff on transient failures."""

        attempt = 1
        while True:
            try:
                token = await self.gateway.obtain_access_token()
                return await self.gateway.initiate_payment(
                    token,
                    self.business_short_code,
                    self.passkey,
                    amount,
                    phone,
                    self.callback_url,
                    self.account_reference,
                    self.transaction_desc,
                )
            except (AuthenticationError, GatewayError) as exc:
                if not exc.transient or attempt >= self.max_attempts:
                    raise
                retries_total.labels(service=self.service_name, dependency="daraja").inc()
                backoff_seconds = self.backoff_seconds * 2 ** (attempt - 1)
                logger.warning(
                    "gateway retry attempt=%s error_type=%s backoff_s=%s",
                    attempt,
                    type(exc).__name__,
                    backoff_seconds,
                )
                await asyncio.sleep(backoff_seconds)
                attempt += 1

    async def checkout(self, phone: str | None, amount: int | None) -> CheckoutResult:
        """Initiate a charge and persist the resulting `pending` order.

        No order is written unless the gateway accepted the push.
        """

        try:
            self._validate(phone, amount)
            normalized = normalize_phone(phone)
            accepted, timestamp = await self._push(normalized, amount)
        except StkPayError as exc:
            checkout_failures_total.labels(service=self.service_name, error_type=type(exc).__name__).inc()
            raise

        cid_token = checkout_request_id_ctx.set(accepted.checkout_request_id)
        try:
            return self._record(normalized, amount, accepted, timestamp)
        finally:
            checkout_request_id_ctx.reset(cid_token)

    def _record(self, phone: str, amount: int, accepted: StkPushResponse, timestamp: str) -> CheckoutResult:
        logger.info(
            "stk_push_initiated merchant_request_id=%s phone=%s amount=%s",
            accepted.merchant_request_id,
            phone,
            amount,
        )
        try:
            order = self.store.create_pending(
                phone=phone,
                amount=amount,
                checkout_request_id=accepted.checkout_request_id,
                merchant_request_id=accepted.merchant_request_id,
                request_timestamp=timestamp,
                business_short_code=self.business_short_code,
            )
        except StoreError:
            # The gateway will still call back for this push.
            logger.exception("order_record_failed after accepted stk push")
            checkout_failures_total.labels(service=self.service_name, error_type="StoreError").inc()
            raise
        order_token = order_id_ctx.set(order.id)
        try:
            logger.info("order_created status=%s", order.status)
        finally:
            order_id_ctx.reset(order_token)
        return CheckoutResult(order_id=order.id, gateway_response=accepted)


class CallbackOutcome(str, enum.Enum):
    """What happened to one result notification.

    Every value is acknowledged to the gateway the same way; the outcome only
    feeds logs, metrics and tests.
    """

    COMPLETED = "completed"
    FAILED = "failed"
    DUPLICATE = "duplicate"
    UNKNOWN_ORDER = "unknown_order"
    MALFORMED = "malformed"
    ERROR = "error"


class ReconciliationService:
    """Applies gateway result notifications to pending orders."""

    def __init__(self, store: OrderStore, service_name: str = "stkpay-checkout") -> None:
        self.store = store
        self.service_name = service_name

    def handle_callback(self, payload: Any) -> CallbackOutcome:
        """Reconcile one notification body. Never raises."""

        outcome = self._handle(payload)
        callbacks_received_total.labels(service=self.service_name, outcome=outcome.value).inc()
        return outcome

    def _handle(self, payload: Any) -> CallbackOutcome:
        try:
            callback = CallbackEnvelope.model_validate(payload).body.stk_callback
        except SchemaValidationError as exc:
            logger.warning("callback_malformed errors=%s", exc.error_count())
            return CallbackOutcome.MALFORMED

        cid_token = checkout_request_id_ctx.set(callback.checkout_request_id)
        try:
            return self._reconcile(callback, payload)
        except Exception:
            logger.exception("callback_processing_error result_code=%s", callback.result_code)
            return CallbackOutcome.ERROR
        finally:
            checkout_request_id_ctx.reset(cid_token)

    def _reconcile(self, callback: StkCallback, payload: Any) -> CallbackOutcome:
        logger.info("callback_received result_code=%s", callback.result_code)
        order = self.store.find_by_checkout_request_id(callback.checkout_request_id)
        if order is None:
            logger.warning("callback_unknown_order result_code=%s", callback.result_code)
            return CallbackOutcome.UNKNOWN_ORDER
        order_token = order_id_ctx.set(order.id)
        try:
            now = datetime.now(timezone.utc)
            archive = {
                "callback_received": True,
                "callback_received_at": now,
                "raw_callback": json.dumps(payload),
            }
            if callback.result_code == 0:
                receipt = callback.item(RECEIPT_ITEM)
                if receipt is None:
                    logger.warning("callback_missing_receipt")
                updated = self.store.apply_transition(
                    callback.checkout_request_id,
                    PENDING,
                    COMPLETED,
                    reason="payment_confirmed",
                    receipt_code=None if receipt is None else str(receipt),
                    completed_at=now,
                    **archive,
                )
                target = CallbackOutcome.COMPLETED
            else:
                updated = self.store.apply_transition(
                    callback.checkout_request_id,
                    PENDING,
                    FAILED,
                    reason=f"payment_failed:{callback.result_code}",
                    failure_reason=callback.result_desc,
                    failure_code=callback.result_code,
                    **archive,
                )
                target = CallbackOutcome.FAILED

            if updated is None:
                current = self.store.find_by_checkout_request_id(callback.checkout_request_id)
                current_status = current.status if current else None
                logger.info(
                    "duplicate callback skipped result_code=%s current_status=%s terminal=%s",
                    callback.result_code,
                    current_status,
                    current_status is not None and is_terminal(current_status),
                )
                return CallbackOutcome.DUPLICATE

            self._observe_terminal(updated)
            if target is CallbackOutcome.COMPLETED:
                logger.info(
                    "payment_completed receipt=%s amount=%s phone=%s",
                    updated.receipt_code,
                    callback.item(AMOUNT_ITEM),
                    callback.item(PHONE_ITEM),
                )
            else:
                logger.warning(
                    "payment_failed code=%s description=%s", callback.result_code, callback.result_desc
                )
            return target
        finally:
            order_id_ctx.reset(order_token)

    def _observe_terminal(self, order: Order) -> None:
        if order.created_at is None:
            return
        created_at = order.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        elapsed = max(0.0, (datetime.now(timezone.utc) - created_at).total_seconds())
        order_terminal_seconds.labels(service=self.service_name, terminal_state=order.status).observe(elapsed)
