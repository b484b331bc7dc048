"""Async client for the Safaricom Daraja OAuth and STK push endpoints."""

import base64
import time
from datetime import datetime
from zoneinfo import ZoneInfo

import httpx
from pydantic import ValidationError as SchemaValidationError

from stkpay.common.errors import AuthenticationError, GatewayError, GatewayTimeoutError
from stkpay.common.logging import logger
from stkpay.common.metrics import gateway_request_duration_seconds
from stkpay.services.gateway.schemas import AccessToken, StkPushResponse

TOKEN_PATH = "/oauth/v1/generate"
STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"
TRANSACTION_TYPE = "CustomerPayBillOnline"
# Refresh cached tokens this many seconds before the gateway expires them.
TOKEN_EXPIRY_SKEW_SECONDS = 60


def stk_timestamp(now: datetime) -> str:
    return now.strftime("%Y%m%d%H%M%S")


def stk_password(business_short_code: str, passkey: str, timestamp: str) -> str:
    """Request password: base64 of shortcode + passkey + timestamp."""

    raw = f"{business_short_code}{passkey}{timestamp}".encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


class DarajaClient:
    """Obtains bearer tokens and submits STK push requests."""

    def __init__(
        self,
        base_url: str,
        consumer_key: str,
        consumer_secret: str,
        timeout_seconds: float = 10.0,
        cache_token: bool = True,
        timezone: str = "Africa/Nairobi",
        service_name: str = "stkpay-checkout",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._basic = base64.b64encode(f"{consumer_key}:{consumer_secret}".encode("utf-8")).decode("ascii")
        self.cache_token = cache_token
        self.tz = ZoneInfo(timezone)
        self.service_name = service_name
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_seconds,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )
        self._token: str | None = None
        self._token_expires_at = 0.0

    async def _send(self, operation: str, method: str, url: str, **kwargs) -> httpx.Response:
        with gateway_request_duration_seconds.labels(service=self.service_name, operation=operation).time():
            try:
                return await self._http.request(method, url, **kwargs)
            except httpx.TimeoutException as exc:
                raise GatewayTimeoutError(f"Gateway {operation} request timed out") from exc

    async def obtain_access_token(self) -> str:
        """Exchange the consumer key/secret for a short-lived bearer token."""

        if self.cache_token and self._token and time.monotonic() < self._token_expires_at:
            return self._token

        try:
            resp = await self._send(
                "oauth",
                "GET",
                TOKEN_PATH,
                params={"grant_type": "client_credentials"},
                headers={"Authorization": f"Basic {self._basic}"},
            )
        except GatewayTimeoutError:
            raise
        except httpx.HTTPError as exc:
            logger.error("gateway_auth_unreachable error_type=%s", type(exc).__name__)
            raise AuthenticationError("Failed to authenticate with Safaricom") from exc

        if resp.status_code >= 400:
            logger.error("gateway_auth_rejected status=%s", resp.status_code)
            raise AuthenticationError("Failed to authenticate with Safaricom", status_code=resp.status_code)
        try:
            token = AccessToken.model_validate(resp.json())
        except (ValueError, SchemaValidationError) as exc:
            logger.error("gateway_auth_malformed status=%s", resp.status_code)
            raise AuthenticationError("Failed to authenticate with Safaricom") from exc

        self._token = token.access_token
        self._token_expires_at = time.monotonic() + max(0, token.expires_in - TOKEN_EXPIRY_SKEW_SECONDS)
        logger.info("gateway_auth_ok expires_in=%s", token.expires_in)
        return token.access_token

    def invalidate_token(self) -> None:
        self._token = None
        self._token_expires_at = 0.0

    async def initiate_payment(
        self,
        bearer_token: str,
        business_short_code: str,
        passkey: str,
        amount: int,
        party_phone: str,
        callback_url: str,
        account_reference: str,
        description: str,
    ) -> tuple[StkPushResponse, str]:
        """Submit one STK push; return the accepted response and its timestamp."""

        timestamp = stk_timestamp(datetime.now(self.tz))
        body = {
            "BusinessShortCode": business_short_code,
            "Password": stk_password(business_short_code, passkey, timestamp),
            "Timestamp": timestamp,
            "TransactionType": TRANSACTION_TYPE,
            "Amount": amount,
            "PartyA": party_phone,
            "PartyB": business_short_code,
            "PhoneNumber": party_phone,
            "CallBackURL": callback_url,
            "AccountReference": account_reference,
            "TransactionDesc": description,
        }
        try:
            resp = await self._send(
                "stk_push",
                "POST",
                STK_PUSH_PATH,
                json=body,
                headers={"Authorization": f"Bearer {bearer_token}"},
            )
        except GatewayTimeoutError:
            raise
        except httpx.HTTPError as exc:
            raise GatewayError(f"Gateway unreachable: {type(exc).__name__}") from exc

        if resp.status_code >= 400:
            if resp.status_code == 401:
                # Token may have been revoked before its advertised expiry.
                self.invalidate_token()
            raise GatewayError(
                f"Payment initiation failed with status {resp.status_code}",
                status_code=resp.status_code,
                body=resp.text,
            )
        try:
            accepted = StkPushResponse.model_validate(resp.json())
        except (ValueError, SchemaValidationError) as exc:
            raise GatewayError(
                "Malformed payment initiation response", status_code=resp.status_code, body=resp.text
            ) from exc
        if accepted.response_code not in (None, "0"):
            raise GatewayError(
                accepted.response_description or "Payment initiation rejected",
                status_code=resp.status_code,
                body=resp.text,
            )
        return accepted, timestamp

    async def aclose(self) -> None:
        await self._http.aclose()
