"""Daraja request/response and callback payload schemas."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AccessToken(BaseModel):
    """Body returned by the OAuth client-credentials endpoint."""

    access_token: str = Field(min_length=1)
    expires_in: int = 3599


class StkPushResponse(BaseModel):
    """Accepted STK push initiation.

    Unknown gateway fields are kept so the full body can be echoed back to
    the checkout caller.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    merchant_request_id: str = Field(alias="MerchantRequestID")
    checkout_request_id: str = Field(alias="CheckoutRequestID", min_length=1)
    response_code: str | None = Field(default=None, alias="ResponseCode")
    response_description: str | None = Field(default=None, alias="ResponseDescription")
    customer_message: str | None = Field(default=None, alias="CustomerMessage")


class CallbackItem(BaseModel):
    name: str = Field(alias="Name")
    value: Any = Field(default=None, alias="Value")


class CallbackMetadata(BaseModel):
    items: list[CallbackItem] = Field(default_factory=list, alias="Item")


class StkCallback(BaseModel):
    """Result notification for one STK push."""

    merchant_request_id: str | None = Field(default=None, alias="MerchantRequestID")
    checkout_request_id: str = Field(alias="CheckoutRequestID", min_length=1)
    result_code: int = Field(alias="ResultCode")
    result_desc: str = Field(default="", alias="ResultDesc")
    callback_metadata: CallbackMetadata | None = Field(default=None, alias="CallbackMetadata")

    def item(self, name: str) -> Any:
        """Value of the named metadata item, or None when absent."""

        if self.callback_metadata is None:
            return None
        for entry in self.callback_metadata.items:
            if entry.name == name:
                return entry.value
        return None


class CallbackBody(BaseModel):
    stk_callback: StkCallback = Field(alias="stkCallback")


class CallbackEnvelope(BaseModel):
    """Outer `{"Body": {"stkCallback": {...}}}` wrapper posted to `/callback`."""

    body: CallbackBody = Field(alias="Body")
