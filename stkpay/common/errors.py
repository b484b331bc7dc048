"""Error taxonomy shared by the gateway client, store and services."""


class StkPayError(Exception):
    """Base class; `message` is safe to return to API callers."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(StkPayError):
    """Bad user input (missing fields, amount too small, bad phone)."""


class AuthenticationError(StkPayError):
    """Gateway credential exchange failed.

    `status_code` is the OAuth endpoint's HTTP status, or None when it was unreachable or
    answered with an unusable body. Only those cases and 5xx answers are retried.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def transient(self) -> bool:
        return self.status_code is None or self.status_code >= 500


class GatewayError(StkPayError):
    """Payment initiation was rejected or the gateway was unreachable."""

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    @property
    def transient(self) -> bool:
        return self.status_code is None or self.status_code >= 500


class GatewayTimeoutError(GatewayError):
    """A gateway call exceeded its configured timeout."""


class NotFoundError(StkPayError):
    """Lookup miss."""


class StoreError(StkPayError):
    """Persistence failure."""


class InvalidTransitionError(ValueError):
    """An order status change not permitted by the state machine."""
