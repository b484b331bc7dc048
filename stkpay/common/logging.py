"""JSON log lines for the checkout service.

Each record carries the request trace id plus the order and
`CheckoutRequestID` being worked on, so one payment can be followed from
the STK push through to its result notification with a single filter.
"""

import logging
import sys
from contextvars import ContextVar

from pythonjsonlogger.json import JsonFormatter

from stkpay.common.config import settings


trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="")
order_id_ctx: ContextVar[str] = ContextVar("order_id", default="")
checkout_request_id_ctx: ContextVar[str] = ContextVar("checkout_request_id", default="")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s %(trace_id)s %(order_id)s %(checkout_request_id)s"
RENAMED_FIELDS = {"asctime": "ts", "levelname": "level", "name": "logger"}

# Per-request chatter from the HTTP client would drown the payment events.
QUIET_LOGGERS = ("httpx", "httpcore")


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = trace_id_ctx.get()
        record.order_id = order_id_ctx.get()
        record.checkout_request_id = checkout_request_id_ctx.get()
        return True


def configure_logging(level: str | None = None) -> None:
    """Send JSON lines to stdout; safe to call more than once."""

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ContextFilter())
    handler.setFormatter(
        JsonFormatter(
            LOG_FORMAT,
            rename_fields=RENAMED_FIELDS,
            static_fields={"service": settings.service_name},
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level or settings.log_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


logger = logging.getLogger("stkpay")
