"""JSON log lines carry the payment correlation ids."""

import json
import logging

import pytest

from stkpay.common.logging import checkout_request_id_ctx, configure_logging, logger, order_id_ctx


@pytest.fixture
def root_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


def test_log_line_has_context_and_renamed_fields(root_logging, capsys):
    configure_logging("INFO")
    cid_token = checkout_request_id_ctx.set("ws_CO_1")
    order_token = order_id_ctx.set("order-1")
    try:
        logger.info("payment_completed receipt=%s", "NLJ7RT61SV")
    finally:
        order_id_ctx.reset(order_token)
        checkout_request_id_ctx.reset(cid_token)

    line = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert line["message"] == "payment_completed receipt=NLJ7RT61SV"
    assert line["level"] == "INFO"
    assert line["logger"] == "stkpay"
    assert line["checkout_request_id"] == "ws_CO_1"
    assert line["order_id"] == "order-1"
    assert "ts" in line and "service" in line
    assert "levelname" not in line and "asctime" not in line


def test_http_client_chatter_is_quieted(root_logging):
    configure_logging("DEBUG")

    assert logging.getLogger("httpx").getEffectiveLevel() == logging.WARNING
    assert logging.getLogger("stkpay").getEffectiveLevel() == logging.DEBUG
