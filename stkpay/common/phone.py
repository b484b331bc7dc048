"""Phone number normalization for the M-Pesa `254XXXXXXXXX` format."""

import re

from stkpay.common.errors import ValidationError

COUNTRY_CODE = "254"
_NON_DIGITS = re.compile(r"\D")
# One leading national prefix or country code, never both.
_PREFIX = re.compile(r"^(?:0|254)")
_SUBSCRIBER = re.compile(r"^\d{9}$")


def normalize_phone(raw: str) -> str:
    """Return `raw` as `254` followed by the 9-digit subscriber number.

    Raises `ValidationError` when fewer or more than 9 digits remain after
    stripping formatting and the prefix.
    """

    digits = _NON_DIGITS.sub("", str(raw))
    subscriber = _PREFIX.sub("", digits, count=1)
    if not _SUBSCRIBER.match(subscriber):
        raise ValidationError("Invalid phone number format. Please use format 07XXXXXXXX")
    return f"{COUNTRY_CODE}{subscriber}"
