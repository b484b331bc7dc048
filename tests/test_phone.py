"""Phone normalization into the 254XXXXXXXXX gateway format."""

import pytest

from stkpay.common.errors import ValidationError
from stkpay.common.phone import normalize_phone


@pytest.mark.parametrize(
    "raw",
    ["0712345678", "254712345678", "712345678", "+254 712 345 678", "0712-345-678"],
)
def test_accepted_formats(raw):
    assert normalize_phone(raw) == "254712345678"


@pytest.mark.parametrize("raw", ["123", "", "07123456789", "2540712345678", "phone"])
def test_rejected_formats(raw):
    with pytest.raises(ValidationError, match="Invalid phone number format"):
        normalize_phone(raw)
