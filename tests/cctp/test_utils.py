"""Amount conversion and timestamps."""

from decimal import Decimal

import pytest

from eth_cctp.errors import InvalidAmountError
from eth_cctp.utils import format_token_amount, parse_token_amount, unix_timestamp_ms, wait_other_writers


@pytest.mark.parametrize(
    "amount,raw",
    [
        ("100.00", 100_000_000),
        ("0.000001", 1),
        (" 1.5 ", 1_500_000),
        (Decimal("2.25"), 2_250_000),
        (7, 7_000_000),
    ],
)
def test_parse_token_amount(amount, raw):
    assert parse_token_amount(amount) == raw


@pytest.mark.parametrize("amount", ["0", "-0.01", "abc", "", "inf", "0.0000001", 1.0, True])
def test_parse_token_amount_invalid(amount):
    with pytest.raises(InvalidAmountError):
        parse_token_amount(amount)


def test_format_token_amount():
    assert format_token_amount(1_500_000) == Decimal("1.5")
    assert format_token_amount(1, decimals=18) == Decimal("1E-18")


def test_unix_timestamp_ms():
    assert unix_timestamp_ms(1_718_000_000.5) == 1_718_000_000_500


def test_wait_other_writers(tmp_path):
    path = tmp_path / "sub" / "data.json"
    with wait_other_writers(path):
        path.write_text("[]")
    assert path.exists()
