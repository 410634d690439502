from __future__ import annotations

import pytest

from services.faucet.address import is_valid_address, normalize_address, shorten_address


@pytest.mark.parametrize(
    "value",
    [
        "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed",
        "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359",
        "0xdbF03B407c01E7cD3CBea99509d93f8DDDC8C6FB",
        "0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed",
        "0x5AAEB6053F3E94C9B9A09F33669435E7EF1BEAED",
        "0X5aaeb6053f3e94c9b9a09f33669435e7ef1beaed",
    ],
)
def test_accepts_valid_addresses(value: str) -> None:
    assert is_valid_address(value) is True


@pytest.mark.parametrize(
    "value",
    [
        "",
        "0x",
        "5aaeb6053f3e94c9b9a09f33669435e7ef1beaed",
        "1x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed",
        "0x5aaeb6053f3e94c9b9a09f33669435e7ef1bea",
        "0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed00",
        "0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaeg",
        "0x5aaeb6053f3e94c9b9a09f33669435e7ef1be-ed",
        # mixed case with a broken checksum
        "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAeD",
        "vitalik.eth",
        # surrounding whitespace is the caller's to strip
        " 0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed",
        "0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed\n",
    ],
)
def test_rejects_invalid_addresses(value: str) -> None:
    assert is_valid_address(value) is False


@pytest.mark.parametrize("value", [None, 123, b"0x00", ["0x"]])
def test_non_string_input_never_raises(value) -> None:
    assert is_valid_address(value) is False


def test_normalize_returns_checksum_form() -> None:
    assert (
        normalize_address("0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed")
        == "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
    )


def test_shorten_address() -> None:
    assert shorten_address("0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed") == "0x5aAe…eAed"
    assert shorten_address("0x1234") == "0x1234"
