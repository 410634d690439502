"""
EVM address validation.

Accepts `0x` + 40 hex characters. All-lowercase and all-uppercase hex
bodies are accepted as-is; mixed case must satisfy the EIP-55 checksum.
"""

from __future__ import annotations

import re

from eth_utils import is_checksum_address, to_checksum_address

_ADDRESS_RE = re.compile(r"^0[xX][0-9a-fA-F]{40}$")


def is_valid_address(value) -> bool:
    if not isinstance(value, str):
        return False

    if not _ADDRESS_RE.match(value):
        return False

    body = value[2:]
    if body == body.lower() or body == body.upper():
        return True

    return is_checksum_address("0x" + body)


def normalize_address(value: str) -> str:
    """
    Checksummed form of a valid address. Callers validate first.
    """
    return to_checksum_address("0x" + value[2:])


def shorten_address(value: str) -> str:
    """0x1234…abcd"""
    if len(value) <= 12:
        return value
    return f"{value[:6]}…{value[-4:]}"
