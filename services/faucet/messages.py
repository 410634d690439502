"""
User-facing faucet replies.

Transfer internals never appear here; operators get those from logs.
"""

from __future__ import annotations

from typing import Optional

from services.faucet.address import shorten_address

GENERIC_FAILURE = "❌ Faucet error. Please try again later."
INVALID_ADDRESS = "❌ That doesn't look like a valid wallet address."
LEDGER_UNAVAILABLE = "❌ Faucet is temporarily unavailable. Please try again later."


def cooldown_message(remaining_hours: str) -> str:
    return (
        f"⏳ You must wait {remaining_hours} more hours "
        f"before using the faucet again."
    )


def wrong_channel_message(channel_id: Optional[str]) -> str:
    if channel_id:
        return f"🚫 The faucet can only be used in <#{channel_id}>."
    return "🚫 The faucet can't be used in this channel."


def tx_reference(tx_id: str, explorer_tx_url: Optional[str]) -> str:
    if explorer_tx_url:
        return explorer_tx_url.format(tx=tx_id)
    return tx_id


def success_message(
    *,
    amount: str,
    symbol: str,
    destination: str,
    tx_id: str,
    explorer_tx_url: Optional[str] = None,
) -> str:
    return (
        f"🔥 **{amount} {symbol}** sent to `{shorten_address(destination)}`!\n"
        f"Tx: {tx_reference(tx_id, explorer_tx_url)}"
    )


def eligible_message() -> str:
    return "✅ You can claim from the faucet right now."
