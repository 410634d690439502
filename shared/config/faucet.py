"""
Faucet runtime configuration.

Design rules:
- Import-safe (no side effects)
- Built exactly once at startup and passed by reference afterwards
- Missing required values are fatal (ConfigMissing)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Mapping, Optional

from eth_utils import is_address

from shared.logging.logger import get_logger
from services.faucet.errors import ConfigInvalid, ConfigMissing

log = get_logger("shared.config.faucet")

CLAIM_KEY_MODES = ("user", "wallet")
CORRUPT_LEDGER_POLICIES = ("halt", "reset")

REQUIRED_KEYS = (
    "DISCORD_TOKEN",
    "DISCORD_CLIENT_ID",
    "RPC_URL",
    "TOKEN_ADDRESS",
    "FAUCET_PRIVATE_KEY",
)

# Older deployments named the token contract after the token itself.
_ALIASES = {
    "TOKEN_ADDRESS": ("BBNK_TOKEN",),
}


@dataclass(frozen=True)
class FaucetConfig:
    discord_token: str = field(repr=False)
    discord_client_id: str
    rpc_url: str
    token_address: str
    private_key: str = field(repr=False)
    amount: str = "500"
    cooldown_hours: float = 24.0
    channel_id: Optional[str] = None
    claim_key_mode: str = "user"
    ledger_path: Path = Path("cooldowns.json")
    corrupt_ledger_policy: str = "halt"
    token_symbol: str = "BBNK"
    explorer_tx_url: Optional[str] = None
    confirmation_timeout: float = 120.0

    @property
    def cooldown_ms(self) -> int:
        return int(self.cooldown_hours * 60 * 60 * 1000)


def _get(env: Mapping[str, str], key: str) -> Optional[str]:
    for name in (key, *_ALIASES.get(key, ())):
        raw = env.get(name)
        if raw is not None and raw.strip():
            return raw.strip()
    return None


def _positive_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = _get(env, key)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigInvalid(key, f"expected a number, got {raw!r}")
    if value <= 0:
        raise ConfigInvalid(key, "must be greater than zero")
    return value


def _choice(env: Mapping[str, str], key: str, choices, default: str) -> str:
    raw = _get(env, key)
    if raw is None:
        return default
    value = raw.lower()
    if value not in choices:
        raise ConfigInvalid(key, f"expected one of {', '.join(choices)}")
    return value


def _amount(env: Mapping[str, str]) -> str:
    raw = _get(env, "FAUCET_AMOUNT") or "500"
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise ConfigInvalid("FAUCET_AMOUNT", f"not a decimal amount: {raw!r}")
    if not value.is_finite() or value <= 0:
        raise ConfigInvalid("FAUCET_AMOUNT", "must be a positive amount")
    return raw


def _channel_id(env: Mapping[str, str]) -> Optional[str]:
    raw = _get(env, "FAUCET_CHANNEL_ID")
    if raw is None:
        return None
    if not raw.isdigit():
        raise ConfigInvalid("FAUCET_CHANNEL_ID", "must be a numeric channel id")
    return raw


def _explorer_url(env: Mapping[str, str]) -> Optional[str]:
    raw = _get(env, "EXPLORER_TX_URL")
    if raw is None:
        return None
    if "{tx}" not in raw:
        # Bare explorer base, e.g. https://etherscan.io/tx/
        raw = raw.rstrip("/") + "/{tx}"
    return raw


def load_faucet_config(env: Optional[Mapping[str, str]] = None) -> FaucetConfig:
    """
    Build the immutable FaucetConfig from environment-style values.

    Raises ConfigMissing listing every absent required key, or
    ConfigInvalid for the first malformed value.
    """
    env = os.environ if env is None else env

    missing = [key for key in REQUIRED_KEYS if _get(env, key) is None]
    if missing:
        raise ConfigMissing(missing)

    token_address = _get(env, "TOKEN_ADDRESS")
    if not is_address(token_address):
        raise ConfigInvalid("TOKEN_ADDRESS", "not a valid contract address")

    config = FaucetConfig(
        discord_token=_get(env, "DISCORD_TOKEN"),
        discord_client_id=_get(env, "DISCORD_CLIENT_ID"),
        rpc_url=_get(env, "RPC_URL"),
        token_address=token_address,
        private_key=_get(env, "FAUCET_PRIVATE_KEY"),
        amount=_amount(env),
        cooldown_hours=_positive_float(env, "COOLDOWN_HOURS", 24.0),
        channel_id=_channel_id(env),
        claim_key_mode=_choice(env, "CLAIM_KEY_MODE", CLAIM_KEY_MODES, "user"),
        ledger_path=Path(_get(env, "LEDGER_PATH") or "cooldowns.json"),
        corrupt_ledger_policy=_choice(
            env, "LEDGER_CORRUPT_POLICY", CORRUPT_LEDGER_POLICIES, "halt"
        ),
        token_symbol=_get(env, "TOKEN_SYMBOL") or "BBNK",
        explorer_tx_url=_explorer_url(env),
        confirmation_timeout=_positive_float(
            env, "CONFIRMATION_TIMEOUT_SECONDS", 120.0
        ),
    )

    log.info(
        f"Faucet config loaded: amount={config.amount} {config.token_symbol} "
        f"cooldown={config.cooldown_hours:g}h key_mode={config.claim_key_mode} "
        f"channel={config.channel_id or 'any'} ledger={config.ledger_path}"
    )
    return config
