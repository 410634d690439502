"""
Faucet error taxonomy.

Startup errors (ConfigMissing / ConfigInvalid) are fatal and only raised
while building FaucetConfig. Policy and validation errors are resolved by
the ClaimOrchestrator. Transfer-layer errors are never retried.
"""

from __future__ import annotations

from typing import Iterable, Optional


class FaucetError(Exception):
    """Base class for all faucet errors."""

    kind = "faucet_error"


# ----------------------------------------------------------------------
# Startup
# ----------------------------------------------------------------------

class ConfigMissing(FaucetError):
    kind = "config_missing"

    def __init__(self, keys: Iterable[str]):
        self.keys = tuple(keys)
        super().__init__(
            "Missing required configuration: " + ", ".join(self.keys)
        )


class ConfigInvalid(FaucetError):
    kind = "config_invalid"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration for {key}: {reason}")


# ----------------------------------------------------------------------
# Validation / policy
# ----------------------------------------------------------------------

class InvalidInput(FaucetError):
    kind = "invalid_input"


class ChannelRejected(FaucetError):
    kind = "channel_rejected"


class CooldownActive(FaucetError):
    kind = "cooldown_active"

    def __init__(self, key: str, remaining_ms: int):
        self.key = key
        self.remaining_ms = remaining_ms
        super().__init__(f"Cooldown active for {key} ({remaining_ms}ms left)")


# ----------------------------------------------------------------------
# Storage
# ----------------------------------------------------------------------

class CorruptLedger(FaucetError):
    kind = "corrupt_ledger"

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Ledger at {path} is unreadable: {reason}")


# ----------------------------------------------------------------------
# Transfer layer
# ----------------------------------------------------------------------

class TransferError(FaucetError):
    """
    Failure in the transfer layer.

    `tx_hash` is set when the failure happened after the signed
    transaction was handed to the node, i.e. the on-chain outcome is
    unknown and needs manual reconciliation.
    """

    kind = "transfer_error"

    def __init__(self, message: str = "", *, tx_hash: Optional[str] = None):
        self.tx_hash = tx_hash
        super().__init__(message)

    @property
    def ambiguous(self) -> bool:
        return self.tx_hash is not None


class NetworkError(TransferError):
    kind = "network_error"


class InsufficientFunds(TransferError):
    kind = "insufficient_funds"


class ConfirmationTimeout(TransferError):
    """
    The transfer was broadcast but no receipt arrived in time.

    The on-chain outcome is unknown; the claim must not be recorded and
    must not be resubmitted.
    """

    kind = "confirmation_timeout"

    def __init__(self, tx_hash: Optional[str], timeout: float):
        self.timeout = timeout
        super().__init__(
            f"No confirmation for {tx_hash} within {timeout:g}s",
            tx_hash=tx_hash,
        )


class UnknownTransferError(TransferError):
    kind = "unknown_transfer_error"
