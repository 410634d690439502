from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ClaimRecord:
    """Last successful claim for one claim key."""

    key: str
    last_claimed_at: int
    last_tx_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"lastClaimedAt": self.last_claimed_at}
        if self.last_tx_id:
            payload["lastTxId"] = self.last_tx_id
        return payload


# Ledger = mapping of claim key -> ClaimRecord
Ledger = Dict[str, ClaimRecord]


@dataclass(frozen=True)
class TransferRequest:
    destination_address: str
    amount: str
    requested_by: str


@dataclass(frozen=True)
class TransferResult:
    tx_id: str
    success: bool = True
    block_number: Optional[int] = None


class ClaimStatus(str, Enum):
    SUCCEEDED = "succeeded"
    REJECTED_CHANNEL = "rejected_channel"
    REJECTED_ADDRESS = "rejected_address"
    REJECTED_COOLDOWN = "rejected_cooldown"
    FAILED = "failed"


@dataclass(frozen=True)
class ClaimOutcome:
    """
    Terminal state of one claim attempt.

    `message` is safe to show to the requester; `error_kind` is for logs.
    """

    status: ClaimStatus
    message: str
    key: Optional[str] = None
    tx_id: Optional[str] = None
    remaining_hours: Optional[str] = None
    error_kind: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status is ClaimStatus.SUCCEEDED
