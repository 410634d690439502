"""
Cooldown eligibility.

Pure logic:
- No I/O
- No clock reads (callers pass `now`)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from services.faucet.models import Ledger

MS_PER_HOUR = 60 * 60 * 1000


@dataclass(frozen=True)
class Eligible:
    def __bool__(self) -> bool:
        return True


@dataclass(frozen=True)
class Blocked:
    remaining_ms: int

    def __bool__(self) -> bool:
        return False

    @property
    def remaining_hours(self) -> str:
        """Remaining wait in hours, one decimal place."""
        return format_hours(self.remaining_ms)


Eligibility = Union[Eligible, Blocked]


def format_hours(ms: int) -> str:
    return f"{ms / MS_PER_HOUR:.1f}"


def check_eligible(
    ledger: Ledger,
    key: str,
    now: int,
    cooldown_ms: int,
) -> Eligibility:
    """
    Eligible when `key` has never claimed, or its last claim is at least
    `cooldown_ms` old at `now`. Otherwise Blocked with the remaining wait.
    """
    record = ledger.get(key)
    if record is None:
        return Eligible()

    elapsed = now - record.last_claimed_at
    if elapsed >= cooldown_ms:
        return Eligible()

    return Blocked(remaining_ms=cooldown_ms - elapsed)
