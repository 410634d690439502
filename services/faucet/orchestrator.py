"""
Claim orchestrator.

Per-attempt state machine:

    Received -> ChannelChecked -> AddressValidated -> EligibilityChecked
             -> TransferSubmitted -> LedgerUpdated -> Succeeded

Bail-outs: RejectedChannel, RejectedAddress, RejectedCooldown, Failed.

Rejections never touch the ledger file. A failed transfer never records
a claim, so it does not consume the cooldown window. A paid claim whose
ledger write fails is kept in memory and blocks every further claim
until it has been written.

All claims in this process run one at a time: the section from ledger
load to ledger save is held under a single asyncio.Lock (and the ledger's
file lock). That also keeps the signer's nonces strictly ordered.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Dict, Optional

from shared.logging.logger import get_logger
from services.faucet import messages
from services.faucet.address import is_valid_address, normalize_address
from services.faucet.eligibility import Blocked, check_eligible
from services.faucet.errors import CorruptLedger, TransferError
from services.faucet.ledger import LedgerStore
from services.faucet.models import (
    ClaimOutcome,
    ClaimRecord,
    ClaimStatus,
    Ledger,
    TransferRequest,
)

log = get_logger("faucet.orchestrator")


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class ClaimOrchestrator:
    """
    Owns the claim flow. Returns a ClaimOutcome for every attempt;
    only programming errors escape.
    """

    def __init__(
        self,
        *,
        config,
        ledger: LedgerStore,
        executor,
        clock: Callable[[], int] = _epoch_ms,
    ):
        self._config = config
        self._ledger = ledger
        self._executor = executor
        self._clock = clock
        self._lock = asyncio.Lock()
        # Paid claims whose ledger write failed; claims halt until flushed.
        self._unsaved: Dict[str, ClaimRecord] = {}

    # --------------------------------------------------
    # Helpers
    # --------------------------------------------------

    def claim_key(self, requester_id, destination_address: Optional[str]) -> Optional[str]:
        """
        Identity the cooldown is enforced against.

        user   -> the requester's platform id
        wallet -> the destination address (lowercased)
        """
        if self._config.claim_key_mode == "wallet":
            if not destination_address:
                return None
            return normalize_address(destination_address).lower()
        return str(requester_id)

    def channel_allowed(self, source_channel_id) -> bool:
        allowed = self._config.channel_id
        if not allowed:
            return True
        return source_channel_id is not None and str(source_channel_id) == allowed

    def _load_ledger(self) -> Ledger:
        try:
            return self._ledger.load()
        except CorruptLedger as e:
            if self._config.corrupt_ledger_policy != "reset":
                log.error(f"{e}; refusing claims until an operator repairs it")
                raise

            log.warning(f"{e}; resetting ledger (policy=reset)")
            self._ledger.quarantine()
            return {}

    def _merge_unsaved(self, ledger: Ledger) -> Ledger:
        for key, record in self._unsaved.items():
            current = ledger.get(key)
            if current is None or record.last_claimed_at >= current.last_claimed_at:
                ledger[key] = record
        return ledger

    def _flush_unsaved(self, ledger: Ledger) -> bool:
        """
        Write claims paid while the ledger was unwritable.

        Returns False (and keeps them pending) if the write still fails.
        """
        if not self._unsaved:
            return True

        try:
            self._ledger.save(self._merge_unsaved(ledger))
        except OSError as e:
            log.error(
                f"Ledger still unwritable ({e}); {len(self._unsaved)} paid "
                f"claim(s) unsaved, refusing new claims"
            )
            return False

        log.warning(
            f"Ledger writable again; flushed unsaved claims: "
            f"{', '.join(sorted(self._unsaved))}"
        )
        self._unsaved.clear()
        return True

    @staticmethod
    def _failed(reason: str, *, key: Optional[str] = None, message: str = messages.GENERIC_FAILURE) -> ClaimOutcome:
        return ClaimOutcome(
            status=ClaimStatus.FAILED,
            message=message,
            key=key,
            error_kind=reason,
        )

    # --------------------------------------------------
    # Claim
    # --------------------------------------------------

    async def claim(
        self,
        *,
        requester_id,
        destination_address: str,
        source_channel_id=None,
    ) -> ClaimOutcome:
        log.info(
            f"Claim received: requester={requester_id} "
            f"destination={destination_address!r} channel={source_channel_id}"
        )

        # ---- ChannelChecked ----
        if not self.channel_allowed(source_channel_id):
            log.info(f"Claim rejected (channel {source_channel_id}) for {requester_id}")
            return ClaimOutcome(
                status=ClaimStatus.REJECTED_CHANNEL,
                message=messages.wrong_channel_message(self._config.channel_id),
                error_kind="channel_rejected",
            )

        # ---- AddressValidated ----
        if not is_valid_address(destination_address):
            log.info(f"Claim rejected (address {destination_address!r}) for {requester_id}")
            return ClaimOutcome(
                status=ClaimStatus.REJECTED_ADDRESS,
                message=messages.INVALID_ADDRESS,
                error_kind="invalid_input",
            )

        destination = normalize_address(destination_address)
        key = self.claim_key(requester_id, destination)

        async with self._lock:
            async with self._ledger.locked():
                return await self._claim_locked(
                    key=key,
                    request=TransferRequest(
                        destination_address=destination,
                        amount=self._config.amount,
                        requested_by=str(requester_id),
                    ),
                )

    async def _claim_locked(self, *, key: str, request: TransferRequest) -> ClaimOutcome:
        # ---- EligibilityChecked ----
        try:
            ledger = self._load_ledger()
        except CorruptLedger:
            return self._failed(
                "corrupt_ledger", key=key, message=messages.LEDGER_UNAVAILABLE
            )

        if not self._flush_unsaved(ledger):
            return self._failed(
                "ledger_unwritable", key=key, message=messages.LEDGER_UNAVAILABLE
            )

        now = self._clock()
        eligibility = check_eligible(ledger, key, now, self._config.cooldown_ms)
        if isinstance(eligibility, Blocked):
            log.info(
                f"Claim rejected (cooldown) for {key}: "
                f"{eligibility.remaining_hours}h remaining"
            )
            return ClaimOutcome(
                status=ClaimStatus.REJECTED_COOLDOWN,
                message=messages.cooldown_message(eligibility.remaining_hours),
                key=key,
                remaining_hours=eligibility.remaining_hours,
                error_kind="cooldown_active",
            )

        # ---- TransferSubmitted ----
        try:
            result = await self._executor.transfer(
                request.destination_address, request.amount
            )
        except TransferError as e:
            if e.ambiguous:
                log.error(
                    f"RECONCILE: transfer outcome unknown for key={key} "
                    f"destination={request.destination_address} tx={e.tx_hash} "
                    f"({e.kind}: {e}); claim NOT recorded, NOT retried"
                )
            else:
                log.error(
                    f"Transfer failed for key={key} "
                    f"destination={request.destination_address} ({e.kind}: {e})",
                    exc_info=True,
                )
            return self._failed(e.kind, key=key)

        # ---- LedgerUpdated ----
        previous = ledger.get(key)
        claimed_at = max(now, previous.last_claimed_at) if previous else now
        record = ClaimRecord(
            key=key, last_claimed_at=claimed_at, last_tx_id=result.tx_id
        )
        ledger[key] = record
        try:
            self._ledger.save(ledger)
        except OSError as e:
            # Tokens are already sent: report success, hold the record in
            # memory and refuse claims until it reaches disk.
            self._unsaved[key] = record
            log.critical(
                f"RECONCILE: transfer {result.tx_id} to "
                f"{request.destination_address} confirmed but ledger write "
                f"failed for key={key}: {e}; claims halted until the ledger "
                f"is writable"
            )

        # ---- Succeeded ----
        log.info(
            f"Claim succeeded: key={key} amount={request.amount} "
            f"destination={request.destination_address} tx={result.tx_id}"
        )
        return ClaimOutcome(
            status=ClaimStatus.SUCCEEDED,
            message=messages.success_message(
                amount=request.amount,
                symbol=self._config.token_symbol,
                destination=request.destination_address,
                tx_id=result.tx_id,
                explorer_tx_url=self._config.explorer_tx_url,
            ),
            key=key,
            tx_id=result.tx_id,
        )

    # --------------------------------------------------
    # Read-only status
    # --------------------------------------------------

    async def cooldown_status(
        self,
        *,
        requester_id,
        destination_address: Optional[str] = None,
    ) -> str:
        """
        Describe whether the caller's claim key could claim now.
        Never writes the ledger.
        """
        if destination_address and not is_valid_address(destination_address):
            return messages.INVALID_ADDRESS

        key = self.claim_key(requester_id, destination_address)
        if key is None:
            return "ℹ️ Provide the wallet address you want to check."

        try:
            ledger = self._merge_unsaved(self._ledger.load())
        except CorruptLedger as e:
            log.error(f"Status check failed: {e}")
            return messages.LEDGER_UNAVAILABLE

        eligibility = check_eligible(
            ledger, key, self._clock(), self._config.cooldown_ms
        )
        if isinstance(eligibility, Blocked):
            return messages.cooldown_message(eligibility.remaining_hours)
        return messages.eligible_message()
