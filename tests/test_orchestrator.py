from __future__ import annotations

import asyncio
import json
import threading
import time
from pathlib import Path

import pytest

from conftest import HOUR_MS, OTHER_ADDRESS, VALID_ADDRESS, FakeExecutor
from services.faucet import messages
from services.faucet.errors import (
    ConfirmationTimeout,
    InsufficientFunds,
    NetworkError,
    UnknownTransferError,
)
from services.faucet.ledger import LedgerStore
from services.faucet.models import ClaimRecord, ClaimStatus


def _claim(orchestrator, *, user=1, address=VALID_ADDRESS, channel=None):
    return asyncio.run(
        orchestrator.claim(
            requester_id=user,
            destination_address=address,
            source_channel_id=channel,
        )
    )


# --------------------------------------------------
# Happy path
# --------------------------------------------------

def test_first_claim_succeeds_and_records(make_orchestrator, config, clock) -> None:
    orchestrator, executor = make_orchestrator()

    outcome = _claim(orchestrator)

    assert outcome.status is ClaimStatus.SUCCEEDED
    assert executor.calls == [(VALID_ADDRESS, "500")]
    assert "500 BBNK" in outcome.message
    assert "0x5aAe…eAed" in outcome.message
    assert outcome.tx_id in outcome.message

    record = LedgerStore(config.ledger_path).get("1")
    assert record == ClaimRecord(key="1", last_claimed_at=clock.now, last_tx_id=outcome.tx_id)


def test_lowercase_destination_is_sent_checksummed(make_orchestrator) -> None:
    orchestrator, executor = make_orchestrator()

    _claim(orchestrator, address=VALID_ADDRESS.lower())

    assert executor.calls[0][0] == VALID_ADDRESS


def test_success_message_uses_explorer_url(make_orchestrator) -> None:
    orchestrator, _ = make_orchestrator(explorer_tx_url="https://scan.example/tx/{tx}")

    outcome = _claim(orchestrator)

    assert f"https://scan.example/tx/{outcome.tx_id}" in outcome.message


# --------------------------------------------------
# Cooldown
# --------------------------------------------------

def test_cooldown_blocks_then_releases(make_orchestrator, clock) -> None:
    orchestrator, executor = make_orchestrator()
    assert _claim(orchestrator).succeeded

    clock.advance(10 * HOUR_MS)
    blocked = _claim(orchestrator)
    assert blocked.status is ClaimStatus.REJECTED_COOLDOWN
    assert blocked.remaining_hours == "14.0"
    assert blocked.message == messages.cooldown_message("14.0")

    clock.advance(14 * HOUR_MS + 1)
    assert _claim(orchestrator).succeeded
    assert len(executor.calls) == 2


def test_user_mode_keys_by_requester(make_orchestrator) -> None:
    orchestrator, _ = make_orchestrator()

    assert _claim(orchestrator, user=1, address=VALID_ADDRESS).succeeded
    assert _claim(orchestrator, user=1, address=OTHER_ADDRESS).status is ClaimStatus.REJECTED_COOLDOWN
    assert _claim(orchestrator, user=2, address=VALID_ADDRESS).succeeded


def test_wallet_mode_keys_by_destination(make_orchestrator, config) -> None:
    orchestrator, _ = make_orchestrator(claim_key_mode="wallet")

    assert _claim(orchestrator, user=1, address=VALID_ADDRESS).succeeded
    assert _claim(orchestrator, user=2, address=VALID_ADDRESS.upper().replace("0X", "0x")).status is ClaimStatus.REJECTED_COOLDOWN
    assert _claim(orchestrator, user=1, address=OTHER_ADDRESS).succeeded

    assert VALID_ADDRESS.lower() in LedgerStore(config.ledger_path).load()


def test_legacy_ledger_entries_are_honoured(make_orchestrator, config, clock) -> None:
    config.ledger_path.write_text(
        json.dumps({"1": clock.now - 2 * HOUR_MS}), encoding="utf-8"
    )
    orchestrator, executor = make_orchestrator()

    outcome = _claim(orchestrator)

    assert outcome.status is ClaimStatus.REJECTED_COOLDOWN
    assert outcome.remaining_hours == "22.0"
    assert executor.calls == []


# --------------------------------------------------
# Rejections never touch the ledger
# --------------------------------------------------

def _seed(path: Path, clock) -> bytes:
    LedgerStore(path).save(
        {"1": ClaimRecord(key="1", last_claimed_at=clock.now - HOUR_MS, last_tx_id="0x01")}
    )
    return path.read_bytes()


def test_rejected_channel_leaves_ledger_untouched(make_orchestrator, config, clock) -> None:
    before = _seed(config.ledger_path, clock)
    orchestrator, executor = make_orchestrator(channel_id="555")

    outcome = _claim(orchestrator, user=2, channel=777)

    assert outcome.status is ClaimStatus.REJECTED_CHANNEL
    assert "<#555>" in outcome.message
    assert executor.calls == []
    assert config.ledger_path.read_bytes() == before


def test_channel_restriction_allows_matching_channel(make_orchestrator) -> None:
    orchestrator, _ = make_orchestrator(channel_id="555")

    assert _claim(orchestrator, channel=555).succeeded
    assert _claim(orchestrator, user=2, channel=None).status is ClaimStatus.REJECTED_CHANNEL


def test_rejected_address_leaves_ledger_untouched(make_orchestrator, config, clock) -> None:
    before = _seed(config.ledger_path, clock)
    orchestrator, executor = make_orchestrator()

    outcome = _claim(orchestrator, user=2, address="0x1234")

    assert outcome.status is ClaimStatus.REJECTED_ADDRESS
    assert outcome.message == messages.INVALID_ADDRESS
    assert executor.calls == []
    assert config.ledger_path.read_bytes() == before


def test_rejected_cooldown_leaves_ledger_untouched(make_orchestrator, config, clock) -> None:
    before = _seed(config.ledger_path, clock)
    orchestrator, executor = make_orchestrator()

    outcome = _claim(orchestrator, user=1)

    assert outcome.status is ClaimStatus.REJECTED_COOLDOWN
    assert outcome.remaining_hours == "23.0"
    assert executor.calls == []
    assert config.ledger_path.read_bytes() == before


def test_rejections_do_not_create_ledger_file(make_orchestrator, config) -> None:
    orchestrator, _ = make_orchestrator(channel_id="555")

    _claim(orchestrator, channel=1)
    _claim(orchestrator, channel=555, address="nope")

    assert not config.ledger_path.exists()


# --------------------------------------------------
# Transfer failures
# --------------------------------------------------

@pytest.mark.parametrize(
    "error",
    [
        NetworkError("connection refused"),
        InsufficientFunds("balance too low"),
        UnknownTransferError("execution reverted"),
        ConfirmationTimeout("0x" + "ee" * 32, 120),
        NetworkError("lost RPC", tx_hash="0x" + "dd" * 32),
    ],
)
def test_transfer_failure_does_not_consume_cooldown(make_orchestrator, config, clock, error) -> None:
    before = _seed(config.ledger_path, clock)
    orchestrator, executor = make_orchestrator(executor=FakeExecutor(error=error))

    outcome = _claim(orchestrator, user=2)

    assert outcome.status is ClaimStatus.FAILED
    assert outcome.error_kind == error.kind
    assert outcome.message == messages.GENERIC_FAILURE
    assert str(error) not in outcome.message
    assert len(executor.calls) == 1
    assert config.ledger_path.read_bytes() == before


def test_failed_claim_can_be_retried_by_user(make_orchestrator) -> None:
    failing = FakeExecutor(error=NetworkError("down"))
    orchestrator, _ = make_orchestrator(executor=failing)
    assert _claim(orchestrator).status is ClaimStatus.FAILED

    failing.error = None
    assert _claim(orchestrator).succeeded


# --------------------------------------------------
# Corrupt ledger policy
# --------------------------------------------------

def test_corrupt_ledger_halts_by_default(make_orchestrator, config) -> None:
    config.ledger_path.write_text("{oops", encoding="utf-8")
    orchestrator, executor = make_orchestrator()

    outcome = _claim(orchestrator)

    assert outcome.status is ClaimStatus.FAILED
    assert outcome.error_kind == "corrupt_ledger"
    assert outcome.message == messages.LEDGER_UNAVAILABLE
    assert executor.calls == []
    assert config.ledger_path.read_text(encoding="utf-8") == "{oops"


def test_corrupt_ledger_reset_policy_quarantines_and_continues(make_orchestrator, config) -> None:
    config.ledger_path.write_text("{oops", encoding="utf-8")
    orchestrator, executor = make_orchestrator(corrupt_ledger_policy="reset")

    outcome = _claim(orchestrator)

    assert outcome.succeeded
    assert len(executor.calls) == 1
    backups = list(config.ledger_path.parent.glob("cooldowns.json.corrupt-*"))
    assert len(backups) == 1
    assert set(LedgerStore(config.ledger_path).load()) == {"1"}


# --------------------------------------------------
# Concurrency
# --------------------------------------------------

def test_concurrent_claims_for_same_key_send_once(make_orchestrator) -> None:
    orchestrator, executor = make_orchestrator(executor=FakeExecutor(yields=5))

    async def _both():
        return await asyncio.gather(
            orchestrator.claim(requester_id=1, destination_address=VALID_ADDRESS),
            orchestrator.claim(requester_id=1, destination_address=OTHER_ADDRESS),
        )

    outcomes = asyncio.run(_both())

    statuses = sorted(o.status.value for o in outcomes)
    assert statuses == [ClaimStatus.REJECTED_COOLDOWN.value, ClaimStatus.SUCCEEDED.value]
    assert len(executor.calls) == 1


def test_concurrent_claims_for_different_keys_both_persist(make_orchestrator, config) -> None:
    orchestrator, executor = make_orchestrator(executor=FakeExecutor(yields=5))

    async def _both():
        return await asyncio.gather(
            orchestrator.claim(requester_id=1, destination_address=VALID_ADDRESS),
            orchestrator.claim(requester_id=2, destination_address=OTHER_ADDRESS),
        )

    outcomes = asyncio.run(_both())

    assert all(o.succeeded for o in outcomes)
    assert set(LedgerStore(config.ledger_path).load()) == {"1", "2"}


def test_ledger_lock_held_by_another_process_does_not_stall_loop(make_orchestrator, config) -> None:
    fcntl = pytest.importorskip("fcntl")
    orchestrator, executor = make_orchestrator()

    lock_path = config.ledger_path.with_name(config.ledger_path.name + ".lock")
    holder = open(lock_path, "a+", encoding="utf-8")
    fcntl.flock(holder.fileno(), fcntl.LOCK_EX)
    release = threading.Timer(0.5, holder.close)

    async def _tick_while_claiming():
        task = asyncio.create_task(
            orchestrator.claim(requester_id=1, destination_address=VALID_ADDRESS)
        )
        gaps = []
        last = time.monotonic()
        while not task.done():
            await asyncio.sleep(0.01)
            now = time.monotonic()
            gaps.append(now - last)
            last = now
        return await task, gaps

    release.start()
    try:
        outcome, gaps = asyncio.run(_tick_while_claiming())
    finally:
        release.cancel()
        holder.close()

    assert outcome.succeeded
    assert len(executor.calls) == 1
    assert len(gaps) > 10
    assert max(gaps) < 0.3


# --------------------------------------------------
# Ledger write failure after payout
# --------------------------------------------------

def test_unwritable_ledger_halts_claims_after_payout(make_orchestrator, config, monkeypatch) -> None:
    orchestrator, executor = make_orchestrator()

    def _disk_full(self, payload):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(LedgerStore, "_write_atomic", _disk_full)

    paid = _claim(orchestrator, user=1)
    again = _claim(orchestrator, user=1)
    other = _claim(orchestrator, user=2)

    assert paid.succeeded
    for outcome in (again, other):
        assert outcome.status is ClaimStatus.FAILED
        assert outcome.error_kind == "ledger_unwritable"
        assert outcome.message == messages.LEDGER_UNAVAILABLE
    assert len(executor.calls) == 1
    assert asyncio.run(orchestrator.cooldown_status(requester_id=1)) == messages.cooldown_message("24.0")


def test_unsaved_claim_is_written_once_ledger_recovers(make_orchestrator, config, clock, monkeypatch) -> None:
    orchestrator, executor = make_orchestrator()

    def _disk_full(self, payload):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(LedgerStore, "_write_atomic", _disk_full)
    paid = _claim(orchestrator, user=1)
    monkeypatch.undo()

    clock.advance(HOUR_MS)
    blocked = _claim(orchestrator, user=1)

    assert blocked.status is ClaimStatus.REJECTED_COOLDOWN
    assert blocked.remaining_hours == "23.0"
    assert LedgerStore(config.ledger_path).get("1") == ClaimRecord(
        key="1", last_claimed_at=clock.now - HOUR_MS, last_tx_id=paid.tx_id
    )
    assert _claim(orchestrator, user=2).succeeded
    assert len(executor.calls) == 2


# --------------------------------------------------
# Status
# --------------------------------------------------

def test_cooldown_status_is_read_only(make_orchestrator, config, clock) -> None:
    orchestrator, _ = make_orchestrator()

    assert asyncio.run(orchestrator.cooldown_status(requester_id=1)) == messages.eligible_message()
    assert not config.ledger_path.exists()

    _claim(orchestrator)
    clock.advance(HOUR_MS)
    before = config.ledger_path.read_bytes()

    reply = asyncio.run(orchestrator.cooldown_status(requester_id=1))

    assert reply == messages.cooldown_message("23.0")
    assert config.ledger_path.read_bytes() == before


def test_cooldown_status_wallet_mode_needs_address(make_orchestrator) -> None:
    orchestrator, _ = make_orchestrator(claim_key_mode="wallet")

    assert "wallet address" in asyncio.run(orchestrator.cooldown_status(requester_id=1))
    assert asyncio.run(
        orchestrator.cooldown_status(requester_id=1, destination_address="bad")
    ) == messages.INVALID_ADDRESS
