from __future__ import annotations

import asyncio
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

import pytest

from shared.config.faucet import FaucetConfig
from services.faucet.ledger import LedgerStore
from services.faucet.models import TransferResult
from services.faucet.orchestrator import ClaimOrchestrator

HOUR_MS = 60 * 60 * 1000

VALID_ADDRESS = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
OTHER_ADDRESS = "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359"
TOKEN_ADDRESS = "0x" + "ab" * 20
TEST_PRIVATE_KEY = "0x" + "11" * 32


class FakeClock:
    """Epoch-ms clock the test moves by hand."""

    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeExecutor:
    """Records transfers; optionally raises or yields mid-transfer."""

    def __init__(self, *, error: Optional[Exception] = None, yields: int = 0):
        self.error = error
        self.yields = yields
        self.calls: List[tuple] = []

    async def transfer(self, destination: str, human_amount: str) -> TransferResult:
        self.calls.append((destination, human_amount))
        for _ in range(self.yields):
            await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return TransferResult(tx_id="0x" + f"{len(self.calls):064x}")


@pytest.fixture
def config(tmp_path: Path) -> FaucetConfig:
    return FaucetConfig(
        discord_token="discord-token",
        discord_client_id="123456789",
        rpc_url="http://127.0.0.1:8545",
        token_address=TOKEN_ADDRESS,
        private_key=TEST_PRIVATE_KEY,
        amount="500",
        cooldown_hours=24.0,
        ledger_path=tmp_path / "cooldowns.json",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_orchestrator(config, clock):
    def _make(executor=None, **overrides):
        cfg = replace(config, **overrides) if overrides else config
        executor = executor or FakeExecutor()
        orchestrator = ClaimOrchestrator(
            config=cfg,
            ledger=LedgerStore(cfg.ledger_path),
            executor=executor,
            clock=clock,
        )
        return orchestrator, executor

    return _make
