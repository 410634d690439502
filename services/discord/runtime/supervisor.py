"""
Discord Runtime Supervisor

Owns the lifecycle of the faucet bot runtime.

Responsibilities:
- wire the faucet components from one FaucetConfig
- start the Discord client
- perform graceful shutdown (client first, then RPC provider)

IMPORTANT:
- MUST NOT create its own event loop
- MUST NOT install signal handlers
"""

from __future__ import annotations

import asyncio
from typing import Optional, List

from shared.logging.logger import get_logger
from services.discord.client import DiscordClient
from services.faucet.ledger import LedgerStore
from services.faucet.orchestrator import ClaimOrchestrator
from services.faucet.transfer import TransferExecutor

# NOTE: routed to Discord runtime log file
log = get_logger("discord.supervisor", runtime="discord")


class DiscordSupervisor:
    """
    Owns the Discord runtime lifecycle.

    Contract:
    - start() is awaitable
    - shutdown() is idempotent
    """

    def __init__(self, config, *, executor: Optional[TransferExecutor] = None):
        self._config = config
        self._client: Optional[DiscordClient] = None
        self._tasks: List[asyncio.Task] = []
        self._running: bool = False

        self._ledger = LedgerStore(config.ledger_path)
        self._executor = executor or TransferExecutor.from_config(config)
        self._orchestrator = ClaimOrchestrator(
            config=config,
            ledger=self._ledger,
            executor=self._executor,
        )

    # --------------------------------------------------
    # Lifecycle
    # --------------------------------------------------

    async def start(self):
        """
        Start the Discord runtime.
        """
        if self._running:
            log.warning("Discord supervisor already running")
            return

        log.info(
            f"Starting Discord supervisor "
            f"(faucet signer {self._executor.signer_address})"
        )

        self._client = DiscordClient(
            config=self._config,
            orchestrator=self._orchestrator,
        )

        # --------------------------------------------------
        # Discord client main loop
        # --------------------------------------------------
        client_task = asyncio.create_task(self._client.run())
        self._tasks.append(client_task)

        self._running = True
        log.info("Discord supervisor started")

    async def wait(self):
        """
        Block until the Discord client task finishes (crash or close).
        """
        if self._tasks:
            await asyncio.gather(*self._tasks)

    # --------------------------------------------------
    # Shutdown
    # --------------------------------------------------

    async def shutdown(self):
        """
        Gracefully shut down the Discord runtime.
        """
        if not self._running:
            return

        log.info("Shutting down Discord supervisor")

        # --------------------------------------------------
        # Stop Discord client first
        # --------------------------------------------------
        try:
            if self._client:
                await self._client.shutdown()
        except Exception as e:
            log.warning(f"Discord client shutdown error ignored: {e}")

        # --------------------------------------------------
        # Cancel remaining tasks
        # --------------------------------------------------
        for task in self._tasks:
            if not task.done():
                task.cancel()

        if self._tasks:
            await asyncio.gather(
                *self._tasks,
                return_exceptions=True
            )

        self._tasks.clear()
        self._client = None

        await self._executor.close()

        self._running = False
        log.info("Discord supervisor shutdown complete")

    # --------------------------------------------------
    # Read-only Introspection
    # --------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    @property
    def orchestrator(self) -> ClaimOrchestrator:
        return self._orchestrator
