"""
Discord Faucet Commands

Handlers behind the /faucet and /faucet-status slash commands.

IMPORTANT CONSTRAINTS:
- This module MUST NOT register commands on import
- This module MUST NOT own a Discord client
- All Discord values (ids, options) are passed in as plain values
"""

from __future__ import annotations

from typing import Optional

from shared.logging.logger import get_logger
from services.discord.logging import DiscordLogAdapter
from services.faucet import messages
from services.faucet.models import ClaimOutcome, ClaimStatus
from services.faucet.orchestrator import ClaimOrchestrator

log = get_logger("discord.commands.faucet", runtime="discord")


def _clean_address(address: Optional[str]) -> Optional[str]:
    # Slash command options arrive as typed/pasted; drop stray whitespace.
    if address is None:
        return None
    return address.strip()


class FaucetCommandHandler:
    """
    Declarative handler for faucet commands.

    Every path returns a reply string; unexpected errors are logged and
    turned into the generic failure reply.
    """

    def __init__(
        self,
        *,
        orchestrator: ClaimOrchestrator,
        logger: DiscordLogAdapter,
    ):
        self._orchestrator = orchestrator
        self._logger = logger

    # --------------------------------------------------
    # /faucet
    # --------------------------------------------------

    async def cmd_faucet(
        self,
        *,
        user_id: int,
        guild_id: Optional[int],
        channel_id: Optional[int],
        address: str,
    ) -> ClaimOutcome:
        try:
            outcome = await self._orchestrator.claim(
                requester_id=user_id,
                destination_address=_clean_address(address),
                source_channel_id=channel_id,
            )
        except Exception as e:
            log.error(f"Unhandled faucet error for user {user_id}: {e}", exc_info=True)
            outcome = ClaimOutcome(
                status=ClaimStatus.FAILED,
                message=messages.GENERIC_FAILURE,
                error_kind="unhandled",
            )

        self._logger.log_command(
            command="faucet",
            guild_id=guild_id,
            user_id=user_id,
            channel_id=channel_id,
            success=outcome.succeeded,
            extra={
                "status": outcome.status.value,
                "key": outcome.key,
                "tx": outcome.tx_id,
                "error": outcome.error_kind,
            },
        )
        return outcome

    # --------------------------------------------------
    # /faucet-status
    # --------------------------------------------------

    async def cmd_status(
        self,
        *,
        user_id: int,
        guild_id: Optional[int],
        address: Optional[str] = None,
    ) -> str:
        try:
            reply = await self._orchestrator.cooldown_status(
                requester_id=user_id,
                destination_address=_clean_address(address),
            )
            success = True
        except Exception as e:
            log.error(f"Unhandled faucet-status error for user {user_id}: {e}", exc_info=True)
            reply = messages.GENERIC_FAILURE
            success = False

        self._logger.log_command(
            command="faucet-status",
            guild_id=guild_id,
            user_id=user_id,
            success=success,
        )
        return reply
