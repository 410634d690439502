"""
Discord Command Package

This package centralizes registration for all Discord command surfaces.

Command categories:
- faucet → /faucet claim + /faucet-status

IMPORTANT DESIGN RULES:
- No command registration on import
- No Discord client ownership
- Explicit setup() calls only
"""

from __future__ import annotations

from discord.ext import commands

from shared.logging.logger import get_logger

from services.discord.commands import faucet_commands
from services.discord.commands.faucet import FaucetCommandHandler

log = get_logger("discord.commands", runtime="discord")


def setup(
    bot: commands.Bot,
    *,
    orchestrator,
    logger,
    token_symbol: str,
):
    """
    Register all Discord command surfaces.

    Called exactly once by the Discord client during startup.
    """

    handler = FaucetCommandHandler(
        orchestrator=orchestrator,
        logger=logger,
    )

    faucet_commands.setup(
        bot,
        handler=handler,
        token_symbol=token_symbol,
    )

    log.info("Discord command surfaces initialized")
