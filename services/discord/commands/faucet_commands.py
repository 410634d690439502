"""
Discord Faucet Slash Command Registration

Thin registration layer exposing /faucet and /faucet-status and
delegating ALL logic to FaucetCommandHandler.

IMPORTANT DESIGN RULES:
- NO business logic
- NO persistence
- Discord I/O (responses) ONLY at the boundary
"""

from __future__ import annotations

import discord
from discord import app_commands
from discord.ext import commands

from shared.logging.logger import get_logger
from services.discord.commands.faucet import FaucetCommandHandler

log = get_logger("discord.commands.faucet.register", runtime="discord")


# ==================================================
# Registration Entry Point
# ==================================================

def setup(
    bot: commands.Bot,
    *,
    handler: FaucetCommandHandler,
    token_symbol: str,
):
    """
    Register faucet slash commands on the bot's command tree.
    """

    # --------------------------------------------------
    # /faucet
    # --------------------------------------------------

    @app_commands.command(
        name="faucet",
        description=f"Claim {token_symbol} tokens",
    )
    @app_commands.describe(
        address="Wallet address that should receive the tokens",
    )
    async def faucet(
        interaction: discord.Interaction,
        address: str,
    ):
        # Transfers wait for confirmation; acknowledge first.
        await interaction.response.defer(ephemeral=True)

        outcome = await handler.cmd_faucet(
            user_id=interaction.user.id,
            guild_id=interaction.guild_id,
            channel_id=interaction.channel_id,
            address=address,
        )

        await interaction.followup.send(
            content=outcome.message,
            ephemeral=True,
        )

    # --------------------------------------------------
    # /faucet-status
    # --------------------------------------------------

    @app_commands.command(
        name="faucet-status",
        description="Check when you can next use the faucet",
    )
    @app_commands.describe(
        address="Wallet address to check (required when cooldowns are per wallet)",
    )
    async def faucet_status(
        interaction: discord.Interaction,
        address: str | None = None,
    ):
        reply = await handler.cmd_status(
            user_id=interaction.user.id,
            guild_id=interaction.guild_id,
            address=address,
        )

        await interaction.response.send_message(
            content=reply,
            ephemeral=True,
        )

    # --------------------------------------------------
    # Register Commands
    # --------------------------------------------------

    bot.tree.add_command(faucet)
    bot.tree.add_command(faucet_status)

    log.info("Discord faucet slash commands registered")
