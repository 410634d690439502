"""
Discord Client

This module owns the Discord connection itself.
It is intentionally minimal and lifecycle-focused.

Responsibilities:
- connect to Discord
- handle ready / resume / disconnect events
- register the faucet command surface and sync it
- expose a clean async run() / shutdown() contract

IMPORTANT:
- This client MUST be controlled by DiscordSupervisor
- This client MUST NOT create its own event loop
- This client MUST NOT read the environment (config is passed in)
"""

from __future__ import annotations

import asyncio
from typing import Optional

import discord
from discord.ext import commands

from shared.logging.logger import get_logger

from services.discord.logging import DiscordLogAdapter
from services.discord import commands as faucet_command_surfaces

# NOTE: routed to Discord runtime log file
log = get_logger("discord.client", runtime="discord")


class DiscordClient:
    """
    Thin wrapper around discord.py Bot.
    """

    def __init__(self, *, config, orchestrator):
        self._config = config
        self._orchestrator = orchestrator
        self._bot: Optional[commands.Bot] = None
        self._ready_event = asyncio.Event()

        self.logger = DiscordLogAdapter()

    # --------------------------------------------------

    def _build_bot(self) -> commands.Bot:
        """
        Construct the discord.py Bot instance and register commands.
        """

        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = False
        intents.message_content = False  # slash-command only

        bot = commands.Bot(
            command_prefix="!",
            intents=intents,
            application_id=int(self._config.discord_client_id),
        )

        # --------------------------------------------------
        # Command Registration
        # --------------------------------------------------

        faucet_command_surfaces.setup(
            bot,
            orchestrator=self._orchestrator,
            logger=self.logger,
            token_symbol=self._config.token_symbol,
        )

        # --------------------------------------------------
        # Lifecycle Events
        # --------------------------------------------------

        @bot.event
        async def on_ready():
            log.info(
                f"Discord connected as {bot.user} "
                f"(id={bot.user.id}) "
                f"guilds={len(bot.guilds)}"
            )

            # Sync slash commands
            try:
                synced = await bot.tree.sync()
                log.info(f"Discord command tree synced ({len(synced)} commands)")
            except Exception as e:
                log.error(f"Failed to sync Discord commands: {e}")

            self.logger.log_startup()
            self._ready_event.set()

        @bot.event
        async def on_resumed():
            log.info("Discord connection resumed")

        @bot.event
        async def on_disconnect():
            log.warning("Discord connection lost")

        return bot

    # --------------------------------------------------

    async def run(self):
        """
        Start the Discord client and block until shutdown.
        """
        if self._bot is not None:
            raise RuntimeError("Discord client already running")

        log.info("Initializing Discord client")

        self._bot = self._build_bot()

        try:
            await self._bot.start(self._config.discord_token)
        except asyncio.CancelledError:
            log.info("Discord client task cancelled")
            raise
        except Exception as e:
            log.error(f"Discord client crashed: {e}")
            raise
        finally:
            log.info("Discord client stopped")

    # --------------------------------------------------

    async def shutdown(self):
        """
        Gracefully close the Discord connection.
        """
        if not self._bot:
            return

        log.info("Closing Discord connection")

        try:
            await self._bot.close()
        except Exception as e:
            log.warning(f"Discord close error ignored: {e}")

        self.logger.log_shutdown()

        self._bot = None
        self._ready_event.clear()

    # --------------------------------------------------

    async def wait_until_ready(self):
        await self._ready_event.wait()

    @property
    def bot(self) -> Optional[commands.Bot]:
        """
        Expose bot instance (read-only) for supervisor hooks.
        """
        return self._bot
