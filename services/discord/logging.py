"""
Discord Logging Adapter

Normalizes Discord-originated events (lifecycle, command executions)
into structured payloads on the Discord runtime log.

IMPORTANT:
- This module MUST NOT send network requests
- This module MUST NOT depend on discord.py objects directly
"""

from __future__ import annotations

from typing import Optional, Dict, Any

from shared.logging.logger import get_logger

log = get_logger("discord.logging", runtime="discord")


class DiscordLogAdapter:
    """
    Structured logging for Discord runtime events.
    """

    def __init__(self):
        self._enabled: bool = True

    # --------------------------------------------------
    # Lifecycle / Control
    # --------------------------------------------------

    def disable(self):
        """Disable Discord logging."""
        self._enabled = False
        log.debug("DiscordLogAdapter disabled")

    @property
    def enabled(self) -> bool:
        return self._enabled

    # --------------------------------------------------
    # Structured Events
    # --------------------------------------------------

    def log_event(
        self,
        *,
        event: str,
        level: str = "info",
        guild_id: Optional[int] = None,
        user_id: Optional[int] = None,
        channel_id: Optional[int] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Record a structured Discord event and return the logged payload.
        """

        if not self._enabled:
            return None

        payload = {
            "event": event,
            "guild_id": guild_id,
            "user_id": user_id,
            "channel_id": channel_id,
            "data": data or {},
        }

        if level == "debug":
            log.debug(f"Discord event: {payload}")
        elif level == "warning":
            log.warning(f"Discord event: {payload}")
        elif level == "error":
            log.error(f"Discord event: {payload}")
        else:
            log.info(f"Discord event: {payload}")

        return payload

    # --------------------------------------------------
    # Convenience Helpers
    # --------------------------------------------------

    def log_startup(self):
        """Log Discord runtime startup."""
        self.log_event(event="discord_startup")

    def log_shutdown(self):
        """Log Discord runtime shutdown."""
        self.log_event(event="discord_shutdown")

    def log_command(
        self,
        *,
        command: str,
        guild_id: Optional[int],
        user_id: Optional[int],
        success: bool,
        channel_id: Optional[int] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Log a Discord slash command execution."""
        return self.log_event(
            event="discord_command",
            level="info" if success else "warning",
            data={
                "command": command,
                "success": success,
                "extra": extra or {},
            },
            guild_id=guild_id,
            user_id=user_id,
            channel_id=channel_id,
        )
