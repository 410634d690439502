"""
Discord Runtime Package

Contained responsibilities:
- Runtime supervision (start / stop orchestration)

IMPORTANT:
- Importing this package MUST NOT start the Discord client
- Importing this package MUST NOT create asyncio tasks
- All runtime execution is owned by DiscordSupervisor
"""

from services.discord.runtime.supervisor import DiscordSupervisor

__all__ = [
    "DiscordSupervisor",
]
