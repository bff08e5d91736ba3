"""
guildkeeper.bot.core — Bot Instance & Cog Loader
=================================================

**Why this file exists:**
:class:`KeeperBot` is the one object every cog can reach.  It carries:

1. the parsed config (``bot.cfg``) and the channel / user tags
   (``bot.tags``);
2. the :class:`MemberDB` handle (``bot.db``) whose ``DBSignal`` broadcasts
   every identity-graph change;
3. the :class:`WynnSignal` the game-API poller publishes roster batches on
   (``bot.wynn_signal``), consumed by the roster loop started here;
4. the shared :class:`VoiceTracker` (``bot.voice``).

Cogs live in ``guildkeeper/bot/cogs/`` and are loaded in ``setup_hook``.
"""

from __future__ import annotations

import asyncio
import logging

import discord
from discord.ext import commands

from guildkeeper.config import KeeperConfig, TagStore
from guildkeeper.database.engine import MemberDB
from guildkeeper.engine.voice_tracker import VoiceTracker
from guildkeeper.engine.wynn_events import WynnSignal
from guildkeeper.services.roster_service import run_roster_loop

logger = logging.getLogger(__name__)

EXTENSIONS: list[str] = [
    "guildkeeper.bot.cogs.activity",
    "guildkeeper.bot.cogs.membership",
    "guildkeeper.bot.cogs.tasks",
]


class KeeperBot(commands.Bot):
    """``commands.Bot`` carrying the member database and shared state."""

    def __init__(self, cfg: KeeperConfig, db: MemberDB) -> None:
        intents = discord.Intents.default()
        intents.message_content = True  # Privileged: prefix commands
        intents.members = True          # Privileged: member join / leave tracking
        intents.presences = False

        super().__init__(command_prefix=cfg.bot_prefix, intents=intents)

        self.cfg = cfg
        self.db = db
        self.tags = TagStore.from_config(cfg)
        self.voice = VoiceTracker()
        self.wynn_signal = WynnSignal(capacity=cfg.event_capacity)
        self._roster_task: asyncio.Task | None = None

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load cogs and start the roster consumer before connecting."""
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except commands.ExtensionError as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

        self._roster_task = asyncio.create_task(
            run_roster_loop(self.db, self.wynn_signal), name="roster-loop"
        )
        self._roster_task.add_done_callback(self._on_roster_done)

    def _on_roster_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Roster loop stopped", exc_info=exc)

    async def on_ready(self) -> None:
        assert self.user is not None
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)
        if self.get_guild(self.cfg.main_guild_id) is None:
            logger.warning("Main guild %d not found", self.cfg.main_guild_id)

    async def close(self) -> None:
        logger.info("Bot shutting down…")
        if self._roster_task is not None:
            self._roster_task.cancel()
        await super().close()
