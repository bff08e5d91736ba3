"""
guildkeeper.bot.cogs.tasks — Periodic Background Tasks
=======================================================

- **Weekly reset** — Mondays 00:00 UTC, snapshots the weekly leaderboards
  and zeroes every weekly counter (one transaction).
- **Integrity audit** — daily, logs any identity-graph inconsistency.
"""

from __future__ import annotations

import datetime
import logging
from typing import TYPE_CHECKING

from discord.ext import commands, tasks

from guildkeeper.engine.errors import MemberDBError
from guildkeeper.services.integrity_service import check_integrity
from guildkeeper.services.query_service import weekly_reset

if TYPE_CHECKING:
    from guildkeeper.bot.core import KeeperBot

logger = logging.getLogger(__name__)

RESET_TIME = datetime.time(hour=0, minute=0, tzinfo=datetime.timezone.utc)
RESET_WEEKDAY = 0  # Monday


class PeriodicTasks(commands.Cog):
    """Cog for scheduled maintenance."""

    def __init__(self, bot: KeeperBot) -> None:
        self.bot = bot

    async def cog_load(self) -> None:
        self.weekly_reset_loop.start()
        self.integrity_loop.start()

    async def cog_unload(self) -> None:
        self.weekly_reset_loop.cancel()
        self.integrity_loop.cancel()

    # -------------------------------------------------------------------
    # Weekly reset
    # -------------------------------------------------------------------
    @tasks.loop(time=RESET_TIME)
    async def weekly_reset_loop(self) -> None:
        if datetime.datetime.now(datetime.timezone.utc).weekday() != RESET_WEEKDAY:
            return
        try:
            event = await weekly_reset(self.bot.db)
        except MemberDBError:
            logger.exception("Weekly reset failed", extra={"task": "weekly_reset"})
            return
        logger.info(
            "Weekly reset complete: %d message, %d voice, %d online, %d xp entries",
            len(event.message_lb), len(event.voice_lb), len(event.online_lb), len(event.xp_lb),
        )

    @weekly_reset_loop.before_loop
    async def _wait_weekly_reset(self) -> None:
        await self.bot.wait_until_ready()

    # -------------------------------------------------------------------
    # Integrity audit
    # -------------------------------------------------------------------
    @tasks.loop(hours=24)
    async def integrity_loop(self) -> None:
        try:
            issues = await self.bot.db.fetch(check_integrity)
        except MemberDBError:
            logger.exception("Integrity check failed", extra={"task": "integrity"})
            return
        for issue in issues:
            logger.warning("Integrity: %s", issue)
        if not issues:
            logger.info("Integrity check passed")

    @integrity_loop.before_loop
    async def _wait_integrity(self) -> None:
        await self.bot.wait_until_ready()


async def setup(bot: KeeperBot) -> None:
    await bot.add_cog(PeriodicTasks(bot))
