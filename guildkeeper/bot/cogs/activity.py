"""
guildkeeper.bot.cogs.activity — Message & Voice Activity Capture
=================================================================

Feeds gateway activity (messages, reactions, voice) from the main guild into
:mod:`guildkeeper.services.activity_service`.  Bots and DMs are ignored;
channel tracking follows the ``NoTrack`` tags in ``bot.tags``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands, tasks

from guildkeeper.services.activity_service import (
    VoiceSnapshot,
    flush_voice,
    record_message,
    record_reaction,
    voice_state_changed,
)

if TYPE_CHECKING:
    from guildkeeper.bot.core import KeeperBot

logger = logging.getLogger(__name__)


def snapshot(state: discord.VoiceState) -> VoiceSnapshot:
    channel = state.channel
    return VoiceSnapshot(
        channel_id=channel.id if channel is not None else None,
        category_id=getattr(channel, "category_id", None),
        muted=bool(state.self_mute or state.mute),
        deafened=bool(state.self_deaf or state.deaf),
    )


def count_images(message: discord.Message) -> int:
    return sum(
        1
        for attachment in message.attachments
        if (attachment.content_type or "").startswith("image/")
    )


class Activity(commands.Cog, name="Activity"):
    """Counts messages, reactions and voice time of linked members."""

    def __init__(self, bot: KeeperBot) -> None:
        self.bot = bot

    async def cog_load(self) -> None:
        self.voice_flush_loop.change_interval(seconds=self.bot.cfg.voice_flush_seconds)
        self.voice_flush_loop.start()

    async def cog_unload(self) -> None:
        self.voice_flush_loop.cancel()

    def _in_main_guild(self, guild: discord.Guild | None) -> bool:
        return guild is not None and guild.id == self.bot.cfg.main_guild_id

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or not self._in_main_guild(message.guild):
            return
        try:
            await record_message(
                self.bot.db,
                self.bot.tags,
                message.author.id,
                message.channel.id,
                getattr(message.channel, "category_id", None),
                images=count_images(message),
            )
        except Exception:
            logger.exception("Error recording message from %s", message.author.id)

    @commands.Cog.listener()
    async def on_raw_reaction_add(self, payload: discord.RawReactionActionEvent) -> None:
        if payload.guild_id != self.bot.cfg.main_guild_id:
            return
        if payload.member is None or payload.member.bot:
            return
        channel = self.bot.get_channel(payload.channel_id)
        try:
            await record_reaction(
                self.bot.db,
                self.bot.tags,
                payload.user_id,
                payload.channel_id,
                getattr(channel, "category_id", None),
            )
        except Exception:
            logger.exception(
                "Error recording reaction on message %s from %s",
                payload.message_id, payload.user_id,
            )

    @commands.Cog.listener()
    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState,
    ) -> None:
        if member.bot or not self._in_main_guild(member.guild):
            return
        try:
            elapsed = await voice_state_changed(
                self.bot.db,
                self.bot.tags,
                self.bot.voice,
                member.id,
                snapshot(before),
                snapshot(after),
            )
        except Exception:
            logger.exception("Error processing voice state update for user %s", member.id)
            return
        if elapsed:
            logger.debug("Credited %ds of voice time to %s", elapsed, member.id)

    @commands.Cog.listener()
    async def on_guild_channel_delete(self, channel: discord.abc.GuildChannel) -> None:
        self.bot.tags.forget_channel(channel.id)

    # -------------------------------------------------------------------
    # Periodic voice flush
    # -------------------------------------------------------------------
    @tasks.loop(seconds=60)
    async def voice_flush_loop(self) -> None:
        """Credit ongoing voice sessions so a restart loses little time."""
        credited = await flush_voice(self.bot.db, self.bot.voice)
        if credited:
            logger.debug("Voice flush credited %d users", credited)

    @voice_flush_loop.before_loop
    async def _wait_voice_flush(self) -> None:
        await self.bot.wait_until_ready()

    @voice_flush_loop.after_loop
    async def _final_voice_flush(self) -> None:
        if self.voice_flush_loop.is_being_cancelled():
            await flush_voice(self.bot.db, self.bot.voice)


async def setup(bot: KeeperBot) -> None:
    await bot.add_cog(Activity(bot))
