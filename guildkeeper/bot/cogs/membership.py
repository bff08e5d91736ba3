"""
guildkeeper.bot.cogs.membership — Membership Events & Staff Commands
====================================================================

* ``on_member_join`` — a user joining the main guild gets a Discord profile.
* ``on_member_remove`` — a linked member leaving the main guild loses their
  Discord link (a guild partial is kept, anyone else is removed).
* ``whois`` — a member and every linked profile.
* Staff prefix commands (``add``, ``link``, ``unlink``, ``remove``,
  ``promote``, ``demote``) forwarding to
  :mod:`guildkeeper.services.rank_service`.  Rejections are
  :class:`PreconditionError` and are answered with their message.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from guildkeeper.database import store
from guildkeeper.engine.errors import PreconditionError, ProfileType, StorageError
from guildkeeper.services import rank_service
from guildkeeper.services.activity_service import handle_discord_join, handle_discord_leave
from guildkeeper.services.profile_service import Profiles

if TYPE_CHECKING:
    from guildkeeper.bot.core import KeeperBot

logger = logging.getLogger(__name__)


class Membership(commands.Cog, name="Membership"):
    """Keeps Discord membership and the member database in step."""

    def __init__(self, bot: KeeperBot) -> None:
        self.bot = bot

    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member) -> None:
        if member.bot:
            return
        try:
            await handle_discord_join(
                self.bot.db, member.id, member.guild.id, self.bot.cfg.main_guild_id
            )
        except Exception:
            logger.exception("Error processing member join for %s", member.id)

    @commands.Cog.listener()
    async def on_member_remove(self, member: discord.Member) -> None:
        if member.bot:
            return
        try:
            unbound = await handle_discord_leave(
                self.bot.db, member.id, member.guild.id, self.bot.cfg.main_guild_id
            )
        except Exception:
            logger.exception("Error processing member leave for %s", member.id)
            return
        if unbound:
            logger.info("Member left: %s (ID: %d), discord link cleared", member.display_name, member.id)

    async def _mid_of(self, ctx: commands.Context, user: discord.abc.User) -> int | None:
        mid = await self.bot.db.fetch(store.get_discord_mid, user.id)
        if mid is None:
            await ctx.reply(f"{user.display_name} is not a member")
        return mid

    async def cog_command_error(self, ctx: commands.Context, error: commands.CommandError) -> None:
        original = getattr(error, "original", error)
        if isinstance(original, PreconditionError):
            await ctx.reply(str(original))
        elif isinstance(original, StorageError):
            logger.error("Command %s failed: %s", ctx.command, original)
            await ctx.reply("Database error, the change was not applied")
        elif isinstance(error, commands.UserInputError):
            await ctx.reply(str(error))
        else:
            logger.error("Command %s failed", ctx.command, exc_info=original)

    @commands.command(name="whois")
    @commands.guild_only()
    async def whois(self, ctx: commands.Context, user: discord.Member | None = None, mcid: str | None = None) -> None:
        """Show the member behind a Discord user or a game account."""
        if mcid is not None:
            profiles = await self.bot.db.fetch(Profiles.from_mc, mcid)
        else:
            target = user or ctx.author
            profiles = await self.bot.db.fetch(Profiles.from_discord, target.id)
        if profiles.is_empty:
            await ctx.reply("No such member or profile")
            return
        await ctx.reply("\n".join(profiles.describe()))

    # -------------------------------------------------------------------
    # Staff commands
    # -------------------------------------------------------------------
    @commands.command(name="add")
    @commands.guild_only()
    async def add(
        self, ctx: commands.Context, user: discord.Member | None = None,
        mcid: str | None = None, ign: str = "",
    ) -> None:
        """Register a member from a Discord user and / or a game account."""
        mid = await self.bot.db.run(
            rank_service.add_member, user.id if user else None, mcid, ign
        )
        await ctx.reply(f"Added member {mid}")

    @commands.command(name="link")
    @commands.guild_only()
    async def link(self, ctx: commands.Context, user: discord.Member, mcid: str, ign: str = "") -> None:
        """Link a Discord user and a game account into one member."""
        mid = await self.bot.db.run(rank_service.link_profile, user.id, mcid, ign)
        await ctx.reply(f"Linked {user.display_name} and {mcid} as member {mid}")

    @commands.command(name="unlink")
    @commands.guild_only()
    async def unlink(self, ctx: commands.Context, user: discord.Member, profile: str) -> None:
        """Clear a member's ``discord`` or ``wynn`` link."""
        try:
            profile_type = ProfileType(profile.lower())
        except ValueError:
            await ctx.reply("Profile must be 'discord' or 'wynn'")
            return
        mid = await self._mid_of(ctx, user)
        if mid is None:
            return
        removed = await self.bot.db.run(rank_service.unlink_profile, mid, profile_type)
        await ctx.reply(f"Unlinked {profile_type} of member {mid}" + (", member removed" if removed else ""))

    @commands.command(name="remove")
    @commands.guild_only()
    async def remove(self, ctx: commands.Context, user: discord.Member) -> None:
        mid = await self._mid_of(ctx, user)
        if mid is None:
            return
        await self.bot.db.run(rank_service.remove_member, mid)
        await ctx.reply(f"Removed member {mid}")

    @commands.command(name="promote")
    @commands.guild_only()
    async def promote(self, ctx: commands.Context, user: discord.Member) -> None:
        mid = await self._mid_of(ctx, user)
        if mid is None:
            return
        rank = await self.bot.db.run(rank_service.promote_member, mid, ctx.author.id)
        await ctx.reply(f"Promoted {user.display_name} to {rank}")

    @commands.command(name="demote")
    @commands.guild_only()
    async def demote(self, ctx: commands.Context, user: discord.Member) -> None:
        mid = await self._mid_of(ctx, user)
        if mid is None:
            return
        rank = await self.bot.db.run(rank_service.demote_member, mid, ctx.author.id)
        await ctx.reply(f"Demoted {user.display_name} to {rank}")


async def setup(bot: KeeperBot) -> None:
    await bot.add_cog(Membership(bot))
