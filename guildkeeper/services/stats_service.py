"""
guildkeeper.services.stats_service — Activity Counter Updates
==============================================================

Counter and attribute updates that never change the link shape, so they
carry no integrity risk and emit no events.  Like the Link Engine they take
the open transaction first and run through :meth:`MemberDB.write`.
"""

from __future__ import annotations

import logging

from sqlalchemy import update

from guildkeeper.database import store
from guildkeeper.database.engine import Transaction
from guildkeeper.database.models import DiscordProfile, GuildProfile, WynnProfile
from guildkeeper.engine.errors import storage_context
from guildkeeper.engine.events import DiscordProfileAdd
from guildkeeper.engine.ranks import GuildRank

logger = logging.getLogger(__name__)


def ensure_discord_profile(tx: Transaction, discord_id: int) -> DiscordProfile:
    """Fetch the Discord profile, creating an unlinked one on first sight."""
    profile = store.get_discord_profile(tx.session, discord_id)
    if profile is None:
        logger.info("Creating discord profile %d", discord_id)
        profile = DiscordProfile(id=discord_id, mid=None)
        with storage_context("Failed to insert into discord"):
            tx.session.add(profile)
            tx.session.flush()
        tx.signal(DiscordProfileAdd(discord_id=discord_id, mid=None))
    return profile


# ---------------------------------------------------------------------------
# discord counters
# ---------------------------------------------------------------------------
def update_message(tx: Transaction, amount: int, discord_id: int) -> None:
    with storage_context("Failed to update discord.message and discord.message_week"):
        tx.session.execute(
            update(DiscordProfile)
            .where(DiscordProfile.id == discord_id)
            .values(
                message=DiscordProfile.message + amount,
                message_week=DiscordProfile.message_week + amount,
            )
        )


def update_voice(tx: Transaction, amount: int, discord_id: int) -> None:
    """Add *amount* seconds of voice time."""
    with storage_context("Failed to update discord.voice and discord.voice_week"):
        tx.session.execute(
            update(DiscordProfile)
            .where(DiscordProfile.id == discord_id)
            .values(
                voice=DiscordProfile.voice + amount,
                voice_week=DiscordProfile.voice_week + amount,
            )
        )


def update_reaction(tx: Transaction, amount: int, discord_id: int) -> None:
    with storage_context("Failed to update discord.reaction"):
        tx.session.execute(
            update(DiscordProfile)
            .where(DiscordProfile.id == discord_id)
            .values(reaction=DiscordProfile.reaction + amount)
        )


def update_image(tx: Transaction, amount: int, discord_id: int) -> None:
    with storage_context("Failed to update discord.image"):
        tx.session.execute(
            update(DiscordProfile)
            .where(DiscordProfile.id == discord_id)
            .values(image=DiscordProfile.image + amount)
        )


# ---------------------------------------------------------------------------
# wynn / guild
# ---------------------------------------------------------------------------
def update_activity(tx: Transaction, mcid: str, amount: int) -> None:
    """Add *amount* seconds of online time."""
    with storage_context("Failed to update wynn.activity and wynn.activity_week"):
        tx.session.execute(
            update(WynnProfile)
            .where(WynnProfile.id == mcid)
            .values(
                activity=WynnProfile.activity + amount,
                activity_week=WynnProfile.activity_week + amount,
            )
        )


def update_ign(tx: Transaction, mcid: str, ign: str) -> None:
    logger.info("Updating ign of %s to %s", mcid, ign)
    with storage_context("Failed to update wynn.ign"):
        tx.session.execute(update(WynnProfile).where(WynnProfile.id == mcid).values(ign=ign))


def update_guild_rank(tx: Transaction, mcid: str, rank: GuildRank) -> None:
    logger.info("Updating guild rank of %s to %s", mcid, rank)
    with storage_context("Failed to update guild.rank"):
        tx.session.execute(update(GuildProfile).where(GuildProfile.id == mcid).values(rank=rank))


def update_xp(tx: Transaction, mcid: str, amount: int) -> None:
    logger.info("Adding %d guild xp to %s", amount, mcid)
    with storage_context("Failed to update guild.xp and guild.xp_week"):
        tx.session.execute(
            update(GuildProfile)
            .where(GuildProfile.id == mcid)
            .values(xp=GuildProfile.xp + amount, xp_week=GuildProfile.xp_week + amount)
        )
