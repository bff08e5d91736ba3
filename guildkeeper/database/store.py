"""
guildkeeper.database.store — Keyed Identity-Store Lookups
==========================================================

Point lookups and existence checks over the four identity tables.  Every
function takes an open :class:`~sqlalchemy.orm.Session` (from
:meth:`MemberDB.read` or ``tx.session``) so lookups compose inside a Link
Engine transaction and see its uncommitted writes.

No scans here; aggregate reads live in
:mod:`guildkeeper.services.query_service`.
"""

from __future__ import annotations

from sqlalchemy import exists, func, select
from sqlalchemy.orm import Session

from guildkeeper.database.models import (
    DiscordProfile,
    GuildProfile,
    Member,
    MemberType,
    WynnProfile,
)
from guildkeeper.engine.errors import storage_context
from guildkeeper.engine.ranks import GuildRank, MemberRank


# ---------------------------------------------------------------------------
# member
# ---------------------------------------------------------------------------
def get_member(session: Session, mid: int) -> Member | None:
    with storage_context(f"Failed to fetch member {mid}"):
        return session.get(Member, mid)


def member_exist(session: Session, mid: int) -> bool:
    with storage_context(f"Failed to check member {mid} existence"):
        return session.scalar(select(exists().where(Member.id == mid)))


def get_member_links(session: Session, mid: int) -> tuple[int | None, str | None]:
    """``(discord_id, mcid)`` of member *mid*; ``(None, None)`` if absent."""
    with storage_context("Failed to fetch member.discord and member.mcid"):
        row = session.execute(
            select(Member.discord, Member.mcid).where(Member.id == mid)
        ).one_or_none()
    if row is None:
        return None, None
    return row.discord, row.mcid


def get_member_type(session: Session, mid: int) -> MemberType | None:
    with storage_context("Failed to fetch member.type"):
        return session.scalar(select(Member.type).where(Member.id == mid))


def get_member_rank(session: Session, mid: int) -> MemberRank | None:
    with storage_context("Failed to fetch member.rank"):
        return session.scalar(select(Member.rank).where(Member.id == mid))


def get_member_count(session: Session) -> int:
    with storage_context("Failed to count members"):
        return session.scalar(select(func.count()).select_from(Member))


# ---------------------------------------------------------------------------
# discord
# ---------------------------------------------------------------------------
def get_discord_profile(session: Session, discord_id: int) -> DiscordProfile | None:
    with storage_context(f"Failed to fetch discord profile {discord_id}"):
        return session.get(DiscordProfile, discord_id)


def discord_profile_exist(session: Session, discord_id: int) -> bool:
    with storage_context("Failed to check discord profile existence"):
        return session.scalar(select(exists().where(DiscordProfile.id == discord_id)))


def get_discord_mid(session: Session, discord_id: int) -> int | None:
    """Member linked to Discord account *discord_id*, if any."""
    with storage_context("Failed to fetch discord.mid"):
        return session.scalar(select(DiscordProfile.mid).where(DiscordProfile.id == discord_id))


# ---------------------------------------------------------------------------
# wynn
# ---------------------------------------------------------------------------
def get_wynn_profile(session: Session, mcid: str) -> WynnProfile | None:
    with storage_context(f"Failed to fetch wynn profile {mcid}"):
        return session.get(WynnProfile, mcid)


def wynn_profile_exist(session: Session, mcid: str) -> bool:
    with storage_context("Failed to check wynn profile existence"):
        return session.scalar(select(exists().where(WynnProfile.id == mcid)))


def get_wynn_mid(session: Session, mcid: str) -> int | None:
    """Member linked to game account *mcid*, if any."""
    with storage_context("Failed to fetch wynn.mid"):
        return session.scalar(select(WynnProfile.mid).where(WynnProfile.id == mcid))


def get_ign_mid(session: Session, ign: str) -> int | None:
    """Member linked to the game account currently named *ign*."""
    with storage_context("Failed to fetch wynn.mid by ign"):
        return session.scalar(select(WynnProfile.mid).where(WynnProfile.ign == ign).limit(1))


def get_ign(session: Session, mcid: str) -> str | None:
    with storage_context("Failed to fetch wynn.ign"):
        return session.scalar(select(WynnProfile.ign).where(WynnProfile.id == mcid))


def get_ign_mcid(session: Session, ign: str) -> str | None:
    with storage_context("Failed to fetch wynn.id by ign"):
        return session.scalar(select(WynnProfile.id).where(WynnProfile.ign == ign).limit(1))


def is_in_guild(session: Session, mcid: str) -> bool:
    """``wynn.guild`` for *mcid*; ``False`` when there is no such profile."""
    with storage_context("Failed to fetch wynn.guild"):
        return bool(session.scalar(select(WynnProfile.guild).where(WynnProfile.id == mcid)))


# ---------------------------------------------------------------------------
# guild
# ---------------------------------------------------------------------------
def get_guild_profile(session: Session, mcid: str) -> GuildProfile | None:
    with storage_context(f"Failed to fetch guild profile {mcid}"):
        return session.get(GuildProfile, mcid)


def guild_profile_exist(session: Session, mcid: str) -> bool:
    with storage_context("Failed to check guild profile existence"):
        return session.scalar(select(exists().where(GuildProfile.id == mcid)))


def get_guild_rank(session: Session, mcid: str) -> GuildRank | None:
    with storage_context("Failed to fetch guild.rank"):
        return session.scalar(select(GuildProfile.rank).where(GuildProfile.id == mcid))


def get_xp(session: Session, mcid: str) -> int | None:
    with storage_context("Failed to fetch guild.xp"):
        return session.scalar(select(GuildProfile.xp).where(GuildProfile.id == mcid))
