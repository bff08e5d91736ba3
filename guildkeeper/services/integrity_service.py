"""
guildkeeper.services.integrity_service — Identity Graph Audit
==============================================================

Read-only SQL audit of the identity graph.  Each check returns the offending
ids; :func:`check_integrity` turns non-empty results into one readable issue
string each.  An empty list means the graph is closed.

Used by the owner-facing ``check`` command and heavily by the test-suite.
"""

from __future__ import annotations

from sqlalchemy import and_, exists, not_, or_, select
from sqlalchemy.orm import Session

from guildkeeper.database.models import (
    DiscordProfile,
    GuildProfile,
    Member,
    MemberType,
    WynnProfile,
)
from guildkeeper.engine.errors import storage_context


def _wrong_member_type(session: Session) -> list[int]:
    in_guild = (
        select(WynnProfile.guild)
        .where(WynnProfile.id == Member.mcid)
        .scalar_subquery()
    )
    has_discord = Member.discord.is_not(None)
    has_mc = Member.mcid.is_not(None)
    query = select(Member.id).where(
        or_(
            and_(has_discord, has_mc, Member.type != MemberType.FULL),
            and_(has_discord, ~has_mc, Member.type != MemberType.DISCORD_PARTIAL),
            and_(~has_discord, has_mc, not_(in_guild), Member.type != MemberType.GAME_PARTIAL),
            and_(~has_discord, has_mc, in_guild, Member.type != MemberType.GUILD_PARTIAL),
        )
    )
    return list(session.scalars(query))


def _empty_member(session: Session) -> list[int]:
    query = select(Member.id).where(Member.discord.is_(None), Member.mcid.is_(None))
    return list(session.scalars(query))


def _bad_profile_link(session: Session) -> list[int]:
    discord_back = exists().where(
        DiscordProfile.id == Member.discord, DiscordProfile.mid == Member.id
    )
    wynn_back = exists().where(WynnProfile.id == Member.mcid, WynnProfile.mid == Member.id)
    query = select(Member.id).where(
        or_(
            and_(Member.discord.is_not(None), ~discord_back),
            and_(Member.mcid.is_not(None), ~wynn_back),
        )
    )
    return list(session.scalars(query))


def _bad_discord_member_link(session: Session) -> list[int]:
    back = exists().where(Member.id == DiscordProfile.mid, Member.discord == DiscordProfile.id)
    query = select(DiscordProfile.id).where(DiscordProfile.mid.is_not(None), ~back)
    return list(session.scalars(query))


def _bad_wynn_member_link(session: Session) -> list[str]:
    back = exists().where(Member.id == WynnProfile.mid, Member.mcid == WynnProfile.id)
    query = select(WynnProfile.id).where(WynnProfile.mid.is_not(None), ~back)
    return list(session.scalars(query))


def _missing_guild_profile(session: Session) -> list[str]:
    query = select(WynnProfile.id).where(
        WynnProfile.guild.is_(True),
        ~exists().where(GuildProfile.id == WynnProfile.id),
    )
    return list(session.scalars(query))


def _stale_guild_profile(session: Session) -> list[str]:
    """Guild rows whose game profile is missing or no longer in the guild."""
    query = select(GuildProfile.id).where(
        ~exists().where(WynnProfile.id == GuildProfile.id, WynnProfile.guild.is_(True))
    )
    return list(session.scalars(query))


_CHECKS = (
    ("Wrong member type", _wrong_member_type),
    ("Empty member", _empty_member),
    ("Bad profile link", _bad_profile_link),
    ("Bad member link from discord", _bad_discord_member_link),
    ("Bad member link from wynn", _bad_wynn_member_link),
    ("Missing guild profile", _missing_guild_profile),
    ("Guild profile out of guild", _stale_guild_profile),
)


def check_integrity(session: Session) -> list[str]:
    """Audit the whole store; return one issue string per failed check."""
    issues: list[str] = []
    for label, check in _CHECKS:
        with storage_context(f"Failed to run integrity check '{label}'"):
            rows = check(session)
        if rows:
            issues.append(f"{label}: {rows}")
    return issues
