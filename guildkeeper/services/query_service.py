"""
guildkeeper.services.query_service — Leaderboards, Member Lists & Tables
========================================================================

Read-only aggregation over the identity store.  Every query is one
``SELECT … FROM member`` where profile values are pulled in through
correlated scalar subqueries, so members without a given profile simply
show ``NULL`` for its columns.

Results are plain Python values; formatting (durations, names, paging) is
the presentation layer's job.

:func:`reset_weekly_stats` is the one writer here: it snapshots the weekly
leaderboards and zeroes the weekly counters in the same transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy import ColumnElement, Select, exists, func, select, update
from sqlalchemy.orm import Session

from guildkeeper.database.engine import MemberDB, Transaction
from guildkeeper.database.models import (
    DiscordProfile,
    GuildProfile,
    Member,
    MemberType,
    WynnProfile,
)
from guildkeeper.engine.errors import ProfileType, storage_context
from guildkeeper.engine.events import WeeklyReset
from guildkeeper.engine.query import (
    Cmp,
    Column,
    Filter,
    GuildRankFilter,
    HasDiscord,
    HasMc,
    InGuild,
    MemberRankFilter,
    OfType,
    Partial,
    Sort,
    Stat,
    StatFilter,
)
from guildkeeper.engine.ranks import MemberRank

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LeaderboardRow:
    position: int
    name: str
    value: int


@dataclass(frozen=True, slots=True)
class MemberListRow:
    ign: str | None
    discord_id: int | None
    rank: MemberRank


# ---------------------------------------------------------------------------
# SQL building blocks
# ---------------------------------------------------------------------------
def _discord_value(attr) -> ColumnElement:
    return select(attr).where(DiscordProfile.id == Member.discord).scalar_subquery()


def _wynn_value(attr) -> ColumnElement:
    return select(attr).where(WynnProfile.id == Member.mcid).scalar_subquery()


def _guild_value(attr) -> ColumnElement:
    return select(attr).where(GuildProfile.id == Member.mcid).scalar_subquery()


def column_expr(column: Column) -> ColumnElement:
    """SQL expression selecting *column* for the current ``member`` row."""
    match column:
        case Column.ID:
            return Member.id
        case Column.DISCORD_ID:
            return Member.discord
        case Column.MC_ID:
            return Member.mcid
        case Column.RANK:
            return Member.rank
        case Column.TYPE:
            return Member.type
        case Column.MESSAGE:
            return _discord_value(DiscordProfile.message)
        case Column.WEEKLY_MESSAGE:
            return _discord_value(DiscordProfile.message_week)
        case Column.VOICE:
            return _discord_value(DiscordProfile.voice)
        case Column.WEEKLY_VOICE:
            return _discord_value(DiscordProfile.voice_week)
        case Column.IN_GUILD:
            return _wynn_value(WynnProfile.guild)
        case Column.IGN:
            return _wynn_value(WynnProfile.ign)
        case Column.ONLINE:
            return _wynn_value(WynnProfile.activity)
        case Column.WEEKLY_ONLINE:
            return _wynn_value(WynnProfile.activity_week)
        case Column.GUILD_RANK:
            return _guild_value(GuildProfile.rank)
        case Column.XP:
            return _guild_value(GuildProfile.xp)
        case Column.WEEKLY_XP:
            return _guild_value(GuildProfile.xp_week)
    raise ValueError(f"Unknown column {column!r}")


def _compare(expr: ColumnElement, cmp: Cmp, value: Any) -> ColumnElement:
    match cmp:
        case Cmp.EQ:
            return expr == value
        case Cmp.LE:
            return expr <= value
        case Cmp.GE:
            return expr >= value
    raise ValueError(f"Unknown comparison {cmp!r}")


def _in_guild() -> ColumnElement:
    return exists().where(WynnProfile.id == Member.mcid, WynnProfile.guild.is_(True))


def filter_expr(flt: Filter) -> ColumnElement:
    """SQL ``WHERE`` condition for one filter."""
    match flt:
        case Partial():
            return Member.type != MemberType.FULL
        case InGuild():
            return _in_guild()
        case HasMc():
            return Member.mcid.is_not(None)
        case HasDiscord():
            return Member.discord.is_not(None)
        case OfType(member_type=member_type):
            return Member.type == member_type
        case MemberRankFilter(rank=rank, cmp=cmp):
            return _compare(Member.rank, cmp, rank)
        case GuildRankFilter(rank=rank, cmp=cmp):
            return _compare(column_expr(Column.GUILD_RANK), cmp, rank)
        case StatFilter(stat=stat, value=value, cmp=cmp):
            return _compare(column_expr(stat.to_column()), cmp, value)
    raise ValueError(f"Unknown filter {flt!r}")


def _has_profile(profile: ProfileType) -> ColumnElement:
    match profile:
        case ProfileType.DISCORD:
            return Member.discord.is_not(None)
        case ProfileType.WYNN:
            return Member.mcid.is_not(None)
        case ProfileType.GUILD:
            return exists().where(GuildProfile.id == Member.mcid)
    raise ValueError(f"Unknown profile {profile!r}")


def _order_expr(sort: Sort) -> ColumnElement:
    expr = column_expr(sort.column)
    # Rank 0 is the most privileged, so "descending" means ascending values.
    descending = sort.descending
    if sort.column in (Column.RANK, Column.GUILD_RANK):
        descending = not descending
    ordered = expr.desc() if descending else expr.asc()
    return ordered.nulls_last()


def _apply_filters(query: Select, filters: Iterable[Filter]) -> Select:
    for flt in filters:
        query = query.where(filter_expr(flt))
    return query


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def list_members(session: Session, filters: Sequence[Filter] = ()) -> list[MemberListRow]:
    """``(ign, discord_id, rank)`` of every member, by ign ascending."""
    ign = column_expr(Column.IGN)
    query = select(ign.label("ign"), Member.discord, Member.rank)
    query = _apply_filters(query, filters).order_by(ign.asc().nulls_last(), Member.id)
    with storage_context("Failed to list members"):
        rows = session.execute(query).all()
    return [MemberListRow(ign=row.ign, discord_id=row.discord, rank=row.rank) for row in rows]


def stat_leaderboard(
    session: Session, stat: Stat, filters: Sequence[Filter] = ()
) -> list[LeaderboardRow]:
    """Members ranked by *stat*, highest first; ties share a position.

    Rows whose stat is zero are left out, unless *filters* explicitly ask
    for ``stat == 0``.  A member's name is its ign, else its Discord id.
    """
    column = stat.to_column()
    value = column_expr(column)
    ign = column_expr(Column.IGN)

    query = select(
        func.rank().over(order_by=value.desc()).label("position"),
        ign.label("ign"),
        Member.discord,
        value.label("value"),
    ).where(_has_profile(column.profile))
    query = _apply_filters(query, filters)
    if StatFilter(stat, 0, Cmp.EQ) not in filters:
        query = query.where(value != 0)

    subq = query.subquery()
    ordered = select(subq).order_by(subq.c.position, subq.c.ign.asc().nulls_last())

    with storage_context(f"Failed to build {stat} leaderboard"):
        rows = session.execute(ordered).all()
    return [
        LeaderboardRow(
            position=row.position,
            name=row.ign if row.ign is not None else str(row.discord),
            value=row.value or 0,
        )
        for row in rows
    ]


def make_table(
    session: Session,
    columns: Sequence[Column],
    filters: Sequence[Filter] = (),
    sorts: Sequence[Sort] = (),
) -> tuple[list[str], list[list[Any]]]:
    """Arbitrary member table: a header and one row per member.

    The first cell of each row is its position under *sorts* (member id
    order when no sort is given).
    """
    order = [_order_expr(s) for s in sorts] or [Member.id.asc()]
    query = select(
        func.rank().over(order_by=order).label("position"),
        *(column_expr(c).label(c.table_name) for c in columns),
    )
    query = _apply_filters(query, filters).order_by(*order)

    with storage_context("Failed to build member table"):
        rows = session.execute(query).all()
    header = ["#", *(c.table_name for c in columns)]
    return header, [list(row) for row in rows]


# ---------------------------------------------------------------------------
# Weekly reset
# ---------------------------------------------------------------------------
def reset_weekly_stats(tx: Transaction) -> WeeklyReset:
    """Snapshot the weekly leaderboards, then zero every weekly counter."""
    session = tx.session
    event = WeeklyReset(
        message_lb=stat_leaderboard(session, Stat.WEEKLY_MESSAGE),
        voice_lb=stat_leaderboard(session, Stat.WEEKLY_VOICE),
        online_lb=stat_leaderboard(session, Stat.WEEKLY_ONLINE),
        xp_lb=stat_leaderboard(session, Stat.WEEKLY_XP),
    )

    logger.info("Resetting discord weekly stats")
    with storage_context("Failed to set discord weekly stats to 0"):
        session.execute(update(DiscordProfile).values(message_week=0, voice_week=0))
    logger.info("Resetting wynn weekly stats")
    with storage_context("Failed to set wynn weekly stats to 0"):
        session.execute(update(WynnProfile).values(activity_week=0, emerald_week=0))
    logger.info("Resetting guild weekly stats")
    with storage_context("Failed to set guild weekly stats to 0"):
        session.execute(update(GuildProfile).values(xp_week=0))

    tx.signal(event)
    return event


async def weekly_reset(db: MemberDB) -> WeeklyReset:
    return await db.run(reset_weekly_stats)
