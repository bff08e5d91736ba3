"""
guildkeeper.engine.query — Query Vocabulary (Columns, Stats, Filters, Sorts)
=============================================================================

The closed set of things a user can ask the reporting commands for, plus
parsers for their textual forms:

* :class:`Column` — any selectable value (``"weekly_message"``, ``"ign"``, …)
* :class:`Stat` — the counter columns a leaderboard can rank by
* filters — ``partial``, ``in_guild``, ``has_mc``, ``has_discord``, a member
  type (``guild``), a rank (``"<Pilot"``, ``">Captain"``) or a stat bound
  (``"weekly_voice"``, ``">online:2h"``, ``"xp:0"``)
* :class:`Sort` — ``"ign"`` sorts descending, ``"^ign"`` ascending

Nothing here touches the database; :mod:`guildkeeper.services.query_service`
turns these values into SQL.

Rank comparisons use the rank's numeric value (0 = most privileged), so
``"<Pilot"`` selects Pilot and every rank above it.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from guildkeeper.constants import parse_duration, parse_number
from guildkeeper.database.models import MemberType
from guildkeeper.engine.errors import ProfileType
from guildkeeper.engine.ranks import GuildRank, MemberRank


class Cmp(enum.Enum):
    """Comparison attached to a rank or stat filter."""
    EQ = "="
    LE = "<="
    GE = ">="


# ---------------------------------------------------------------------------
# Columns
# ---------------------------------------------------------------------------
class Column(enum.StrEnum):
    # member
    ID = "id"
    DISCORD_ID = "discord_id"
    MC_ID = "mc_id"
    RANK = "rank"
    TYPE = "type"
    # discord
    MESSAGE = "message"
    WEEKLY_MESSAGE = "weekly_message"
    VOICE = "voice"
    WEEKLY_VOICE = "weekly_voice"
    # wynn
    IN_GUILD = "in_guild"
    IGN = "ign"
    ONLINE = "online"
    WEEKLY_ONLINE = "weekly_online"
    # guild
    GUILD_RANK = "guild_rank"
    XP = "xp"
    WEEKLY_XP = "weekly_xp"

    @property
    def profile(self) -> ProfileType | None:
        """Profile table the column lives in; ``None`` for member columns."""
        return _COLUMN_PROFILE.get(self)

    @property
    def ident(self) -> str:
        """Qualified ``table.column`` name in the store."""
        return _COLUMN_IDENT[self]

    @property
    def table_name(self) -> str:
        """Header shown for the column in a rendered table."""
        if self is Column.ID:
            return "member_id"
        return self.value

    @property
    def is_duration(self) -> bool:
        return self in _DURATION_COLUMNS

    @classmethod
    def from_str(cls, text: str) -> Column:
        try:
            return cls(text)
        except ValueError:
            raise ValueError(f"Failed to parse {text!r} as Column") from None


_COLUMN_PROFILE: dict[Column, ProfileType] = {
    Column.MESSAGE: ProfileType.DISCORD,
    Column.WEEKLY_MESSAGE: ProfileType.DISCORD,
    Column.VOICE: ProfileType.DISCORD,
    Column.WEEKLY_VOICE: ProfileType.DISCORD,
    Column.IN_GUILD: ProfileType.WYNN,
    Column.IGN: ProfileType.WYNN,
    Column.ONLINE: ProfileType.WYNN,
    Column.WEEKLY_ONLINE: ProfileType.WYNN,
    Column.GUILD_RANK: ProfileType.GUILD,
    Column.XP: ProfileType.GUILD,
    Column.WEEKLY_XP: ProfileType.GUILD,
}

_COLUMN_IDENT: dict[Column, str] = {
    Column.ID: "member.id",
    Column.DISCORD_ID: "member.discord",
    Column.MC_ID: "member.mcid",
    Column.RANK: "member.rank",
    Column.TYPE: "member.type",
    Column.MESSAGE: "discord.message",
    Column.WEEKLY_MESSAGE: "discord.message_week",
    Column.VOICE: "discord.voice",
    Column.WEEKLY_VOICE: "discord.voice_week",
    Column.IN_GUILD: "wynn.guild",
    Column.IGN: "wynn.ign",
    Column.ONLINE: "wynn.activity",
    Column.WEEKLY_ONLINE: "wynn.activity_week",
    Column.GUILD_RANK: "guild.rank",
    Column.XP: "guild.xp",
    Column.WEEKLY_XP: "guild.xp_week",
}

_DURATION_COLUMNS = frozenset(
    {Column.VOICE, Column.WEEKLY_VOICE, Column.ONLINE, Column.WEEKLY_ONLINE}
)


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------
class Stat(enum.StrEnum):
    MESSAGE = "message"
    WEEKLY_MESSAGE = "weekly_message"
    VOICE = "voice"
    WEEKLY_VOICE = "weekly_voice"
    ONLINE = "online"
    WEEKLY_ONLINE = "weekly_online"
    XP = "xp"
    WEEKLY_XP = "weekly_xp"

    def to_column(self) -> Column:
        return Column(self.value)

    @classmethod
    def from_column(cls, column: Column) -> Stat | None:
        try:
            return cls(column.value)
        except ValueError:
            return None

    @classmethod
    def from_str(cls, text: str) -> Stat:
        try:
            return cls(text)
        except ValueError:
            raise ValueError(f"Failed to parse {text!r} as Stat") from None

    def parse_val(self, text: str) -> int:
        """Durations (``"1h30m"``) for time stats, plain numbers otherwise."""
        if self.to_column().is_duration:
            return parse_duration(text)
        value = parse_number(text)
        if value < 0:
            raise ValueError("Number can't be negative")
        return value


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Partial:
    """Members that are not ``FULL``."""


@dataclass(frozen=True, slots=True)
class InGuild:
    """Members whose game account is in the guild."""


@dataclass(frozen=True, slots=True)
class HasMc:
    pass


@dataclass(frozen=True, slots=True)
class HasDiscord:
    pass


@dataclass(frozen=True, slots=True)
class OfType:
    member_type: MemberType


@dataclass(frozen=True, slots=True)
class MemberRankFilter:
    rank: MemberRank
    cmp: Cmp = Cmp.EQ


@dataclass(frozen=True, slots=True)
class GuildRankFilter:
    rank: GuildRank
    cmp: Cmp = Cmp.EQ


@dataclass(frozen=True, slots=True)
class StatFilter:
    stat: Stat
    value: int
    cmp: Cmp = Cmp.EQ


Filter = (
    Partial
    | InGuild
    | HasMc
    | HasDiscord
    | OfType
    | MemberRankFilter
    | GuildRankFilter
    | StatFilter
)

_KEYWORD_FILTERS: dict[str, Filter] = {
    "partial": Partial(),
    "in_guild": InGuild(),
    "has_mc": HasMc(),
    "has_discord": HasDiscord(),
}

_MEMBER_TYPES = frozenset(t.value for t in MemberType)
_STATS = frozenset(s.value for s in Stat)


def parse_filter(text: str) -> Filter:
    """Parse one filter token.

    Accepted forms (``name`` being a rank or stat)::

        partial | in_guild | has_mc | has_discord | full | discord | wynn | guild
        stat                    → stat >= 1
        name | <name | >name    → equal / at most / at least
        stat:val | <stat:val | >stat:val
    """
    text = text.strip()
    if not text:
        raise ValueError("Empty filter")

    if text in _KEYWORD_FILTERS:
        return _KEYWORD_FILTERS[text]
    if text in _MEMBER_TYPES:
        return OfType(MemberType(text))
    if text in _STATS:
        return StatFilter(Stat(text), 1, Cmp.GE)

    cmp = Cmp.EQ
    body = text
    if text[0] == "<":
        cmp, body = Cmp.LE, text[1:]
    elif text[0] == ">":
        cmp, body = Cmp.GE, text[1:]

    if ":" in body:
        stat_name, _, raw_value = body.partition(":")
        stat = Stat.from_str(stat_name)
        return StatFilter(stat, stat.parse_val(raw_value), cmp)

    try:
        return MemberRankFilter(MemberRank.from_name(body), cmp)
    except ValueError:
        pass
    try:
        return GuildRankFilter(GuildRank.from_name(body), cmp)
    except ValueError:
        raise ValueError(f"Failed to parse {text!r} as Filter") from None


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Sort:
    column: Column
    descending: bool = True


def parse_sort(text: str) -> Sort:
    """``"xp"`` → descending, ``"^xp"`` → ascending."""
    text = text.strip()
    if text.startswith("^"):
        return Sort(Column.from_str(text[1:]), descending=False)
    return Sort(Column.from_str(text), descending=True)
