"""
guildkeeper.engine.events — Identity-Graph Change Events
=========================================================

Every mutation of the member database is described by one or more of the
frozen dataclasses below, published on :class:`DBSignal` after the
transaction that produced them commits.  Each payload carries the ids and
the "before" state a downstream consumer (role sync, nickname sync, logs)
needs to reconcile Discord with the database.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from guildkeeper.database.models import MemberType
from guildkeeper.engine.ranks import GuildRank, MemberRank
from guildkeeper.engine.signal import Signal

__all__ = [
    "MemberAdd",
    "MemberRemove",
    "MemberFullPromote",
    "MemberAutoGuildDemote",
    "MemberGuildStatusLost",
    "MemberRankChange",
    "WynnProfileAdd",
    "WynnProfileBind",
    "WynnProfileUnbind",
    "GuildProfileAdd",
    "DiscordProfileAdd",
    "DiscordProfileBind",
    "DiscordProfileUnbind",
    "WeeklyReset",
    "DBEvent",
    "DBSignal",
]


# ---------------------------------------------------------------------------
# Member lifecycle
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class MemberAdd:
    mid: int
    discord_id: int | None
    mcid: str | None
    rank: MemberRank


@dataclass(frozen=True, slots=True)
class MemberRemove:
    mid: int
    discord_id: int | None
    mcid: str | None


@dataclass(frozen=True, slots=True)
class MemberFullPromote:
    """A partial member gained its missing link and is now ``FULL``."""
    mid: int
    before: MemberType


@dataclass(frozen=True, slots=True)
class MemberAutoGuildDemote:
    """A member kept only its in-guild game link and is now ``GUILD_PARTIAL``."""
    mid: int
    before: MemberType


@dataclass(frozen=True, slots=True)
class MemberGuildStatusLost:
    """A ``GUILD_PARTIAL`` was rebound to an account outside the guild and is
    now ``GAME_PARTIAL``."""
    mid: int
    before: MemberType


@dataclass(frozen=True, slots=True)
class MemberRankChange:
    mid: int
    old: MemberRank
    new: MemberRank


# ---------------------------------------------------------------------------
# Game profiles
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class WynnProfileAdd:
    mcid: str
    mid: int | None


@dataclass(frozen=True, slots=True)
class WynnProfileBind:
    mid: int
    old: str | None
    new: str


@dataclass(frozen=True, slots=True)
class WynnProfileUnbind:
    mid: int
    before: str
    # True when the member was deleted as part of the same operation
    removed: bool


@dataclass(frozen=True, slots=True)
class GuildProfileAdd:
    mcid: str
    rank: GuildRank


# ---------------------------------------------------------------------------
# Discord profiles
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class DiscordProfileAdd:
    discord_id: int
    mid: int | None


@dataclass(frozen=True, slots=True)
class DiscordProfileBind:
    mid: int
    old: int | None
    new: int


@dataclass(frozen=True, slots=True)
class DiscordProfileUnbind:
    mid: int
    before: int
    # True when the member was deleted as part of the same operation
    removed: bool


# ---------------------------------------------------------------------------
# Periodic
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class WeeklyReset:
    """Weekly counters were zeroed; carries the leaderboards from before."""
    message_lb: list = field(default_factory=list)
    voice_lb: list = field(default_factory=list)
    online_lb: list = field(default_factory=list)
    xp_lb: list = field(default_factory=list)


DBEvent = (
    MemberAdd
    | MemberRemove
    | MemberFullPromote
    | MemberAutoGuildDemote
    | MemberGuildStatusLost
    | MemberRankChange
    | WynnProfileAdd
    | WynnProfileBind
    | WynnProfileUnbind
    | GuildProfileAdd
    | DiscordProfileAdd
    | DiscordProfileBind
    | DiscordProfileUnbind
    | WeeklyReset
)


class DBSignal(Signal[DBEvent]):
    """Broadcast channel for identity-graph events."""
