"""
guildkeeper.engine.wynn_events — Inbound Game-Roster Events
============================================================

Already-diffed events produced by the external game-API poller.  The poller
publishes them in batches (one batch per poll) on a :class:`WynnSignal`;
:mod:`guildkeeper.services.roster_service` consumes them one at a time.
"""

from __future__ import annotations

from dataclasses import dataclass

from guildkeeper.engine.ranks import GuildRank
from guildkeeper.engine.signal import Signal


@dataclass(frozen=True, slots=True)
class MemberJoin:
    id: str
    rank: GuildRank
    ign: str
    xp: int


@dataclass(frozen=True, slots=True)
class MemberLeave:
    id: str
    rank: GuildRank
    ign: str


@dataclass(frozen=True, slots=True)
class MemberRankChange:
    id: str
    ign: str
    old_rank: GuildRank
    new_rank: GuildRank


@dataclass(frozen=True, slots=True)
class MemberContribute:
    id: str
    ign: str
    old_contrib: int
    new_contrib: int


@dataclass(frozen=True, slots=True)
class MemberNameChange:
    id: str
    old_name: str
    new_name: str


@dataclass(frozen=True, slots=True)
class PlayerOnlineTick:
    """A tracked player was seen online for *elapsed* more seconds."""
    ign: str
    world: str
    elapsed: int


WynnEvent = (
    MemberJoin
    | MemberLeave
    | MemberRankChange
    | MemberContribute
    | MemberNameChange
    | PlayerOnlineTick
)


class WynnSignal(Signal[list[WynnEvent]]):
    """Broadcast channel for batches of game-roster events."""
