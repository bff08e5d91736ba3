"""
guildkeeper.engine.ranks — Member Ranks & In-Game Guild Ranks
==============================================================

Two fixed, totally ordered enumerations.  In both, the lowest value is the
most privileged rank, so ``MemberRank.ZERO < MemberRank.SIX`` reads as
"Founder outranks Cadet".

:class:`GuildRank` maps onto :class:`MemberRank` through a static, injective
table — new guild-partial members take their initial rank from it.
"""

from __future__ import annotations

import enum

__all__ = [
    "MemberRank",
    "GuildRank",
    "MEMBER_RANKS",
    "MANAGED_MEMBER_RANKS",
    "GUILD_RANKS",
    "INIT_MEMBER_RANK",
]


# ---------------------------------------------------------------------------
# Member ranks
# ---------------------------------------------------------------------------
MEMBER_RANK_NAMES: dict[int, str] = {
    0: "Founder",
    1: "Commander",
    2: "Cosmonaut",
    3: "Architect",
    4: "Pilot",
    5: "Rocketeer",
    6: "Cadet",
}

MEMBER_RANK_SYMBOLS: dict[int, str] = {
    0: "\u2742",  # ❂
    1: "\u2742",  # ❂
    2: "\u2748",  # ❈
    3: "\u273e",  # ✾
    4: "\u2732",  # ✲
    5: "\u272e",  # ✮
    6: "\u2727",  # ✧
}


class MemberRank(enum.IntEnum):
    """Discord-side member ranks, 0 = most privileged."""
    ZERO = 0
    ONE = 1
    TWO = 2
    THREE = 3
    FOUR = 4
    FIVE = 5
    SIX = 6

    @property
    def display_name(self) -> str:
        return MEMBER_RANK_NAMES[self.value]

    @property
    def symbol(self) -> str:
        return MEMBER_RANK_SYMBOLS[self.value]

    @property
    def group_name(self) -> str:
        """Name of the Discord group role this rank belongs to."""
        if self <= MemberRank.TWO:
            return "Mission Specialist"
        if self <= MemberRank.FOUR:
            return "Flight Captains"
        return "Passengers"

    def is_same_group(self, other: MemberRank) -> bool:
        return self.group_name == other.group_name

    def promote(self) -> MemberRank | None:
        """Next more privileged rank, or ``None`` at the top."""
        if self.value == 0:
            return None
        return MemberRank(self.value - 1)

    def demote(self) -> MemberRank | None:
        """Next less privileged rank, or ``None`` at the bottom."""
        if self.value == len(MEMBER_RANK_NAMES) - 1:
            return None
        return MemberRank(self.value + 1)

    @classmethod
    def from_name(cls, name: str) -> MemberRank:
        """Parse a display name such as ``"Pilot"`` (case-insensitive)."""
        lowered = name.strip().lower()
        for value, display in MEMBER_RANK_NAMES.items():
            if display.lower() == lowered:
                return cls(value)
        raise ValueError(f"Failed to parse {name!r} as MemberRank")

    def __str__(self) -> str:
        return self.display_name


MEMBER_RANKS: tuple[MemberRank, ...] = tuple(MemberRank)

# Ranks the bot assigns and revokes on Discord.  Zero and One are managed by hand.
MANAGED_MEMBER_RANKS: tuple[MemberRank, ...] = MEMBER_RANKS[2:]

INIT_MEMBER_RANK = MemberRank.SIX


# ---------------------------------------------------------------------------
# In-game guild ranks
# ---------------------------------------------------------------------------
class GuildRank(enum.IntEnum):
    """In-game guild ranks as reported by the game API, 0 = owner."""
    OWNER = 0
    CHIEF = 1
    STRATEGIST = 2
    CAPTAIN = 3
    RECRUITER = 4
    RECRUIT = 5

    @property
    def display_name(self) -> str:
        return self.name.capitalize()

    def to_member_rank(self) -> MemberRank:
        """The member rank a guild member with this guild rank starts at."""
        return GUILD_TO_MEMBER_RANK[self]

    def to_api(self) -> str:
        """All-uppercase form, as it appears in the game API."""
        return self.name

    @classmethod
    def from_api(cls, rank: str) -> GuildRank:
        try:
            return cls[rank]
        except KeyError:
            raise ValueError(f"Failed to convert {rank!r} as GuildRank") from None

    @classmethod
    def from_name(cls, name: str) -> GuildRank:
        """Parse a display name such as ``"Captain"`` (case-insensitive)."""
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise ValueError(f"Failed to parse {name!r} as GuildRank") from None

    def __str__(self) -> str:
        return self.display_name


GUILD_RANKS: tuple[GuildRank, ...] = tuple(GuildRank)

GUILD_TO_MEMBER_RANK: dict[GuildRank, MemberRank] = {
    GuildRank.OWNER: MemberRank.ONE,
    GuildRank.CHIEF: MemberRank.TWO,
    GuildRank.STRATEGIST: MemberRank.THREE,
    GuildRank.CAPTAIN: MemberRank.FOUR,
    GuildRank.RECRUITER: MemberRank.FIVE,
    GuildRank.RECRUIT: MemberRank.SIX,
}
