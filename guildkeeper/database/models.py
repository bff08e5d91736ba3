"""
guildkeeper.database.models — SQLAlchemy 2.0 Data Models
=========================================================

The identity store: four tables joined by plain nullable id columns.

Tables:
- member   — the canonical cross-platform identity
- discord  — one row per Discord account ever seen, with activity counters
- wynn     — one row per game account ever seen, with online counters
- guild    — present only while the matching ``wynn`` row is in the guild

Member ↔ profile references are deliberately **not** database foreign keys:
partial members legitimately carry null links and a cascade rewrites both
sides within one transaction, so integrity is enforced by
:mod:`guildkeeper.services.link_service` and audited by
:mod:`guildkeeper.services.integrity_service`.
"""

from __future__ import annotations

import enum

from sqlalchemy import BigInteger, Boolean, Integer, String, TypeDecorator
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from guildkeeper.engine.ranks import GuildRank, MemberRank


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all guildkeeper ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class MemberType(enum.StrEnum):
    """Which profiles a member is linked to."""
    FULL = "full"
    DISCORD_PARTIAL = "discord"
    GAME_PARTIAL = "wynn"
    GUILD_PARTIAL = "guild"

    @property
    def is_full(self) -> bool:
        return self is MemberType.FULL

    @property
    def is_partial(self) -> bool:
        return self is not MemberType.FULL


def derive_member_type(
    discord_id: int | None, mcid: str | None, in_guild: bool
) -> MemberType | None:
    """The only correct member type for a given link shape.

    Returns ``None`` for the empty shape (no links), which must never exist
    as a member row.
    """
    if discord_id is not None and mcid is not None:
        return MemberType.FULL
    if discord_id is not None:
        return MemberType.DISCORD_PARTIAL
    if mcid is not None:
        return MemberType.GUILD_PARTIAL if in_guild else MemberType.GAME_PARTIAL
    return None


class _IntEnumColumn(TypeDecorator):
    """Persist an ``IntEnum`` as its integer value, load it back as the enum.

    Integer storage keeps rank columns sortable in SQL (0 = highest rank).
    """

    impl = Integer
    cache_ok = True

    def __init__(self, enum_cls: type[enum.IntEnum]) -> None:
        super().__init__()
        self.enum_cls = enum_cls

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return int(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return self.enum_cls(value)


class _StrEnumColumn(TypeDecorator):
    """Persist a ``StrEnum`` as its string value."""

    impl = String(16)
    cache_ok = True

    def __init__(self, enum_cls: type[enum.StrEnum]) -> None:
        super().__init__()
        self.enum_cls = enum_cls

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(self.enum_cls(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return self.enum_cls(value)


# ---------------------------------------------------------------------------
# Member: the canonical identity
# ---------------------------------------------------------------------------
class Member(Base):
    __tablename__ = "member"

    # AUTOINCREMENT so SQLite never hands out a deleted member's id again.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    discord: Mapped[int | None] = mapped_column(BigInteger, unique=True, default=None)
    mcid: Mapped[str | None] = mapped_column(String(36), unique=True, default=None)
    type: Mapped[MemberType] = mapped_column(_StrEnumColumn(MemberType), nullable=False)
    rank: Mapped[MemberRank] = mapped_column(_IntEnumColumn(MemberRank), nullable=False)

    __table_args__ = {"sqlite_autoincrement": True}

    def __repr__(self) -> str:
        return (
            f"<Member id={self.id} type={self.type} rank={self.rank!r} "
            f"discord={self.discord} mcid={self.mcid!r}>"
        )


# ---------------------------------------------------------------------------
# DiscordProfile, keyed by Discord snowflake
# ---------------------------------------------------------------------------
class DiscordProfile(Base):
    __tablename__ = "discord"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    mid: Mapped[int | None] = mapped_column(Integer, index=True, default=None)
    message: Mapped[int] = mapped_column(BigInteger, default=0)
    message_week: Mapped[int] = mapped_column(BigInteger, default=0)
    image: Mapped[int] = mapped_column(BigInteger, default=0)
    reaction: Mapped[int] = mapped_column(BigInteger, default=0)
    voice: Mapped[int] = mapped_column(BigInteger, default=0)       # seconds
    voice_week: Mapped[int] = mapped_column(BigInteger, default=0)  # seconds
    activity: Mapped[int] = mapped_column(BigInteger, default=0)

    def __repr__(self) -> str:
        return f"<DiscordProfile id={self.id} mid={self.mid}>"


# ---------------------------------------------------------------------------
# WynnProfile, keyed by game account id
# ---------------------------------------------------------------------------
class WynnProfile(Base):
    __tablename__ = "wynn"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    mid: Mapped[int | None] = mapped_column(Integer, index=True, default=None)
    ign: Mapped[str] = mapped_column(String(32), index=True, nullable=False)
    guild: Mapped[bool] = mapped_column(Boolean, default=False)
    emerald: Mapped[int] = mapped_column(BigInteger, default=0)
    emerald_week: Mapped[int] = mapped_column(BigInteger, default=0)
    activity: Mapped[int] = mapped_column(BigInteger, default=0)       # seconds online
    activity_week: Mapped[int] = mapped_column(BigInteger, default=0)  # seconds online

    def __repr__(self) -> str:
        return f"<WynnProfile id={self.id!r} ign={self.ign!r} guild={self.guild}>"


# ---------------------------------------------------------------------------
# GuildProfile: exists only while wynn.guild is true
# ---------------------------------------------------------------------------
class GuildProfile(Base):
    __tablename__ = "guild"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)  # = wynn.id
    rank: Mapped[GuildRank] = mapped_column(_IntEnumColumn(GuildRank), nullable=False)
    xp: Mapped[int] = mapped_column(BigInteger, default=0)
    xp_week: Mapped[int] = mapped_column(BigInteger, default=0)

    def __repr__(self) -> str:
        return f"<GuildProfile id={self.id!r} rank={self.rank!r} xp={self.xp}>"
