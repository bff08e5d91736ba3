"""
guildkeeper.services.profile_service — Member Profile Aggregate
================================================================

Collects a member and every profile it links to, starting from whichever
identifier the caller has at hand (member id, Discord id, game id).
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from guildkeeper.constants import format_duration, format_number
from guildkeeper.database import store
from guildkeeper.database.models import DiscordProfile, GuildProfile, Member, WynnProfile


@dataclass(slots=True)
class Profiles:
    member: Member | None = None
    discord: DiscordProfile | None = None
    wynn: WynnProfile | None = None
    guild: GuildProfile | None = None

    @classmethod
    def from_member(cls, session: Session, mid: int) -> Profiles:
        member = store.get_member(session, mid)
        if member is None:
            return cls()
        profiles = cls(member=member)
        if member.discord is not None:
            profiles.discord = store.get_discord_profile(session, member.discord)
        if member.mcid is not None:
            profiles.wynn = store.get_wynn_profile(session, member.mcid)
            profiles.guild = store.get_guild_profile(session, member.mcid)
        return profiles

    @classmethod
    def from_discord(cls, session: Session, discord_id: int) -> Profiles:
        """Profiles of the member linked to *discord_id*.

        An unlinked Discord profile is returned on its own.
        """
        mid = store.get_discord_mid(session, discord_id)
        if mid is not None:
            return cls.from_member(session, mid)
        return cls(discord=store.get_discord_profile(session, discord_id))

    @classmethod
    def from_mc(cls, session: Session, mcid: str) -> Profiles:
        mid = store.get_wynn_mid(session, mcid)
        if mid is not None:
            return cls.from_member(session, mid)
        return cls(
            wynn=store.get_wynn_profile(session, mcid),
            guild=store.get_guild_profile(session, mcid),
        )

    @property
    def is_empty(self) -> bool:
        return (
            self.member is None
            and self.discord is None
            and self.wynn is None
            and self.guild is None
        )

    def describe(self) -> list[str]:
        """Plain ``label: value`` lines for whichever profiles are present."""
        lines: list[str] = []
        if self.member is not None:
            lines.append(f"member: {self.member.id} ({self.member.type}, {self.member.rank})")
        if self.discord is not None:
            lines.append(f"discord: {self.discord.id}")
            lines.append(
                f"messages: {format_number(self.discord.message)}"
                f" ({format_number(self.discord.message_week)} this week)"
            )
            lines.append(
                f"voice: {format_duration(self.discord.voice)}"
                f" ({format_duration(self.discord.voice_week)} this week)"
            )
        if self.wynn is not None:
            lines.append(f"ign: {self.wynn.ign} ({self.wynn.id})")
            lines.append(
                f"online: {format_duration(self.wynn.activity)}"
                f" ({format_duration(self.wynn.activity_week)} this week)"
            )
        if self.guild is not None:
            lines.append(f"guild rank: {self.guild.rank}")
            lines.append(
                f"guild xp: {format_number(self.guild.xp)}"
                f" ({format_number(self.guild.xp_week)} this week)"
            )
        return lines
