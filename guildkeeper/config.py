"""
guildkeeper.config — YAML Configuration Loader & Tag Store
===========================================================

**Why this file exists:**
``config.yaml`` holds the bot's infrastructure settings (prefix, main guild,
event-bus sizing) plus the initial channel / user tags.  Secrets
(``DISCORD_TOKEN``, ``DATABASE_URL``) stay in ``.env``.

The :class:`TagStore` answers the only questions the core ever asks the
configuration layer: "is activity in this channel tracked?" and "may the
bot touch this user's nickname / roles?".

Usage::

    from guildkeeper.config import load_config

    cfg = load_config()              # reads ./config.yaml by default
    tags = TagStore.from_config(cfg)
    tags.is_channel_tracked(channel_id, category_id)
"""

from __future__ import annotations

import enum
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path

import yaml


class ChannelTag(enum.StrEnum):
    NO_TRACK = "NoTrack"


class UserTag(enum.StrEnum):
    NO_NICK_UPDATE = "NoNickUpdate"
    NO_ROLE_UPDATE = "NoRoleUpdate"


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class KeeperConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Discord
    bot_prefix: str
    main_guild_id: int  # Guild whose members are tracked

    # Event bus
    event_capacity: int = 64
    publish_timeout: float | None = None  # Reserved; publishing never blocks

    # Activity
    voice_flush_seconds: int = 60

    # Initial tags
    untracked_channel_ids: frozenset[int] = field(default_factory=frozenset)
    untracked_category_ids: frozenset[int] = field(default_factory=frozenset)
    no_role_update_user_ids: frozenset[int] = field(default_factory=frozenset)
    no_nick_update_user_ids: frozenset[int] = field(default_factory=frozenset)


def _id_set(raw: dict, key: str) -> frozenset[int]:
    return frozenset(int(v) for v in raw.get(key) or ())


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> KeeperConfig:
    """Read *path* and return a :class:`KeeperConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    timeout = raw.get("publish_timeout")
    return KeeperConfig(
        bot_prefix=raw["bot_prefix"],
        main_guild_id=int(raw["main_guild_id"]),
        event_capacity=int(raw.get("event_capacity", 64)),
        publish_timeout=float(timeout) if timeout is not None else None,
        voice_flush_seconds=int(raw.get("voice_flush_seconds", 60)),
        untracked_channel_ids=_id_set(raw, "untracked_channel_ids"),
        untracked_category_ids=_id_set(raw, "untracked_category_ids"),
        no_role_update_user_ids=_id_set(raw, "no_role_update_user_ids"),
        no_nick_update_user_ids=_id_set(raw, "no_nick_update_user_ids"),
    )


# ---------------------------------------------------------------------------
# Tag store
# ---------------------------------------------------------------------------
class TagStore:
    """Mutable map of channel / category / user ids to their tags."""

    def __init__(self) -> None:
        self._channels: defaultdict[int, set[ChannelTag]] = defaultdict(set)
        self._users: defaultdict[int, set[UserTag]] = defaultdict(set)

    @classmethod
    def from_config(cls, cfg: KeeperConfig) -> TagStore:
        store = cls()
        for channel_id in cfg.untracked_channel_ids | cfg.untracked_category_ids:
            store.tag_channel(channel_id, ChannelTag.NO_TRACK)
        for user_id in cfg.no_role_update_user_ids:
            store.tag_user(user_id, UserTag.NO_ROLE_UPDATE)
        for user_id in cfg.no_nick_update_user_ids:
            store.tag_user(user_id, UserTag.NO_NICK_UPDATE)
        return store

    # -- channels -----------------------------------------------------------
    def tag_channel(self, channel_id: int, tag: ChannelTag = ChannelTag.NO_TRACK) -> None:
        self._channels[channel_id].add(tag)

    def untag_channel(self, channel_id: int, tag: ChannelTag = ChannelTag.NO_TRACK) -> None:
        tags = self._channels.get(channel_id)
        if tags is None:
            return
        tags.discard(tag)
        if not tags:
            del self._channels[channel_id]

    def forget_channel(self, channel_id: int) -> None:
        """Drop every tag of a deleted channel."""
        self._channels.pop(channel_id, None)

    def channel_tagged(self, channel_id: int, tag: ChannelTag) -> bool:
        tags = self._channels.get(channel_id)
        return tags is not None and tag in tags

    def is_channel_tracked(self, channel_id: int, category_id: int | None = None) -> bool:
        """A channel is tracked unless it or its category is tagged ``NoTrack``."""
        if self.channel_tagged(channel_id, ChannelTag.NO_TRACK):
            return False
        if category_id is not None and self.channel_tagged(category_id, ChannelTag.NO_TRACK):
            return False
        return True

    # -- users --------------------------------------------------------------
    def tag_user(self, user_id: int, tag: UserTag) -> None:
        self._users[user_id].add(tag)

    def untag_user(self, user_id: int, tag: UserTag) -> None:
        tags = self._users.get(user_id)
        if tags is None:
            return
        tags.discard(tag)
        if not tags:
            del self._users[user_id]

    def user_tagged(self, user_id: int, tag: UserTag) -> bool:
        tags = self._users.get(user_id)
        return tags is not None and tag in tags
