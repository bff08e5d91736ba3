"""
guildkeeper.services.activity_service — Discord Activity Consumer
==================================================================

Turns Discord gateway activity into counter updates:

* messages in tracked channels from linked members → ``discord.message``
  (plus ``discord.image`` for image attachments), reactions →
  ``discord.reaction``;
* time spent unmuted in tracked voice channels → ``discord.voice``, credited
  on leave and by the periodic :func:`flush_voice`;
* a user joining the main Discord guild gets an unlinked Discord profile;
* a linked member leaving it has their Discord link cleared through the
  Link Engine.

Nothing here imports discord.py; cogs translate gateway objects into plain
ids and :class:`VoiceSnapshot` values first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from guildkeeper.config import TagStore
from guildkeeper.database import store
from guildkeeper.database.engine import MemberDB, Transaction
from guildkeeper.engine.errors import MemberDBError
from guildkeeper.engine.voice_tracker import VoiceTracker
from guildkeeper.services import stats_service
from guildkeeper.services.link_service import bind_discord

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class VoiceSnapshot:
    """The parts of a Discord voice state that decide whether time counts."""

    channel_id: int | None
    category_id: int | None = None
    muted: bool = False
    deafened: bool = False

    def is_active(self, tags: TagStore) -> bool:
        if self.channel_id is None or self.muted or self.deafened:
            return False
        return tags.is_channel_tracked(self.channel_id, self.category_id)


# ---------------------------------------------------------------------------
# Transaction bodies
# ---------------------------------------------------------------------------
def _credit_message(tx: Transaction, discord_id: int, images: int) -> bool:
    if store.get_discord_mid(tx.session, discord_id) is None:
        return False
    stats_service.update_message(tx, 1, discord_id)
    if images:
        stats_service.update_image(tx, images, discord_id)
    return True


def _credit_reaction(tx: Transaction, discord_id: int) -> bool:
    if store.get_discord_mid(tx.session, discord_id) is None:
        return False
    stats_service.update_reaction(tx, 1, discord_id)
    return True


def _register_arrival(tx: Transaction, discord_id: int) -> None:
    stats_service.ensure_discord_profile(tx, discord_id)


def _unbind_departed(tx: Transaction, discord_id: int) -> bool:
    mid = store.get_discord_mid(tx.session, discord_id)
    if mid is None:
        return False
    logger.info("Discord user %d left the main guild, unbinding member %d", discord_id, mid)
    bind_discord(tx, mid, None)
    return True


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
async def record_message(
    db: MemberDB,
    tags: TagStore,
    author_id: int,
    channel_id: int,
    category_id: int | None = None,
    images: int = 0,
) -> bool:
    """Count one message carrying *images* image attachments.

    Returns whether it was credited.
    """
    if not tags.is_channel_tracked(channel_id, category_id):
        return False
    return await db.run(_credit_message, author_id, images)


async def record_reaction(
    db: MemberDB,
    tags: TagStore,
    user_id: int,
    channel_id: int,
    category_id: int | None = None,
) -> bool:
    if not tags.is_channel_tracked(channel_id, category_id):
        return False
    return await db.run(_credit_reaction, user_id)


async def record_voice(db: MemberDB, discord_id: int, seconds: int) -> None:
    if seconds <= 0:
        return
    await db.run(stats_service.update_voice, seconds, discord_id)


async def voice_state_changed(
    db: MemberDB,
    tags: TagStore,
    tracker: VoiceTracker,
    discord_id: int,
    before: VoiceSnapshot | None,
    after: VoiceSnapshot | None,
) -> int | None:
    """Update *tracker* for one voice state change and credit finished time.

    Moving between two active channels credits the time spent in the first
    and keeps tracking.  Returns the seconds credited, if any.
    """
    was_active = before is not None and before.is_active(tags)
    is_active = after is not None and after.is_active(tags)
    if not was_active and not is_active:
        return None

    if await db.fetch(store.get_discord_mid, discord_id) is None:
        tracker.untrack(discord_id)
        return None

    if is_active:
        elapsed = tracker.track(discord_id)
    else:
        elapsed = tracker.untrack(discord_id)

    if elapsed:
        await record_voice(db, discord_id, elapsed)
    return elapsed


async def flush_voice(db: MemberDB, tracker: VoiceTracker) -> int:
    """Credit every tracked user's time since the last checkpoint.

    Returns the number of users credited; a failing user is logged and
    skipped.
    """
    credited = 0
    for discord_id, seconds in tracker.flush_all():
        if not seconds:
            continue
        try:
            await record_voice(db, discord_id, seconds)
        except MemberDBError:
            logger.exception("Failed to credit %ds of voice time to %d", seconds, discord_id)
            continue
        credited += 1
    return credited


async def handle_discord_join(
    db: MemberDB, discord_id: int, guild_id: int, main_guild_id: int
) -> bool:
    """Make sure a user who joined the main guild has a Discord profile."""
    if guild_id != main_guild_id:
        return False
    await db.run(_register_arrival, discord_id)
    return True


async def handle_discord_leave(
    db: MemberDB, discord_id: int, guild_id: int, main_guild_id: int
) -> bool:
    """Clear the Discord link of a member who left the main guild."""
    if guild_id != main_guild_id:
        return False
    return await db.run(_unbind_departed, discord_id)
