"""
guildkeeper.services.roster_service — Game Roster Consumer
===========================================================

Applies already-diffed roster events from the game-API poller to the
identity store, one event per transaction.

A ``MemberJoin`` for an account that already has a member is an update,
not an error: it may reveal a name or guild-rank change, which is returned
as follow-up events for the loop to publish on the :class:`WynnSignal`.
"""

from __future__ import annotations

import logging

from guildkeeper.database import store
from guildkeeper.database.engine import MemberDB, Transaction
from guildkeeper.engine.errors import MemberDBError
from guildkeeper.engine.wynn_events import (
    MemberContribute,
    MemberJoin,
    MemberLeave,
    MemberNameChange,
    MemberRankChange,
    PlayerOnlineTick,
    WynnEvent,
    WynnSignal,
)
from guildkeeper.services import stats_service
from guildkeeper.services.link_service import bind_guild_status

logger = logging.getLogger(__name__)


def _join(tx: Transaction, event: MemberJoin) -> list[WynnEvent]:
    session = tx.session
    follow_ups: list[WynnEvent] = []

    if store.get_wynn_mid(session, event.id) is not None:
        old_ign = store.get_ign(session, event.id)
        if old_ign is not None and old_ign != event.ign:
            logger.info("Found ign change of %s: %s → %s", event.id, old_ign, event.ign)
            follow_ups.append(MemberNameChange(id=event.id, old_name=old_ign, new_name=event.ign))

        old_rank = store.get_guild_rank(session, event.id)
        if old_rank is not None and old_rank != event.rank:
            logger.info("Found guild rank change of %s: %s → %s", event.id, old_rank, event.rank)
            follow_ups.append(
                MemberRankChange(id=event.id, ign=event.ign, old_rank=old_rank, new_rank=event.rank)
            )

        if store.is_in_guild(session, event.id):
            return follow_ups

    logger.info("Binding guild profile of %s (%s, %s)", event.id, event.ign, event.rank)
    bind_guild_status(tx, event.id, event.ign, True, event.rank)
    # Guild xp was reset when the account last left, so crediting it again is safe.
    stats_service.update_xp(tx, event.id, event.xp)
    return follow_ups


def apply_wynn_event(tx: Transaction, event: WynnEvent) -> list[WynnEvent]:
    """Apply one roster event; returns follow-up events to publish."""
    match event:
        case MemberJoin():
            return _join(tx, event)
        case MemberLeave(id=mcid, rank=rank, ign=ign):
            logger.info("Removing guild member %s (%s)", mcid, ign)
            bind_guild_status(tx, mcid, ign, False, rank)
        case MemberRankChange(id=mcid, new_rank=new_rank):
            stats_service.update_guild_rank(tx, mcid, new_rank)
        case MemberNameChange(id=mcid, new_name=new_name):
            stats_service.update_ign(tx, mcid, new_name)
        case MemberContribute(id=mcid, old_contrib=old, new_contrib=new):
            stats_service.update_xp(tx, mcid, new - old)
        case PlayerOnlineTick(ign=ign, elapsed=elapsed):
            mcid = store.get_ign_mcid(tx.session, ign)
            if mcid is not None:
                stats_service.update_activity(tx, mcid, elapsed)
        case _:
            logger.warning("Ignoring unknown roster event %r", event)
    return []


async def process_wynn_event(db: MemberDB, event: WynnEvent) -> list[WynnEvent]:
    return await db.run(apply_wynn_event, event)


async def process_batch(db: MemberDB, events: list[WynnEvent]) -> list[WynnEvent]:
    """Apply a poll batch in order.

    A failing event is logged and skipped; the rest of the batch still
    applies.
    """
    follow_ups: list[WynnEvent] = []
    for event in events:
        try:
            follow_ups.extend(await process_wynn_event(db, event))
        except MemberDBError:
            logger.exception("Failed to apply roster event %r", event)
    return follow_ups


async def run_roster_loop(db: MemberDB, signal: WynnSignal) -> None:
    """Consume roster batches until cancelled."""
    logger.info("Starting member manage loop (wynn event)")
    with signal.connect() as receiver:
        async for batch in receiver:
            follow_ups = await process_batch(db, batch)
            if follow_ups:
                signal.signal(follow_ups)
