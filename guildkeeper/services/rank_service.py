"""
guildkeeper.services.rank_service — Privileged Commands
========================================================

**Why this file exists:**
The Link Engine enforces the identity graph's rules but not who may ask for
what.  This module holds the checks the staff commands apply before calling
into it:

* rank changes — a caller may only touch members strictly below their own
  rank, and only assign ranks strictly below it;
* ``add`` / ``link`` / ``unlink`` / ``remove`` — user-facing preconditions
  that give a clearer rejection than the Link Engine's own errors.

Every function takes the open transaction first, so a check and the change
it guards happen atomically.  ``caller_id`` is the Discord id of the staff
member; ``None`` means the bot itself (no rank check).
"""

from __future__ import annotations

import logging

from guildkeeper.database import store
from guildkeeper.database.engine import Transaction
from guildkeeper.database.models import Member, MemberType
from guildkeeper.engine.errors import (
    LinkOverride,
    MemberAlreadyExist,
    MemberNotFound,
    PreconditionError,
    ProfileType,
    RankPermissionDenied,
    WrongMemberType,
)
from guildkeeper.engine.events import MemberRankChange
from guildkeeper.engine.ranks import INIT_MEMBER_RANK, MemberRank
from guildkeeper.services import link_service

logger = logging.getLogger(__name__)


def _require_member(tx: Transaction, mid: int) -> Member:
    member = store.get_member(tx.session, mid)
    if member is None:
        raise MemberNotFound(mid)
    return member


def caller_rank(tx: Transaction, caller_id: int) -> MemberRank:
    """Rank of the member linked to Discord user *caller_id*."""
    mid = store.get_discord_mid(tx.session, caller_id)
    if mid is None:
        raise RankPermissionDenied("You are not a registered member")
    return store.get_member_rank(tx.session, mid)


# ---------------------------------------------------------------------------
# Rank changes
# ---------------------------------------------------------------------------
def change_member_rank(
    tx: Transaction, mid: int, new_rank: MemberRank, caller_id: int | None = None
) -> MemberRank:
    """Set member *mid* to *new_rank*; returns the old rank."""
    member = _require_member(tx, mid)
    old_rank = member.rank

    if caller_id is not None:
        own = caller_rank(tx, caller_id)
        if old_rank <= own:
            raise RankPermissionDenied(
                f"Can't change the rank of a {old_rank} as a {own}"
            )
        if new_rank <= own:
            raise RankPermissionDenied(f"Can't assign {new_rank} as a {own}")

    if old_rank == new_rank:
        raise PreconditionError(f"Member is already {new_rank}")

    link_service.set_rank(tx, mid, new_rank)
    tx.signal(MemberRankChange(mid=mid, old=old_rank, new=new_rank))
    return old_rank


def promote_member(tx: Transaction, mid: int, caller_id: int | None = None) -> MemberRank:
    """Move member *mid* one rank up; returns the new rank."""
    member = _require_member(tx, mid)
    new_rank = member.rank.promote()
    if new_rank is None:
        raise PreconditionError(f"Member is already at the highest rank ({member.rank})")
    change_member_rank(tx, mid, new_rank, caller_id)
    return new_rank


def demote_member(tx: Transaction, mid: int, caller_id: int | None = None) -> MemberRank:
    """Move member *mid* one rank down; returns the new rank."""
    member = _require_member(tx, mid)
    new_rank = member.rank.demote()
    if new_rank is None:
        raise PreconditionError(f"Member is already at the lowest rank ({member.rank})")
    change_member_rank(tx, mid, new_rank, caller_id)
    return new_rank


# ---------------------------------------------------------------------------
# Membership commands
# ---------------------------------------------------------------------------
def add_member(
    tx: Transaction,
    discord_id: int | None,
    mcid: str | None,
    ign: str = "",
    rank: MemberRank | None = None,
) -> int:
    """Register a new member from either or both accounts; returns its id.

    Without an explicit *rank*, an in-guild account starts at the member
    rank matching its guild rank, anyone else at :data:`INIT_MEMBER_RANK`.
    """
    session = tx.session
    if discord_id is None and mcid is None:
        raise PreconditionError("A Discord or game account is required")

    discord_mid = store.get_discord_mid(session, discord_id) if discord_id is not None else None
    wynn_mid = store.get_wynn_mid(session, mcid) if mcid is not None else None
    if discord_mid is not None:
        raise MemberAlreadyExist(discord_mid)
    if wynn_mid is not None:
        raise MemberAlreadyExist(wynn_mid)

    if rank is None:
        guild_rank = store.get_guild_rank(session, mcid) if mcid is not None else None
        rank = guild_rank.to_member_rank() if guild_rank is not None else INIT_MEMBER_RANK

    if discord_id is not None and mcid is not None:
        return link_service.create_full_member(tx, discord_id, mcid, ign, rank)
    if discord_id is not None:
        return link_service.create_discord_partial(tx, discord_id, rank)
    return link_service.create_game_partial(tx, mcid, rank, ign)


def link_profile(tx: Transaction, discord_id: int, mcid: str, ign: str = "") -> int:
    """Join a Discord account and a game account into one member.

    Exactly one of the two must already belong to a member; the other is
    bound to it.  Returns that member's id.
    """
    session = tx.session
    discord_mid = store.get_discord_mid(session, discord_id)
    wynn_mid = store.get_wynn_mid(session, mcid)

    if discord_mid is not None and discord_mid == wynn_mid:
        raise MemberAlreadyExist(discord_mid)
    if discord_mid is None and wynn_mid is None:
        raise PreconditionError("Neither account belongs to a member, add one first")
    if discord_mid is not None and wynn_mid is not None:
        raise LinkOverride(ProfileType.DISCORD, discord_mid)

    if wynn_mid is not None:
        link_service.bind_discord(tx, wynn_mid, discord_id)
        return wynn_mid

    _, current_mcid = store.get_member_links(session, discord_mid)
    if current_mcid is not None:
        # a linked game account is never silently swapped
        raise LinkOverride(ProfileType.WYNN, discord_mid)
    link_service.bind_game(tx, discord_mid, mcid, ign)
    return discord_mid


def unlink_profile(tx: Transaction, mid: int, profile: ProfileType) -> bool:
    """Clear one link of member *mid*; returns whether the member was removed."""
    member = _require_member(tx, mid)
    match profile:
        case ProfileType.DISCORD:
            return link_service.bind_discord(tx, mid, None)
        case ProfileType.WYNN:
            if member.type is MemberType.GUILD_PARTIAL:
                raise WrongMemberType(member.type)
            return link_service.bind_game(tx, mid, None)
    raise ValueError(f"Profile '{profile}' can't be unlinked directly")


def remove_member(tx: Transaction, mid: int) -> None:
    """Staff removal; guild partials are managed by the roster only."""
    member = _require_member(tx, mid)
    if member.type is MemberType.GUILD_PARTIAL:
        raise WrongMemberType(member.type)
    link_service.remove_member(tx, mid)
