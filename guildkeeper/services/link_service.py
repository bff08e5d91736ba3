"""
guildkeeper.services.link_service — The Link Engine
====================================================

Adds, removes and rebinds the links between a :class:`Member` and its
Discord / game profiles.  Every public function takes the open
:class:`~guildkeeper.database.engine.Transaction` as its first argument and
must be run through :meth:`MemberDB.write` / :meth:`MemberDB.run` (or inside
``MemberDB.begin()``), so a cascade is applied completely or not at all.

After every public function returns, the identity graph is closed again:

1. a member's link points at a profile that links back to it, and
2. a profile's link points at a member that links back to it;
3. no member row is left without links;
4. a ``guild`` row exists exactly when ``wynn.guild`` is true;
5. ``member.type`` is :func:`derive_member_type` of its link shape.

Mid-operation the graph may be open; nothing outside the transaction can
observe that.

Events are queued on the transaction with ``tx.signal`` in the order the
steps happen.  Cascade events (promote / demote / remove) come first, the
terminal ``*ProfileBind`` / ``*ProfileUnbind`` event describing the link
change itself comes last.
"""

from __future__ import annotations

import logging

from guildkeeper.database import store
from guildkeeper.database.engine import Transaction
from guildkeeper.database.models import (
    DiscordProfile,
    GuildProfile,
    Member,
    MemberType,
    WynnProfile,
    derive_member_type,
)
from guildkeeper.engine.errors import (
    LinkOverride,
    MemberAlreadyExist,
    MemberNotFound,
    ProfileType,
    WrongMemberType,
    storage_context,
)
from guildkeeper.engine.events import (
    DiscordProfileAdd,
    DiscordProfileBind,
    DiscordProfileUnbind,
    GuildProfileAdd,
    MemberAdd,
    MemberAutoGuildDemote,
    MemberFullPromote,
    MemberGuildStatusLost,
    MemberRemove,
    WynnProfileAdd,
    WynnProfileBind,
    WynnProfileUnbind,
)
from guildkeeper.engine.ranks import GuildRank, MemberRank

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Low-level helpers (no integrity guarantees on their own)
# ---------------------------------------------------------------------------
def _require_member(tx: Transaction, mid: int) -> Member:
    member = store.get_member(tx.session, mid)
    if member is None:
        raise MemberNotFound(mid)
    return member


def _insert_member(
    tx: Transaction,
    member_type: MemberType,
    rank: MemberRank,
    discord_id: int | None = None,
    mcid: str | None = None,
) -> Member:
    member = Member(discord=discord_id, mcid=mcid, type=member_type, rank=rank)
    with storage_context("Failed to insert into member"):
        tx.session.add(member)
        tx.session.flush()
    logger.info("Inserted %s member %d", member_type, member.id)
    return member


def _delete_member(tx: Transaction, member: Member) -> None:
    logger.info("Deleting member %d", member.id)
    with storage_context("Failed to delete from member"):
        tx.session.delete(member)
        tx.session.flush()


def _set_type(tx: Transaction, member: Member, member_type: MemberType) -> None:
    logger.info("Member %d type %s → %s", member.id, member.type, member_type)
    with storage_context("Failed to set member.type"):
        member.type = member_type
        tx.session.flush()


def _link_discord(tx: Transaction, mid: int | None, discord_id: int) -> None:
    """Point ``discord.mid`` at *mid*, creating the profile if missing."""
    profile = store.get_discord_profile(tx.session, discord_id)
    with storage_context("Failed to update discord.mid"):
        if profile is None:
            logger.info("Creating discord profile %d (mid=%s)", discord_id, mid)
            tx.session.add(DiscordProfile(id=discord_id, mid=mid))
            tx.session.flush()
            tx.signal(DiscordProfileAdd(discord_id=discord_id, mid=mid))
        else:
            profile.mid = mid
            tx.session.flush()


def _ensure_wynn_profile(tx: Transaction, mcid: str, ign: str, mid: int | None = None) -> WynnProfile:
    profile = store.get_wynn_profile(tx.session, mcid)
    if profile is not None:
        return profile
    logger.info("Creating wynn profile %s (%s, mid=%s)", mcid, ign, mid)
    profile = WynnProfile(id=mcid, mid=mid, ign=ign, guild=False)
    with storage_context("Failed to insert into wynn"):
        tx.session.add(profile)
        tx.session.flush()
    tx.signal(WynnProfileAdd(mcid=mcid, mid=mid))
    return profile


def _link_wynn(tx: Transaction, mid: int | None, mcid: str, ign: str = "") -> None:
    """Point ``wynn.mid`` at *mid*, creating the profile if missing."""
    profile = store.get_wynn_profile(tx.session, mcid)
    if profile is None:
        _ensure_wynn_profile(tx, mcid, ign, mid)
        return
    with storage_context("Failed to update wynn.mid"):
        profile.mid = mid
        tx.session.flush()


def _release_discord(tx: Transaction, mid: int, discord_id: int) -> None:
    """Clear ``discord.mid`` only if it still points at *mid*."""
    profile = store.get_discord_profile(tx.session, discord_id)
    if profile is None or profile.mid != mid:
        logger.warning(
            "Discord profile %d does not link back to member %d, leaving it", discord_id, mid
        )
        return
    with storage_context("Failed to update discord.mid"):
        profile.mid = None
        tx.session.flush()


def _release_wynn(tx: Transaction, mid: int, mcid: str) -> None:
    """Clear ``wynn.mid`` only if it still points at *mid*."""
    profile = store.get_wynn_profile(tx.session, mcid)
    if profile is None or profile.mid != mid:
        logger.warning("Wynn profile %s does not link back to member %d, leaving it", mcid, mid)
        return
    with storage_context("Failed to update wynn.mid"):
        profile.mid = None
        tx.session.flush()


def _check_discord_free(tx: Transaction, discord_id: int) -> None:
    owner = store.get_discord_mid(tx.session, discord_id)
    if owner is not None:
        raise MemberAlreadyExist(owner)


def _check_wynn_free(tx: Transaction, mcid: str) -> None:
    owner = store.get_wynn_mid(tx.session, mcid)
    if owner is not None:
        raise MemberAlreadyExist(owner)


# ---------------------------------------------------------------------------
# Member creation
# ---------------------------------------------------------------------------
def create_discord_partial(tx: Transaction, discord_id: int, rank: MemberRank) -> int:
    """Add a Discord-only member; the profile is created if missing.

    Raises :class:`MemberAlreadyExist` if *discord_id* is already linked.
    """
    _check_discord_free(tx, discord_id)
    member = _insert_member(tx, MemberType.DISCORD_PARTIAL, rank, discord_id=discord_id)
    _link_discord(tx, member.id, discord_id)
    tx.signal(MemberAdd(mid=member.id, discord_id=discord_id, mcid=None, rank=rank))
    return member.id


def create_game_partial(tx: Transaction, mcid: str, rank: MemberRank, ign: str) -> int:
    """Add a game-only member; the profile is created if missing.

    A game account that is already in the guild yields a ``GUILD_PARTIAL``.
    """
    _check_wynn_free(tx, mcid)
    member_type = derive_member_type(None, mcid, store.is_in_guild(tx.session, mcid))
    member = _insert_member(tx, member_type, rank, mcid=mcid)
    _link_wynn(tx, member.id, mcid, ign)
    tx.signal(MemberAdd(mid=member.id, discord_id=None, mcid=mcid, rank=rank))
    return member.id


def create_full_member(
    tx: Transaction, discord_id: int, mcid: str, ign: str, rank: MemberRank
) -> int:
    """Add a member linked to both accounts; missing profiles are created."""
    _check_discord_free(tx, discord_id)
    _check_wynn_free(tx, mcid)
    member = _insert_member(tx, MemberType.FULL, rank, discord_id=discord_id, mcid=mcid)
    _link_discord(tx, member.id, discord_id)
    _link_wynn(tx, member.id, mcid, ign)
    tx.signal(MemberAdd(mid=member.id, discord_id=discord_id, mcid=mcid, rank=rank))
    return member.id


# ---------------------------------------------------------------------------
# Discord link
# ---------------------------------------------------------------------------
def bind_discord(tx: Transaction, mid: int, new: int | None) -> bool:
    """Set or clear member *mid*'s Discord link.

    Returns ``True`` if the member was deleted as a consequence.

    Clearing the link leaves a member with at most a game link:

    * game account in guild → demoted to ``GUILD_PARTIAL``;
    * game account not in guild → game link cleared too, member deleted;
    * no game link → member deleted.

    Setting the link on a game-only member promotes it to ``FULL``.
    """
    member = _require_member(tx, mid)
    old = member.discord

    if old == new:
        logger.info("Member %d discord link unchanged (%s), nothing to do", mid, old)
        return False

    if new is not None:
        owner = store.get_discord_mid(tx.session, new)
        if owner is not None and owner != mid:
            raise LinkOverride(ProfileType.DISCORD, owner)

    logger.info("Member %d discord link %s → %s", mid, old, new)
    with storage_context("Failed to set member.discord"):
        member.discord = new
        tx.session.flush()
    if old is not None:
        _link_discord(tx, None, old)
    if new is not None:
        _link_discord(tx, mid, new)

    removed = False
    if new is None:
        mcid = member.mcid
        if mcid is not None and store.is_in_guild(tx.session, mcid):
            before = member.type
            _set_type(tx, member, MemberType.GUILD_PARTIAL)
            tx.signal(MemberAutoGuildDemote(mid=mid, before=before))
        elif mcid is not None:
            logger.info("Member %d game account %s not in guild, removing", mid, mcid)
            with storage_context("Failed to clear member.mcid"):
                member.mcid = None
                tx.session.flush()
            _link_wynn(tx, None, mcid)
            _delete_member(tx, member)
            tx.signal(WynnProfileUnbind(mid=mid, before=mcid, removed=True))
            tx.signal(MemberRemove(mid=mid, discord_id=old, mcid=mcid))
            removed = True
        else:
            _delete_member(tx, member)
            tx.signal(MemberRemove(mid=mid, discord_id=old, mcid=None))
            removed = True
    elif member.type in (MemberType.GAME_PARTIAL, MemberType.GUILD_PARTIAL):
        before = member.type
        _set_type(tx, member, MemberType.FULL)
        tx.signal(MemberFullPromote(mid=mid, before=before))

    if new is None:
        tx.signal(DiscordProfileUnbind(mid=mid, before=old, removed=removed))
    else:
        tx.signal(DiscordProfileBind(mid=mid, old=old, new=new))
    return removed


# ---------------------------------------------------------------------------
# Game link
# ---------------------------------------------------------------------------
def bind_game(tx: Transaction, mid: int, new: str | None, ign: str = "") -> bool:
    """Set or clear member *mid*'s game link.

    Returns ``True`` if the member was deleted as a consequence.

    * A ``GUILD_PARTIAL`` cannot lose its only link here
      (:class:`WrongMemberType`); the roster decides when it leaves.
    * Clearing the link while the old account is in the guild keeps the
      game link and demotes the member to ``GUILD_PARTIAL`` instead (a
      ``FULL`` member loses its Discord link for that).
    * Otherwise clearing deletes the member, through :func:`bind_discord`
      when a Discord link remains.
    * Setting the link on a ``DISCORD_PARTIAL`` promotes it to ``FULL``.
    * Rebinding a game-only member re-derives its type from the new
      account: ``MemberAutoGuildDemote`` when it is in the guild,
      ``MemberGuildStatusLost`` when a ``GUILD_PARTIAL`` moves to an account
      outside it.
    """
    member = _require_member(tx, mid)
    old = member.mcid
    member_type = member.type

    if old == new:
        logger.info("Member %d game link unchanged (%s), nothing to do", mid, old)
        return False

    if new is None:
        if member_type is MemberType.GUILD_PARTIAL:
            raise WrongMemberType(member_type)

        if store.is_in_guild(tx.session, old):
            logger.info(
                "Unbinding game account of %s member %d, but %s is in guild; demoting",
                member_type, mid, old,
            )
            if member_type is MemberType.FULL:
                bind_discord(tx, mid, None)
            else:
                _set_type(tx, member, MemberType.GUILD_PARTIAL)
                tx.signal(MemberAutoGuildDemote(mid=mid, before=member_type))
            return False
    else:
        owner = store.get_wynn_mid(tx.session, new)
        if owner is not None and owner != mid:
            raise LinkOverride(ProfileType.WYNN, owner)

    logger.info("Member %d game link %s → %s", mid, old, new)
    with storage_context("Failed to set member.mcid"):
        member.mcid = new
        tx.session.flush()
    if old is not None:
        _link_wynn(tx, None, old)
    if new is not None:
        _link_wynn(tx, mid, new, ign)

    if new is None:
        if member.discord is not None:
            # leaves an empty member, which bind_discord deletes
            bind_discord(tx, mid, None)
        else:
            _delete_member(tx, member)
            tx.signal(MemberRemove(mid=mid, discord_id=None, mcid=old))
        tx.signal(WynnProfileUnbind(mid=mid, before=old, removed=True))
        return True

    if member_type is MemberType.DISCORD_PARTIAL:
        _set_type(tx, member, MemberType.FULL)
        tx.signal(MemberFullPromote(mid=mid, before=member_type))
    elif member_type is not MemberType.FULL:
        derived = derive_member_type(None, new, store.is_in_guild(tx.session, new))
        if derived is not member_type:
            _set_type(tx, member, derived)
            if derived is MemberType.GUILD_PARTIAL:
                tx.signal(MemberAutoGuildDemote(mid=mid, before=member_type))
            else:
                tx.signal(MemberGuildStatusLost(mid=mid, before=member_type))

    tx.signal(WynnProfileBind(mid=mid, old=old, new=new))
    return False


# ---------------------------------------------------------------------------
# Guild roster status
# ---------------------------------------------------------------------------
def bind_guild_status(
    tx: Transaction, mcid: str, ign: str, in_guild: bool, guild_rank: GuildRank
) -> int | None:
    """Record whether game account *mcid* is in the guild.

    Returns the id of a newly created ``GUILD_PARTIAL`` member, else ``None``.
    """
    profile = _ensure_wynn_profile(tx, mcid, ign)
    guild_profile = store.get_guild_profile(tx.session, mcid)

    with storage_context("Failed to update wynn.guild and guild profile"):
        if in_guild and guild_profile is None:
            logger.info("Creating guild profile %s (%s)", mcid, guild_rank)
            tx.session.add(GuildProfile(id=mcid, rank=guild_rank))
            tx.signal(GuildProfileAdd(mcid=mcid, rank=guild_rank))
        elif not in_guild and guild_profile is not None:
            logger.info("Deleting guild profile %s", mcid)
            tx.session.delete(guild_profile)
        profile.guild = in_guild
        tx.session.flush()

    mid = profile.mid
    if mid is None:
        if not in_guild:
            return None
        member_rank = guild_rank.to_member_rank()
        member = _insert_member(tx, MemberType.GUILD_PARTIAL, member_rank, mcid=mcid)
        _link_wynn(tx, member.id, mcid)
        tx.signal(WynnProfileBind(mid=member.id, old=None, new=mcid))
        tx.signal(MemberAdd(mid=member.id, discord_id=None, mcid=mcid, rank=member_rank))
        return member.id

    member = _require_member(tx, mid)
    if not in_guild and member.type is MemberType.GUILD_PARTIAL:
        logger.info("Guild partial member %d left the guild, removing", mid)
        with storage_context("Failed to clear member.mcid"):
            member.mcid = None
            tx.session.flush()
        _link_wynn(tx, None, mcid)
        tx.signal(WynnProfileUnbind(mid=mid, before=mcid, removed=True))
        discord_id = member.discord
        _delete_member(tx, member)
        tx.signal(MemberRemove(mid=mid, discord_id=discord_id, mcid=mcid))
    elif in_guild and member.type is MemberType.GAME_PARTIAL:
        _set_type(tx, member, MemberType.GUILD_PARTIAL)
        tx.signal(MemberAutoGuildDemote(mid=mid, before=MemberType.GAME_PARTIAL))
    return None


# ---------------------------------------------------------------------------
# Removal & rank
# ---------------------------------------------------------------------------
def remove_member(tx: Transaction, mid: int) -> None:
    """Sever every link of member *mid* and delete it.

    The game link goes first so no guild-demote path can fire.  Exactly one
    ``MemberRemove`` is emitted.
    """
    member = _require_member(tx, mid)
    discord_id, mcid = member.discord, member.mcid
    logger.info("Removing member %d (discord=%s, mcid=%s)", mid, discord_id, mcid)

    with storage_context("Failed to clear member links"):
        member.mcid = None
        member.discord = None
        tx.session.flush()

    if mcid is not None:
        _release_wynn(tx, mid, mcid)
        tx.signal(WynnProfileUnbind(mid=mid, before=mcid, removed=True))
    if discord_id is not None:
        _release_discord(tx, mid, discord_id)
        tx.signal(DiscordProfileUnbind(mid=mid, before=discord_id, removed=True))
    if mcid is None and discord_id is None:
        logger.warning("Deleting member %d found without any profile link", mid)

    _delete_member(tx, member)
    tx.signal(MemberRemove(mid=mid, discord_id=discord_id, mcid=mcid))


def set_rank(tx: Transaction, mid: int, rank: MemberRank) -> None:
    """Assign *rank* directly.  Emits nothing; callers emit ``MemberRankChange``."""
    member = _require_member(tx, mid)
    logger.info("Member %d rank %s → %s", mid, member.rank, rank)
    with storage_context("Failed to update member.rank"):
        member.rank = rank
        tx.session.flush()
