"""
tests/test_link_service.py — Link Engine Tests
===============================================

Creation, binding, guild-roster status and removal, each checked for the
resulting link shape, the events it emits and a clean integrity audit.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time

import pytest

from conftest import run_async

from guildkeeper.database import store
from guildkeeper.database.models import GuildProfile, Member, MemberType
from guildkeeper.engine.errors import (
    LinkOverride,
    MemberAlreadyExist,
    MemberNotFound,
    PreconditionError,
    ProfileType,
    WrongMemberType,
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
from guildkeeper.services.integrity_service import check_integrity
from guildkeeper.services.link_service import (
    bind_discord,
    bind_game,
    bind_guild_status,
    create_discord_partial,
    create_full_member,
    create_game_partial,
    remove_member,
    set_rank,
)


def member_state(db, mid):
    member = db.query(store.get_member, mid)
    if member is None:
        return None
    return member.type, member.discord, member.mcid


def assert_closed(db):
    assert db.query(check_integrity) == []


class TestCreation:
    def test_discord_partial(self, member_db):
        mid, events = member_db.transaction(create_discord_partial, 100, MemberRank.SIX)

        assert member_state(member_db, mid) == (MemberType.DISCORD_PARTIAL, 100, None)
        assert events == [
            DiscordProfileAdd(discord_id=100, mid=mid),
            MemberAdd(mid=mid, discord_id=100, mcid=None, rank=MemberRank.SIX),
        ]
        assert_closed(member_db)

    def test_game_partial(self, member_db):
        mid = member_db.write(create_game_partial, "mc-a", MemberRank.SIX, "Alice")

        assert member_state(member_db, mid) == (MemberType.GAME_PARTIAL, None, "mc-a")
        assert member_db.query(store.get_ign, "mc-a") == "Alice"
        assert_closed(member_db)

    def test_game_partial_of_guild_account_is_guild_partial(self, member_db):
        mid = member_db.write(bind_guild_status, "mc-a", "Alice", True, GuildRank.RECRUIT)
        member_db.write(remove_member, mid)

        new_mid = member_db.write(create_game_partial, "mc-a", MemberRank.SIX, "Alice")

        assert member_state(member_db, new_mid) == (MemberType.GUILD_PARTIAL, None, "mc-a")
        assert_closed(member_db)

    def test_full_member(self, member_db):
        mid = member_db.write(create_full_member, 100, "mc-a", "Alice", MemberRank.FIVE)

        assert member_state(member_db, mid) == (MemberType.FULL, 100, "mc-a")
        assert member_db.query(store.get_member_rank, mid) is MemberRank.FIVE
        assert_closed(member_db)

    def test_existing_unlinked_profile_is_reused(self, member_db):
        """A Discord profile without a member gets linked, not duplicated."""
        mid = member_db.write(create_discord_partial, 100, MemberRank.SIX)
        member_db.write(bind_discord, mid, None)
        assert member_db.query(store.discord_profile_exist, 100)

        new_mid, events = member_db.transaction(create_discord_partial, 100, MemberRank.SIX)

        assert member_db.query(store.get_discord_mid, 100) == new_mid
        assert not any(isinstance(e, DiscordProfileAdd) for e in events)

    def test_member_ids_are_not_reused(self, member_db):
        first = member_db.write(create_discord_partial, 100, MemberRank.SIX)
        member_db.write(remove_member, first)
        second = member_db.write(create_discord_partial, 101, MemberRank.SIX)
        assert second > first


class TestLinkOverrideRejection:
    def test_full_member_with_taken_discord_leaves_state_unchanged(self, member_db, signal):
        owner = member_db.write(create_discord_partial, 100, MemberRank.SIX)
        receiver = signal.connect()

        with pytest.raises(PreconditionError) as excinfo:
            member_db.write(create_full_member, 100, "mc-b", "Bob", MemberRank.SIX)

        assert isinstance(excinfo.value, MemberAlreadyExist)
        assert excinfo.value.mid == owner
        assert member_db.query(store.get_member_count) == 1
        assert not member_db.query(store.wynn_profile_exist, "mc-b")
        assert receiver.drain() == []
        assert_closed(member_db)

    def test_game_partial_with_taken_account(self, member_db):
        owner = member_db.write(create_game_partial, "mc-a", MemberRank.SIX, "Alice")
        with pytest.raises(MemberAlreadyExist) as excinfo:
            member_db.write(create_game_partial, "mc-a", MemberRank.SIX, "Alice")
        assert excinfo.value.mid == owner

    def test_bind_discord_to_other_members_profile(self, member_db):
        owner = member_db.write(create_discord_partial, 100, MemberRank.SIX)
        other = member_db.write(create_game_partial, "mc-a", MemberRank.SIX, "Alice")

        with pytest.raises(LinkOverride) as excinfo:
            member_db.write(bind_discord, other, 100)

        assert excinfo.value.mid == owner
        assert excinfo.value.profile_type is ProfileType.DISCORD
        assert member_state(member_db, other) == (MemberType.GAME_PARTIAL, None, "mc-a")
        assert_closed(member_db)

    def test_bind_game_to_other_members_profile(self, member_db):
        owner = member_db.write(create_game_partial, "mc-a", MemberRank.SIX, "Alice")
        other = member_db.write(create_discord_partial, 100, MemberRank.SIX)

        with pytest.raises(LinkOverride) as excinfo:
            member_db.write(bind_game, other, "mc-a")

        assert excinfo.value.mid == owner
        assert excinfo.value.profile_type is ProfileType.WYNN
        assert member_state(member_db, other) == (MemberType.DISCORD_PARTIAL, 100, None)

    def test_unknown_member(self, member_db):
        with pytest.raises(MemberNotFound):
            member_db.write(bind_discord, 42, 100)


class TestNoOp:
    def test_bind_discord_same_id(self, member_db, signal):
        mid = member_db.write(create_discord_partial, 100, MemberRank.SIX)
        receiver = signal.connect()

        removed = member_db.write(bind_discord, mid, 100)

        assert removed is False
        assert receiver.drain() == []
        assert member_state(member_db, mid) == (MemberType.DISCORD_PARTIAL, 100, None)

    def test_bind_discord_none_when_already_none(self, member_db, signal):
        mid = member_db.write(bind_guild_status, "mc-a", "Alice", True, GuildRank.RECRUIT)
        receiver = signal.connect()

        removed = member_db.write(bind_discord, mid, None)

        assert removed is False
        assert receiver.drain() == []
        assert member_state(member_db, mid) == (MemberType.GUILD_PARTIAL, None, "mc-a")

    def test_bind_game_same_id(self, member_db):
        mid = member_db.write(create_game_partial, "mc-a", MemberRank.SIX, "Alice")
        _, events = member_db.transaction(bind_game, mid, "mc-a")
        assert events == []


class TestPromotion:
    def test_discord_partial_gains_game_link(self, member_db):
        mid = member_db.write(create_discord_partial, 100, MemberRank.SIX)

        removed, events = member_db.transaction(bind_game, mid, "mc-a", "Alice")

        assert removed is False
        assert member_state(member_db, mid) == (MemberType.FULL, 100, "mc-a")
        promotes = [e for e in events if isinstance(e, MemberFullPromote)]
        assert promotes == [MemberFullPromote(mid=mid, before=MemberType.DISCORD_PARTIAL)]
        assert events[-1] == WynnProfileBind(mid=mid, old=None, new="mc-a")
        assert_closed(member_db)

    def test_guild_partial_gains_discord_link(self, member_db):
        mid = member_db.write(bind_guild_status, "mc-a", "Alice", True, GuildRank.CAPTAIN)

        _, events = member_db.transaction(bind_discord, mid, 100)

        assert member_state(member_db, mid) == (MemberType.FULL, 100, "mc-a")
        assert MemberFullPromote(mid=mid, before=MemberType.GUILD_PARTIAL) in events
        assert events[-1] == DiscordProfileBind(mid=mid, old=None, new=100)
        assert_closed(member_db)

    def test_rebinding_discord_releases_old_profile(self, member_db):
        mid = member_db.write(create_discord_partial, 100, MemberRank.SIX)

        _, events = member_db.transaction(bind_discord, mid, 200)

        assert member_state(member_db, mid) == (MemberType.DISCORD_PARTIAL, 200, None)
        assert member_db.query(store.get_discord_mid, 100) is None
        assert events[-1] == DiscordProfileBind(mid=mid, old=100, new=200)
        assert_closed(member_db)


class TestDemotion:
    def test_full_member_in_guild_keeps_game_link(self, member_db):
        mid = member_db.write(create_full_member, 100, "G1", "Alice", MemberRank.SIX)
        member_db.write(bind_guild_status, "G1", "Alice", True, GuildRank.RECRUIT)

        removed, events = member_db.transaction(bind_discord, mid, None)

        assert removed is False
        assert member_state(member_db, mid) == (MemberType.GUILD_PARTIAL, None, "G1")
        assert events == [
            MemberAutoGuildDemote(mid=mid, before=MemberType.FULL),
            DiscordProfileUnbind(mid=mid, before=100, removed=False),
        ]
        assert member_db.query(store.get_discord_mid, 100) is None
        assert_closed(member_db)

    def test_game_partial_unbinding_in_guild_account_demotes(self, member_db):
        mid = member_db.write(create_game_partial, "mc-a", MemberRank.SIX, "Alice")
        with member_db.begin() as tx:
            # in guild without the roster having re-typed the member yet
            profile = store.get_wynn_profile(tx.session, "mc-a")
            profile.guild = True
            tx.session.add(GuildProfile(id="mc-a", rank=GuildRank.RECRUIT))

        removed, events = member_db.transaction(bind_game, mid, None)

        assert removed is False
        assert member_state(member_db, mid) == (MemberType.GUILD_PARTIAL, None, "mc-a")
        assert events == [MemberAutoGuildDemote(mid=mid, before=MemberType.GAME_PARTIAL)]
        assert_closed(member_db)

    def test_full_member_unbinding_in_guild_game_link_drops_discord(self, member_db):
        mid = member_db.write(create_full_member, 100, "mc-a", "Alice", MemberRank.SIX)
        member_db.write(bind_guild_status, "mc-a", "Alice", True, GuildRank.RECRUIT)

        removed = member_db.write(bind_game, mid, None)

        assert removed is False
        assert member_state(member_db, mid) == (MemberType.GUILD_PARTIAL, None, "mc-a")
        assert_closed(member_db)

    def test_guild_partial_cannot_unbind_game(self, member_db):
        mid = member_db.write(bind_guild_status, "mc-a", "Alice", True, GuildRank.RECRUIT)

        with pytest.raises(WrongMemberType) as excinfo:
            member_db.write(bind_game, mid, None)

        assert excinfo.value.member_type is MemberType.GUILD_PARTIAL
        assert member_state(member_db, mid) == (MemberType.GUILD_PARTIAL, None, "mc-a")


class TestDeletion:
    def test_discord_partial_unbind_deletes(self, member_db):
        mid = member_db.write(create_discord_partial, 100, MemberRank.SIX)

        removed, events = member_db.transaction(bind_discord, mid, None)

        assert removed is True
        assert member_state(member_db, mid) is None
        assert events == [
            MemberRemove(mid=mid, discord_id=100, mcid=None),
            DiscordProfileUnbind(mid=mid, before=100, removed=True),
        ]
        assert member_db.query(store.discord_profile_exist, 100)
        assert_closed(member_db)

    def test_full_member_unbind_discord_out_of_guild_deletes(self, member_db):
        mid = member_db.write(create_full_member, 100, "mc-a", "Alice", MemberRank.SIX)

        removed, events = member_db.transaction(bind_discord, mid, None)

        assert removed is True
        assert member_state(member_db, mid) is None
        assert member_db.query(store.get_wynn_mid, "mc-a") is None
        assert WynnProfileUnbind(mid=mid, before="mc-a", removed=True) in events
        assert sum(isinstance(e, MemberRemove) for e in events) == 1
        assert_closed(member_db)

    def test_game_partial_unbind_deletes(self, member_db):
        mid = member_db.write(create_game_partial, "mc-a", MemberRank.SIX, "Alice")

        removed, events = member_db.transaction(bind_game, mid, None)

        assert removed is True
        assert member_state(member_db, mid) is None
        assert events == [
            MemberRemove(mid=mid, discord_id=None, mcid="mc-a"),
            WynnProfileUnbind(mid=mid, before="mc-a", removed=True),
        ]
        assert_closed(member_db)

    def test_full_member_unbind_game_out_of_guild_deletes(self, member_db):
        mid = member_db.write(create_full_member, 100, "mc-a", "Alice", MemberRank.SIX)

        removed, events = member_db.transaction(bind_game, mid, None)

        assert removed is True
        assert member_state(member_db, mid) is None
        assert events[-1] == WynnProfileUnbind(mid=mid, before="mc-a", removed=True)
        assert sum(isinstance(e, MemberRemove) for e in events) == 1
        assert_closed(member_db)


class TestGuildStatus:
    def test_roster_join_creates_guild_partial(self, member_db):
        mid, events = member_db.transaction(
            bind_guild_status, "G2", "X", True, GuildRank.RECRUIT
        )

        assert mid is not None
        assert member_state(member_db, mid) == (MemberType.GUILD_PARTIAL, None, "G2")
        assert member_db.query(store.get_member_rank, mid) is GuildRank.RECRUIT.to_member_rank()
        assert member_db.query(store.is_in_guild, "G2")
        assert member_db.query(store.get_guild_rank, "G2") is GuildRank.RECRUIT
        assert events == [
            WynnProfileAdd(mcid="G2", mid=None),
            GuildProfileAdd(mcid="G2", rank=GuildRank.RECRUIT),
            WynnProfileBind(mid=mid, old=None, new="G2"),
            MemberAdd(mid=mid, discord_id=None, mcid="G2", rank=MemberRank.SIX),
        ]
        assert_closed(member_db)

    def test_roster_leave_removes_guild_partial(self, member_db):
        mid = member_db.write(bind_guild_status, "G2", "X", True, GuildRank.RECRUIT)

        result, events = member_db.transaction(
            bind_guild_status, "G2", "X", False, GuildRank.RECRUIT
        )

        assert result is None
        assert member_state(member_db, mid) is None
        assert member_db.query(store.wynn_profile_exist, "G2")
        assert not member_db.query(store.is_in_guild, "G2")
        assert not member_db.query(store.guild_profile_exist, "G2")
        assert MemberRemove(mid=mid, discord_id=None, mcid="G2") in events
        assert_closed(member_db)

    def test_roster_leave_keeps_full_member(self, member_db):
        mid = member_db.write(create_full_member, 100, "mc-a", "Alice", MemberRank.SIX)
        member_db.write(bind_guild_status, "mc-a", "Alice", True, GuildRank.CHIEF)

        member_db.write(bind_guild_status, "mc-a", "Alice", False, GuildRank.CHIEF)

        assert member_state(member_db, mid) == (MemberType.FULL, 100, "mc-a")
        assert not member_db.query(store.guild_profile_exist, "mc-a")
        assert_closed(member_db)

    def test_roster_join_demotes_game_partial(self, member_db):
        mid = member_db.write(create_game_partial, "mc-a", MemberRank.SIX, "Alice")

        result, events = member_db.transaction(
            bind_guild_status, "mc-a", "Alice", True, GuildRank.RECRUIT
        )

        assert result is None
        assert member_state(member_db, mid) == (MemberType.GUILD_PARTIAL, None, "mc-a")
        assert MemberAutoGuildDemote(mid=mid, before=MemberType.GAME_PARTIAL) in events
        assert_closed(member_db)

    def test_roster_leave_of_unknown_account(self, member_db):
        result = member_db.write(bind_guild_status, "mc-z", "Zed", False, GuildRank.RECRUIT)

        assert result is None
        assert member_db.query(store.get_member_count) == 0
        assert member_db.query(store.wynn_profile_exist, "mc-z")
        assert_closed(member_db)


    def test_rebinding_guild_partial_outside_guild_loses_status(self, member_db):
        mid = member_db.write(bind_guild_status, "mc-a", "Alice", True, GuildRank.RECRUIT)

        result, events = member_db.transaction(bind_game, mid, "mc-b", "Bob")

        assert result is False
        assert member_state(member_db, mid) == (MemberType.GAME_PARTIAL, None, "mc-b")
        assert events == [
            WynnProfileAdd(mcid="mc-b", mid=mid),
            MemberGuildStatusLost(mid=mid, before=MemberType.GUILD_PARTIAL),
            WynnProfileBind(mid=mid, old="mc-a", new="mc-b"),
        ]
        assert member_db.query(store.is_in_guild, "mc-a")
        assert_closed(member_db)


class TestRemoveAndRank:
    def test_remove_full_member_emits_one_remove(self, member_db):
        mid = member_db.write(create_full_member, 100, "mc-a", "Alice", MemberRank.SIX)
        member_db.write(bind_guild_status, "mc-a", "Alice", True, GuildRank.RECRUIT)

        _, events = member_db.transaction(remove_member, mid)

        assert member_state(member_db, mid) is None
        assert events == [
            WynnProfileUnbind(mid=mid, before="mc-a", removed=True),
            DiscordProfileUnbind(mid=mid, before=100, removed=True),
            MemberRemove(mid=mid, discord_id=100, mcid="mc-a"),
        ]
        # the account stays in the guild, just without a member
        assert member_db.query(store.is_in_guild, "mc-a")
        assert_closed(member_db)

    def test_remove_discord_partial(self, member_db):
        mid = member_db.write(create_discord_partial, 100, MemberRank.SIX)

        _, events = member_db.transaction(remove_member, mid)

        assert member_state(member_db, mid) is None
        assert events == [
            DiscordProfileUnbind(mid=mid, before=100, removed=True),
            MemberRemove(mid=mid, discord_id=100, mcid=None),
        ]
        assert member_db.query(store.discord_profile_exist, 100)
        assert member_db.query(store.get_discord_mid, 100) is None
        assert_closed(member_db)

    def test_remove_game_partial(self, member_db):
        mid = member_db.write(create_game_partial, "mc-a", MemberRank.SIX, "Alice")

        _, events = member_db.transaction(remove_member, mid)

        assert member_state(member_db, mid) is None
        assert events == [
            WynnProfileUnbind(mid=mid, before="mc-a", removed=True),
            MemberRemove(mid=mid, discord_id=None, mcid="mc-a"),
        ]
        assert_closed(member_db)

    def test_remove_guild_partial(self, member_db):
        mid = member_db.write(bind_guild_status, "mc-a", "Alice", True, GuildRank.RECRUIT)

        _, events = member_db.transaction(remove_member, mid)

        assert member_state(member_db, mid) is None
        assert [type(event) for event in events] == [WynnProfileUnbind, MemberRemove]
        assert member_db.query(store.is_in_guild, "mc-a")
        assert member_db.query(store.get_wynn_mid, "mc-a") is None
        assert_closed(member_db)

    def test_remove_empty_row_is_forced_and_logged(self, member_db, caplog):
        with member_db.begin() as tx:
            row = Member(discord=None, mcid=None, type=MemberType.DISCORD_PARTIAL, rank=MemberRank.SIX)
            tx.session.add(row)
            tx.session.flush()
            mid = row.id
        assert member_db.query(check_integrity) != []

        with caplog.at_level(logging.WARNING, logger="guildkeeper.services.link_service"):
            _, events = member_db.transaction(remove_member, mid)

        assert events == [MemberRemove(mid=mid, discord_id=None, mcid=None)]
        assert any(
            record.levelno == logging.WARNING and "without any profile link" in record.getMessage()
            for record in caplog.records
        )
        assert member_state(member_db, mid) is None
        assert_closed(member_db)

    def test_remove_leaves_profile_owned_by_another_member(self, member_db, caplog):
        owner = member_db.write(create_full_member, 100, "mc-a", "Alice", MemberRank.SIX)
        stray = member_db.write(create_game_partial, "mc-b", MemberRank.SIX, "Bob")
        # corrupt: mc-b claims to belong to the other member
        with member_db.begin() as tx:
            store.get_wynn_profile(tx.session, "mc-b").mid = owner

        with caplog.at_level(logging.WARNING, logger="guildkeeper.services.link_service"):
            member_db.write(remove_member, stray)

        assert member_state(member_db, stray) is None
        assert member_db.query(store.get_wynn_mid, "mc-b") == owner
        assert member_state(member_db, owner) == (MemberType.FULL, 100, "mc-a")
        assert any("does not link back" in record.getMessage() for record in caplog.records)

    def test_set_rank_emits_nothing(self, member_db):
        mid = member_db.write(create_discord_partial, 100, MemberRank.SIX)

        _, events = member_db.transaction(set_rank, mid, MemberRank.THREE)

        assert events == []
        assert member_db.query(store.get_member_rank, mid) is MemberRank.THREE


class TestEventPublication:
    def test_events_published_after_commit_in_order(self, member_db, signal):
        receiver = signal.connect()
        mid = member_db.write(create_discord_partial, 100, MemberRank.SIX)
        member_db.write(bind_game, mid, "mc-a", "Alice")

        published = receiver.drain()

        assert published[0] == DiscordProfileAdd(discord_id=100, mid=mid)
        assert published[1] == MemberAdd(mid=mid, discord_id=100, mcid=None, rank=MemberRank.SIX)
        assert published[-1] == WynnProfileBind(mid=mid, old=None, new="mc-a")

    def test_failed_operation_publishes_nothing(self, member_db, signal):
        member_db.write(create_discord_partial, 100, MemberRank.SIX)
        receiver = signal.connect()

        with pytest.raises(MemberAlreadyExist):
            member_db.write(create_discord_partial, 100, MemberRank.SIX)

        assert receiver.pending() == 0


class TestCancellation:
    """Cancelling ``MemberDB.run`` never commits silently."""

    @staticmethod
    def gated_create(started, gate):
        def slow_create(tx, discord_id, rank):
            mid = create_discord_partial(tx, discord_id, rank)
            started.set()
            gate.wait(5)
            return mid
        return slow_create

    def test_cancel_before_commit_rolls_back(self, member_db, signal):
        receiver = signal.connect()
        started, gate = threading.Event(), threading.Event()
        slow_create = self.gated_create(started, gate)

        async def scenario():
            task = asyncio.create_task(member_db.run(slow_create, 42, MemberRank.SIX))
            await asyncio.to_thread(started.wait, 5)
            task.cancel()
            await asyncio.sleep(0.05)
            gate.set()
            with pytest.raises(asyncio.CancelledError):
                await task

        run_async(scenario())

        assert member_db.query(store.get_member_count) == 0
        assert not member_db.query(store.discord_profile_exist, 42)
        assert receiver.drain() == []

    def test_cancel_after_commit_still_publishes(self, member_db, signal):
        receiver = signal.connect()
        started, gate = threading.Event(), threading.Event()
        slow_create = self.gated_create(started, gate)

        async def scenario():
            task = asyncio.create_task(member_db.run(slow_create, 42, MemberRank.SIX))
            await asyncio.to_thread(started.wait, 5)
            gate.set()
            # block the loop so the worker commits before the cancel lands
            time.sleep(0.2)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        run_async(scenario())

        mid = member_db.query(store.get_discord_mid, 42)
        assert mid is not None
        assert member_db.query(store.get_member_count) == 1
        assert receiver.drain() == [
            DiscordProfileAdd(discord_id=42, mid=mid),
            MemberAdd(mid=mid, discord_id=42, mcid=None, rank=MemberRank.SIX),
        ]
        assert_closed(member_db)
