"""
tests/test_query.py — Query Vocabulary Parsing Tests
=====================================================

Columns, stats, filters and sorts parsed from their textual forms.
"""

from __future__ import annotations

import pytest

from guildkeeper.database.models import MemberType
from guildkeeper.engine.errors import ProfileType
from guildkeeper.engine.query import (
    Cmp,
    Column,
    GuildRankFilter,
    HasDiscord,
    HasMc,
    InGuild,
    MemberRankFilter,
    OfType,
    Partial,
    Sort,
    Stat,
    StatFilter,
    parse_filter,
    parse_sort,
)
from guildkeeper.engine.ranks import GuildRank, MemberRank


class TestColumn:
    def test_from_str(self):
        assert Column.from_str("weekly_message") is Column.WEEKLY_MESSAGE
        with pytest.raises(ValueError):
            Column.from_str("nope")

    def test_profile(self):
        assert Column.ID.profile is None
        assert Column.VOICE.profile is ProfileType.DISCORD
        assert Column.IGN.profile is ProfileType.WYNN
        assert Column.WEEKLY_XP.profile is ProfileType.GUILD

    def test_names(self):
        assert Column.ID.table_name == "member_id"
        assert Column.GUILD_RANK.table_name == "guild_rank"
        assert Column.WEEKLY_ONLINE.ident == "wynn.activity_week"
        assert Column.RANK.ident == "member.rank"

    def test_every_column_has_an_ident(self):
        for column in Column:
            assert "." in column.ident

    def test_durations(self):
        assert Column.VOICE.is_duration
        assert not Column.MESSAGE.is_duration


class TestStat:
    def test_column_round_trip(self):
        for stat in Stat:
            assert Stat.from_column(stat.to_column()) is stat
        assert Stat.from_column(Column.IGN) is None

    def test_parse_duration_value(self):
        assert Stat.VOICE.parse_val("1h30m") == 5400

    def test_parse_number_value(self):
        assert Stat.XP.parse_val("2k") == 2000
        assert Stat.MESSAGE.parse_val("1,234") == 1234

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            Stat.MESSAGE.parse_val("-3")


class TestParseFilter:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("partial", Partial()),
            ("in_guild", InGuild()),
            ("has_mc", HasMc()),
            ("has_discord", HasDiscord()),
            ("full", OfType(MemberType.FULL)),
            ("guild", OfType(MemberType.GUILD_PARTIAL)),
            ("weekly_voice", StatFilter(Stat.WEEKLY_VOICE, 1, Cmp.GE)),
            ("Pilot", MemberRankFilter(MemberRank.FOUR, Cmp.EQ)),
            ("<Pilot", MemberRankFilter(MemberRank.FOUR, Cmp.LE)),
            (">cadet", MemberRankFilter(MemberRank.SIX, Cmp.GE)),
            ("Captain", GuildRankFilter(GuildRank.CAPTAIN, Cmp.EQ)),
            ("<chief", GuildRankFilter(GuildRank.CHIEF, Cmp.LE)),
            ("xp:0", StatFilter(Stat.XP, 0, Cmp.EQ)),
            (">online:2h", StatFilter(Stat.ONLINE, 7200, Cmp.GE)),
            ("<message:1k", StatFilter(Stat.MESSAGE, 1000, Cmp.LE)),
        ],
    )
    def test_valid(self, text, expected):
        assert parse_filter(text) == expected

    @pytest.mark.parametrize("text", ["", "bogus", "<", "nope:3", "voice:abc", "xp:"])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            parse_filter(text)


class TestParseSort:
    def test_descending_by_default(self):
        assert parse_sort("xp") == Sort(Column.XP, descending=True)

    def test_caret_means_ascending(self):
        assert parse_sort("^ign") == Sort(Column.IGN, descending=False)

    def test_unknown_column(self):
        with pytest.raises(ValueError):
            parse_sort("^bogus")
