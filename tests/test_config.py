"""
tests/test_config.py — Configuration Loader & Tag Store
========================================================
"""

from __future__ import annotations

import pytest

from guildkeeper.config import ChannelTag, TagStore, UserTag, load_config


def write_yaml(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:
    def test_full_file(self, tmp_path):
        path = write_yaml(tmp_path, """
bot_prefix: "?"
main_guild_id: "123"
event_capacity: 16
publish_timeout: 2
voice_flush_seconds: 30
untracked_channel_ids: [1, 2]
untracked_category_ids: [3]
no_role_update_user_ids: [7]
no_nick_update_user_ids: []
""")

        cfg = load_config(path)

        assert cfg.bot_prefix == "?"
        assert cfg.main_guild_id == 123
        assert cfg.event_capacity == 16
        assert cfg.publish_timeout == 2.0
        assert cfg.voice_flush_seconds == 30
        assert cfg.untracked_channel_ids == frozenset({1, 2})
        assert cfg.untracked_category_ids == frozenset({3})
        assert cfg.no_role_update_user_ids == frozenset({7})
        assert cfg.no_nick_update_user_ids == frozenset()

    def test_defaults(self, tmp_path):
        cfg = load_config(write_yaml(tmp_path, "bot_prefix: '!'\nmain_guild_id: 5\n"))

        assert cfg.event_capacity == 64
        assert cfg.publish_timeout is None
        assert cfg.voice_flush_seconds == 60
        assert cfg.untracked_channel_ids == frozenset()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_missing_required_key(self, tmp_path):
        with pytest.raises(KeyError):
            load_config(write_yaml(tmp_path, "bot_prefix: '!'\n"))


class TestTagStore:
    def test_from_config(self, tmp_path):
        cfg = load_config(write_yaml(tmp_path, """
bot_prefix: "!"
main_guild_id: 1
untracked_channel_ids: [10]
untracked_category_ids: [20]
no_role_update_user_ids: [7]
no_nick_update_user_ids: [8]
"""))

        tags = TagStore.from_config(cfg)

        assert not tags.is_channel_tracked(10)
        assert not tags.is_channel_tracked(11, category_id=20)
        assert tags.is_channel_tracked(11, category_id=21)
        assert tags.user_tagged(7, UserTag.NO_ROLE_UPDATE)
        assert not tags.user_tagged(7, UserTag.NO_NICK_UPDATE)
        assert tags.user_tagged(8, UserTag.NO_NICK_UPDATE)

    def test_untag_and_forget(self):
        tags = TagStore()
        tags.tag_channel(10)
        tags.untag_channel(10)
        assert tags.is_channel_tracked(10)

        tags.tag_channel(11, ChannelTag.NO_TRACK)
        tags.forget_channel(11)
        assert not tags.channel_tagged(11, ChannelTag.NO_TRACK)

        # unknown ids are a no-op
        tags.untag_channel(99)
        tags.untag_user(99, UserTag.NO_ROLE_UPDATE)

    def test_user_tags(self):
        tags = TagStore()
        tags.tag_user(1, UserTag.NO_ROLE_UPDATE)
        tags.tag_user(1, UserTag.NO_NICK_UPDATE)
        tags.untag_user(1, UserTag.NO_ROLE_UPDATE)

        assert not tags.user_tagged(1, UserTag.NO_ROLE_UPDATE)
        assert tags.user_tagged(1, UserTag.NO_NICK_UPDATE)
