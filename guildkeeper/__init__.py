"""
Guildkeeper — Discord Companion Bot for a Game Guild
=====================================================
Keeps one identity per community member across their Discord account and
their in-game account, tracks activity on both sides, and reports on it.

Package layout::

    guildkeeper/
    ├── config.py             # YAML → typed config, channel / user tags
    ├── constants.py          # Duration / number parsing and formatting
    ├── database/
    │   ├── models.py         # member, discord, wynn, guild tables
    │   ├── engine.py         # Engine, MemberDB transactions, async bridge
    │   └── store.py          # Keyed lookups
    ├── engine/
    │   ├── ranks.py          # MemberRank / GuildRank
    │   ├── errors.py         # MemberDBError taxonomy
    │   ├── signal.py         # Signal / Receiver broadcast channels
    │   ├── events.py         # Identity-graph events + DBSignal
    │   ├── wynn_events.py    # Game roster events + WynnSignal
    │   ├── query.py          # Columns, stats, filters, sorts
    │   └── voice_tracker.py  # Voice session clock
    ├── services/
    │   ├── link_service.py   # The Link Engine
    │   ├── stats_service.py  # Counter updates
    │   ├── query_service.py  # Leaderboards, lists, tables, weekly reset
    │   ├── roster_service.py # Game roster consumer
    │   ├── activity_service.py # Discord activity consumer
    │   ├── rank_service.py   # Staff commands and rank permissions
    │   ├── profile_service.py
    │   └── integrity_service.py
    └── bot/
        ├── core.py           # KeeperBot, cog loader
        └── cogs/             # activity, membership, tasks
"""

__version__ = "0.1.0"
