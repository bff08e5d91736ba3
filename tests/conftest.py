"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import BigInteger, Engine, create_engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from guildkeeper.database.engine import MemberDB
from guildkeeper.database.models import Base
from guildkeeper.engine.events import DBSignal


@compiles(BigInteger, "sqlite")
def _compile_bigint_as_integer(type_, compiler, **kw):
    return "INTEGER"


def run_async(coro):
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with every guildkeeper table.

    StaticPool keeps one shared connection, so the worker threads used by
    ``MemberDB.run`` see the same in-memory database.
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def signal() -> DBSignal:
    return DBSignal(capacity=256)


@pytest.fixture
def member_db(db_engine: Engine, signal: DBSignal) -> MemberDB:
    return MemberDB(db_engine, signal)


@pytest.fixture
def db_session(db_engine: Engine):
    """Plain session for direct inspection; rolled back afterwards."""
    with Session(db_engine) as session:
        yield session
        session.rollback()
