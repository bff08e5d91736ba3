"""
guildkeeper.database.engine — Database Connection, Transactions & Async Bridge
===============================================================================

**Why this file exists:**
Discord bots run on an ``asyncio`` event loop while SQLAlchemy is
**synchronous**.  Every database call is shipped to a worker thread with
:func:`run_db`, exactly like a plain ``asyncio.to_thread`` call, so the bot
never freezes on a slow query.

On top of that bridge, :class:`MemberDB` is the handle every Link Engine
operation receives.  It adds the three guarantees the identity graph needs:

1. **Single writer, many readers.**  A :class:`ReadWriteLock` lets readers
   run side by side but gives writers exclusive access, so two cascades that
   touch the same member can never interleave.
2. **All-or-nothing.**  A :class:`Transaction` wraps one ``Session``: it
   commits when the block exits cleanly and rolls back on any exception.
3. **Events after commit.**  Operations append events to ``tx.events``;
   they reach the :class:`~guildkeeper.engine.events.DBSignal` only once the
   commit succeeded, in the order they were emitted.  A rolled-back
   transaction publishes nothing.

Usage::

    engine = create_db_engine()                    # reads DATABASE_URL
    init_db(engine)
    db = MemberDB(engine, DBSignal())

    # Inside an async Cog method:
    mid = await db.run(create_discord_partial, discord_id, MemberRank.SIX)

    # Read-only:
    member = await db.fetch(get_member, mid)
"""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from guildkeeper.database.models import Base
from guildkeeper.engine.errors import StorageError, TransactionAborted
from guildkeeper.engine.events import DBEvent, DBSignal

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

DEFAULT_DATABASE_URL = "sqlite:///guildkeeper.db"


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine`.

    *url* defaults to the ``DATABASE_URL`` environment variable, falling
    back to a local SQLite file.  SQLite connections are shared with the
    worker threads :func:`run_db` uses, hence ``check_same_thread=False``.
    """
    url = url or os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL

    kwargs: dict[str, Any] = {"echo": False}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs.update(
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,   # Reconnect stale connections automatically
            pool_timeout=10,
            pool_recycle=3600,
        )

    engine = create_engine(url, **kwargs)
    logger.info("Database engine created → %s", engine.url.render_as_string(hide_password=True))
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`guildkeeper.database.models`.

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` is a safety net for dev/test environments.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """Yield a :class:`Session` that commits on success and rolls back on
    exception.
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** database function on a background thread."""
    return await asyncio.to_thread(func, *args, **kwargs)


# ---------------------------------------------------------------------------
# Reader / writer lock
# ---------------------------------------------------------------------------
class ReadWriteLock:
    """Many concurrent readers or one writer.

    Waiting writers block new readers so a steady stream of queries cannot
    starve the Link Engine.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._waiting_writers += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


# ---------------------------------------------------------------------------
# Transaction handle
# ---------------------------------------------------------------------------
@dataclass
class Transaction:
    """One open write transaction plus the events it has produced so far."""

    session: Session
    events: list[DBEvent] = field(default_factory=list)

    def signal(self, event: DBEvent) -> None:
        """Queue *event* for publication after commit."""
        self.events.append(event)


class MemberDB:
    """Explicit handle to the identity store and its event bus."""

    def __init__(self, engine: Engine, signal: DBSignal | None = None) -> None:
        self.engine = engine
        self.signal = signal if signal is not None else DBSignal()
        self.lock = ReadWriteLock()

    # -- sync API -----------------------------------------------------------
    @contextmanager
    def begin(self, abort: threading.Event | None = None) -> Iterator[Transaction]:
        """Exclusive write transaction: commit on success, rollback on error.

        If *abort* is set by the time the block finishes, the transaction is
        rolled back and :class:`TransactionAborted` raised instead of
        committing.  Events queued on the yielded :class:`Transaction` are
        **not** published here; use :meth:`write` / :meth:`run` for that.
        """
        with self.lock.write():
            session = Session(self.engine, expire_on_commit=False)
            tx = Transaction(session)
            try:
                yield tx
                if abort is not None and abort.is_set():
                    raise TransactionAborted("Caller cancelled before commit")
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise StorageError("Failed to commit member database transaction") from exc
            except BaseException:
                session.rollback()
                raise
            finally:
                session.close()

    @contextmanager
    def read(self) -> Iterator[Session]:
        """Shared read-only session; never commits.

        ``close()`` ends the transaction without expiring loaded objects, so
        rows returned from :meth:`query` stay readable once detached.
        """
        with self.lock.read():
            session = Session(self.engine, expire_on_commit=False)
            try:
                yield session
            finally:
                session.close()

    def transaction(
        self, func: Callable[..., T], *args: Any, abort: threading.Event | None = None
    ) -> tuple[T, list[DBEvent]]:
        """Run ``func(tx, *args)`` in one transaction; return result and events."""
        with self.begin(abort) as tx:
            result = func(tx, *args)
        return result, tx.events

    def publish(self, events: list[DBEvent]) -> None:
        for event in events:
            self.signal.signal(event)

    def write(self, func: Callable[..., T], *args: Any) -> T:
        """Run ``func(tx, *args)`` atomically, then publish its events."""
        result, events = self.transaction(func, *args)
        self.publish(events)
        return result

    def query(self, func: Callable[..., T], *args: Any) -> T:
        """Run ``func(session, *args)`` under the reader lock."""
        with self.read() as session:
            return func(session, *args)

    # -- async API ----------------------------------------------------------
    async def run(self, func: Callable[..., T], *args: Any) -> T:
        """Thread-offloaded :meth:`write`.

        Cancelling the awaiting task rolls the transaction back: the worker
        thread is told to abort and is waited for before the cancellation
        propagates.  If it had already committed, its events are still
        published, so subscribers never miss a change that reached the
        store.
        """
        abort = threading.Event()
        future = asyncio.ensure_future(run_db(self.transaction, func, *args, abort=abort))
        try:
            result, events = await asyncio.shield(future)
        except asyncio.CancelledError:
            abort.set()
            try:
                _, events = await future
            except TransactionAborted:
                logger.info("Cancelled %s rolled back", getattr(func, "__name__", func))
            except Exception:
                logger.exception("Cancelled %s failed", getattr(func, "__name__", func))
            else:
                logger.info("Cancelled %s had already committed", getattr(func, "__name__", func))
                self.publish(events)
            raise
        self.publish(events)
        return result

    async def fetch(self, func: Callable[..., T], *args: Any) -> T:
        """Thread-offloaded :meth:`query`."""
        return await run_db(self.query, func, *args)
