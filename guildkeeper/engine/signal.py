"""
guildkeeper.engine.signal — Typed In-Process Broadcast Channels
================================================================

A :class:`Signal` fans every event out to each connected :class:`Receiver`.
One signal is instantiated per event category (identity-graph events,
game-roster events) by subclassing ``Signal[EventType]``.

Delivery rules:

* Each receiver gets its own copy of every event emitted **while it is
  connected**.  Events emitted before ``connect()`` are never replayed.
* Events from one producer arrive at each receiver in emission order.
* Receivers are bounded.  When a receiver is full, its **oldest** pending
  event is dropped and its :attr:`Receiver.lagged` counter grows — the
  producer never blocks and never sees an error.
* Publishing with nobody connected is a silent no-op.

Usage::

    signal = DBSignal(capacity=64)
    receiver = signal.connect()

    signal.signal(MemberAdd(...))          # from the producer

    event = await receiver.recv()          # from a consumer task
    receiver.close()
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CAPACITY = 64


class Receiver(Generic[T]):
    """One consumer's bounded view of a :class:`Signal`."""

    def __init__(self, signal: Signal[T], capacity: int) -> None:
        self._signal = signal
        self._queue: asyncio.Queue[T] = asyncio.Queue(maxsize=capacity)
        self.lagged = 0
        self.closed = False

    def _push(self, event: T) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.lagged += 1
        self._queue.put_nowait(event)

    async def recv(self) -> T:
        """Wait for the next event."""
        return await self._queue.get()

    def try_recv(self) -> T | None:
        """Return the next pending event, or ``None`` if there is none."""
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def drain(self) -> list[T]:
        """Return (and remove) every pending event."""
        events: list[T] = []
        while (event := self.try_recv()) is not None:
            events.append(event)
        return events

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        """Disconnect from the signal; pending events stay readable."""
        if not self.closed:
            self.closed = True
            self._signal._disconnect(self)

    def __enter__(self) -> Receiver[T]:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __aiter__(self) -> Receiver[T]:
        return self

    async def __anext__(self) -> T:
        return await self.recv()


class Signal(Generic[T]):
    """Multi-producer, multi-consumer broadcast channel for one event type."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("Signal capacity must be at least 1")
        self.capacity = capacity
        self._receivers: list[Receiver[T]] = []
        self._lock = threading.Lock()

    def connect(self) -> Receiver[T]:
        """Return a new receiver that sees every event emitted from now on."""
        receiver: Receiver[T] = Receiver(self, self.capacity)
        with self._lock:
            self._receivers.append(receiver)
        return receiver

    def _disconnect(self, receiver: Receiver[T]) -> None:
        with self._lock:
            if receiver in self._receivers:
                self._receivers.remove(receiver)

    @property
    def receiver_count(self) -> int:
        with self._lock:
            return len(self._receivers)

    def signal(self, event: T) -> int:
        """Broadcast *event*; return how many receivers it reached.

        Must be called from the thread running the consumers' event loop
        (or from plain synchronous code when no loop is running).
        """
        with self._lock:
            receivers = list(self._receivers)
        for receiver in receivers:
            before = receiver.lagged
            receiver._push(event)
            if receiver.lagged != before:
                logger.warning(
                    "%s receiver full, dropped oldest event (lagged=%d)",
                    type(self).__name__, receiver.lagged,
                )
        return len(receivers)
