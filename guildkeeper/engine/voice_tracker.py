"""
guildkeeper.engine.voice_tracker — Voice Session Clock
=======================================================

Tracks how long each Discord user has been active in a tracked voice
channel since the last checkpoint.  The activity cog credits the elapsed
seconds on leave and on a periodic flush, so a crash loses at most one
flush interval.

Pure in-memory state with an injectable monotonic clock.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable


class VoiceTracker:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._started: dict[int, float] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._started)

    def __contains__(self, user_id: int) -> bool:
        return user_id in self._started

    def track(self, user_id: int) -> int | None:
        """Checkpoint *user_id*.

        Returns whole seconds since the previous checkpoint, or ``None``
        when tracking just started.
        """
        now = self._clock()
        with self._lock:
            previous = self._started.get(user_id)
            self._started[user_id] = now
        if previous is None:
            return None
        return max(0, int(now - previous))

    def untrack(self, user_id: int) -> int | None:
        """Stop tracking; returns seconds since the last checkpoint, if any."""
        now = self._clock()
        with self._lock:
            previous = self._started.pop(user_id, None)
        if previous is None:
            return None
        return max(0, int(now - previous))

    def flush_all(self) -> list[tuple[int, int]]:
        """Checkpoint everyone; returns ``(user_id, seconds)`` pairs."""
        now = self._clock()
        elapsed: list[tuple[int, int]] = []
        with self._lock:
            for user_id, previous in self._started.items():
                elapsed.append((user_id, max(0, int(now - previous))))
                self._started[user_id] = now
        return elapsed
