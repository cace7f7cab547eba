"""Time-windowed set of in-flight destination paths.

inotify delivers several ``moved_to`` events for one logical rename (and the
daemon's own renames generate more). Claiming the *destination* path for a
short TTL collapses such a burst into one handling.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from pathlib import Path

from . import conventions


class DebounceTable:
    """Destination path -> monotonic time of last claim.

    Owned by the event loop and passed to the dispatcher; single consumer,
    so no locking is needed.
    """

    def __init__(
        self,
        ttl: float = conventions.LOCK_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self._clock = clock
        self._claims: dict[Path, float] = {}

    def is_locked(self, key: Path) -> bool:
        claimed_at = self._claims.get(key)
        if claimed_at is None:
            return False
        return self._clock() - claimed_at < self.ttl

    def claim(self, key: Path) -> None:
        self._claims[key] = self._clock()

    def prune(self) -> None:
        """Drop every claim older than the TTL."""
        now = self._clock()
        self._claims = {
            key: ts for key, ts in self._claims.items() if now - ts < self.ttl
        }

    def __len__(self) -> int:
        return len(self._claims)
