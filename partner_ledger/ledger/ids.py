"""Monotonic id assignment for projects and transactions."""

import time
from typing import Callable, Optional


def _epoch_millis() -> int:
    return time.time_ns() // 1_000_000


class IdGenerator:
    """
    Hands out strictly increasing integer ids.

    Ids are millisecond timestamps so they stay compatible with documents
    written by older clients, but a new id is always at least one greater
    than the last one handed out or seeded, so two calls in the same
    millisecond (or a clock that steps backwards) never collide.
    """

    def __init__(
        self,
        clock: Optional[Callable[[], int]] = None,
        floor: int = 0,
    ):
        self._clock = clock or _epoch_millis
        self._last = floor

    @property
    def last(self) -> int:
        return self._last

    def seed(self, floor: int) -> None:
        """Never hand out an id at or below `floor` (e.g. the highest id in a snapshot)."""
        if floor > self._last:
            self._last = floor

    def next_id(self) -> int:
        candidate = self._clock()
        if candidate <= self._last:
            candidate = self._last + 1
        self._last = candidate
        return candidate
