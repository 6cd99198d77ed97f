"""Per-resource advisory locks held across validate + save."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from contextlib import ExitStack, contextmanager


class ResourceLocks:
    """One lock per ("driver", id) / ("vehicle", id) key.

    Keys are always acquired in sorted order so two writers touching the same
    resources cannot deadlock.
    """

    def __init__(self) -> None:
        self._locks: dict[tuple[str, int], threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: tuple[str, int]) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, driver_ids: Iterable[int], vehicle_ids: Iterable[int]) -> Iterator[None]:
        keys = sorted(
            {("driver", d) for d in driver_ids} | {("vehicle", v) for v in vehicle_ids}
        )
        with ExitStack() as stack:
            for key in keys:
                stack.enter_context(self._lock_for(key))
            yield
