"""Per-group freshness gate in front of expensive device queries."""

from __future__ import annotations

import logging
import math
import threading
import time
from typing import Callable, Dict, Hashable, Iterable, Optional, TypeVar


_LOG = logging.getLogger(__name__)

T = TypeVar("T")

# Timestamp recorded for run-once groups: never older than max_age.
NEVER_EXPIRES = math.inf

DEFAULT_MAX_AGE = 1.0


class FreshnessCache:
    """Track when each query group was last refreshed.

    One refresh usually decodes several readings, so the time-to-live applies
    to the group and not to individual fields. The whole check, refresh and
    read sequence runs under ``lock``; pass the client's own lock so that a
    refresh never interleaves with another wire exchange.
    """

    def __init__(
        self,
        max_age: float = DEFAULT_MAX_AGE,
        keys: Optional[Iterable[Hashable]] = None,
        clock: Callable[[], float] = time.monotonic,
        lock: Optional[threading.RLock] = None,
    ) -> None:
        if max_age < 0:
            raise ValueError("max_age must not be negative")
        self.max_age = max_age
        self._clock = clock
        self._lock = lock if lock is not None else threading.RLock()
        self._closed = keys is not None
        self._last: Dict[Hashable, Optional[float]] = dict.fromkeys(keys or ())

    def ensure_fresh(
        self,
        key: Hashable,
        getter: Callable[[], T],
        refresher: Callable[[], None],
        run_once: bool = False,
    ) -> T:
        """Refresh *key* if due, then return ``getter()``.

        A failing refresher propagates and leaves the timestamp untouched, so
        the next call tries again.
        """

        with self._lock:
            if self.is_stale(key, run_once):
                _LOG.debug("Refreshing %s", key)
                refresher()
                self.touch(key, run_once)
            return getter()

    def is_stale(self, key: Hashable, run_once: bool = False) -> bool:
        with self._lock:
            last = self._get(key)
            if last is None:
                return True
            if run_once:
                return False
            return (self._clock() - last) > self.max_age

    def touch(self, key: Hashable, run_once: bool = False) -> None:
        """Record a successful refresh of *key*."""

        with self._lock:
            self._get(key)
            self._last[key] = NEVER_EXPIRES if run_once else self._clock()

    def last_refreshed(self, key: Hashable) -> Optional[float]:
        with self._lock:
            return self._get(key)

    def _get(self, key: Hashable) -> Optional[float]:
        if self._closed and key not in self._last:
            raise KeyError(f"Unknown cache group {key!r}")
        return self._last.get(key)


__all__ = ["FreshnessCache", "NEVER_EXPIRES", "DEFAULT_MAX_AGE"]
