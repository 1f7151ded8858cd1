"""In-memory memo of the last successful fetch per provider key."""

import threading
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterator, Optional, Union

from readme_pulse.app_types import CachedSnapshot, MetricsSnapshot
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="snapshot_cache")


class ReadWriteLock:
    """Many readers or one writer; waiting writers block new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_timedelta(window: Union[timedelta, float, int]) -> timedelta:
    if isinstance(window, timedelta):
        return window
    return timedelta(seconds=window)


class SnapshotCache:
    """Thread-safe freshness cache, one entry per key.

    Hits are served under the read lock. On a miss the fetch runs with no
    lock held, then the entry is replaced wholesale under the write lock.
    Concurrent misses may each fetch; the last writer wins.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._entries: Dict[str, CachedSnapshot] = {}
        self._lock = ReadWriteLock()
        self._clock = clock or _utcnow

    def _fresh(self, key: str, window: timedelta) -> Optional[CachedSnapshot]:
        with self._lock.read_locked():
            entry = self._entries.get(key)
            if entry is not None and self._clock() - entry.fetched_at < window:
                return entry
        return None

    def get_or_fetch(
        self,
        key: str,
        freshness_window: Union[timedelta, float, int],
        fetch_fn: Callable[[], MetricsSnapshot],
    ) -> MetricsSnapshot:
        """Return the cached value for `key` if fresh, else call `fetch_fn` and store its result.

        Exceptions from `fetch_fn` propagate and leave the cache untouched.
        """
        window = _as_timedelta(freshness_window)
        entry = self._fresh(key, window)
        if entry is not None:
            logger.info("Returning cached snapshot", extra={"key": key})
            return entry.data

        logger.debug("Cache miss; fetching", extra={"key": key})
        value = fetch_fn()
        with self._lock.write_locked():
            self._entries[key] = CachedSnapshot(data=value, fetched_at=self._clock())
        return value

    def peek(self, key: str) -> Optional[CachedSnapshot]:
        """Return the stored entry for `key` regardless of age."""
        with self._lock.read_locked():
            return self._entries.get(key)

    def invalidate(self, key: str) -> None:
        """Drop the entry for `key` if present."""
        with self._lock.write_locked():
            self._entries.pop(key, None)

    def clear(self) -> None:
        """Drop every entry."""
        with self._lock.write_locked():
            self._entries.clear()
