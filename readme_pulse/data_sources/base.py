"""Interfaces and helpers for metrics providers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Callable, Optional, Protocol, Union

if TYPE_CHECKING:
    from readme_pulse.app_types import MetricsSnapshot
    from readme_pulse.snapshot_cache import SnapshotCache


class MetricsProvider(Protocol):
    """Anything that can produce a snapshot for a query target (city, stats range)."""

    name: str

    def fetch(self, target: str) -> MetricsSnapshot:
        """Return a fresh (or cached) snapshot for `target`."""
        ...


@dataclass
class CallableMetricsProvider:
    """Wrap a fetch callable, optionally routing calls through a SnapshotCache."""

    name: str
    fetch_fn: Callable[[str], MetricsSnapshot]
    cache: Optional[SnapshotCache] = None
    freshness_window: Union[timedelta, float] = 300

    def cache_key(self, target: str) -> str:
        """Key used for `target` in the shared cache."""
        return f"{self.name}:{target}"

    def fetch(self, target: str) -> MetricsSnapshot:
        """Delegate to the configured callable, serving from cache when fresh."""
        if self.cache is None:
            return self.fetch_fn(target)
        return self.cache.get_or_fetch(
            self.cache_key(target),
            self.freshness_window,
            lambda: self.fetch_fn(target),
        )
