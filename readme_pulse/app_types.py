"""Shared dataclasses and lightweight types used across modules."""

from dataclasses import dataclass
from datetime import datetime
from typing import Union

from readme_pulse.data_sources.openweather_client import WeatherSnapshot
from readme_pulse.data_sources.wakatime_client import ActivityStats

MetricsSnapshot = Union[WeatherSnapshot, ActivityStats]


@dataclass(frozen=True)
class CachedSnapshot:
    """Snapshot payload with the timestamp it was fetched."""
    data: MetricsSnapshot
    fetched_at: datetime
