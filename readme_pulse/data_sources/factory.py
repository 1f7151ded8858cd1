"""Factory helpers for choosing metrics providers at startup."""

from __future__ import annotations

from functools import partial
from typing import TYPE_CHECKING, Dict, Optional

from readme_pulse import config
from readme_pulse.data_sources.base import CallableMetricsProvider
from readme_pulse.data_sources.openweather_client import fetch_weather
from readme_pulse.data_sources.wakatime_client import fetch_activity
from utils.logging_utils import get_tagged_logger

if TYPE_CHECKING:
    from readme_pulse.snapshot_cache import SnapshotCache

logger = get_tagged_logger(__name__, tag="data_sources/factory")

WEATHER_PROVIDER = "weather"
WAKATIME_PROVIDER = "wakatime"


def build_providers(
    settings: config.Settings | None = None,
    cache: Optional[SnapshotCache] = None,
) -> Dict[str, CallableMetricsProvider]:
    """Instantiate a provider for every metrics domain that has credentials configured."""
    settings = settings or config.get_settings()
    providers: Dict[str, CallableMetricsProvider] = {}

    if settings.openweather_api_key:
        logger.info("Using OpenWeatherMap provider")
        providers[WEATHER_PROVIDER] = CallableMetricsProvider(
            name=WEATHER_PROVIDER,
            fetch_fn=partial(
                fetch_weather,
                api_key=settings.openweather_api_key,
                units=settings.openweather_units,
                timeout=settings.weather_timeout_seconds,
            ),
            cache=cache,
            freshness_window=settings.cache_ttl_seconds,
        )
    else:
        logger.info("No OpenWeatherMap API key configured; weather updates disabled")

    if settings.wakatime_api_key:
        logger.info("Using WakaTime provider")
        providers[WAKATIME_PROVIDER] = CallableMetricsProvider(
            name=WAKATIME_PROVIDER,
            fetch_fn=partial(
                fetch_activity,
                api_key=settings.wakatime_api_key,
                timeout=settings.wakatime_timeout_seconds,
            ),
            cache=cache,
            freshness_window=settings.cache_ttl_seconds,
        )
    else:
        logger.info("No WakaTime API key configured; activity updates disabled")

    return providers
