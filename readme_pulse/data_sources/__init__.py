"""Metrics providers for the README sections."""

from .base import CallableMetricsProvider, MetricsProvider
from .factory import WAKATIME_PROVIDER, WEATHER_PROVIDER, build_providers
from .openweather_client import WeatherSnapshot, fetch_weather
from .wakatime_client import ActivityStats, LanguageUsage, TimeRange, fetch_activity

__all__ = [
    "build_providers",
    "MetricsProvider",
    "CallableMetricsProvider",
    "WEATHER_PROVIDER",
    "WAKATIME_PROVIDER",
    "WeatherSnapshot",
    "ActivityStats",
    "LanguageUsage",
    "TimeRange",
    "fetch_weather",
    "fetch_activity",
]
