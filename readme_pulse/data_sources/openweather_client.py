"""Current-weather lookups against the OpenWeatherMap API."""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass

from readme_pulse.data_sources import http_session
from readme_pulse.errors import ApiError, ParseError
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="openweather_client")

OPENWEATHER_URL = "https://api.openweathermap.org/data/2.5/weather"
DEFAULT_TIMEOUT_SECONDS = 10

TEMPERATURE_UNITS = {
    "metric": "°C",
    "imperial": "°F",
    "standard": "K",
}


@dataclass(frozen=True)
class WeatherSnapshot:
    """Current conditions for one city, with sun times in the city's local offset."""
    location: str
    country: str
    temperature: float
    feels_like: float
    temperature_unit: str
    condition: str
    condition_desc: str
    sunrise: dt.datetime  # timezone-aware, city offset
    sunset: dt.datetime  # timezone-aware, city offset


def _parse_weather(data: dict, units: str) -> WeatherSnapshot:
    """Convert an OpenWeatherMap payload into a WeatherSnapshot."""
    try:
        cod = int(data.get("cod", 200))
    except (TypeError, ValueError) as exc:
        raise ParseError(f"Unexpected response code field: {data.get('cod')!r}") from exc
    if cod != 200:
        raise ApiError(f"Invalid response code from weather API: {cod}", status_code=cod)

    try:
        weather = data["weather"][0]
        offset = dt.timezone(dt.timedelta(seconds=int(data["timezone"])))
        sys_info = data["sys"]
        main = data["main"]
        return WeatherSnapshot(
            location=data["name"],
            country=sys_info["country"],
            temperature=float(main["temp"]),
            feels_like=float(main["feels_like"]),
            temperature_unit=TEMPERATURE_UNITS.get(units, "°C"),
            condition=weather["main"],
            condition_desc=weather["description"],
            sunrise=dt.datetime.fromtimestamp(int(sys_info["sunrise"]), tz=offset),
            sunset=dt.datetime.fromtimestamp(int(sys_info["sunset"]), tz=offset),
        )
    except (KeyError, IndexError, TypeError, ValueError, OverflowError) as exc:
        raise ParseError(f"Failed to parse weather response: {exc!r}") from exc


def fetch_weather(
    city: str,
    *,
    api_key: str,
    units: str = "metric",
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> WeatherSnapshot:
    """Fetch current weather for `city`."""
    if not city or not city.strip():
        raise ApiError("City name cannot be empty")

    logger.info("Fetching current weather for %s", city)
    data = http_session.get_json(
        OPENWEATHER_URL,
        service="openweather",
        params={"q": city.strip(), "appid": api_key, "units": units},
        timeout=timeout,
    )
    if not isinstance(data, dict):
        raise ParseError("Weather response is not a JSON object")
    return _parse_weather(data, units)
