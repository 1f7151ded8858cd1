"""Coding-activity statistics from the WakaTime API."""
from __future__ import annotations

import base64
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from readme_pulse.data_sources import http_session
from readme_pulse.errors import ParseError
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="wakatime_client")

WAKATIME_API_BASE = "https://wakatime.com/api"
DEFAULT_TIMEOUT_SECONDS = 30


class TimeRange(str, Enum):
    """Stats ranges accepted by `/users/current/stats/<range>`."""
    LAST_7_DAYS = "last_7_days"
    LAST_30_DAYS = "last_30_days"
    LAST_6_MONTHS = "last_6_months"
    LAST_YEAR = "last_year"
    ALL_TIME = "all_time"


@dataclass(frozen=True)
class LanguageUsage:
    """Time spent in one language over the stats range."""
    name: str
    text: str  # human readable, e.g. "3 hrs 12 mins"
    percent: float


@dataclass(frozen=True)
class ActivityStats:
    """Language breakdown for a stats range, in the order WakaTime returns it."""
    start: str  # ISO-8601
    end: str  # ISO-8601
    languages: Tuple[LanguageUsage, ...]
    human_readable_total: Optional[str] = None
    human_readable_total_including_other_language: Optional[str] = None
    total_seconds: float = 0.0
    total_seconds_including_other_language: float = 0.0


def _auth_headers(api_key: str) -> dict:
    encoded = base64.b64encode(api_key.encode("utf-8")).decode("ascii")
    return {"Authorization": f"Basic {encoded}"}


def _parse_stats(payload: dict) -> ActivityStats:
    """Convert the `data` object of a stats response into ActivityStats."""
    try:
        languages = tuple(
            LanguageUsage(
                name=str(item["name"]),
                text=str(item.get("text", "")),
                percent=float(item.get("percent") or 0.0),
            )
            for item in payload.get("languages") or []
        )
        return ActivityStats(
            start=str(payload["start"]),
            end=str(payload["end"]),
            languages=languages,
            human_readable_total=payload.get("human_readable_total"),
            human_readable_total_including_other_language=payload.get(
                "human_readable_total_including_other_language"
            ),
            total_seconds=float(payload.get("total_seconds") or 0.0),
            total_seconds_including_other_language=float(
                payload.get("total_seconds_including_other_language") or 0.0
            ),
        )
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise ParseError(f"Failed to parse WakaTime stats: {exc!r}") from exc


def fetch_activity(
    time_range: str | TimeRange,
    *,
    api_key: str,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    base_url: str = WAKATIME_API_BASE,
) -> ActivityStats:
    """Fetch the current user's language stats for `time_range`."""
    range_value = TimeRange(time_range).value
    url = f"{base_url.rstrip('/')}/v1/users/current/stats/{range_value}"
    logger.info("Fetching WakaTime stats for %s", range_value)

    data = http_session.get_json(url, service="wakatime", headers=_auth_headers(api_key), timeout=timeout)
    if not isinstance(data, dict) or not isinstance(data.get("data"), dict):
        raise ParseError("WakaTime response has no 'data' object")
    return _parse_stats(data["data"])
