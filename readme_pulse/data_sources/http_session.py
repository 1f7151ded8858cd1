"""Shared HTTP session and response-to-error mapping for the metrics APIs."""
from __future__ import annotations

from typing import Any, Mapping, Optional

import requests
from retry_requests import retry

from readme_pulse.errors import ApiError, ParseError, RateLimitExceeded, RequestTimeoutError
from utils.logging_utils import get_tagged_logger, mask_url

logger = get_tagged_logger(__name__, tag="data_sources/http_session")

USER_AGENT = "readme-pulse/0.1"

# Transient 5xx answers are retried here, inside the provider; callers never retry.
session = retry(requests.Session(), retries=3, backoff_factor=0.3, status_to_retry=(500, 502, 503, 504))


def get_json(
    url: str,
    *,
    service: str,
    params: Optional[Mapping[str, Any]] = None,
    headers: Optional[Mapping[str, str]] = None,
    timeout: float = 10,
) -> Any:
    """GET `url` and return the decoded JSON body.

    Raises RequestTimeoutError on timeout, RateLimitExceeded on HTTP 429,
    ApiError on any other non-2xx status or transport failure, and ParseError
    when the body is not JSON.
    """
    request_headers = {"User-Agent": USER_AGENT}
    if headers:
        request_headers.update(headers)

    try:
        resp = session.get(url, params=params, headers=request_headers, timeout=timeout)
    except requests.exceptions.Timeout as exc:
        raise RequestTimeoutError(f"{service} request timed out after {timeout}s") from exc
    except requests.exceptions.RequestException as exc:
        raise ApiError(f"{service} request failed: {exc}") from exc

    logger.debug("GET %s -> %s", mask_url(getattr(resp, "url", None) or url), resp.status_code)

    if resp.status_code == 429:
        raise RateLimitExceeded(service)
    if not 200 <= resp.status_code < 300:
        raise ApiError(
            f"{service} request failed with status: {resp.status_code}",
            status_code=resp.status_code,
        )

    try:
        return resp.json()
    except ValueError as exc:
        raise ParseError(f"Failed to decode {service} response: {exc}") from exc
