"""HTTP API for inspecting and refreshing README sections."""

import hmac
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import BaseModel

from .config import get_settings
from .data_sources import build_providers
from .errors import DocumentIOError, PulseError
from .runner import CycleOutcome, build_cycles, refresh_all
from .sections import locate, read_document
from .snapshot_cache import SnapshotCache
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="api")


def require_api_key(x_api_key: str | None = Header(default=None)):
    """
    Validate the X-API-Key header against the configured api_key, if any.
    """
    settings = get_settings()
    if not settings.api_key:
        logger.debug("No API key configured; allowing all requests")
        return

    if not x_api_key:
        logger.debug("No API key provided")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing API key")

    if hmac.compare_digest(str(x_api_key), str(settings.api_key)):
        return

    logger.debug("Invalid API key provided")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


router = APIRouter(dependencies=[Depends(require_api_key)])
# Shared across requests so bursts of refreshes are served from memory.
SNAPSHOT_CACHE = SnapshotCache()


class SectionStatus(BaseModel):
    """Where a configured section stands in the README."""
    name: str
    section_name: str
    found: bool
    target_id: Optional[str] = None
    last_update: Optional[datetime] = None
    error: Optional[str] = None


class SectionsResponse(BaseModel):
    """Status of every configured section."""
    readme_path: str
    sections: list[SectionStatus]


class CycleOutcomeModel(BaseModel):
    """Serialized outcome of one patch cycle."""
    name: str
    status: str
    previous_last_update: Optional[datetime] = None
    current_update: Optional[datetime] = None
    error: Optional[str] = None


class RefreshResponse(BaseModel):
    """Outcomes of a refresh run."""
    outcomes: list[CycleOutcomeModel]


def _outcome_model(outcome: CycleOutcome) -> CycleOutcomeModel:
    """Convert a CycleOutcome into its API shape."""
    result = outcome.result
    return CycleOutcomeModel(
        name=outcome.name,
        status=outcome.status,
        previous_last_update=result.previous_last_update if result else None,
        current_update=result.current_update if result else None,
        error=outcome.error,
    )


@router.get("/sections", response_model=SectionsResponse)
def list_sections():
    """Locate every configured section without fetching anything."""
    settings = get_settings()
    try:
        document = read_document(settings.readme_path)
    except DocumentIOError as exc:
        logger.warning("README unreadable: %s", exc)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))

    statuses = []
    for cycle in build_cycles(settings, build_providers(settings, SNAPSHOT_CACHE)):
        try:
            section = locate(document, cycle.section_name)
        except PulseError as exc:
            statuses.append(
                SectionStatus(name=cycle.name, section_name=cycle.section_name, found=False, error=str(exc))
            )
            continue
        statuses.append(
            SectionStatus(
                name=cycle.name,
                section_name=cycle.section_name,
                found=True,
                target_id=section.target_id,
                last_update=section.last_update,
            )
        )
    return SectionsResponse(readme_path=str(settings.readme_path), sections=statuses)


@router.post("/refresh", response_model=RefreshResponse)
async def refresh():
    """Run every configured patch cycle once."""
    outcomes = await refresh_all(get_settings(), cache=SNAPSHOT_CACHE)
    logger.info("Refresh finished", extra={"statuses": [o.status for o in outcomes]})
    return RefreshResponse(outcomes=[_outcome_model(o) for o in outcomes])
