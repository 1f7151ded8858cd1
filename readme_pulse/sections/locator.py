"""Find a delimited section inside a document and read the metadata embedded in it.

Marker grammar::

    <!--START_SECTION:<name>-->            static target (comes from settings)
    <!--START_SECTION:<name>:<target>-->   target declared by the document
    <!--LAST_UPDATE:YYYY-MM-DD HH:MM:SS--> optional, inside the section, UTC
    <!--END_SECTION:<name>-->

Only the first start marker and the first end marker after it are used.
"""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Optional

from readme_pulse.errors import MalformedMarker, MissingTargetIdentifier, SectionNotFound
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="sections/locator")

START_SECTION_PREFIX = "<!--START_SECTION:"
END_SECTION_PREFIX = "<!--END_SECTION:"
LAST_UPDATE_PREFIX = "<!--LAST_UPDATE:"
HTML_COMMENT_END = "-->"
TARGET_SEPARATOR = ":"
DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class Section:
    """A located section; offsets are string indices into the document it came from."""
    name: str
    start_offset: int  # first character of the start marker
    end_offset: int  # first character of the end marker
    start_marker: str
    end_marker: str
    target_id: Optional[str]
    last_update: Optional[dt.datetime]  # timezone-aware, UTC
    body: str  # text between the two markers, untouched

    @property
    def stop_offset(self) -> int:
        """Index just past the end marker."""
        return self.end_offset + len(self.end_marker)


def start_marker(name: str, target: Optional[str] = None) -> str:
    """Build a start marker, optionally declaring a target."""
    if target is None:
        return f"{START_SECTION_PREFIX}{name}{HTML_COMMENT_END}"
    if not target.strip() or target != target.strip() or HTML_COMMENT_END in target:
        raise ValueError(f"Invalid section target: {target!r}")
    return f"{START_SECTION_PREFIX}{name}{TARGET_SEPARATOR}{target}{HTML_COMMENT_END}"


def end_marker(name: str) -> str:
    """Build the end marker for `name`."""
    return f"{END_SECTION_PREFIX}{name}{HTML_COMMENT_END}"


def format_timestamp(moment: dt.datetime) -> str:
    """Format `moment` in UTC using the marker timestamp format."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(dt.timezone.utc)
    return moment.strftime(DATETIME_FORMAT)


def last_update_marker(moment: dt.datetime) -> str:
    """Build the embedded last-update marker for `moment`."""
    return f"{LAST_UPDATE_PREFIX}{format_timestamp(moment)}{HTML_COMMENT_END}"


def parse_last_update(region: str) -> Optional[dt.datetime]:
    """Return the UTC timestamp of the first last-update marker in `region`, if readable."""
    update_pos = region.find(LAST_UPDATE_PREFIX)
    if update_pos == -1:
        logger.debug("No last update timestamp found")
        return None

    timestamp_start = update_pos + len(LAST_UPDATE_PREFIX)
    timestamp_end = region.find(HTML_COMMENT_END, timestamp_start)
    if timestamp_end == -1:
        timestamp_end = len(region)
    raw = region[timestamp_start:timestamp_end].strip()

    try:
        parsed = dt.datetime.strptime(raw, DATETIME_FORMAT)
    except ValueError as exc:
        logger.warning("Failed to parse last update timestamp %r: %s", raw, exc)
        return None
    return parsed.replace(tzinfo=dt.timezone.utc)


def _find_start(document: str, name: str) -> int:
    """Index of the first start marker for exactly `name` (not a longer name sharing its prefix)."""
    prefix = f"{START_SECTION_PREFIX}{name}"
    search_from = 0
    while True:
        pos = document.find(prefix, search_from)
        if pos == -1:
            raise SectionNotFound(name)
        after = pos + len(prefix)
        if document.startswith(TARGET_SEPARATOR, after) or document.startswith(HTML_COMMENT_END, after):
            return pos
        search_from = pos + 1


def locate(document: str, section_name: str) -> Section:
    """
    Locate `section_name` in `document`.

    Raises
    ------
    SectionNotFound
        No start marker, or no end marker after it.
    MalformedMarker
        The start marker is never closed.
    MissingTargetIdentifier
        The start marker has a `:` but an empty target.
    """
    start_pos = _find_start(document, section_name)
    header_start = start_pos + len(START_SECTION_PREFIX) + len(section_name)

    header_end = document.find(HTML_COMMENT_END, header_start)
    if header_end == -1:
        raise MalformedMarker(section_name)

    header = document[header_start:header_end]
    target_id: Optional[str] = None
    if header.startswith(TARGET_SEPARATOR):
        target_id = header[len(TARGET_SEPARATOR):].strip()
        if not target_id:
            raise MissingTargetIdentifier(section_name)

    body_start = header_end + len(HTML_COMMENT_END)
    closing = end_marker(section_name)
    end_pos = document.find(closing, body_start)
    if end_pos == -1:
        raise SectionNotFound(section_name, detail="end marker not found")

    body = document[body_start:end_pos]
    section = Section(
        name=section_name,
        start_offset=start_pos,
        end_offset=end_pos,
        start_marker=document[start_pos:body_start],
        end_marker=closing,
        target_id=target_id,
        last_update=parse_last_update(body),
        body=body,
    )
    logger.debug(
        "Located section",
        extra={"section": section_name, "target": target_id, "last_update": str(section.last_update)},
    )
    return section
