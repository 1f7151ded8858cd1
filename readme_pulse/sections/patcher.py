"""Locate, fetch, render, compare and rewrite one section of a document."""
from __future__ import annotations

import datetime as dt
import re
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Optional, Union

from readme_pulse.app_types import MetricsSnapshot
from readme_pulse.errors import ConfigError, MissingTargetIdentifier, NotFoundError
from readme_pulse.renderer import RenderOptions, render
from readme_pulse.sections.document_io import read_document, write_atomically
from readme_pulse.sections.locator import (
    HTML_COMMENT_END,
    LAST_UPDATE_PREFIX,
    Section,
    last_update_marker,
    locate,
)
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="sections/patcher")

CODE_FENCE = "```"
_LAST_UPDATE_RE = re.compile(re.escape(LAST_UPDATE_PREFIX) + r".*?" + re.escape(HTML_COMMENT_END))

Fetcher = Callable[[str], MetricsSnapshot]
Renderer = Callable[[MetricsSnapshot, RenderOptions], str]
Normalizer = Callable[[str], str]


class TargetMode(str, Enum):
    """Where the query target for a section comes from."""
    DOCUMENT = "document"  # declared in the start marker, e.g. a city
    STATIC = "static"  # configured, e.g. a stats range


@dataclass(frozen=True)
class UpdateResult:
    """Outcome of one patch call."""
    section_name: str
    rendered: str
    previous_last_update: Optional[dt.datetime]
    current_update: dt.datetime
    was_updated: bool
    skipped: bool = False  # section absent from the document

    @classmethod
    def skipped_for(cls, section_name: str, now: dt.datetime) -> "UpdateResult":
        return cls(
            section_name=section_name,
            rendered="",
            previous_last_update=None,
            current_update=now,
            was_updated=False,
            skipped=True,
        )


def normalize_body(text: str) -> str:
    """Comparable form of a section body.

    Drops last-update markers, code-fence lines and blank lines, and trims
    every remaining line.
    """
    lines = []
    for line in _LAST_UPDATE_RE.sub("", text).splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith(CODE_FENCE) or stripped.endswith(CODE_FENCE):
            continue
        lines.append(stripped)
    return "\n".join(lines)


def build_replacement(section: Section, rendered: str, now: dt.datetime) -> str:
    """Start marker, timestamp marker, body and end marker, newline separated."""
    return "\n".join([section.start_marker, last_update_marker(now), rendered, section.end_marker])


def splice(document: str, section: Section, replacement: str) -> str:
    """Replace the section (markers included), keeping everything around it as is."""
    return document[:section.start_offset] + replacement + document[section.stop_offset:]


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class SectionPatcher:
    """Rewrites delimited sections of documents on disk.

    A patcher may be shared by concurrent cycles. Network calls run without
    any lock; the compare-and-write step holds a per-document lock and works
    on a freshly read snapshot, so cycles that patch different sections of the
    same file never overwrite each other.
    """

    def __init__(
        self,
        *,
        renderer: Renderer = render,
        normalizer: Normalizer = normalize_body,
        clock: Optional[Callable[[], dt.datetime]] = None,
    ) -> None:
        self._renderer = renderer
        self._normalizer = normalizer
        self._clock = clock or _utcnow
        self._locks: Dict[Path, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _document_lock(self, path: Path) -> threading.Lock:
        key = path.resolve()
        with self._locks_guard:
            return self._locks.setdefault(key, threading.Lock())

    @staticmethod
    def _resolve_target(section: Section, mode: TargetMode, static_target: Optional[str]) -> str:
        if mode is TargetMode.DOCUMENT:
            if section.target_id is None:
                raise MissingTargetIdentifier(section.name)
            return section.target_id
        if not static_target:
            raise ConfigError(f"Section '{section.name}' needs a configured target")
        return static_target

    def patch(
        self,
        document_path: Union[str, Path],
        section_name: str,
        fetch: Fetcher,
        *,
        mode: TargetMode = TargetMode.STATIC,
        static_target: Optional[str] = None,
        options: Optional[RenderOptions] = None,
    ) -> UpdateResult:
        """Refresh `section_name` in `document_path`.

        A document without the section yields a skipped result and no write.
        Malformed markers, fetch failures and I/O failures raise and leave the
        document untouched.
        """
        path = Path(document_path)
        options = options or RenderOptions()

        document = read_document(path)
        try:
            section = locate(document, section_name)
        except NotFoundError as exc:
            logger.info("%s - skipping", exc)
            return UpdateResult.skipped_for(section_name, self._clock())

        target = self._resolve_target(section, mode, static_target)
        logger.info(
            "Found section %s, target: %s, last update: %s",
            section_name,
            target,
            section.last_update,
        )

        snapshot = fetch(target)
        rendered = self._renderer(snapshot, options)

        with self._document_lock(path):
            # Another cycle may have rewritten the file while we were fetching.
            document = read_document(path)
            try:
                section = locate(document, section_name)
            except NotFoundError as exc:
                logger.info("%s - skipping", exc)
                return UpdateResult.skipped_for(section_name, self._clock())

            now = self._clock()
            if self._normalizer(section.body) == self._normalizer(rendered):
                logger.info("No update needed for section %s", section_name)
                return UpdateResult(
                    section_name=section_name,
                    rendered=rendered,
                    previous_last_update=section.last_update,
                    current_update=now,
                    was_updated=False,
                )

            write_atomically(path, splice(document, section, build_replacement(section, rendered, now)))

        logger.info("Updated section %s", section_name)
        return UpdateResult(
            section_name=section_name,
            rendered=rendered,
            previous_last_update=section.last_update,
            current_update=now,
            was_updated=True,
        )
