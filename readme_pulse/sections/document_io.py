"""Reading and atomically replacing the target document."""
from __future__ import annotations

import contextlib
import os
from pathlib import Path

from readme_pulse.errors import DocumentIOError
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="sections/document_io")

TEMP_SUFFIX = ".tmp"


def temp_path_for(path: Path) -> Path:
    """Sibling temp path used while writing: `<path>.tmp`."""
    return path.with_name(path.name + TEMP_SUFFIX)


def read_document(path: Path) -> str:
    """Read the whole document; newlines are returned exactly as stored."""
    try:
        with open(path, "r", encoding="utf-8", newline="") as fh:
            return fh.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise DocumentIOError(f"Failed to read {path}: {exc}") from exc


def write_atomically(path: Path, content: str) -> None:
    """Write `content` to `<path>.tmp`, then rename it over `path`.

    The rename is the only step that touches `path`; on any failure the temp
    file is removed and the original document is left as it was.
    """
    temp_path = temp_path_for(path)
    try:
        with open(temp_path, "w", encoding="utf-8", newline="") as fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(temp_path, path)
    except OSError as exc:
        with contextlib.suppress(OSError):
            temp_path.unlink()
        raise DocumentIOError(f"Failed to update {path}: {exc}") from exc
    logger.debug("Replaced document", extra={"path": str(path), "chars": len(content)})
