"""Section-scoped document patching."""

from .document_io import read_document, write_atomically
from .locator import Section, end_marker, last_update_marker, locate, start_marker
from .patcher import SectionPatcher, TargetMode, UpdateResult, normalize_body

__all__ = [
    "Section",
    "SectionPatcher",
    "TargetMode",
    "UpdateResult",
    "end_marker",
    "last_update_marker",
    "locate",
    "normalize_body",
    "read_document",
    "start_marker",
    "write_atomically",
]
