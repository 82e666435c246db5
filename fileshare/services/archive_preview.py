# fileshare/services/archive_preview.py
from __future__ import annotations

import zipfile
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import List

import structlog

from fileshare.core.errors import NotFound
from fileshare.services.object_store import ObjectStore

logger = structlog.get_logger(__name__)

DEFAULT_LIMIT = 200
ARCHIVE_EXTENSIONS = {".zip"}


@dataclass(frozen=True)
class ArchiveEntry:
    name: str
    size: int


@dataclass
class ArchivePreview:
    entries: List[ArchiveEntry] = field(default_factory=list)
    truncated: bool = False


def is_archive_name(name: str | None) -> bool:
    """Archive detection is by extension only; content is never sniffed."""
    if not name:
        return False
    return PurePath(name).suffix.lower() in ARCHIVE_EXTENSIONS


def preview(store: ObjectStore, location: str, limit: int = DEFAULT_LIMIT) -> ArchivePreview:
    """
    List up to ``limit`` content entries of a stored zip archive.

    Directory placeholders are skipped. ``truncated`` is set when at least
    one more content entry follows the cutoff. Anything that cannot be read
    as a zip yields an empty preview; a preview never fails the request.
    """
    result = ArchivePreview()
    try:
        opened = store.open(location)
    except NotFound:
        return result

    try:
        with zipfile.ZipFile(opened.handle) as zf:
            for info in zf.infolist():
                if info.is_dir():
                    continue
                if len(result.entries) >= limit:
                    result.truncated = True
                    break
                result.entries.append(ArchiveEntry(name=info.filename, size=info.file_size))
    except (zipfile.BadZipFile, zipfile.LargeZipFile, NotImplementedError, OSError, EOFError, ValueError) as e:
        # NotImplementedError: beschadigde "version needed" velden
        logger.info("archive_preview_unavailable", location=location, error=str(e))
        return ArchivePreview()
    finally:
        opened.close()

    return result
