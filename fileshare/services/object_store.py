# fileshare/services/object_store.py
import os
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import BinaryIO, Iterator, List, Tuple

import structlog

from fileshare.core.errors import NotFound, PayloadTooLarge

logger = structlog.get_logger(__name__)

PART_SUFFIX = ".part"


def is_partial(name: str) -> bool:
    return name.startswith(".") and name.endswith(PART_SUFFIX)


@dataclass
class OpenedObject:
    """A stored object opened for sequential reading.

    The handle stays valid even if the object is deleted afterwards.
    """

    handle: BinaryIO
    size: int

    def iter_chunks(self, chunk_size: int) -> Iterator[bytes]:
        try:
            while True:
                chunk = self.handle.read(chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            self.handle.close()

    def close(self) -> None:
        self.handle.close()


# =========================
# Abstracte Object Store
# =========================
class ObjectStore(ABC):
    """Durable byte storage addressed by a derived location."""

    @abstractmethod
    def write(self, location: str, src: BinaryIO, max_bytes: int) -> int:
        """Stream ``src`` to ``location``; returns the committed size.

        Raises PayloadTooLarge when more than ``max_bytes`` arrive. Nothing
        is left behind at ``location`` when the write fails.
        """

    @abstractmethod
    def open(self, location: str) -> OpenedObject:
        """Raises NotFound when the location does not resolve."""

    @abstractmethod
    def exists(self, location: str) -> bool:
        pass

    @abstractmethod
    def delete(self, location: str) -> bool:
        pass

    @abstractmethod
    def list_stale(self, older_than_seconds: float) -> List[str]:
        """Committed locations and partial uploads older than the given age."""

    @abstractmethod
    def delete_partial(self, name: str) -> bool:
        pass


# =========================
# Local Storage
# =========================
class LocalObjectStore(ObjectStore):
    """Lokale bestandsopslag: één bestand per upload onder ``root``."""

    def __init__(self, root: Path, chunk_size: int = 1024 * 1024):
        self.root = Path(root)
        self.chunk_size = chunk_size
        self.root.mkdir(parents=True, exist_ok=True)

    def _full_path(self, location: str) -> Path:
        # location is altijd een kale bestandsnaam; nooit een pad
        if not location or PurePath(location).name != location or location.startswith("."):
            raise ValueError(f"invalid storage location: {location!r}")
        return self.root / location

    def write(self, location: str, src: BinaryIO, max_bytes: int) -> int:
        final = self._full_path(location)
        tmp = self.root / f".{location}.{uuid.uuid4().hex}{PART_SUFFIX}"
        written = 0
        try:
            with open(tmp, "xb") as dst:
                while True:
                    # nooit meer lezen dan nog toegestaan is (+1 om overschrijding te zien)
                    chunk = src.read(min(self.chunk_size, max_bytes - written + 1))
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > max_bytes:
                        raise PayloadTooLarge()
                    dst.write(chunk)
                dst.flush()
                os.fsync(dst.fileno())
            os.replace(tmp, final)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise

        logger.info("object_written", location=location, size=written)
        return written

    def open(self, location: str) -> OpenedObject:
        try:
            handle = open(self._full_path(location), "rb")
        except (FileNotFoundError, IsADirectoryError, ValueError):
            raise NotFound() from None
        try:
            size = os.fstat(handle.fileno()).st_size
        except OSError:
            handle.close()
            raise
        return OpenedObject(handle=handle, size=size)

    def exists(self, location: str) -> bool:
        try:
            return self._full_path(location).is_file()
        except ValueError:
            return False

    def delete(self, location: str) -> bool:
        try:
            self._full_path(location).unlink()
        except (FileNotFoundError, ValueError):
            return False
        except OSError as e:
            logger.error("object_delete_failed", location=location, error=str(e))
            return False
        logger.info("object_deleted", location=location)
        return True

    def _entries(self) -> Iterator[Tuple[Path, float]]:
        for p in self.root.iterdir():
            try:
                if p.is_file():
                    yield p, p.stat().st_mtime
            except FileNotFoundError:
                continue

    def list_stale(self, older_than_seconds: float) -> List[str]:
        cutoff = time.time() - older_than_seconds
        return [p.name for p, mtime in self._entries() if mtime < cutoff]

    def delete_partial(self, name: str) -> bool:
        """Remove an abandoned ``.part`` file by name."""
        if not is_partial(name) or PurePath(name).name != name:
            return False
        try:
            (self.root / name).unlink()
        except FileNotFoundError:
            return False
        logger.info("partial_upload_removed", name=name)
        return True
