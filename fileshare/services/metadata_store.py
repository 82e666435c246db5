# fileshare/services/metadata_store.py
import json
import os
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional

import structlog
from pydantic import ValidationError

from fileshare.core.errors import CorruptRecordError, RecordExistsError
from fileshare.models.object_record import ObjectRecord
from fileshare.services.ids import sanitize_id

logger = structlog.get_logger(__name__)


@dataclass
class MetadataScan:
    """Result of a single pass over all stored records."""

    records: List[ObjectRecord] = field(default_factory=list)
    corrupt: List[str] = field(default_factory=list)


# =========================
# Abstracte Metadata Store
# =========================
class MetadataStore(ABC):
    """Durable ObjectRecord storage keyed by id."""

    @abstractmethod
    def put(self, record: ObjectRecord) -> None:
        """Commit a new record. Raises RecordExistsError if the id is taken."""

    @abstractmethod
    def get(self, record_id: str) -> Optional[ObjectRecord]:
        """Return the record, None when absent, CorruptRecordError when unreadable."""

    @abstractmethod
    def exists(self, record_id: str) -> bool:
        pass

    @abstractmethod
    def delete(self, record_id: str) -> bool:
        """Best-effort; returns False when there was nothing to delete."""

    @abstractmethod
    def list_all(self) -> List[ObjectRecord]:
        pass

    def scan(self, corrupt_older_than_seconds: Optional[float] = None) -> MetadataScan:
        return MetadataScan(records=self.list_all())


# =========================
# JSON-bestand per record
# =========================
class JsonMetadataStore(MetadataStore):
    """One ``<id>.json`` file per record under ``root``.

    Records are written to a temp file first and then hard-linked into
    place, so readers never see a half-written record and an existing
    record is never replaced.
    """

    SUFFIX = ".json"

    def __init__(self, root: Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, record_id: str) -> Path:
        return self.root / f"{sanitize_id(record_id)}{self.SUFFIX}"

    def put(self, record: ObjectRecord) -> None:
        if not record.id or sanitize_id(record.id) != record.id:
            raise ValueError("record id contains characters outside the id alphabet")

        final = self._path(record.id)
        tmp = self.root / f".{record.id}.{uuid.uuid4().hex}.tmp"
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                f.write(record.to_json())
                f.flush()
                os.fsync(f.fileno())
            try:
                os.link(tmp, final)
            except FileExistsError:
                raise RecordExistsError(record.id) from None
        finally:
            tmp.unlink(missing_ok=True)

        logger.debug("metadata_committed", record_id=record.id)

    def get(self, record_id: str) -> Optional[ObjectRecord]:
        record_id = sanitize_id(record_id)
        if not record_id:
            return None
        return self._load(self._path(record_id), record_id)

    def _load(self, path: Path, record_id: str) -> Optional[ObjectRecord]:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

        try:
            record = ObjectRecord.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            raise CorruptRecordError(record_id) from e

        if record.id != record_id:
            raise CorruptRecordError(record_id)
        return record

    def exists(self, record_id: str) -> bool:
        record_id = sanitize_id(record_id)
        return bool(record_id) and self._path(record_id).exists()

    def delete(self, record_id: str) -> bool:
        record_id = sanitize_id(record_id)
        if not record_id:
            return False
        try:
            self._path(record_id).unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error("metadata_delete_failed", record_id=record_id, error=str(e))
            return False
        logger.debug("metadata_deleted", record_id=record_id)
        return True

    def _record_ids(self) -> Iterator[str]:
        for path in self.root.glob(f"*{self.SUFFIX}"):
            record_id = path.name[: -len(self.SUFFIX)]
            # temp files en vreemde namen overslaan
            if record_id and sanitize_id(record_id) == record_id:
                yield record_id

    def list_all(self) -> List[ObjectRecord]:
        return self.scan().records

    def scan(self, corrupt_older_than_seconds: Optional[float] = None) -> MetadataScan:
        """Parse every record once.

        Unreadable records are skipped; when ``corrupt_older_than_seconds``
        is given, the ids of those older than that age are collected too.
        """
        cutoff = None if corrupt_older_than_seconds is None else time.time() - corrupt_older_than_seconds
        result = MetadataScan()
        for record_id in self._record_ids():
            path = self._path(record_id)
            try:
                record = self._load(path, record_id)
            except CorruptRecordError:
                logger.debug("metadata_corrupt", record_id=record_id)
                if cutoff is not None and self._older_than(path, cutoff):
                    result.corrupt.append(record_id)
                continue
            if record is not None:
                result.records.append(record)
        return result

    @staticmethod
    def _older_than(path: Path, cutoff: float) -> bool:
        try:
            return path.stat().st_mtime < cutoff
        except FileNotFoundError:
            return False
