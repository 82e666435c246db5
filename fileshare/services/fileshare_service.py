# fileshare/services/fileshare_service.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import BinaryIO, Callable, Collection, Optional

import structlog

from fileshare.core.clock import Clock, utc_now
from fileshare.core.errors import (
    BadRequest,
    CorruptRecordError,
    FileShareError,
    Gone,
    InternalError,
    NotFound,
    PayloadTooLarge,
    RecordExistsError,
)
from fileshare.core.settings import Settings
from fileshare.models.object_record import ObjectRecord
from fileshare.services import archive_preview
from fileshare.services.archive_preview import ArchivePreview
from fileshare.services.ids import DEFAULT_STORED_NAME, new_id, sanitize_id, stored_name_for
from fileshare.services.metadata_store import JsonMetadataStore, MetadataStore
from fileshare.services.object_store import LocalObjectStore, ObjectStore, OpenedObject
from fileshare.services.sweeper import Sweeper, SweepResult, purge

logger = structlog.get_logger(__name__)

ID_ATTEMPTS = 5


@dataclass
class FileInfo:
    record: ObjectRecord
    is_zip: bool
    preview: Optional[ArchivePreview] = None


@dataclass
class Download:
    record: ObjectRecord
    opened: OpenedObject


class FileShareService:
    """
    Facade voor upload / info / download.

    Every operation is Validate -> (possession of the id is the only
    authorization) -> Execute -> result; failures raise FileShareError
    subclasses that the HTTP layer maps onto status codes.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        objects: Optional[ObjectStore] = None,
        metadata: Optional[MetadataStore] = None,
        clock: Clock = utc_now,
        id_factory: Callable[[], str] = new_id,
    ):
        self.settings = settings
        self.objects = objects or LocalObjectStore(settings.STORAGE_ROOT, chunk_size=settings.CHUNK_SIZE)
        self.metadata = metadata or JsonMetadataStore(settings.META_ROOT)
        self.clock = clock
        self.id_factory = id_factory
        self.ttl = timedelta(hours=settings.TTL_HOURS)
        self.sweeper = Sweeper(
            self.objects,
            self.metadata,
            orphan_grace_seconds=settings.ORPHAN_GRACE_SECONDS,
            corrupt_grace_seconds=self.ttl.total_seconds(),
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------
    def _allocate_id(self) -> str:
        for _ in range(ID_ATTEMPTS):
            record_id = self.id_factory()
            if not self.metadata.exists(record_id):
                return record_id
            logger.warning("id_collision", record_id=record_id)
        raise InternalError("Unable to allocate file id")

    def upload(self, filename: Optional[str], src: BinaryIO, declared_size: Optional[int] = None) -> ObjectRecord:
        max_bytes = self.settings.MAX_UPLOAD_BYTES
        if declared_size is not None and declared_size > max_bytes:
            raise PayloadTooLarge()

        original_name = filename or DEFAULT_STORED_NAME
        for _ in range(ID_ATTEMPTS):
            record_id = self._allocate_id()
            stored_name = stored_name_for(record_id, original_name)
            size = self._write_bytes(stored_name, src, max_bytes)
            if size == 0:
                self.objects.delete(stored_name)
                raise BadRequest("Empty file payload")

            record = ObjectRecord.create(
                id=record_id,
                filename=original_name,
                stored_name=stored_name,
                size=size,
                uploaded_at=self.clock(),
                ttl=self.ttl,
            )
            try:
                # metadata-write is het commit-punt
                self.metadata.put(record)
            except RecordExistsError:
                # iemand anders was ons net voor met hetzelfde id
                self.objects.delete(stored_name)
                src.seek(0)
                continue
            except OSError as e:
                self.objects.delete(stored_name)
                logger.error("metadata_write_failed", record_id=record_id, error=str(e))
                raise InternalError("Unable to save uploaded file") from e

            logger.info("upload_committed", record_id=record.id, size=record.size)
            return record

        raise InternalError("Unable to allocate file id")

    def _write_bytes(self, stored_name: str, src: BinaryIO, max_bytes: int) -> int:
        try:
            return self.objects.write(stored_name, src, max_bytes)
        except FileShareError:
            raise
        except OSError as e:
            logger.error("object_write_failed", location=stored_name, error=str(e))
            raise InternalError("Unable to save uploaded file") from e

    # ------------------------------------------------------------------
    # Resolve (gedeeld door info en download)
    # ------------------------------------------------------------------
    def _resolve(self, raw_id: Optional[str], invalid_message: str) -> Download:
        record_id = sanitize_id(raw_id)
        if not record_id:
            raise BadRequest(invalid_message)

        try:
            record = self.metadata.get(record_id)
        except CorruptRecordError:
            logger.warning("corrupt_record_discarded", record_id=record_id)
            self.metadata.delete(record_id)
            raise NotFound()
        if record is None:
            raise NotFound()

        try:
            opened = self.objects.open(record.stored_name)
        except NotFound:
            logger.warning("dangling_record_discarded", record_id=record_id)
            self.metadata.delete(record_id)
            raise

        # verlopen gaat voor inconsistent: een verlopen link blijft "expired"
        if record.is_expired(self.clock()):
            opened.close()
            purge(self.objects, self.metadata, record)
            logger.info("record_expired", record_id=record_id)
            raise Gone()

        if opened.size != record.size:
            opened.close()
            logger.warning(
                "size_mismatch_discarded",
                record_id=record_id,
                recorded=record.size,
                actual=opened.size,
            )
            purge(self.objects, self.metadata, record)
            raise NotFound()

        return Download(record=record, opened=opened)

    # ------------------------------------------------------------------
    # Info
    # ------------------------------------------------------------------
    def info(self, raw_id: Optional[str]) -> FileInfo:
        resolved = self._resolve(raw_id, "Invalid file id")
        resolved.opened.close()
        record = resolved.record

        is_zip = archive_preview.is_archive_name(record.stored_name) or archive_preview.is_archive_name(
            record.filename
        )
        info = FileInfo(record=record, is_zip=is_zip)
        if is_zip:
            info.preview = archive_preview.preview(
                self.objects, record.stored_name, limit=self.settings.ZIP_PREVIEW_LIMIT
            )
        return info

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------
    def open_download(self, raw_id: Optional[str]) -> Download:
        return self._resolve(raw_id, "Invalid download id")

    def sweep(self, exclude: Collection[str] = ()) -> SweepResult:
        return self.sweeper.sweep(exclude)
