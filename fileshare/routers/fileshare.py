# fileshare/routers/fileshare.py
from typing import Optional
from urllib.parse import quote

import structlog
from fastapi import APIRouter, Depends, File, Form, Query, Request, Response, UploadFile
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from starlette.background import BackgroundTask

from fileshare.core.clock import isoformat
from fileshare.core.errors import BadRequest, FileShareError
from fileshare.core.settings import Settings
from fileshare.dependencies import get_app_settings, get_fileshare_service, sweep_expired
from fileshare.schemas.fileshare import (
    ErrorResponse,
    InfoData,
    InfoResponse,
    UploadData,
    UploadResponse,
    ZipEntry,
)
from fileshare.services.fileshare_service import FileShareService

logger = structlog.get_logger(__name__)

# -----------------------------------------------------------------------------
# Router: één endpoint, net als de bestaande frontend verwacht
# -----------------------------------------------------------------------------
router = APIRouter(prefix="/fileshare", tags=["fileshare"], dependencies=[Depends(sweep_expired)])

FILENAME_HEADER = "X-Fileshare-Filename"


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _header_safe(value: str) -> bool:
    # alleen printbare ASCII gaat ongewijzigd de header in
    return all(32 <= ord(ch) < 127 for ch in value)


def _ascii_fallback(filename: str) -> str:
    out = "".join(
        ch if 32 <= ord(ch) < 127 and ch not in '"\\' else "_"
        for ch in filename
    )
    return out.strip() or "download"


def content_disposition(filename: str) -> str:
    return f"attachment; filename=\"{_ascii_fallback(filename)}\"; filename*=UTF-8''{quote(filename, safe='')}"


def filename_header(filename: str) -> str:
    return filename if _header_safe(filename) else quote(filename, safe="")


def _download_url(request: Request, settings: Settings, record_id: str) -> str:
    if settings.PUBLIC_BASE_URL:
        return f"{settings.PUBLIC_BASE_URL.rstrip('/')}{router.prefix}?id={record_id}"
    return str(request.url.replace(query=f"id={record_id}"))


# -----------------------------------------------------------------------------
# Preflight
# -----------------------------------------------------------------------------
@router.options("")
def preflight() -> Response:
    return Response(status_code=204)


# -----------------------------------------------------------------------------
# UPLOAD
# -----------------------------------------------------------------------------
@router.post("", response_model=UploadResponse, responses={400: {"model": ErrorResponse}, 413: {"model": ErrorResponse}})
def upload(
    request: Request,
    file: Optional[UploadFile] = File(None),
    action: Optional[str] = Form(None),
    settings: Settings = Depends(get_app_settings),
    service: FileShareService = Depends(get_fileshare_service),
):
    """
    Multipart upload met een enkel `file` veld.
    Het `action` veld is optioneel; als het meegestuurd wordt moet het `upload` zijn.
    """
    if action is not None and action != "upload":
        raise BadRequest("Invalid action")
    if file is None:
        raise BadRequest("Missing file payload")

    record = service.upload(file.filename, file.file, declared_size=file.size)

    return UploadResponse(
        data=UploadData(
            id=record.id,
            filename=record.filename,
            downloadUrl=_download_url(request, settings, record.id),
            expiresAt=isoformat(record.expires_at),
            size=record.size,
        )
    )


# -----------------------------------------------------------------------------
# INFO + DOWNLOAD
# -----------------------------------------------------------------------------
@router.get(
    "",
    response_model=InfoResponse,
    response_model_exclude_none=True,
    responses={404: {"model": ErrorResponse}, 410: {"model": ErrorResponse}},
)
def get_file(
    id: Optional[str] = Query(None),
    info: Optional[str] = Query(None),
    service: FileShareService = Depends(get_fileshare_service),
):
    """
    `?id=<id>&info` geeft JSON metadata (+ zip-preview),
    `?id=<id>` streamt de bytes met de originele bestandsnaam.
    """
    if id is None:
        return JSONResponse(ErrorResponse(error="Unsupported request").model_dump(), status_code=405)

    if info is not None:
        return _info(service, id)
    return _download(service, id)


def _info(service: FileShareService, raw_id: str) -> InfoResponse:
    result = service.info(raw_id)
    record = result.record

    data = InfoData(
        id=record.id,
        filename=record.filename,
        size=record.size,
        expiresAt=isoformat(record.expires_at),
        uploadedAt=isoformat(record.uploaded_at),
        isZip=result.is_zip,
    )
    if result.preview is not None:
        data.zipContents = [ZipEntry(name=e.name, size=e.size) for e in result.preview.entries]
        data.zipTruncated = result.preview.truncated

    return InfoResponse(data=data)


def _download(service: FileShareService, raw_id: str) -> Response:
    try:
        resolved = service.open_download(raw_id)
    except FileShareError as e:
        return PlainTextResponse(e.message, status_code=e.status_code)

    record, opened = resolved.record, resolved.opened
    logger.info("download_started", record_id=record.id, size=opened.size)

    return StreamingResponse(
        opened.iter_chunks(service.settings.CHUNK_SIZE),
        media_type="application/octet-stream",
        headers={
            "Content-Length": str(opened.size),
            "Content-Disposition": content_disposition(record.filename),
            FILENAME_HEADER: filename_header(record.filename),
        },
        background=BackgroundTask(opened.close),
    )
