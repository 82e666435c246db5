# fileshare/schemas/fileshare.py
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class _Wire(BaseModel):
    model_config = ConfigDict(extra="forbid")


class UploadData(_Wire):
    id: str
    filename: str
    downloadUrl: str
    expiresAt: str
    size: int


class UploadResponse(_Wire):
    success: bool = True
    data: UploadData


class ZipEntry(_Wire):
    name: str
    size: int


class InfoData(_Wire):
    id: str
    filename: str
    size: int
    expiresAt: str
    uploadedAt: str
    isZip: bool
    zipContents: Optional[List[ZipEntry]] = None
    zipTruncated: Optional[bool] = None


class InfoResponse(_Wire):
    success: bool = True
    data: InfoData


class ErrorResponse(_Wire):
    success: bool = False
    error: str
