import os
import tempfile

# Module-level app mag nooit in de werkdirectory schrijven tijdens tests
_default_root = tempfile.mkdtemp(prefix="fileshare-tests-")
os.environ.setdefault("STORAGE_ROOT", os.path.join(_default_root, "uploads"))
os.environ.setdefault("META_ROOT", os.path.join(_default_root, "uploads", "meta"))

import io
import zipfile
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from fileshare.core.settings import Settings
from fileshare.main import create_app
from fileshare.services.fileshare_service import FileShareService


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings(tmp_path):
    return Settings(
        STORAGE_ROOT=tmp_path / "uploads",
        META_ROOT=tmp_path / "uploads" / "meta",
        MAX_UPLOAD_BYTES=256 * 1024,
        CHUNK_SIZE=4096,
        PUBLIC_BASE_URL="https://files.example.com",
        _env_file=None,
    )


@pytest.fixture
def service(settings, clock):
    return FileShareService(settings, clock=clock)


@pytest.fixture
def client(settings, clock):
    app = create_app(settings, clock=clock)
    with TestClient(app) as c:
        yield c


def make_zip(n_files: int, *, with_dirs: bool = False) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_STORED) as zf:
        if with_dirs:
            zf.writestr("folder/", b"")
        for i in range(n_files):
            zf.writestr(f"folder/file_{i:04d}.txt", b"x" * (i % 7))
    return buf.getvalue()


@pytest.fixture
def zip_factory():
    return make_zip


@pytest.fixture
def anyio_backend():
    # Dwing anyio om alleen asyncio te gebruiken (geen Trio nodig)
    return "asyncio"


def break_zip_version(data: bytes) -> bytes:
    """Zet het "version needed to extract" veld van de eerste central-directory entry op 10.5."""
    out = bytearray(data)
    idx = out.index(b"PK\x01\x02")
    out[idx + 6] = 105
    return bytes(out)


@pytest.fixture
def broken_zip():
    return break_zip_version(make_zip(5))
