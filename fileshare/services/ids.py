# fileshare/services/ids.py
import re
import secrets
from pathlib import PurePath

ID_BYTES = 6
ID_LENGTH = ID_BYTES * 2
DEFAULT_STORED_NAME = "fileshare.bin"
MAX_SAFE_NAME = 128

_NON_ID_CHARS = re.compile(r"[^0-9a-f]")
_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def new_id() -> str:
    """12 hex chars uit de OS CSPRNG; geen fallback naar een zwakkere bron."""
    return secrets.token_hex(ID_BYTES)


def sanitize_id(raw: str | None) -> str:
    """Strip everything outside the id alphabet. May return an empty string."""
    return _NON_ID_CHARS.sub("", raw or "")


def safe_filename(name: str | None) -> str:
    """Maak bestandsnaam FS-safe, met behoud van de extensie."""
    name = PurePath((name or "").replace("\\", "/")).name
    safe = _UNSAFE_NAME_CHARS.sub("_", name)
    if not safe.strip("."):
        return DEFAULT_STORED_NAME
    if len(safe) > MAX_SAFE_NAME:
        suffix = PurePath(safe).suffix[:16]
        safe = safe[: MAX_SAFE_NAME - len(suffix)] + suffix
    return safe


def stored_name_for(record_id: str, filename: str | None) -> str:
    # {id}__{safe_name}: uniek per upload, ook bij gelijke bestandsnamen
    return f"{record_id}__{safe_filename(filename)}"
