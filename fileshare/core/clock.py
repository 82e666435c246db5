# fileshare/core/clock.py
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def isoformat(ts: datetime) -> str:
    """ATOM-style timestamp: 2025-01-01T12:00:00+00:00"""
    return ts.astimezone(timezone.utc).replace(microsecond=0).isoformat()
