# fileshare/models/object_record.py
from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import PurePath

from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator

from fileshare.core.clock import isoformat


class ObjectRecord(BaseModel):
    """Metadata of one stored upload. Immutable once committed."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
    )

    id: str
    filename: str = Field(min_length=1)
    stored_name: str = Field(alias="storedName", min_length=1)
    size: int = Field(ge=0)
    uploaded_at: datetime = Field(alias="uploadedAt")
    expires_at: datetime = Field(alias="expiresAt")

    @model_validator(mode="after")
    def _check_derived_fields(self) -> "ObjectRecord":
        # storedName is altijd afgeleid van het id, nooit van buitenaf
        if not self.stored_name.startswith(f"{self.id}__"):
            raise ValueError("storedName does not belong to id")
        if PurePath(self.stored_name).name != self.stored_name:
            raise ValueError("storedName must be a bare file name")
        if self.uploaded_at.tzinfo is None or self.expires_at.tzinfo is None:
            raise ValueError("timestamps must carry a UTC offset")
        if self.expires_at <= self.uploaded_at:
            raise ValueError("expiresAt must be after uploadedAt")
        return self

    @field_serializer("uploaded_at", "expires_at")
    def _ser_ts(self, ts: datetime) -> str:
        return isoformat(ts)

    @classmethod
    def create(
        cls,
        *,
        id: str,
        filename: str,
        stored_name: str,
        size: int,
        uploaded_at: datetime,
        ttl: timedelta,
    ) -> "ObjectRecord":
        return cls(
            id=id,
            filename=filename,
            stored_name=stored_name,
            size=size,
            uploaded_at=uploaded_at,
            expires_at=uploaded_at + ttl,
        )

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)
