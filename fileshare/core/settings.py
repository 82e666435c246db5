# fileshare/core/settings.py
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # === Algemene app settings ===
    APP_ENV: str = "local"  # local | development | production
    PUBLIC_BASE_URL: Optional[str] = None

    # === Storage ===
    STORAGE_ROOT: Path = Path("./uploads")
    META_ROOT: Path = Path("./uploads/meta")
    TTL_HOURS: int = Field(48, description="Lifetime of an upload in hours")
    MAX_UPLOAD_BYTES: int = 1024 * 1024 * 1024  # 1GB safety cap
    UPLOAD_OVERHEAD_BYTES: int = 64 * 1024  # ruimte voor multipart boundaries + form velden
    ZIP_PREVIEW_LIMIT: int = 200
    CHUNK_SIZE: int = 1024 * 1024

    # === Sweeper ===
    SWEEP_ON_REQUEST: bool = True
    SWEEP_INTERVAL_SECONDS: float = 0  # 0 = geen achtergrondtaak
    ORPHAN_GRACE_SECONDS: int = 3600

    # === Logging ===
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("TTL_HOURS", "MAX_UPLOAD_BYTES", "ZIP_PREVIEW_LIMIT", "CHUNK_SIZE")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @field_validator("SWEEP_INTERVAL_SECONDS", "ORPHAN_GRACE_SECONDS", "UPLOAD_OVERHEAD_BYTES")
    @classmethod
    def _not_negative(cls, v):
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @model_validator(mode="after")
    def _separate_roots(self) -> "Settings":
        # de sweeper zou metadata-bestanden anders als orphans zien
        if self.STORAGE_ROOT.resolve() == self.META_ROOT.resolve():
            raise ValueError("STORAGE_ROOT and META_ROOT must be different directories")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton Settings instance met simpele env-overrides."""
    s = Settings()

    env = s.APP_ENV.lower()
    if env == "production":
        s.LOG_LEVEL = "WARNING"
    elif env == "development":
        s.LOG_LEVEL = "DEBUG"

    return s
