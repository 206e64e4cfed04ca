"""
Configuration and settings for the storage quota backend.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.constants import DEFAULT_PROFILE_PHOTO_KEEP_COUNT
from storage_quota.errors import ConfigurationError

MB = 1024 * 1024
GB = 1024 * MB


class Settings(BaseSettings):
    """Environment-backed settings. Variables use the STORAGE_QUOTA_ prefix."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="STORAGE_QUOTA_",
        extra="ignore",
    )

    api_prefix: str = Field(default="/api")

    # Scopes the document paths: artifacts/{app_id}/...
    app_id: str = Field(default="default-app-id")

    # Firebase / GCS bucket. None uses the default bucket of the Firebase app.
    storage_bucket: Optional[str] = Field(default=None)

    # SQLAlchemy URL for the document store when not running on Firestore.
    database_url: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)
    use_firebase: bool = Field(default=False)

    # Limits (bytes)
    project_total_limit: int = Field(default=5 * GB)
    per_user_limit: int = Field(default=100 * MB)
    per_file_raw_limit: int = Field(default=10 * MB)
    per_file_compressed_target: int = Field(default=1 * MB)

    profile_photo_keep_count: int = Field(default=DEFAULT_PROFILE_PHOTO_KEEP_COUNT)
    metadata_fetch_workers: int = Field(default=8)
    reject_on_unknown_usage: bool = Field(default=False)


@dataclass(frozen=True)
class StorageLimits:
    """Quota thresholds, fixed for the lifetime of the process."""

    project_total_limit: int
    per_user_limit: int
    per_file_raw_limit: int
    per_file_compressed_target: int

    def __post_init__(self):
        for name in (
            "project_total_limit",
            "per_user_limit",
            "per_file_raw_limit",
            "per_file_compressed_target",
        ):
            value = getattr(self, name)
            if not isinstance(value, int) or value <= 0:
                raise ConfigurationError(f"{name} must be a positive byte count")
        if self.per_file_compressed_target > self.per_file_raw_limit:
            raise ConfigurationError(
                "per_file_compressed_target cannot exceed per_file_raw_limit"
            )
        if self.per_user_limit > self.project_total_limit:
            raise ConfigurationError(
                "per_user_limit cannot exceed project_total_limit"
            )

    @classmethod
    def from_settings(cls, settings: Settings) -> "StorageLimits":
        return cls(
            project_total_limit=settings.project_total_limit,
            per_user_limit=settings.per_user_limit,
            per_file_raw_limit=settings.per_file_raw_limit,
            per_file_compressed_target=settings.per_file_compressed_target,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()

