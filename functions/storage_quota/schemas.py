"""
Pydantic schemas for the storage quota HTTP API.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


class QuotaUsageModel(BaseModel):
    user: int
    project: int


class CheckUploadRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=128)
    size_bytes: int = Field(..., ge=0)


class CheckUploadResponse(BaseModel):
    can_upload: bool
    reason: Optional[str] = None
    usage: Optional[QuotaUsageModel] = None


class CleanupRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=128)
    keep_count: Optional[int] = Field(default=None, ge=0)


class CleanupResponse(BaseModel):
    deleted: int
    bytes_freed: int


class DeleteByUrlRequest(BaseModel):
    url: str = Field(..., max_length=4096)


class BytesFreedResponse(BaseModel):
    bytes_freed: int


class RecalculateResponse(BaseModel):
    total_bytes: int
    total_files: int
    user_count: int


class StorageUsageResponse(BaseModel):
    total_bytes: int
    formatted: str
    limit_bytes: int
    limit_formatted: str
    percentage: float
    level: Literal["ok", "warning", "danger"]


class UploadResponse(BaseModel):
    path: str
    download_url: str
    size_bytes: int
    original_size_bytes: int
