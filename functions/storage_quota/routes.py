"""
HTTP routes for the storage quota API.
"""

from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from shared.types import ImageKind
from storage_quota.dependencies import get_quota_service
from storage_quota.errors import QuotaExceededError, UnsupportedImageError
from storage_quota.schemas import (
    BytesFreedResponse,
    CheckUploadRequest,
    CheckUploadResponse,
    CleanupRequest,
    CleanupResponse,
    DeleteByUrlRequest,
    RecalculateResponse,
    StorageUsageResponse,
    UploadResponse,
)
from storage_quota.service import StorageQuotaService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/storage/usage", response_model=StorageUsageResponse)
def get_storage_usage(service: StorageQuotaService = Depends(get_quota_service)):
    summary = service.storage_summary()
    return StorageUsageResponse(
        total_bytes=summary.used_bytes,
        formatted=summary.used_formatted,
        limit_bytes=summary.limit_bytes,
        limit_formatted=summary.limit_formatted,
        percentage=summary.percentage,
        level=summary.level,
    )


@router.post("/storage/check-upload", response_model=CheckUploadResponse)
def check_upload(
    payload: CheckUploadRequest,
    service: StorageQuotaService = Depends(get_quota_service),
):
    decision = service.check_upload(payload.user_id, payload.size_bytes)
    return asdict(decision)


@router.post("/storage/cleanup", response_model=CleanupResponse)
def cleanup_old_photos(
    payload: CleanupRequest,
    service: StorageQuotaService = Depends(get_quota_service),
):
    result = service.cleanup(payload.user_id, payload.keep_count)
    return asdict(result)


@router.post("/storage/delete-by-url", response_model=BytesFreedResponse)
def delete_by_url(
    payload: DeleteByUrlRequest,
    service: StorageQuotaService = Depends(get_quota_service),
):
    return BytesFreedResponse(bytes_freed=service.delete_by_url(payload.url))


@router.post("/storage/recalculate", response_model=RecalculateResponse)
def recalculate(service: StorageQuotaService = Depends(get_quota_service)):
    """
    Operator-triggered repair of the project counter. All or nothing.
    """
    return asdict(service.recalculate())


@router.post("/storage/upload", response_model=UploadResponse, status_code=201)
def upload_image(
    user_id: str = Form(...),
    kind: ImageKind = Form(...),
    file: UploadFile = File(...),
    service: StorageQuotaService = Depends(get_quota_service),
):
    data = file.file.read()
    content_type = file.content_type or "application/octet-stream"
    try:
        result = service.upload_image(user_id, kind, data, content_type)
    except QuotaExceededError as e:
        raise HTTPException(status_code=413, detail=e.decision.reason)
    except UnsupportedImageError as e:
        raise HTTPException(status_code=415, detail=str(e))
    return asdict(result)


@router.delete(
    "/users/{user_id}/recipes/{recipe_id}", response_model=BytesFreedResponse
)
def delete_recipe(
    user_id: str,
    recipe_id: str,
    service: StorageQuotaService = Depends(get_quota_service),
):
    return BytesFreedResponse(bytes_freed=service.delete_recipe(user_id, recipe_id))
