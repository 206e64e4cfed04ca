# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

# Cloud functions for storage quota accounting.
#
# This file containing Python cloud functions must be named main.py.
# See https://cloud.google.com/run/docs/write-functions#python for more info.

# Standard library imports
from dataclasses import asdict
from typing import Optional

# Third-party library imports
from firebase_admin import initialize_app
from firebase_functions import https_fn, logger, options, scheduler_fn

# Local application imports
from shared.json_utils import convert_keys
from shared.types import ImageKind
from storage_quota.config import get_settings
from storage_quota.documents import FirestoreDocumentStore
from storage_quota.errors import ConfigurationError, StoreUnavailable
from storage_quota.formatting import format_bytes
from storage_quota.images import storage_path_from_url
from storage_quota.service import StorageQuotaService
from storage_quota.storage import FirebaseObjectStore

MAX_URL_LENGTH = 4096
RECALCULATE_FUNCTION_TIMEOUT = 540

initialize_app()

_quota_service: Optional[StorageQuotaService] = None


def get_quota_service() -> StorageQuotaService:
    """Builds the service over Firestore and Firebase Storage on first use."""
    global _quota_service
    if _quota_service is None:
        settings = get_settings()
        _quota_service = StorageQuotaService.from_settings(
            settings,
            FirestoreDocumentStore(),
            FirebaseObjectStore(bucket_name=settings.storage_bucket),
        )
    return _quota_service


def _require_uid(req: https_fn.CallableRequest) -> str:
    if req.auth is None or not req.auth.uid:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.UNAUTHENTICATED,
            "Must be signed in.",
        )
    return req.auth.uid


def _require_admin(req: https_fn.CallableRequest) -> str:
    uid = _require_uid(req)
    if not (req.auth.token or {}).get("admin"):
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.PERMISSION_DENIED,
            "Only administrators can recalculate project storage.",
        )
    return uid


def _owns_path(uid: str, path: str) -> bool:
    return any(path.startswith(kind.user_prefix(uid) + "/") for kind in ImageKind)


def _unavailable(action: str, error: Exception) -> https_fn.HttpsError:
    logger.error(f"Storage backend failure during {action}: {error}")
    return https_fn.HttpsError(
        https_fn.FunctionsErrorCode.UNAVAILABLE,
        f"Storage is temporarily unavailable: {error}",
    )


def handle_check_upload_quota(uid: str, data: dict) -> dict:
    size_bytes = data.get("sizeBytes")
    if not isinstance(size_bytes, int) or isinstance(size_bytes, bool) or size_bytes < 0:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            "sizeBytes must be a non-negative integer.",
        )
    try:
        decision = get_quota_service().check_upload(uid, size_bytes)
    except StoreUnavailable as e:
        raise _unavailable("quota check", e)
    return convert_keys(asdict(decision), "snake_to_camel")


def handle_cleanup_old_photos(uid: str, data: dict) -> dict:
    keep_count = data.get("keepCount")
    if keep_count is not None and (
        not isinstance(keep_count, int) or isinstance(keep_count, bool) or keep_count < 0
    ):
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            "keepCount must be a non-negative integer.",
        )
    try:
        result = get_quota_service().cleanup(uid, keep_count)
    except StoreUnavailable as e:
        raise _unavailable("photo cleanup", e)
    return convert_keys(asdict(result), "snake_to_camel")


def handle_delete_image_by_url(uid: str, data: dict) -> dict:
    url = data.get("url")
    if not isinstance(url, str) or not url:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            "Must specify url parameter.",
        )
    if len(url) > MAX_URL_LENGTH:
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            "url exceeds max length.",
        )
    path = storage_path_from_url(url)
    if path is not None and not _owns_path(uid, path):
        raise https_fn.HttpsError(
            https_fn.FunctionsErrorCode.PERMISSION_DENIED,
            "Cannot delete another user's image.",
        )
    try:
        bytes_freed = get_quota_service().delete_by_url(url)
    except StoreUnavailable as e:
        raise _unavailable("image deletion", e)
    return {"bytesFreed": bytes_freed}


def handle_get_project_storage_usage() -> dict:
    try:
        summary = get_quota_service().storage_summary()
    except StoreUnavailable as e:
        raise _unavailable("usage read", e)
    return convert_keys(asdict(summary), "snake_to_camel")


def handle_recalculate_project_storage() -> dict:
    try:
        result = get_quota_service().recalculate()
    except (StoreUnavailable, ConfigurationError) as e:
        raise _unavailable("recalculation", e)
    logger.info(
        f"Recalculated project storage: {format_bytes(result.total_bytes)} "
        f"in {result.total_files} files for {result.user_count} users"
    )
    return convert_keys(asdict(result), "snake_to_camel")


@https_fn.on_call(memory=options.MemoryOption.MB_512)
def check_upload_quota(req: https_fn.CallableRequest) -> dict:
    """
    Checks whether the caller may upload a file of the given size.

    Args:
        req (https_fn.CallableRequest): The request, containing sizeBytes.

    Returns:
        A dictionary representation of the UploadQuotaDecision object.
    """
    uid = _require_uid(req)
    return handle_check_upload_quota(uid, req.data or {})


@https_fn.on_call(memory=options.MemoryOption.MB_512)
def cleanup_old_photos(req: https_fn.CallableRequest) -> dict:
    """
    Deletes the caller's profile photos beyond the newest keepCount.

    Args:
        req (https_fn.CallableRequest): The request, optionally containing keepCount.

    Returns:
        A dictionary representation of the CleanupResult object.
    """
    uid = _require_uid(req)
    return handle_cleanup_old_photos(uid, req.data or {})


@https_fn.on_call(memory=options.MemoryOption.MB_512)
def delete_image_by_url(req: https_fn.CallableRequest) -> dict:
    """
    Deletes the image behind a retrieval URL and updates the project counter.

    Args:
        req (https_fn.CallableRequest): The request, containing the url.
        Only images under the caller's own storage prefixes can be deleted.

    Returns:
        A dictionary with the number of bytes freed.
    """
    uid = _require_uid(req)
    return handle_delete_image_by_url(uid, req.data or {})


@https_fn.on_call(memory=options.MemoryOption.MB_256)
def get_project_storage_usage(req: https_fn.CallableRequest) -> dict:
    _require_uid(req)
    return handle_get_project_storage_usage()


@https_fn.on_call(
    timeout_sec=RECALCULATE_FUNCTION_TIMEOUT, memory=options.MemoryOption.GB_1
)
def recalculate_project_storage(req: https_fn.CallableRequest) -> dict:
    """
    Recomputes the project storage counter from the object store.
    Restricted to callers with the admin custom claim.

    Returns:
        A dictionary representation of the RecalculationResult object.
    """
    _require_admin(req)
    return handle_recalculate_project_storage()


@scheduler_fn.on_schedule(
    schedule="every 24 hours",
    timeout_sec=RECALCULATE_FUNCTION_TIMEOUT,
    memory=options.MemoryOption.GB_1,
)
def scheduled_recalculate_project_storage(event: scheduler_fn.ScheduledEvent) -> None:
    """Nightly repair of counter drift."""
    try:
        result = get_quota_service().recalculate()
    except StoreUnavailable as e:
        logger.error(f"Scheduled storage recalculation failed: {e}")
        raise
    logger.info(
        f"Scheduled recalculation: {result.total_bytes} bytes, "
        f"{result.total_files} files, {result.user_count} users"
    )
