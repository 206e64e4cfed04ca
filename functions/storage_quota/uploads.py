"""
Upload orchestration: quota check, compression, upload, counter update.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Optional

from shared.constants import (
    DEFAULT_PROFILE_PHOTO_KEEP_COUNT,
    ORIGINAL_SIZE_METADATA_KEY,
    UPLOADED_BY_METADATA_KEY,
)
from shared.types import ImageKind, UploadResult
from storage_quota.compression import compress_image, file_extension, profile_for
from storage_quota.config import StorageLimits
from storage_quota.counter import ProjectCounter
from storage_quota.enforcer import QuotaEnforcer
from storage_quota.errors import QuotaExceededError, StorageQuotaError, StoreUnavailable
from storage_quota.images import ImageLifecycleManager
from storage_quota.retention import RetentionCleaner
from storage_quota.storage import ObjectStoreClient

logger = logging.getLogger(__name__)


def build_object_path(user_id: str, kind: ImageKind, content_type: str) -> str:
    millis = int(time.time() * 1000)
    suffix = uuid.uuid4().hex[:8]
    return f"{kind.user_prefix(user_id)}/{millis}-{suffix}.{file_extension(content_type)}"


class ImageUploader:
    """Runs the upload data flow and keeps the project counter in step."""

    def __init__(
        self,
        objects: ObjectStoreClient,
        limits: StorageLimits,
        enforcer: QuotaEnforcer,
        counter: ProjectCounter,
        cleaner: RetentionCleaner,
        lifecycle: ImageLifecycleManager,
        profile_photo_keep_count: int = DEFAULT_PROFILE_PHOTO_KEEP_COUNT,
    ):
        self.objects = objects
        self.limits = limits
        self.enforcer = enforcer
        self.counter = counter
        self.cleaner = cleaner
        self.lifecycle = lifecycle
        self.profile_photo_keep_count = profile_photo_keep_count

    def upload_image(
        self, user_id: str, kind: ImageKind, data: bytes, content_type: str
    ) -> UploadResult:
        """
        Uploads an image for a user.

        The quota check uses the raw size. Raises QuotaExceededError on
        rejection and UnsupportedImageError for content that is not a
        supported image.
        """
        path = build_object_path(user_id, kind, content_type)

        decision = self.enforcer.check_upload(user_id, len(data))
        if not decision.can_upload:
            logger.info("Upload rejected for user %s: %s", user_id, decision.reason)
            raise QuotaExceededError(decision)

        compressed = compress_image(data, content_type, profile_for(kind, self.limits))
        metadata = self.objects.upload(
            path,
            compressed,
            content_type,
            {
                UPLOADED_BY_METADATA_KEY: user_id,
                ORIGINAL_SIZE_METADATA_KEY: str(len(data)),
            },
        )
        try:
            self.counter.adjust(metadata.size_bytes, 1)
        except StoreUnavailable:
            logger.error(
                "Uploaded %s but could not count its %d bytes; "
                "the project counter is behind until the next recalculation",
                path,
                metadata.size_bytes,
            )
            raise

        if kind == ImageKind.PROFILE_PHOTO:
            # The new photo is the newest, so it is always among those kept.
            self.cleaner.schedule_cleanup(user_id, self.profile_photo_keep_count)

        return UploadResult(
            path=path,
            download_url=self.objects.download_url(path),
            size_bytes=metadata.size_bytes,
            original_size_bytes=len(data),
        )

    def replace_image(
        self,
        user_id: str,
        kind: ImageKind,
        old_url: Optional[str],
        data: bytes,
        content_type: str,
    ) -> UploadResult:
        """
        Uploads the new image, then deletes the one it replaces.

        A failure to delete the old image is logged only: the new image is
        already stored, and the old object is still counted.
        """
        result = self.upload_image(user_id, kind, data, content_type)
        if old_url:
            try:
                self.lifecycle.delete_by_url(old_url)
            except StorageQuotaError:
                logger.exception("Failed to delete replaced image %s", old_url)
        return result
