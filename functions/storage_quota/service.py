"""
Facade over the storage quota components, consumed by request handlers.
"""

from __future__ import annotations

import logging
from typing import Optional

from shared.constants import recipe_document_path, users_collection_path
from shared.types import (
    CleanupResult,
    ImageKind,
    ProjectStorageRecord,
    RecalculationResult,
    UploadQuotaDecision,
    UploadResult,
    UsageSummary,
)
from storage_quota.config import Settings, StorageLimits
from storage_quota.counter import ProjectCounter
from storage_quota.documents import DocumentStore
from storage_quota.enforcer import QuotaEnforcer
from storage_quota.formatting import format_bytes, usage_summary
from storage_quota.images import ImageLifecycleManager
from storage_quota.reconciler import ProjectReconciler
from storage_quota.retention import RetentionCleaner
from storage_quota.storage import ObjectStoreClient
from storage_quota.uploads import ImageUploader
from storage_quota.usage import UsageCalculator

logger = logging.getLogger(__name__)

RECIPE_IMAGE_FIELD = "imageUrl"
PROFILE_PHOTO_FIELD = "photoUrl"


class StorageQuotaService:
    """Wires the quota components over one document store and one object store."""

    def __init__(
        self,
        documents: DocumentStore,
        objects: ObjectStoreClient,
        limits: StorageLimits,
        app_id: str,
        profile_photo_keep_count: int = 3,
        metadata_fetch_workers: int = 8,
        reject_on_unknown_usage: bool = False,
    ):
        self.documents = documents
        self.objects = objects
        self.limits = limits
        self.app_id = app_id
        self.profile_photo_keep_count = profile_photo_keep_count

        self.counter = ProjectCounter(documents, app_id)
        self.calculator = UsageCalculator(objects, max_workers=metadata_fetch_workers)
        self.enforcer = QuotaEnforcer(
            limits,
            self.counter,
            self.calculator,
            reject_on_unknown_usage=reject_on_unknown_usage,
        )
        self.cleaner = RetentionCleaner(
            objects, self.counter, max_workers=metadata_fetch_workers
        )
        self.lifecycle = ImageLifecycleManager(objects, self.counter)
        self.reconciler = ProjectReconciler(
            documents, self.calculator, self.counter, app_id
        )
        self.uploader = ImageUploader(
            objects,
            limits,
            self.enforcer,
            self.counter,
            self.cleaner,
            self.lifecycle,
            profile_photo_keep_count=profile_photo_keep_count,
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, documents: DocumentStore, objects: ObjectStoreClient
    ) -> "StorageQuotaService":
        return cls(
            documents,
            objects,
            StorageLimits.from_settings(settings),
            settings.app_id,
            profile_photo_keep_count=settings.profile_photo_keep_count,
            metadata_fetch_workers=settings.metadata_fetch_workers,
            reject_on_unknown_usage=settings.reject_on_unknown_usage,
        )

    # Quota and usage

    def check_upload(self, user_id: str, size_bytes: int) -> UploadQuotaDecision:
        return self.enforcer.check_upload(user_id, size_bytes)

    def get_project_usage(self) -> int:
        return self.counter.read()

    def get_project_record(self) -> Optional[ProjectStorageRecord]:
        return self.counter.read_record()

    def storage_summary(self) -> UsageSummary:
        return usage_summary(self.counter.read(), self.limits.project_total_limit)

    @staticmethod
    def format_bytes(num_bytes: int, decimals: int = 2) -> str:
        return format_bytes(num_bytes, decimals)

    # Space reclamation

    def cleanup(self, user_id: str, keep_count: Optional[int] = None) -> CleanupResult:
        if keep_count is None:
            keep_count = self.profile_photo_keep_count
        return self.cleaner.cleanup(user_id, keep_count)

    def delete_by_url(self, url: Optional[str]) -> int:
        return self.lifecycle.delete_by_url(url)

    def recalculate(self) -> RecalculationResult:
        return self.reconciler.recalculate()

    # Image actions

    def upload_image(
        self, user_id: str, kind: ImageKind, data: bytes, content_type: str
    ) -> UploadResult:
        return self.uploader.upload_image(user_id, kind, data, content_type)

    def replace_profile_photo(
        self, user_id: str, data: bytes, content_type: str
    ) -> UploadResult:
        user_path = f"{users_collection_path(self.app_id)}/{user_id}"
        user = self.documents.get(user_path) or {}
        result = self.uploader.replace_image(
            user_id,
            ImageKind.PROFILE_PHOTO,
            user.get(PROFILE_PHOTO_FIELD),
            data,
            content_type,
        )
        self.documents.set(
            user_path, {PROFILE_PHOTO_FIELD: result.download_url}, merge=True
        )
        return result

    def replace_recipe_image(
        self, user_id: str, recipe_id: str, data: bytes, content_type: str
    ) -> UploadResult:
        recipe_path = recipe_document_path(self.app_id, user_id, recipe_id)
        recipe = self.documents.get(recipe_path) or {}
        result = self.uploader.replace_image(
            user_id,
            ImageKind.RECIPE_IMAGE,
            recipe.get(RECIPE_IMAGE_FIELD),
            data,
            content_type,
        )
        self.documents.set(
            recipe_path, {RECIPE_IMAGE_FIELD: result.download_url}, merge=True
        )
        return result

    def remove_recipe_image(self, user_id: str, recipe_id: str) -> int:
        recipe_path = recipe_document_path(self.app_id, user_id, recipe_id)
        recipe = self.documents.get(recipe_path)
        if not recipe or not recipe.get(RECIPE_IMAGE_FIELD):
            return 0
        bytes_freed = self.lifecycle.delete_by_url(recipe[RECIPE_IMAGE_FIELD])
        self.documents.set(recipe_path, {RECIPE_IMAGE_FIELD: None}, merge=True)
        return bytes_freed

    def delete_recipe(self, user_id: str, recipe_id: str) -> int:
        """Deletes a recipe document, then its image. Returns bytes freed."""
        recipe_path = recipe_document_path(self.app_id, user_id, recipe_id)
        recipe = self.documents.get(recipe_path)
        self.documents.delete(recipe_path)
        image_url = (recipe or {}).get(RECIPE_IMAGE_FIELD)
        if not image_url:
            return 0
        return self.lifecycle.delete_by_url(image_url)
