"""
Retention cleanup: keeps only the newest profile photos of a user.
"""

from __future__ import annotations

import concurrent.futures
import logging
from typing import Optional

from shared.constants import DEFAULT_PROFILE_PHOTO_KEEP_COUNT
from shared.types import CleanupResult, ImageKind
from storage_quota.counter import ProjectCounter
from storage_quota.errors import ObjectNotFound
from storage_quota.storage import ObjectStoreClient
from storage_quota.usage import DEFAULT_MAX_WORKERS, fetch_all_metadata

logger = logging.getLogger(__name__)


class RetentionCleaner:
    """Deletes older profile photos beyond a retention count."""

    def __init__(
        self,
        objects: ObjectStoreClient,
        counter: ProjectCounter,
        max_workers: int = DEFAULT_MAX_WORKERS,
        executor: Optional[concurrent.futures.Executor] = None,
    ):
        self.objects = objects
        self.counter = counter
        self.max_workers = max_workers
        self._executor = executor

    def cleanup(
        self, user_id: str, keep_count: int = DEFAULT_PROFILE_PHOTO_KEEP_COUNT
    ) -> CleanupResult:
        """
        Deletes every profile photo older than the keep_count newest.

        The counter is adjusted once, after all deletions succeed. If this is
        interrupted midway the counter overcounts until the next
        recalculation.
        """
        if keep_count < 0:
            raise ValueError("keep_count must not be negative")

        prefix = ImageKind.PROFILE_PHOTO.user_prefix(user_id)
        paths = self.objects.list_objects(prefix)
        if len(paths) <= keep_count:
            return CleanupResult()

        photos = fetch_all_metadata(self.objects, paths, self.max_workers)
        photos.sort(key=lambda item: item.created_at, reverse=True)

        deleted = 0
        bytes_freed = 0
        for photo in photos[keep_count:]:
            try:
                self.objects.delete(photo.path)
            except ObjectNotFound:
                # Removed by a concurrent cleanup, which accounts for it.
                logger.info("Photo %s already deleted, skipping", photo.path)
                continue
            deleted += 1
            bytes_freed += photo.size_bytes

        if deleted:
            self.counter.adjust(-bytes_freed, -deleted)
        logger.info(
            "Cleaned up %d old photos (%d bytes) for user %s",
            deleted,
            bytes_freed,
            user_id,
        )
        return CleanupResult(deleted=deleted, bytes_freed=bytes_freed)

    def schedule_cleanup(
        self, user_id: str, keep_count: int = DEFAULT_PROFILE_PHOTO_KEEP_COUNT
    ) -> concurrent.futures.Future:
        """
        Runs cleanup in the background. The returned future may be ignored;
        failures are logged and never raised into the caller.
        """
        if self._executor is None:
            self._executor = concurrent.futures.ThreadPoolExecutor(
                max_workers=2, thread_name_prefix="retention-cleanup"
            )
        future = self._executor.submit(self.cleanup, user_id, keep_count)

        def _log_failure(done: concurrent.futures.Future) -> None:
            if done.cancelled():
                return
            error = done.exception()
            if error is not None:
                logger.error(
                    "Background photo cleanup for user %s failed: %s",
                    user_id,
                    error,
                    exc_info=error,
                )

        future.add_done_callback(_log_failure)
        return future
