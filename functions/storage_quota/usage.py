"""
Per-user storage usage, computed from the object store.
"""

from __future__ import annotations

import concurrent.futures
import logging
from typing import Optional

from shared.types import ImageKind, StoredObjectMetadata, UserUsage
from storage_quota.errors import ObjectNotFound, StoreUnavailable
from storage_quota.storage import ObjectStoreClient

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8


def fetch_all_metadata(
    objects: ObjectStoreClient,
    paths: list[str],
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> list[StoredObjectMetadata]:
    """
    Fetches metadata for every path concurrently.

    Objects deleted between listing and fetching are skipped. Any other
    failure fails the whole batch.
    """
    if not paths:
        return []

    def _fetch(path: str) -> Optional[StoredObjectMetadata]:
        try:
            return objects.get_metadata(path)
        except ObjectNotFound:
            logger.info("Object %s disappeared while listing, skipping", path)
            return None

    workers = max(1, min(max_workers, len(paths)))
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
        results = list(executor.map(_fetch, paths))
    return [metadata for metadata in results if metadata is not None]


class UsageCalculator:
    """Sums the objects a user holds under each of their storage prefixes."""

    def __init__(
        self,
        objects: ObjectStoreClient,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        self.objects = objects
        self.max_workers = max_workers

    def compute(self, user_id: str) -> UserUsage:
        """Strict form: store failures propagate as StoreUnavailable."""
        total_bytes = 0
        file_count = 0
        for kind in ImageKind:
            paths = self.objects.list_objects(kind.user_prefix(user_id))
            metadata = fetch_all_metadata(self.objects, paths, self.max_workers)
            total_bytes += sum(item.size_bytes for item in metadata)
            file_count += len(metadata)
        return UserUsage(total_bytes=total_bytes, file_count=file_count)

    def usage(self, user_id: str) -> UserUsage:
        """
        Best-effort form for quota checks. On store failure logs and returns
        UserUsage.unknown() instead of raising.
        """
        try:
            return self.compute(user_id)
        except StoreUnavailable:
            logger.exception("Failed to calculate storage usage for user %s", user_id)
            return UserUsage.unknown()
