"""
Image deletion by retrieval URL, used when recipe or profile images are
removed or replaced.
"""

from __future__ import annotations

import logging
import re
from typing import Optional
from urllib.parse import unquote

from storage_quota.counter import ProjectCounter
from storage_quota.storage import ObjectStoreClient

logger = logging.getLogger(__name__)

# Firebase Storage retrieval URLs embed the percent-encoded object path:
#   https://firebasestorage.googleapis.com/v0/b/<bucket>/o/<path>?alt=media&token=...
STORAGE_PATH_PATTERN = re.compile(r"/o/([^?]+)")


def storage_path_from_url(url: Optional[str]) -> Optional[str]:
    """Returns the object path embedded in a retrieval URL, or None."""
    if not url:
        return None
    match = STORAGE_PATH_PATTERN.search(url)
    if not match:
        return None
    path = unquote(match.group(1))
    return path or None


class ImageLifecycleManager:
    """Deletes stored images and keeps the project counter in step."""

    def __init__(self, objects: ObjectStoreClient, counter: ProjectCounter):
        self.objects = objects
        self.counter = counter

    def delete_by_url(self, url: Optional[str]) -> int:
        """
        Deletes the object behind a retrieval URL and returns the bytes freed.

        A URL that does not resolve to a path frees nothing and is not an
        error. Metadata and delete failures propagate.
        """
        path = storage_path_from_url(url)
        if path is None:
            logger.warning("Could not resolve a storage path from URL %r", url)
            return 0

        size_bytes = self.objects.get_metadata(path).size_bytes
        self.objects.delete(path)
        self.counter.adjust(-size_bytes, -1)
        logger.info("Deleted image %s (%d bytes)", path, size_bytes)
        return size_bytes
