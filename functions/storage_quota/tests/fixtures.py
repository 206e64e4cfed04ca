"""
Shared builders for the storage quota tests.
"""

from __future__ import annotations

import concurrent.futures
import io
from datetime import datetime, timedelta, timezone

from PIL import Image

from storage_quota.config import StorageLimits
from storage_quota.documents import InMemoryDocumentStore
from storage_quota.service import StorageQuotaService
from storage_quota.storage import InMemoryObjectStore

APP_ID = "test-app"
BASE_TIME = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

SMALL_LIMITS = StorageLimits(
    project_total_limit=10_000,
    per_user_limit=5_000,
    per_file_raw_limit=2_000,
    per_file_compressed_target=1_000,
)


def minutes_after_base(minutes: int) -> datetime:
    return BASE_TIME + timedelta(minutes=minutes)


def make_service(limits: StorageLimits | None = None, **kwargs) -> StorageQuotaService:
    return StorageQuotaService(
        InMemoryDocumentStore(),
        InMemoryObjectStore(),
        limits
        or StorageLimits(
            project_total_limit=5 * 1024**3,
            per_user_limit=100 * 1024**2,
            per_file_raw_limit=10 * 1024**2,
            per_file_compressed_target=1024**2,
        ),
        APP_ID,
        **kwargs,
    )


def make_image_bytes(
    size=(1200, 900), image_format: str = "JPEG", noisy: bool = True, quality: int = 100
) -> bytes:
    if noisy:
        image = Image.effect_noise(size, 64).convert("RGB")
    else:
        image = Image.new("RGB", size, (200, 120, 40))
    buffer = io.BytesIO()
    if image_format == "JPEG":
        image.save(buffer, format=image_format, quality=quality)
    else:
        image.save(buffer, format=image_format)
    return buffer.getvalue()


class InlineExecutor(concurrent.futures.Executor):
    """Runs submitted work immediately so background tasks are deterministic."""

    def submit(self, fn, *args, **kwargs):
        future = concurrent.futures.Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future
