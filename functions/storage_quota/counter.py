"""
The cached project-wide storage counter.

The counter lives in a single document and is only mutated through the
document store's transaction primitive, so concurrent adjustments from
different requests (or process instances) are never lost. It is never cached
in process memory.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Optional

from dacite import Config, from_dict

from shared.constants import storage_record_path
from shared.json_utils import convert_keys
from shared.types import ProjectStorageRecord
from storage_quota.documents import DocumentStore
from storage_quota.errors import StoreUnavailable

logger = logging.getLogger(__name__)


def _as_datetime(value: Any) -> Optional[datetime]:
    # Firestore returns datetimes, the SQL store returns ISO-8601 strings.
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def record_from_document(data: dict) -> ProjectStorageRecord:
    values = convert_keys(data, "camel_to_snake")
    values["total_bytes"] = int(values.get("total_bytes") or 0)
    values["total_files"] = int(values.get("total_files") or 0)
    values["last_updated"] = _as_datetime(values.get("last_updated"))
    values["last_recalculated"] = _as_datetime(values.get("last_recalculated"))
    return from_dict(
        data_class=ProjectStorageRecord,
        data=values,
        config=Config(check_types=False),
    )


def record_to_document(record: ProjectStorageRecord) -> dict:
    return convert_keys(asdict(record), "snake_to_camel")


class ProjectCounter:
    """Reads and atomically updates the project storage record."""

    def __init__(self, documents: DocumentStore, app_id: str):
        self.documents = documents
        self.path = storage_record_path(app_id)

    def read_record(self) -> Optional[ProjectStorageRecord]:
        data = self.documents.get(self.path)
        if data is None:
            return None
        return record_from_document(data)

    def read(self) -> int:
        """Returns the cached total bytes, 0 when the record does not exist."""
        record = self.read_record()
        return record.total_bytes if record else 0

    def adjust(self, delta_bytes: int, delta_files: int = 0) -> ProjectStorageRecord:
        """
        Applies a signed delta in one transaction, clamping totals at zero.

        Failures propagate: a counter update that fails after a successful
        upload or delete must be visible to the caller.
        """
        now = datetime.now(timezone.utc)

        def _apply(current: Optional[dict]) -> dict:
            current = current or {}
            return {
                "totalBytes": max(0, int(current.get("totalBytes") or 0) + delta_bytes),
                "totalFiles": max(0, int(current.get("totalFiles") or 0) + delta_files),
                "lastUpdated": now,
            }

        try:
            updated = self.documents.transact(self.path, _apply)
        except StoreUnavailable:
            logger.exception(
                "Failed to adjust project storage by %d bytes, %d files",
                delta_bytes,
                delta_files,
            )
            raise
        logger.info(
            "Project storage adjusted by %d bytes to %s",
            delta_bytes,
            updated.get("totalBytes"),
        )
        return record_from_document(updated)

    def overwrite(
        self,
        total_bytes: int,
        total_files: int,
        recalculated_at: Optional[datetime] = None,
    ) -> ProjectStorageRecord:
        """Replaces the whole record. Only the reconciler calls this."""
        now = recalculated_at or datetime.now(timezone.utc)
        record = ProjectStorageRecord(
            total_bytes=max(0, total_bytes),
            total_files=max(0, total_files),
            last_updated=now,
            last_recalculated=now,
        )
        try:
            self.documents.set(self.path, record_to_document(record), merge=False)
        except StoreUnavailable:
            logger.exception("Failed to overwrite project storage record")
            raise
        return record
