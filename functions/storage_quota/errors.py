"""
Error types raised by the storage quota backend.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from shared.types import UploadQuotaDecision


class StorageQuotaError(Exception):
    """Base class for storage quota errors."""


class ConfigurationError(StorageQuotaError):
    """Storage limits are missing or inconsistent."""


class StoreUnavailable(StorageQuotaError):
    """The object store or the document store failed an I/O operation."""


class ObjectNotFound(StoreUnavailable):
    """The requested object does not exist in the object store."""

    def __init__(self, path: str):
        super().__init__(f"Object not found: {path}")
        self.path = path


class QuotaExceededError(StorageQuotaError):
    """An upload was rejected by the quota check."""

    def __init__(self, decision: "UploadQuotaDecision"):
        super().__init__(decision.reason or "Upload rejected by storage quota")
        self.decision = decision


class UnsupportedImageError(StorageQuotaError):
    """The image content cannot be compressed."""
