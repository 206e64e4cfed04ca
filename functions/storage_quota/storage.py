"""
Object store abstraction for Firebase Storage (GCS) and in-memory testing.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol
from urllib.parse import quote

from firebase_admin import storage as firebase_storage
from google.api_core import exceptions

from shared.types import StoredObjectMetadata
from storage_quota.errors import ObjectNotFound, StoreUnavailable

FIREBASE_STORAGE_BASE_URL = "https://firebasestorage.googleapis.com/v0/b"
# Custom metadata key Firebase Storage uses for download URL tokens.
DOWNLOAD_TOKENS_KEY = "firebaseStorageDownloadTokens"


def build_download_url(bucket_name: str, path: str, token: str) -> str:
    """Builds a Firebase Storage retrieval URL. The path is embedded after /o/."""
    return (
        f"{FIREBASE_STORAGE_BASE_URL}/{bucket_name}/o/{quote(path, safe='')}"
        f"?alt=media&token={token}"
    )


class ObjectStoreClient(Protocol):
    """Defines the operations the quota backend needs from object storage."""

    def list_objects(self, prefix: str) -> list[str]:
        ...

    def get_metadata(self, path: str) -> StoredObjectMetadata:
        ...

    def delete(self, path: str) -> None:
        ...

    def upload(
        self,
        path: str,
        data: bytes,
        content_type: str,
        custom_metadata: Optional[Dict[str, str]] = None,
    ) -> StoredObjectMetadata:
        ...

    def download_url(self, path: str) -> str:
        ...


@dataclass
class InMemoryObjectStore:
    """Test double for object storage interactions."""

    bucket_name: str = "test-bucket.appspot.com"
    objects: dict = None
    # (operation, path) pairs, in call order.
    calls: list = None

    def __post_init__(self):
        if self.objects is None:
            self.objects = {}
        if self.calls is None:
            self.calls = []
        self._lock = threading.Lock()

    def add_object(
        self,
        path: str,
        size_bytes: int,
        created_at: Optional[datetime] = None,
        content_type: str = "image/jpeg",
    ) -> StoredObjectMetadata:
        """Seeds an object without recording a call."""
        metadata = StoredObjectMetadata(
            path=path,
            size_bytes=size_bytes,
            created_at=created_at or datetime.now(timezone.utc),
            content_type=content_type,
            custom_metadata={DOWNLOAD_TOKENS_KEY: uuid.uuid4().hex},
        )
        with self._lock:
            self.objects[path] = (b"\0" * size_bytes, metadata)
        return metadata

    def _record(self, operation: str, path: str) -> None:
        with self._lock:
            self.calls.append((operation, path))

    def count_calls(self, operation: str) -> int:
        return sum(1 for op, _ in self.calls if op == operation)

    def list_objects(self, prefix: str) -> list[str]:
        self._record("list", prefix)
        folder = prefix.rstrip("/") + "/"
        with self._lock:
            return sorted(path for path in self.objects if path.startswith(folder))

    def get_metadata(self, path: str) -> StoredObjectMetadata:
        self._record("get_metadata", path)
        with self._lock:
            stored = self.objects.get(path)
        if stored is None:
            raise ObjectNotFound(path)
        return replace(stored[1], custom_metadata=dict(stored[1].custom_metadata))

    def delete(self, path: str) -> None:
        self._record("delete", path)
        with self._lock:
            if path not in self.objects:
                raise ObjectNotFound(path)
            del self.objects[path]

    def upload(
        self,
        path: str,
        data: bytes,
        content_type: str,
        custom_metadata: Optional[Dict[str, str]] = None,
    ) -> StoredObjectMetadata:
        self._record("upload", path)
        metadata = StoredObjectMetadata(
            path=path,
            size_bytes=len(data),
            created_at=datetime.now(timezone.utc),
            content_type=content_type,
            custom_metadata={
                **(custom_metadata or {}),
                DOWNLOAD_TOKENS_KEY: uuid.uuid4().hex,
            },
        )
        with self._lock:
            self.objects[path] = (bytes(data), metadata)
        return metadata

    def download_url(self, path: str) -> str:
        metadata = self.get_metadata(path)
        return build_download_url(
            self.bucket_name, path, metadata.custom_metadata[DOWNLOAD_TOKENS_KEY]
        )

    def total_bytes(self) -> int:
        with self._lock:
            return sum(metadata.size_bytes for _, metadata in self.objects.values())


@dataclass
class FirebaseObjectStore:
    """
    Firebase Storage client backed by the google-cloud-storage bucket that
    firebase_admin exposes.
    """

    bucket_name: Optional[str] = None
    bucket: Any = field(default=None, repr=False)

    def __post_init__(self):
        if self.bucket is None:
            self.bucket = firebase_storage.bucket(self.bucket_name)

    def list_objects(self, prefix: str) -> list[str]:
        folder = prefix.rstrip("/") + "/"
        try:
            return [blob.name for blob in self.bucket.list_blobs(prefix=folder)]
        except exceptions.GoogleAPICallError as e:
            raise StoreUnavailable(f"Failed to list {folder}: {e}") from e

    def _get_blob(self, path: str):
        try:
            blob = self.bucket.get_blob(path)
        except exceptions.GoogleAPICallError as e:
            raise StoreUnavailable(f"Failed to read metadata for {path}: {e}") from e
        if blob is None:
            raise ObjectNotFound(path)
        return blob

    def get_metadata(self, path: str) -> StoredObjectMetadata:
        blob = self._get_blob(path)
        return StoredObjectMetadata(
            path=blob.name,
            size_bytes=int(blob.size or 0),
            created_at=blob.time_created,
            content_type=blob.content_type or "application/octet-stream",
            custom_metadata=dict(blob.metadata or {}),
        )

    def delete(self, path: str) -> None:
        try:
            self.bucket.blob(path).delete()
        except exceptions.NotFound as e:
            raise ObjectNotFound(path) from e
        except exceptions.GoogleAPICallError as e:
            raise StoreUnavailable(f"Failed to delete {path}: {e}") from e

    def upload(
        self,
        path: str,
        data: bytes,
        content_type: str,
        custom_metadata: Optional[Dict[str, str]] = None,
    ) -> StoredObjectMetadata:
        metadata = {**(custom_metadata or {}), DOWNLOAD_TOKENS_KEY: uuid.uuid4().hex}
        blob = self.bucket.blob(path)
        blob.metadata = metadata
        try:
            blob.upload_from_string(data, content_type=content_type)
        except exceptions.GoogleAPICallError as e:
            raise StoreUnavailable(f"Failed to upload {path}: {e}") from e
        return StoredObjectMetadata(
            path=path,
            size_bytes=len(data),
            created_at=blob.time_created or datetime.now(timezone.utc),
            content_type=content_type,
            custom_metadata=metadata,
        )

    def download_url(self, path: str) -> str:
        blob = self._get_blob(path)
        metadata = dict(blob.metadata or {})
        token = metadata.get(DOWNLOAD_TOKENS_KEY)
        if not token:
            token = uuid.uuid4().hex
            blob.metadata = {**metadata, DOWNLOAD_TOKENS_KEY: token}
            try:
                blob.patch()
            except exceptions.GoogleAPICallError as e:
                raise StoreUnavailable(f"Failed to issue token for {path}: {e}") from e
        # Firebase allows several comma-separated tokens; any of them works.
        return build_download_url(self.bucket.name, path, token.split(",")[0])
