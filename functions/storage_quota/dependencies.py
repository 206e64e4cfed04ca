"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from storage_quota.config import get_settings
from storage_quota.documents import (
    DocumentStore,
    FirestoreDocumentStore,
    InMemoryDocumentStore,
    SqlDocumentStore,
)
from storage_quota.service import StorageQuotaService
from storage_quota.storage import (
    FirebaseObjectStore,
    InMemoryObjectStore,
    ObjectStoreClient,
)

_document_store: DocumentStore | None = None
_object_store: ObjectStoreClient | None = None
_quota_service: StorageQuotaService | None = None


def get_document_store() -> DocumentStore:
    """
    Return a singleton document store so the counter persists across requests.
    """
    global _document_store
    if _document_store:
        return _document_store

    settings = get_settings()
    if settings.use_in_memory_backends:
        _document_store = InMemoryDocumentStore()
    elif settings.use_firebase:
        _document_store = FirestoreDocumentStore()
    elif settings.database_url:
        _document_store = SqlDocumentStore(settings.database_url)
    else:
        _document_store = InMemoryDocumentStore()
    return _document_store


def get_object_store() -> ObjectStoreClient:
    global _object_store
    if _object_store:
        return _object_store

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.use_firebase:
        _object_store = InMemoryObjectStore()
    else:
        _object_store = FirebaseObjectStore(bucket_name=settings.storage_bucket)
    return _object_store


def get_quota_service() -> StorageQuotaService:
    global _quota_service
    if _quota_service:
        return _quota_service

    _quota_service = StorageQuotaService.from_settings(
        get_settings(), get_document_store(), get_object_store()
    )
    return _quota_service


def reset_dependencies() -> None:
    """Drop the singletons (useful in tests)."""
    global _document_store, _object_store, _quota_service
    _document_store = None
    _object_store = None
    _quota_service = None
