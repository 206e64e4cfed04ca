"""
Document store abstraction for Firestore, SQL databases, and in-memory testing.

Documents are addressed by slash-separated paths, e.g.
``artifacts/{app_id}/metadata/storage``. The only contended document is the
project storage record, so every store provides ``transact`` as an atomic
read-modify-write primitive.
"""

from __future__ import annotations

import copy
import json
import threading
import time
from datetime import date, datetime
from typing import Any, Callable, Dict, Optional, Protocol

from firebase_admin import firestore
from google.api_core import exceptions
from sqlalchemy import JSON, Column, Float, String, create_engine, event, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from storage_quota.errors import StoreUnavailable

# Receives the current document (None when absent) and returns the fields to
# merge into it. Firestore may run it more than once, so it must be pure.
UpdateFn = Callable[[Optional[dict]], dict]

MAX_INSERT_ATTEMPTS = 3


class DocumentStore(Protocol):
    """Interface for document access."""

    def get(self, path: str) -> Optional[dict]:
        ...

    def set(self, path: str, data: dict, merge: bool = False) -> None:
        ...

    def delete(self, path: str) -> None:
        ...

    def list_ids(self, collection_path: str) -> list[str]:
        ...

    def transact(self, path: str, update: UpdateFn) -> dict:
        ...


class InMemoryDocumentStore:
    """Simple in-memory document store for development and tests."""

    def __init__(self):
        self.documents: Dict[str, dict] = {}
        self.transactions = 0
        self._lock = threading.Lock()

    def get(self, path: str) -> Optional[dict]:
        with self._lock:
            data = self.documents.get(path)
            return copy.deepcopy(data) if data is not None else None

    def set(self, path: str, data: dict, merge: bool = False) -> None:
        with self._lock:
            if merge and path in self.documents:
                self.documents[path] = {**self.documents[path], **copy.deepcopy(data)}
            else:
                self.documents[path] = copy.deepcopy(data)

    def delete(self, path: str) -> None:
        with self._lock:
            self.documents.pop(path, None)

    def list_ids(self, collection_path: str) -> list[str]:
        collection_path = collection_path.strip("/")
        prefix = collection_path + "/"
        ids = set()
        with self._lock:
            for path in self.documents:
                if path.startswith(prefix):
                    # Parent documents of nested collections count too.
                    ids.add(path[len(prefix):].split("/", 1)[0])
        return sorted(ids)

    def transact(self, path: str, update: UpdateFn) -> dict:
        with self._lock:
            self.transactions += 1
            current = self.documents.get(path)
            updated = update(copy.deepcopy(current) if current is not None else None)
            self.documents[path] = {**(current or {}), **copy.deepcopy(updated)}
            return copy.deepcopy(self.documents[path])

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.documents.clear()
            self.transactions = 0


class FirestoreDocumentStore:
    """Firestore-backed implementation using native transactions."""

    def __init__(self, client=None):
        self.client = client if client is not None else firestore.client()

    def get(self, path: str) -> Optional[dict]:
        try:
            snapshot = self.client.document(path).get()
        except exceptions.GoogleAPICallError as e:
            raise StoreUnavailable(f"Failed to read {path}: {e}") from e
        if not snapshot.exists:
            return None
        return snapshot.to_dict()

    def set(self, path: str, data: dict, merge: bool = False) -> None:
        try:
            self.client.document(path).set(data, merge=merge)
        except exceptions.GoogleAPICallError as e:
            raise StoreUnavailable(f"Failed to write {path}: {e}") from e

    def delete(self, path: str) -> None:
        try:
            self.client.document(path).delete()
        except exceptions.GoogleAPICallError as e:
            raise StoreUnavailable(f"Failed to delete {path}: {e}") from e

    def list_ids(self, collection_path: str) -> list[str]:
        # list_documents also returns documents that only hold subcollections.
        try:
            return [
                doc_ref.id
                for doc_ref in self.client.collection(collection_path).list_documents()
            ]
        except exceptions.GoogleAPICallError as e:
            raise StoreUnavailable(f"Failed to list {collection_path}: {e}") from e

    def transact(self, path: str, update: UpdateFn) -> dict:
        transaction = self.client.transaction()
        doc_ref = self.client.document(path)

        @firestore.transactional
        def _update_in_transaction(transaction, doc_ref):
            snapshot = doc_ref.get(transaction=transaction)
            current = snapshot.to_dict() if snapshot.exists else None
            updated = update(current)
            transaction.set(doc_ref, updated, merge=True)
            return {**(current or {}), **updated}

        try:
            return _update_in_transaction(transaction, doc_ref)
        except exceptions.GoogleAPICallError as e:
            raise StoreUnavailable(f"Transaction on {path} failed: {e}") from e


def _use_immediate_transactions(engine) -> None:
    # pysqlite defers BEGIN until the first write; take over transaction control.
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(connection):
        connection.exec_driver_sql("BEGIN IMMEDIATE")


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class SqlDocumentStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres
    or SQLite for tests). Timestamps are stored as ISO-8601 strings.

    Postgres serializes writers with SELECT ... FOR UPDATE. SQLite ignores row
    locks, so every SQLite transaction starts with BEGIN IMMEDIATE and takes the
    database write lock up front.
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("database_url is required for SqlDocumentStore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
            json_serializer=lambda obj: json.dumps(obj, default=_json_default),
        )
        if self.engine.dialect.name == "sqlite":
            _use_immediate_transactions(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def get(self, path: str) -> Optional[dict]:
        try:
            with self.Session() as session:
                row = session.get(DocumentRow, path)
                return dict(row.data) if row else None
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Failed to read {path}: {e}") from e

    def set(self, path: str, data: dict, merge: bool = False) -> None:
        try:
            with self.Session() as session:
                row = session.get(DocumentRow, path)
                if row:
                    row.data = {**row.data, **data} if merge else dict(data)
                    row.updated_at = time.time()
                else:
                    session.add(
                        DocumentRow(
                            path=path,
                            data=dict(data),
                            updated_at=time.time(),
                        )
                    )
                session.commit()
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Failed to write {path}: {e}") from e

    def delete(self, path: str) -> None:
        try:
            with self.Session() as session:
                row = session.get(DocumentRow, path)
                if row:
                    session.delete(row)
                    session.commit()
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Failed to delete {path}: {e}") from e

    def list_ids(self, collection_path: str) -> list[str]:
        collection_path = collection_path.strip("/")
        prefix = collection_path + "/"
        try:
            with self.Session() as session:
                paths = session.execute(
                    select(DocumentRow.path).where(
                        DocumentRow.path.startswith(prefix, autoescape=True)
                    )
                ).scalars()
                return sorted({p[len(prefix):].split("/", 1)[0] for p in paths})
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Failed to list {collection_path}: {e}") from e

    def transact(self, path: str, update: UpdateFn) -> dict:
        for attempt in range(1, MAX_INSERT_ATTEMPTS + 1):
            try:
                with self.Session() as session:
                    stmt = (
                        select(DocumentRow)
                        .where(DocumentRow.path == path)
                        .with_for_update()
                    )
                    row = session.execute(stmt).scalar_one_or_none()
                    current = dict(row.data) if row else None
                    merged = {**(current or {}), **update(current)}
                    if row:
                        row.data = merged
                        row.updated_at = time.time()
                    else:
                        session.add(
                            DocumentRow(
                                path=path,
                                data=merged,
                                updated_at=time.time(),
                            )
                        )
                    session.commit()
                    return json.loads(json.dumps(merged, default=_json_default))
            except IntegrityError as e:
                # Another writer created the row first; retry against it.
                if attempt == MAX_INSERT_ATTEMPTS:
                    raise StoreUnavailable(f"Transaction on {path} failed: {e}") from e
            except SQLAlchemyError as e:
                raise StoreUnavailable(f"Transaction on {path} failed: {e}") from e
        raise StoreUnavailable(f"Transaction on {path} failed")


Base = declarative_base()


class DocumentRow(Base):
    __tablename__ = "documents"

    path = Column(String, primary_key=True)
    data = Column(JSON, nullable=False)
    updated_at = Column(Float, nullable=False)
