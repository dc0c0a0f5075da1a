"""
Dependency wiring for the FastAPI app.

Backends are constructed once by ``create_app`` (or passed in by tests) and
kept on ``app.state``; route dependencies only read them back.
"""

from __future__ import annotations

from fastapi import Request

from lawyerzen.config import Settings
from lawyerzen.db import DocumentService, DocumentStore, InMemoryDocumentStore
from lawyerzen.indexes import composite_field_sets, ensure_mongo_indexes
from lawyerzen.storage import InMemoryStorageClient, S3StorageClient, StorageClient


def build_document_store(settings: Settings) -> DocumentStore:
    if settings.store_backend == "firestore":
        from lawyerzen.firestore_db import FirestoreDocumentStore

        return FirestoreDocumentStore.from_settings(settings)
    if settings.store_backend == "mongo":
        from lawyerzen.mongo_db import MongoDocumentStore

        store = MongoDocumentStore.from_settings(settings)
        if settings.mongodb_ensure_indexes:
            ensure_mongo_indexes(store.database, activity_ttl_days=settings.activity_ttl_days)
        return store
    return InMemoryDocumentStore(enforce_indexes=True, composite_indexes=composite_field_sets())


def build_storage_client(settings: Settings) -> StorageClient:
    if not settings.storage_bucket:
        return InMemoryStorageClient()
    return S3StorageClient(
        bucket=settings.storage_bucket,
        region=settings.storage_region or "",
        endpoint=settings.storage_endpoint or "",
        access_key_id=settings.aws_access_key_id or "",
        secret_access_key=settings.aws_secret_access_key or "",
    )


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_documents(request: Request) -> DocumentService:
    return request.app.state.documents


def get_storage_client(request: Request) -> StorageClient:
    return request.app.state.storage
