"""
Firestore implementation of the document store.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core import exceptions
from google.cloud.firestore_v1 import SERVER_TIMESTAMP
from google.cloud.firestore_v1.base_query import FieldFilter

from lawyerzen.db import (
    CREATED_AT,
    UPDATED_AT,
    BatchOperation,
    DocumentNotFoundError,
    IndexMissingError,
    OrderBy,
    QueryFilter,
    StoreReadError,
    StoreWriteError,
)

logger = logging.getLogger(__name__)

_OPERATORS = {
    "array-contains": "array_contains",
    "array-contains-any": "array_contains_any",
}


def is_index_missing(exc: Exception) -> bool:
    """Firestore reports a missing composite index as FAILED_PRECONDITION (code 9)."""
    message = str(exc).lower()
    if isinstance(exc, exceptions.FailedPrecondition):
        return "index" in message
    return "requires an index" in message


def _snapshot_to_dict(snapshot) -> dict:
    return {"id": snapshot.id, **(snapshot.to_dict() or {})}


class FirestoreDocumentStore:
    """Document store backed by a ``google.cloud.firestore.Client``."""

    def __init__(self, client):
        self.client = client

    @classmethod
    def from_settings(cls, settings) -> "FirestoreDocumentStore":
        try:
            app = firebase_admin.get_app()
        except ValueError:
            options = {}
            if settings.firebase_project_id:
                options["projectId"] = settings.firebase_project_id
            cred = (
                credentials.Certificate(settings.firebase_credentials_path)
                if settings.firebase_credentials_path
                else credentials.ApplicationDefault()
            )
            app = firebase_admin.initialize_app(cred, options or None)
        return cls(firestore.client(app))

    def insert(self, collection: str, data: dict) -> str:
        payload = {**data, CREATED_AT: SERVER_TIMESTAMP, UPDATED_AT: SERVER_TIMESTAMP}
        try:
            _, doc_ref = self.client.collection(collection).add(payload)
        except exceptions.GoogleAPICallError as exc:
            raise StoreWriteError(str(exc), collection=collection) from exc
        return doc_ref.id

    def fetch(self, collection: str, doc_id: str) -> Optional[dict]:
        try:
            snapshot = self.client.collection(collection).document(doc_id).get()
        except exceptions.GoogleAPICallError as exc:
            raise StoreReadError(str(exc), collection=collection) from exc
        if not snapshot.exists:
            return None
        return _snapshot_to_dict(snapshot)

    def patch(self, collection: str, doc_id: str, data: dict) -> None:
        try:
            self.client.collection(collection).document(doc_id).update(
                {**data, UPDATED_AT: SERVER_TIMESTAMP}
            )
        except exceptions.NotFound as exc:
            raise DocumentNotFoundError(collection, doc_id) from exc
        except exceptions.GoogleAPICallError as exc:
            raise StoreWriteError(str(exc), collection=collection) from exc

    def remove(self, collection: str, doc_id: str) -> None:
        try:
            self.client.collection(collection).document(doc_id).delete()
        except exceptions.GoogleAPICallError as exc:
            raise StoreWriteError(str(exc), collection=collection) from exc

    def _build_query(
        self,
        collection: str,
        filters: Sequence[QueryFilter],
        order_by: Optional[OrderBy],
        limit: Optional[int],
    ):
        query = self.client.collection(collection)
        for flt in filters:
            op = _OPERATORS.get(flt.operator, flt.operator)
            query = query.where(filter=FieldFilter(flt.field, op, flt.value))
        if order_by:
            direction = (
                firestore.Query.DESCENDING if order_by.descending else firestore.Query.ASCENDING
            )
            query = query.order_by(order_by.field, direction=direction)
        if limit is not None:
            query = query.limit(limit)
        return query

    def find(
        self,
        collection: str,
        filters: Sequence[QueryFilter],
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        if limit == 0:
            return []
        query = self._build_query(collection, filters, order_by, limit)
        try:
            return [_snapshot_to_dict(snapshot) for snapshot in query.stream()]
        except exceptions.GoogleAPICallError as exc:
            if order_by and is_index_missing(exc):
                raise IndexMissingError(
                    str(exc),
                    collection=collection,
                    fields=[f.field for f in filters] + [order_by.field],
                ) from exc
            raise StoreReadError(str(exc), collection=collection) from exc

    def commit(self, operations: Sequence[BatchOperation]) -> None:
        batch = self.client.batch()
        for op in operations:
            collection = self.client.collection(op.collection)
            if op.type == "create":
                batch.set(
                    collection.document(),
                    {**(op.data or {}), CREATED_AT: SERVER_TIMESTAMP, UPDATED_AT: SERVER_TIMESTAMP},
                )
            elif op.type == "update":
                batch.update(
                    collection.document(op.id),
                    {**(op.data or {}), UPDATED_AT: SERVER_TIMESTAMP},
                )
            else:
                batch.delete(collection.document(op.id))
        try:
            batch.commit()
        except exceptions.NotFound as exc:
            raise StoreWriteError(f"Batch update target missing: {exc}") from exc
        except exceptions.GoogleAPICallError as exc:
            raise StoreWriteError(str(exc)) from exc
