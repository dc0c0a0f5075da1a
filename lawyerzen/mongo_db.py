"""
MongoDB implementation of the document store.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional, Sequence

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, DeleteOne, InsertOne, MongoClient, UpdateOne
from pymongo.errors import BulkWriteError, OperationFailure, PyMongoError

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

# NoQueryExecutionPlans (notablescan), QueryExceededMemoryLimitNoDiskUseAllowed,
# and the legacy OperationFailed code used for in-memory sort overflows.
INDEX_MISSING_CODES = {291, 292, 96}

_OPERATORS = {
    "==": "$eq",
    "!=": "$ne",
    "<": "$lt",
    "<=": "$lte",
    ">": "$gt",
    ">=": "$gte",
    "in": "$in",
    "not-in": "$nin",
    "array-contains-any": "$in",
}


def is_index_missing(exc: Exception) -> bool:
    if isinstance(exc, OperationFailure) and exc.code in INDEX_MISSING_CODES:
        return True
    message = str(exc).lower()
    return "sort exceeded memory limit" in message or "no query solutions" in message


def _object_id(doc_id: str):
    try:
        return ObjectId(doc_id)
    except (InvalidId, TypeError):
        return doc_id


def _to_record(doc: dict) -> dict:
    record = dict(doc)
    record["id"] = str(record.pop("_id"))
    return record


def build_filter(filters: Sequence[QueryFilter]) -> dict:
    """Translate AND-combined filters into a Mongo query document.

    ``!=`` and ``not-in`` skip documents that lack the field, as Firestore does.
    """
    clauses = []
    for flt in filters:
        if flt.operator == "array-contains":
            clauses.append({flt.field: flt.value})
        elif flt.operator in ("!=", "not-in"):
            clauses.append(
                {flt.field: {_OPERATORS[flt.operator]: flt.value, "$exists": True}}
            )
        else:
            clauses.append({flt.field: {_OPERATORS[flt.operator]: flt.value}})
    if not clauses:
        return {}
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def stamped_update(data: dict, now: datetime) -> list[dict]:
    """Pipeline update that sets ``data`` and moves ``updatedAt`` strictly forward.

    Mongo stores milliseconds, so a write in the same millisecond as the
    previous stamp gets that stamp plus one millisecond.
    """
    values = {key: {"$literal": value} for key, value in data.items()}
    values[UPDATED_AT] = {"$max": [now, {"$add": ["$" + UPDATED_AT, 1]}]}
    return [{"$set": values}]


class MongoDocumentStore:
    """Document store backed by a pymongo database handle."""

    def __init__(self, database):
        self.database = database

    @classmethod
    def from_settings(cls, settings) -> "MongoDocumentStore":
        client = MongoClient(
            settings.mongodb_uri,
            serverSelectionTimeoutMS=5000,
            tz_aware=True,
            retryWrites=True,
        )
        return cls(client[settings.mongodb_database])

    @staticmethod
    def _now() -> datetime:
        # BSON dates hold milliseconds.
        now = datetime.now(timezone.utc)
        return now.replace(microsecond=now.microsecond // 1000 * 1000)

    def insert(self, collection: str, data: dict) -> str:
        now = self._now()
        try:
            result = self.database[collection].insert_one(
                {**data, CREATED_AT: now, UPDATED_AT: now}
            )
        except PyMongoError as exc:
            raise StoreWriteError(str(exc), collection=collection) from exc
        return str(result.inserted_id)

    def fetch(self, collection: str, doc_id: str) -> Optional[dict]:
        try:
            doc = self.database[collection].find_one({"_id": _object_id(doc_id)})
        except PyMongoError as exc:
            raise StoreReadError(str(exc), collection=collection) from exc
        return _to_record(doc) if doc else None

    def patch(self, collection: str, doc_id: str, data: dict) -> None:
        try:
            result = self.database[collection].update_one(
                {"_id": _object_id(doc_id)}, stamped_update(data, self._now())
            )
        except PyMongoError as exc:
            raise StoreWriteError(str(exc), collection=collection) from exc
        if result.matched_count == 0:
            raise DocumentNotFoundError(collection, doc_id)

    def remove(self, collection: str, doc_id: str) -> None:
        try:
            self.database[collection].delete_one({"_id": _object_id(doc_id)})
        except PyMongoError as exc:
            raise StoreWriteError(str(exc), collection=collection) from exc

    def find(
        self,
        collection: str,
        filters: Sequence[QueryFilter],
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        # A zero limit means "no limit" to the server.
        if limit == 0:
            return []
        cursor = self.database[collection].find(build_filter(filters))
        if order_by:
            cursor = cursor.sort(order_by.field, DESCENDING if order_by.descending else ASCENDING)
        if limit is not None:
            cursor = cursor.limit(limit)
        try:
            return [_to_record(doc) for doc in cursor]
        except PyMongoError as exc:
            if order_by and is_index_missing(exc):
                raise IndexMissingError(
                    str(exc),
                    collection=collection,
                    fields=[f.field for f in filters] + [order_by.field],
                ) from exc
            raise StoreReadError(str(exc), collection=collection) from exc

    def commit(self, operations: Sequence[BatchOperation]) -> None:
        grouped: dict[str, list] = {}
        updates: dict[str, int] = {}
        for op in operations:
            now = self._now()
            if op.type == "create":
                request = InsertOne({**(op.data or {}), CREATED_AT: now, UPDATED_AT: now})
            elif op.type == "update":
                request = UpdateOne({"_id": _object_id(op.id)}, stamped_update(op.data or {}, now))
                updates[op.collection] = updates.get(op.collection, 0) + 1
            else:
                request = DeleteOne({"_id": _object_id(op.id)})
            grouped.setdefault(op.collection, []).append(request)

        client = self.database.client
        try:
            with client.start_session() as session:
                with session.start_transaction():
                    for collection, requests in grouped.items():
                        result = self.database[collection].bulk_write(
                            requests, ordered=True, session=session
                        )
                        expected = updates.get(collection, 0)
                        # Raising here aborts the transaction.
                        if result.matched_count < expected:
                            raise StoreWriteError(
                                f"Batch updated {result.matched_count} of {expected} "
                                f"documents in {collection}; some do not exist",
                                collection=collection,
                            )
        except (BulkWriteError, PyMongoError) as exc:
            raise StoreWriteError(str(exc)) from exc
