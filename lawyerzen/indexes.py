"""
Composite index catalogue for the queries the API issues.

The same definitions drive Mongo index creation, the Firestore
``firestore.indexes.json`` export and the in-memory store's index check, so a
query that falls back to in-memory ordering points at an entry missing here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from pymongo.errors import OperationFailure

from lawyerzen.db import Collections

logger = logging.getLogger(__name__)

ASC = 1
DESC = -1

# IndexOptionsConflict / IndexKeySpecsConflict: already present under another shape.
_EXISTING_INDEX_CODES = {85, 86}


@dataclass(frozen=True)
class CompositeIndex:
    collection: str
    fields: tuple[tuple[str, int], ...]
    name: str

    @property
    def field_names(self) -> frozenset[str]:
        return frozenset(field for field, _ in self.fields)


INDEXES: tuple[CompositeIndex, ...] = (
    CompositeIndex(Collections.CASES, (("owner", ASC), ("createdAt", DESC)), "case_owner_created"),
    CompositeIndex(Collections.CASES, (("owner", ASC), ("status", ASC)), "case_owner_status"),
    CompositeIndex(Collections.CASES, (("clientId", ASC), ("owner", ASC)), "case_client_owner"),
    CompositeIndex(Collections.CLIENTS, (("owner", ASC), ("createdAt", DESC)), "client_owner_created"),
    CompositeIndex(Collections.DOCUMENTS, (("owner", ASC), ("createdAt", DESC)), "doc_owner_created"),
    CompositeIndex(
        Collections.DOCUMENTS,
        (("owner", ASC), ("folderId", ASC), ("createdAt", DESC)),
        "doc_owner_folder_created",
    ),
    CompositeIndex(Collections.FOLDERS, (("owner", ASC), ("createdAt", DESC)), "folder_owner_created"),
    CompositeIndex(Collections.INVOICES, (("owner", ASC), ("createdAt", DESC)), "invoice_owner_created"),
    CompositeIndex(Collections.INVOICES, (("owner", ASC), ("status", ASC)), "invoice_owner_status"),
    CompositeIndex(Collections.HEARINGS, (("owner", ASC), ("createdAt", DESC)), "hearing_owner_created"),
    CompositeIndex(Collections.HEARINGS, (("owner", ASC), ("date", ASC)), "hearing_owner_date"),
    CompositeIndex(Collections.TIME_ENTRIES, (("owner", ASC), ("createdAt", DESC)), "time_owner_created"),
    CompositeIndex(Collections.ALERTS, (("owner", ASC), ("createdAt", DESC)), "alert_owner_created"),
    CompositeIndex(Collections.ACTIVITIES, (("owner", ASC), ("createdAt", DESC)), "activity_owner_created"),
    CompositeIndex(
        Collections.ACTIVITIES,
        (("owner", ASC), ("type", ASC), ("createdAt", DESC)),
        "activity_owner_type_created",
    ),
)


def composite_field_sets(indexes: Iterable[CompositeIndex] = INDEXES) -> list[frozenset[str]]:
    return [index.field_names for index in indexes]


def ensure_mongo_indexes(
    database, *, activity_ttl_days: int = 90, indexes: Iterable[CompositeIndex] = INDEXES
) -> int:
    """Create every index (idempotent). Returns how many were created or confirmed."""
    created = 0
    for index in indexes:
        try:
            database[index.collection].create_index(list(index.fields), name=index.name)
            created += 1
        except OperationFailure as exc:
            if exc.code not in _EXISTING_INDEX_CODES:
                logger.warning(
                    "Index creation warning for %s %s: %s", index.collection, index.name, exc
                )
    try:
        database[Collections.ACTIVITIES].create_index(
            [("createdAt", ASC)],
            name="activity_ttl",
            expireAfterSeconds=activity_ttl_days * 24 * 60 * 60,
        )
        created += 1
    except OperationFailure as exc:
        if exc.code not in _EXISTING_INDEX_CODES:
            logger.warning("Activity TTL index warning: %s", exc)
    logger.info("MongoDB indexes verified: %d", created)
    return created


def firestore_index_config(indexes: Iterable[CompositeIndex] = INDEXES) -> dict:
    """Build the contents of ``firestore.indexes.json`` for ``firebase deploy``."""
    return {
        "indexes": [
            {
                "collectionGroup": index.collection,
                "queryScope": "COLLECTION",
                "fields": [
                    {"fieldPath": field, "order": "ASCENDING" if order == ASC else "DESCENDING"}
                    for field, order in index.fields
                ],
            }
            for index in indexes
        ],
        "fieldOverrides": [
            {
                "collectionGroup": Collections.ACTIVITIES,
                "fieldPath": "expiresAt",
                "ttl": True,
                "indexes": [],
            }
        ],
    }
