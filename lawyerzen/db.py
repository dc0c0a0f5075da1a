"""
Document store abstraction and the generic access layer built on it.

Backends (in-memory here, Firestore and MongoDB in their own modules) only
implement the ``DocumentStore`` protocol. ``DocumentService`` layers the
behaviour every route relies on: stripping empty fields, re-reading after
writes and recovering from missing composite indexes by ordering in memory.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, Literal, Optional, Protocol, Sequence

logger = logging.getLogger(__name__)

CREATED_AT = "createdAt"
UPDATED_AT = "updatedAt"
RESERVED_FIELDS = ("id", CREATED_AT, UPDATED_AT)

FILTER_OPERATORS = (
    "==",
    "!=",
    "<",
    "<=",
    ">",
    ">=",
    "in",
    "not-in",
    "array-contains",
    "array-contains-any",
)


class Collections:
    USERS = "users"
    CASES = "cases"
    CLIENTS = "clients"
    DOCUMENTS = "documents"
    FOLDERS = "folders"
    INVOICES = "invoices"
    HEARINGS = "hearings"
    ALERTS = "alerts"
    TIME_ENTRIES = "timeEntries"
    ACTIVITIES = "activities"


class StoreError(Exception):
    """Opaque failure reported by a document store."""

    def __init__(self, message: str, *, collection: str | None = None):
        super().__init__(message)
        self.collection = collection


class StoreReadError(StoreError):
    pass


class StoreWriteError(StoreError):
    pass


class DocumentNotFoundError(StoreError):
    def __init__(self, collection: str, doc_id: str):
        super().__init__(f"{collection}/{doc_id} does not exist", collection=collection)
        self.doc_id = doc_id


class IndexMissingError(StoreReadError):
    """The store needs a composite index to serve a filtered+ordered query."""

    def __init__(self, message: str, *, collection: str | None = None, fields: Sequence[str] = ()):
        super().__init__(message, collection=collection)
        self.fields = tuple(fields)


@dataclass(frozen=True)
class QueryFilter:
    field: str
    operator: str
    value: Any

    def __post_init__(self):
        if self.operator not in FILTER_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.operator!r}")


@dataclass(frozen=True)
class OrderBy:
    field: str
    direction: Literal["asc", "desc"] = "asc"

    def __post_init__(self):
        if self.direction not in ("asc", "desc"):
            raise ValueError(f"Unsupported sort direction: {self.direction!r}")

    @property
    def descending(self) -> bool:
        return self.direction == "desc"


@dataclass(frozen=True)
class BatchOperation:
    type: Literal["create", "update", "delete"]
    collection: str
    id: Optional[str] = None
    data: Optional[dict] = None

    def __post_init__(self):
        if self.type not in ("create", "update", "delete"):
            raise ValueError(f"Unsupported batch operation: {self.type!r}")
        if self.type != "create" and not self.id:
            raise ValueError(f"Batch {self.type} requires a document id")


class QueryResult(list):
    """Documents returned by a query.

    ``sorted_in_memory`` is set when the store could not apply the ordering
    itself. In that case the limit was applied to an unordered read, so the
    page may differ from what a properly indexed query returns until the
    index named in ``missing_index`` is created.
    """

    def __init__(
        self,
        docs: Iterable[dict] = (),
        *,
        sorted_in_memory: bool = False,
        missing_index: str | None = None,
    ):
        super().__init__(docs)
        self.sorted_in_memory = sorted_in_memory
        self.missing_index = missing_index


class DocumentStore(Protocol):
    """Operations a backend must provide. Backends stamp timestamps themselves."""

    def insert(self, collection: str, data: dict) -> str:
        ...

    def fetch(self, collection: str, doc_id: str) -> Optional[dict]:
        ...

    def patch(self, collection: str, doc_id: str, data: dict) -> None:
        ...

    def remove(self, collection: str, doc_id: str) -> None:
        ...

    def find(
        self,
        collection: str,
        filters: Sequence[QueryFilter],
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        ...

    def commit(self, operations: Sequence[BatchOperation]) -> None:
        ...


def get_field(doc: dict, path: str) -> Any:
    """Resolve a dotted field path, returning None when any part is absent."""
    value: Any = doc
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


def _normalize_sort_value(value: Any) -> Any:
    # Firestore returns DatetimeWithNanoseconds, a datetime subclass.
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc).timestamp()
    if hasattr(value, "to_datetime"):
        return _normalize_sort_value(value.to_datetime())
    if isinstance(value, bool):
        return int(value)
    return value


def _sort_key(field: str) -> Callable[[dict], tuple]:
    def key(doc: dict) -> tuple:
        value = _normalize_sort_value(get_field(doc, field))
        if value is None:
            return (1, 0, 0)
        if isinstance(value, (int, float)):
            return (0, 0, value)
        return (0, 1, str(value))

    return key


def sort_documents(docs: Iterable[dict], order_by: OrderBy) -> list[dict]:
    """Order documents the way the store would.

    Missing or null keys compare greater than every value, so they come last
    when ascending and first when descending.
    """
    return sorted(docs, key=_sort_key(order_by.field), reverse=order_by.descending)


def describe_index(collection: str, filters: Sequence[QueryFilter], order_by: OrderBy) -> str:
    fields = [f.field for f in filters] + [f"{order_by.field} {order_by.direction}"]
    return f"{collection} ({', '.join(fields)})"


def _matches(doc: dict, flt: QueryFilter) -> bool:
    actual = get_field(doc, flt.field)
    expected = flt.value
    op = flt.operator
    if op == "==":
        return actual == expected
    if op == "!=":
        return actual is not None and actual != expected
    if op == "in":
        return actual in (expected or [])
    if op == "not-in":
        return actual is not None and actual not in (expected or [])
    if op == "array-contains":
        return isinstance(actual, list) and expected in actual
    if op == "array-contains-any":
        return isinstance(actual, list) and any(v in actual for v in (expected or []))
    if actual is None:
        return False
    left, right = _normalize_sort_value(actual), _normalize_sort_value(expected)
    try:
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        return left >= right
    except TypeError:
        return False


class InMemoryDocumentStore:
    """Dict-backed store for development and tests.

    With ``enforce_indexes`` it mimics Firestore: a query that filters on one
    field and orders by another fails with ``IndexMissingError`` unless the
    field combination was registered through ``composite_indexes``.
    """

    def __init__(
        self,
        *,
        enforce_indexes: bool = False,
        composite_indexes: Iterable[Iterable[str]] = (),
        clock: Callable[[], datetime] | None = None,
    ):
        self.collections: Dict[str, Dict[str, dict]] = {}
        self.enforce_indexes = enforce_indexes
        self.composite_indexes = {frozenset(fields) for fields in composite_indexes}
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._last_stamp: datetime | None = None
        self._lock = threading.Lock()

    def _now(self) -> datetime:
        now = self._clock()
        if self._last_stamp is not None and now <= self._last_stamp:
            now = self._last_stamp + timedelta(microseconds=1)
        self._last_stamp = now
        return now

    def _collection(self, name: str) -> Dict[str, dict]:
        return self.collections.setdefault(name, {})

    def insert(self, collection: str, data: dict) -> str:
        with self._lock:
            doc_id = uuid.uuid4().hex
            now = self._now()
            record = copy.deepcopy(data)
            record[CREATED_AT] = now
            record[UPDATED_AT] = now
            self._collection(collection)[doc_id] = record
            return doc_id

    def fetch(self, collection: str, doc_id: str) -> Optional[dict]:
        with self._lock:
            record = self._collection(collection).get(doc_id)
            if record is None:
                return None
            return {"id": doc_id, **copy.deepcopy(record)}

    def patch(self, collection: str, doc_id: str, data: dict) -> None:
        with self._lock:
            docs = self._collection(collection)
            if doc_id not in docs:
                raise DocumentNotFoundError(collection, doc_id)
            docs[doc_id].update(copy.deepcopy(data))
            docs[doc_id][UPDATED_AT] = self._now()

    def remove(self, collection: str, doc_id: str) -> None:
        with self._lock:
            self._collection(collection).pop(doc_id, None)

    def _check_index(
        self, collection: str, filters: Sequence[QueryFilter], order_by: OrderBy
    ) -> None:
        fields = {f.field for f in filters}
        if not fields or fields == {order_by.field}:
            return
        if frozenset(fields | {order_by.field}) in self.composite_indexes:
            return
        raise IndexMissingError(
            f"The query requires an index: {describe_index(collection, filters, order_by)}",
            collection=collection,
            fields=[*sorted(fields), order_by.field],
        )

    def find(
        self,
        collection: str,
        filters: Sequence[QueryFilter],
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        if order_by and self.enforce_indexes:
            self._check_index(collection, filters, order_by)
        with self._lock:
            docs = [
                {"id": doc_id, **copy.deepcopy(record)}
                for doc_id, record in self._collection(collection).items()
                if all(_matches(record, flt) for flt in filters)
            ]
        if order_by:
            docs = sort_documents(docs, order_by)
        if limit is not None:
            docs = docs[:limit]
        return docs

    def commit(self, operations: Sequence[BatchOperation]) -> None:
        with self._lock:
            staged = copy.deepcopy(self.collections)
            for op in operations:
                docs = staged.setdefault(op.collection, {})
                if op.type == "create":
                    now = self._now()
                    record = copy.deepcopy(op.data or {})
                    record[CREATED_AT] = now
                    record[UPDATED_AT] = now
                    docs[uuid.uuid4().hex] = record
                elif op.type == "update":
                    if op.id not in docs:
                        raise DocumentNotFoundError(op.collection, op.id)
                    docs[op.id].update(copy.deepcopy(op.data or {}))
                    docs[op.id][UPDATED_AT] = self._now()
                else:
                    docs.pop(op.id, None)
            self.collections = staged


def _clean(data: dict, *, drop_none: bool) -> dict:
    return {
        key: value
        for key, value in data.items()
        if key not in RESERVED_FIELDS and not (drop_none and value is None)
    }


class DocumentService:
    """Generic CRUD over any ``DocumentStore``."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def create_document(self, collection: str, data: dict) -> dict:
        payload = _clean(data, drop_none=True)
        try:
            doc_id = self.store.insert(collection, payload)
            created = self.store.fetch(collection, doc_id)
        except StoreError:
            logger.error("Error creating document in %s", collection)
            raise
        if created is None:
            raise StoreWriteError(
                f"Created document {doc_id} could not be read back", collection=collection
            )
        return created

    def get_document_by_id(self, collection: str, doc_id: str) -> Optional[dict]:
        return self.store.fetch(collection, doc_id)

    def update_document(self, collection: str, doc_id: str, data: dict) -> dict:
        try:
            self.store.patch(collection, doc_id, _clean(data, drop_none=False))
        except StoreError:
            logger.error("Error updating document %s in %s", doc_id, collection)
            raise
        updated = self.store.fetch(collection, doc_id)
        if updated is None:
            raise DocumentNotFoundError(collection, doc_id)
        return updated

    def delete_document(self, collection: str, doc_id: str) -> bool:
        self.store.remove(collection, doc_id)
        return True

    def query_documents(
        self,
        collection: str,
        filters: Sequence[QueryFilter] = (),
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> QueryResult:
        filters = list(filters)
        try:
            return QueryResult(self.store.find(collection, filters, order_by, limit))
        except IndexMissingError as exc:
            if order_by is None:
                raise
            index = describe_index(collection, filters, order_by)
            logger.warning(
                "Index missing for %s, ordering in memory. Create composite index: %s (%s)",
                collection,
                index,
                exc,
            )
        docs = self.store.find(collection, filters, None, limit)
        return QueryResult(
            sort_documents(docs, order_by), sorted_in_memory=True, missing_index=index
        )

    def get_all_documents(
        self, collection: str, order_by: Optional[OrderBy] = None
    ) -> QueryResult:
        return self.query_documents(collection, (), order_by)

    def batch_write(self, operations: Sequence[BatchOperation]) -> bool:
        cleaned = [
            BatchOperation(
                type=op.type,
                collection=op.collection,
                id=op.id,
                data=_clean(op.data or {}, drop_none=op.type == "create") if op.type != "delete" else None,
            )
            for op in operations
        ]
        try:
            self.store.commit(cleaned)
        except StoreError:
            logger.error("Error in batch write of %d operations", len(cleaned))
            raise
        return True
