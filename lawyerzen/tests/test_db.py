import unittest
from datetime import datetime, timedelta, timezone

from lawyerzen.db import (
    BatchOperation,
    DocumentNotFoundError,
    DocumentService,
    IndexMissingError,
    InMemoryDocumentStore,
    OrderBy,
    QueryFilter,
    StoreWriteError,
    sort_documents,
)


class FrozenClock:
    def __init__(self):
        self.now = datetime(2025, 1, 14, 9, 30, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


class DocumentServiceTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryDocumentStore()
        self.documents = DocumentService(self.store)

    def test_create_strips_none_and_stamps_equal_timestamps(self):
        doc = self.documents.create_document(
            "cases", {"caseNumber": "C-1", "title": None, "id": "spoofed"}
        )
        self.assertNotEqual(doc["id"], "spoofed")
        self.assertNotIn("title", doc)
        self.assertEqual(doc["createdAt"], doc["updatedAt"])

    def test_update_keeps_none_and_advances_updated_at(self):
        store = InMemoryDocumentStore(clock=FrozenClock())
        documents = DocumentService(store)
        doc = documents.create_document("cases", {"caseNumber": "C-1", "title": "Old"})

        updated = documents.update_document(
            "cases", doc["id"], {"title": None, "createdAt": "ignored"}
        )
        self.assertIsNone(updated["title"])
        self.assertEqual(updated["createdAt"], doc["createdAt"])
        self.assertGreater(updated["updatedAt"], doc["updatedAt"])

    def test_update_missing_document_raises(self):
        with self.assertRaises(DocumentNotFoundError):
            self.documents.update_document("cases", "nope", {"title": "x"})

    def test_get_missing_returns_none_and_delete_is_idempotent(self):
        self.assertIsNone(self.documents.get_document_by_id("cases", "missing"))
        self.assertTrue(self.documents.delete_document("cases", "missing"))
        doc = self.documents.create_document("cases", {"caseNumber": "C-1"})
        self.assertTrue(self.documents.delete_document("cases", doc["id"]))
        self.assertIsNone(self.documents.get_document_by_id("cases", doc["id"]))

    def test_create_raises_when_record_cannot_be_read_back(self):
        class LossyStore(InMemoryDocumentStore):
            def fetch(self, collection, doc_id):
                return None

        documents = DocumentService(LossyStore())
        with self.assertRaises(StoreWriteError):
            documents.create_document("cases", {"caseNumber": "C-1"})

    def test_query_filters_order_and_limit(self):
        for number, priority in (("C-3", 3), ("C-1", 1), ("C-2", 2)):
            self.documents.create_document(
                "cases", {"caseNumber": number, "priority": priority, "owner": "u1"}
            )
        self.documents.create_document("cases", {"caseNumber": "X", "priority": 9, "owner": "u2"})

        result = self.documents.query_documents(
            "cases",
            [QueryFilter("owner", "==", "u1")],
            OrderBy("priority", "desc"),
            limit=2,
        )
        self.assertEqual([d["caseNumber"] for d in result], ["C-3", "C-2"])
        self.assertFalse(result.sorted_in_memory)
        self.assertIsNone(result.missing_index)

        none = self.documents.query_documents("cases", [QueryFilter("owner", "==", "u1")], limit=0)
        self.assertEqual(list(none), [])

    def test_filter_operators(self):
        self.documents.create_document("alerts", {"tags": ["court", "urgent"], "n": 5})
        self.documents.create_document("alerts", {"tags": ["billing"], "n": 10})

        def count(*filters):
            return len(self.documents.query_documents("alerts", list(filters)))

        self.assertEqual(count(QueryFilter("tags", "array-contains", "court")), 1)
        self.assertEqual(count(QueryFilter("tags", "array-contains-any", ["billing", "court"])), 2)
        self.assertEqual(count(QueryFilter("n", "in", [5, 7])), 1)
        self.assertEqual(count(QueryFilter("n", "not-in", [5])), 1)
        self.assertEqual(count(QueryFilter("n", ">=", 5), QueryFilter("n", "<", 10)), 1)
        self.assertEqual(count(QueryFilter("n", "!=", 10)), 1)

    def test_unknown_operator_rejected(self):
        with self.assertRaises(ValueError):
            QueryFilter("n", "~=", 1)

    def test_get_all_documents(self):
        self.documents.create_document("clients", {"name": "B"})
        self.documents.create_document("clients", {"name": "A"})
        names = [c["name"] for c in self.documents.get_all_documents("clients", OrderBy("name"))]
        self.assertEqual(names, ["A", "B"])


class IndexFallbackTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryDocumentStore(enforce_indexes=True)
        self.documents = DocumentService(self.store)
        base = datetime(2025, 3, 1, tzinfo=timezone.utc)
        for offset, number in ((2, "B"), (0, "A"), (5, "C")):
            self.documents.create_document(
                "hearings",
                {"owner": "u1", "caseNumber": number, "date": base + timedelta(days=offset)},
            )
        self.documents.create_document("hearings", {"owner": "u1", "caseNumber": "none"})

    def test_store_raises_typed_error(self):
        with self.assertRaises(IndexMissingError) as ctx:
            self.store.find("hearings", [QueryFilter("owner", "==", "u1")], OrderBy("date"))
        self.assertEqual(ctx.exception.fields, ("owner", "date"))
        self.assertEqual(ctx.exception.collection, "hearings")

    def test_ascending_fallback_puts_missing_values_last(self):
        with self.assertLogs("lawyerzen.db", level="WARNING") as logs:
            result = self.documents.query_documents(
                "hearings", [QueryFilter("owner", "==", "u1")], OrderBy("date", "asc")
            )
        self.assertEqual([d["caseNumber"] for d in result], ["A", "B", "C", "none"])
        self.assertTrue(result.sorted_in_memory)
        self.assertEqual(result.missing_index, "hearings (owner, date asc)")
        self.assertIn("hearings (owner, date asc)", logs.output[0])

    def test_descending_fallback_puts_missing_values_first(self):
        result = self.documents.query_documents(
            "hearings", [QueryFilter("owner", "==", "u1")], OrderBy("date", "desc")
        )
        self.assertEqual([d["caseNumber"] for d in result], ["none", "C", "B", "A"])

    def test_registered_index_avoids_fallback(self):
        store = InMemoryDocumentStore(enforce_indexes=True, composite_indexes=[("owner", "date")])
        documents = DocumentService(store)
        documents.create_document("hearings", {"owner": "u1", "date": "2025-01-01"})
        result = documents.query_documents(
            "hearings", [QueryFilter("owner", "==", "u1")], OrderBy("date")
        )
        self.assertFalse(result.sorted_in_memory)

    def test_unordered_query_needs_no_index(self):
        result = self.documents.query_documents("hearings", [QueryFilter("owner", "==", "u1")])
        self.assertEqual(len(result), 4)
        self.assertFalse(result.sorted_in_memory)


class SortDocumentsTests(unittest.TestCase):
    def test_dates_and_datetimes_compare_as_instants(self):
        docs = [
            {"k": datetime(2025, 1, 2, 12, 0)},
            {"k": datetime(2025, 1, 2, tzinfo=timezone.utc)},
            {"k": datetime(2024, 12, 31, tzinfo=timezone.utc)},
        ]
        ordered = sort_documents(docs, OrderBy("k"))
        self.assertEqual([d["k"].day for d in ordered], [31, 2, 2])
        self.assertEqual(ordered[2]["k"].hour, 12)

    def test_nested_field_paths(self):
        docs = [{"meta": {"rank": 2}}, {"meta": {"rank": 1}}, {"meta": {}}]
        ordered = sort_documents(docs, OrderBy("meta.rank"))
        self.assertEqual([d["meta"].get("rank") for d in ordered], [1, 2, None])


class BatchWriteTests(unittest.TestCase):
    def setUp(self):
        self.documents = DocumentService(InMemoryDocumentStore())

    def test_batch_applies_all_operations(self):
        keep = self.documents.create_document("cases", {"caseNumber": "keep"})
        drop = self.documents.create_document("cases", {"caseNumber": "drop"})

        self.assertTrue(
            self.documents.batch_write(
                [
                    BatchOperation("create", "cases", data={"caseNumber": "new", "title": None}),
                    BatchOperation("update", "cases", id=keep["id"], data={"status": "closed"}),
                    BatchOperation("delete", "cases", id=drop["id"]),
                ]
            )
        )
        numbers = sorted(c["caseNumber"] for c in self.documents.get_all_documents("cases"))
        self.assertEqual(numbers, ["keep", "new"])
        self.assertEqual(self.documents.get_document_by_id("cases", keep["id"])["status"], "closed")

    def test_batch_is_all_or_nothing(self):
        keep = self.documents.create_document("cases", {"caseNumber": "keep"})
        with self.assertRaises(DocumentNotFoundError):
            self.documents.batch_write(
                [
                    BatchOperation("delete", "cases", id=keep["id"]),
                    BatchOperation("update", "cases", id="missing", data={"status": "x"}),
                ]
            )
        self.assertIsNotNone(self.documents.get_document_by_id("cases", keep["id"]))

    def test_update_and_delete_require_id(self):
        with self.assertRaises(ValueError):
            BatchOperation("update", "cases", data={"a": 1})
        with self.assertRaises(ValueError):
            BatchOperation("upsert", "cases", id="x")


if __name__ == "__main__":
    unittest.main()
