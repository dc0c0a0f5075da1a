import unittest
from unittest.mock import MagicMock

from google.api_core import exceptions
from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from lawyerzen.db import (
    BatchOperation,
    DocumentNotFoundError,
    DocumentService,
    IndexMissingError,
    OrderBy,
    QueryFilter,
    StoreReadError,
)
from lawyerzen.firestore_db import FirestoreDocumentStore, is_index_missing

INDEX_MESSAGE = (
    "The query requires an index. You can create it here: "
    "https://console.firebase.google.com/project/demo/firestore/indexes?create_composite=..."
)


def snapshot(doc_id: str, data: dict):
    snap = MagicMock()
    snap.id = doc_id
    snap.exists = True
    snap.to_dict.return_value = data
    return snap


def chainable_query():
    query = MagicMock()
    query.where.return_value = query
    query.order_by.return_value = query
    query.limit.return_value = query
    return query


class IndexClassificationTests(unittest.TestCase):
    def test_failed_precondition_mentioning_index(self):
        self.assertTrue(is_index_missing(exceptions.FailedPrecondition(INDEX_MESSAGE)))

    def test_other_failed_preconditions_are_not_index_errors(self):
        self.assertFalse(is_index_missing(exceptions.FailedPrecondition("transaction aborted")))

    def test_message_fallback(self):
        self.assertTrue(is_index_missing(Exception("9 FAILED_PRECONDITION: requires an index")))
        self.assertFalse(is_index_missing(exceptions.ServiceUnavailable("backend down")))


class FirestoreStoreTests(unittest.TestCase):
    def setUp(self):
        self.client = MagicMock()
        self.query = chainable_query()
        self.client.collection.return_value = self.query
        self.store = FirestoreDocumentStore(self.client)

    def test_insert_uses_server_timestamps(self):
        self.query.add.return_value = (None, MagicMock(id="new-id"))
        self.assertEqual(self.store.insert("cases", {"caseNumber": "C-1"}), "new-id")
        payload = self.query.add.call_args.args[0]
        self.assertIs(payload["createdAt"], SERVER_TIMESTAMP)
        self.assertIs(payload["updatedAt"], SERVER_TIMESTAMP)

    def test_fetch_missing_returns_none(self):
        missing = MagicMock(exists=False)
        self.query.document.return_value.get.return_value = missing
        self.assertIsNone(self.store.fetch("cases", "nope"))

    def test_patch_missing_raises_not_found(self):
        self.query.document.return_value.update.side_effect = exceptions.NotFound("no document")
        with self.assertRaises(DocumentNotFoundError):
            self.store.patch("cases", "nope", {"title": "x"})

    def test_find_translates_filters_and_ordering(self):
        self.query.stream.return_value = iter([snapshot("a", {"owner": "u1"})])
        docs = self.store.find(
            "cases",
            [QueryFilter("owner", "==", "u1"), QueryFilter("tags", "array-contains", "civil")],
            OrderBy("createdAt", "desc"),
            limit=5,
        )
        self.assertEqual(docs, [{"id": "a", "owner": "u1"}])
        filters = [c.kwargs["filter"] for c in self.query.where.call_args_list]
        self.assertEqual([(f.field_path, f.op_string) for f in filters], [("owner", "=="), ("tags", "array_contains")])
        self.query.order_by.assert_called_once()
        self.assertEqual(self.query.order_by.call_args.args[0], "createdAt")
        self.query.limit.assert_called_once_with(5)

    def test_zero_limit_returns_nothing_without_a_read(self):
        self.assertEqual(self.store.find("cases", [], OrderBy("createdAt"), limit=0), [])
        self.query.stream.assert_not_called()

    def test_find_raises_typed_index_error(self):
        self.query.stream.side_effect = exceptions.FailedPrecondition(INDEX_MESSAGE)
        with self.assertRaises(IndexMissingError) as ctx:
            self.store.find("cases", [QueryFilter("owner", "==", "u1")], OrderBy("createdAt"))
        self.assertEqual(ctx.exception.fields, ("owner", "createdAt"))

    def test_other_read_errors_are_not_index_errors(self):
        self.query.stream.side_effect = exceptions.ServiceUnavailable("backend down")
        with self.assertRaises(StoreReadError) as ctx:
            self.store.find("cases", [], OrderBy("createdAt"))
        self.assertNotIsInstance(ctx.exception, IndexMissingError)

    def test_service_falls_back_to_in_memory_order(self):
        self.query.stream.side_effect = [
            exceptions.FailedPrecondition(INDEX_MESSAGE),
            iter([snapshot("a", {"rank": 2}), snapshot("b", {"rank": 3}), snapshot("c", {"rank": 1})]),
        ]
        result = DocumentService(self.store).query_documents(
            "cases", [QueryFilter("owner", "==", "u1")], OrderBy("rank", "desc"), limit=10
        )
        self.assertEqual([d["id"] for d in result], ["b", "a", "c"])
        self.assertTrue(result.sorted_in_memory)
        self.assertEqual(self.query.order_by.call_count, 1)

    def test_commit_uses_single_batch(self):
        batch = self.client.batch.return_value
        self.store.commit(
            [
                BatchOperation("create", "cases", data={"caseNumber": "C-1"}),
                BatchOperation("update", "cases", id="x", data={"status": "closed"}),
                BatchOperation("delete", "alerts", id="y"),
            ]
        )
        self.assertEqual(batch.set.call_count, 1)
        self.assertEqual(batch.update.call_count, 1)
        self.assertEqual(batch.delete.call_count, 1)
        batch.commit.assert_called_once_with()


if __name__ == "__main__":
    unittest.main()
