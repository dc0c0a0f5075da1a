import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from lawyerzen.activity import (
    ActivityType,
    EntityType,
    build_activity_record,
    log_activity,
)
from lawyerzen.db import Collections, DocumentService, InMemoryDocumentStore, StoreWriteError
from lawyerzen.tests.support import make_client, register


class LogActivityTests(unittest.TestCase):
    def setUp(self):
        self.documents = DocumentService(InMemoryDocumentStore())

    def test_record_keeps_only_known_metadata(self):
        record = log_activity(
            self.documents,
            "u1",
            ActivityType.INVOICE_CREATED,
            "Invoice INV-7 created",
            EntityType.INVOICE,
            "inv7",
            {"invoiceNumber": "INV-7", "amount": 1200, "secret": "drop me", "currency": None},
        )
        self.assertEqual(record["type"], "invoice_created")
        self.assertEqual(record["entityType"], "invoice")
        self.assertEqual(record["metadata"], {"invoiceNumber": "INV-7", "amount": 1200})
        self.assertEqual(record["createdAt"], record["updatedAt"])

    def test_expiry_follows_ttl(self):
        record = build_activity_record(
            "u1", "time_logged", "60 minutes logged", "time_entry", "t1", ttl_days=30
        )
        expected = datetime.now(timezone.utc) + timedelta(days=30)
        self.assertLess(abs(record["expiresAt"] - expected), timedelta(seconds=5))

    def test_invalid_type_is_swallowed(self):
        with self.assertLogs("lawyerzen.activity", level="ERROR"):
            result = log_activity(
                self.documents, "u1", "case_archived", "msg", EntityType.CASE, "c1"
            )
        self.assertIsNone(result)
        self.assertEqual(self.documents.get_all_documents(Collections.ACTIVITIES), [])

    def test_missing_required_fields_are_swallowed(self):
        with self.assertLogs("lawyerzen.activity", level="ERROR"):
            self.assertIsNone(
                log_activity(self.documents, "", ActivityType.CASE_CREATED, "m", EntityType.CASE, "c1")
            )

    def test_store_failure_is_swallowed(self):
        documents = MagicMock()
        documents.create_document.side_effect = StoreWriteError("disk full")
        with self.assertLogs("lawyerzen.activity", level="ERROR") as logs:
            result = log_activity(
                documents, "u1", ActivityType.ALERT_CREATED, "Alert", EntityType.ALERT, "a1"
            )
        self.assertIsNone(result)
        self.assertIn("Activity logging error", logs.output[0])


class FailingActivityStore(InMemoryDocumentStore):
    def insert(self, collection, data):
        if collection == Collections.ACTIVITIES:
            raise StoreWriteError("activities unavailable", collection=collection)
        return super().insert(collection, data)


class ActivityMiddlewareTests(unittest.TestCase):
    def test_failed_activity_write_does_not_fail_request(self):
        client, store, _ = make_client(store=FailingActivityStore())
        register(client)
        with self.assertLogs("lawyerzen.activity", level="ERROR"):
            response = client.post("/api/alerts", json={"title": "File rejoinder"})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["title"], "File rejoinder")
        self.assertEqual(store.collections.get(Collections.ACTIVITIES, {}), {})

    def test_unauthenticated_or_failed_requests_log_nothing(self):
        client, store, _ = make_client()
        self.assertEqual(client.post("/api/alerts", json={"title": "x"}).status_code, 401)
        register(client)
        self.assertEqual(client.post("/api/alerts", json={}).status_code, 422)
        self.assertEqual(store.collections.get(Collections.ACTIVITIES, {}), {})

    def test_reads_do_not_log(self):
        client, store, _ = make_client()
        register(client)
        client.get("/api/cases")
        client.get("/api/activities")
        self.assertEqual(store.collections.get(Collections.ACTIVITIES, {}), {})


if __name__ == "__main__":
    unittest.main()
