import unittest
from unittest.mock import MagicMock, patch

from google.api_core import exceptions

from storage_quota.documents import (
    FirestoreDocumentStore,
    InMemoryDocumentStore,
    SqlDocumentStore,
)
from storage_quota.errors import StoreUnavailable


class InMemoryDocumentStoreTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryDocumentStore()

    def test_set_get_merge_delete(self):
        self.store.set("a/b", {"x": 1, "y": 2})
        self.store.set("a/b", {"y": 3}, merge=True)
        self.assertEqual(self.store.get("a/b"), {"x": 1, "y": 3})
        self.store.set("a/b", {"z": 4})
        self.assertEqual(self.store.get("a/b"), {"z": 4})
        self.store.delete("a/b")
        self.assertIsNone(self.store.get("a/b"))

    def test_list_ids_includes_parents_of_nested_documents(self):
        self.store.set("apps/x/users/u1", {"name": "one"})
        self.store.set("apps/x/users/u2/recipes/r1", {"title": "soup"})
        self.store.set("apps/x/metadata/storage", {"totalBytes": 1})
        self.assertEqual(self.store.list_ids("apps/x/users"), ["u1", "u2"])

    def test_transact_merges_update(self):
        self.store.set("doc", {"keep": True, "n": 1})
        result = self.store.transact("doc", lambda current: {"n": current["n"] + 1})
        self.assertEqual(result, {"keep": True, "n": 2})
        self.assertEqual(self.store.transactions, 1)


class SqlDocumentStoreTests(unittest.TestCase):
    def setUp(self):
        self.store = SqlDocumentStore("sqlite+pysqlite:///:memory:")

    def test_requires_url(self):
        with self.assertRaises(ValueError):
            SqlDocumentStore("")

    def test_set_get_merge_delete(self):
        self.store.set("a/b", {"x": 1})
        self.store.set("a/b", {"y": 2}, merge=True)
        self.assertEqual(self.store.get("a/b"), {"x": 1, "y": 2})
        self.store.delete("a/b")
        self.assertIsNone(self.store.get("a/b"))

    def test_list_ids(self):
        self.store.set("apps/x/users/u1", {})
        self.store.set("apps/x/users/u2/recipes/r1", {"title": "soup"})
        self.store.set("apps/x/usersettings/s1", {})
        self.assertEqual(self.store.list_ids("apps/x/users"), ["u1", "u2"])

    def test_transact_creates_then_updates(self):
        def _increment(current):
            return {"n": (current or {}).get("n", 0) + 1}

        self.store.transact("counter", _increment)
        result = self.store.transact("counter", _increment)
        self.assertEqual(result, {"n": 2})
        self.assertEqual(self.store.get("counter"), {"n": 2})


class FirestoreDocumentStoreTests(unittest.TestCase):
    def setUp(self):
        self.client = MagicMock()
        self.store = FirestoreDocumentStore(client=self.client)

    def test_get_existing_and_missing(self):
        snapshot = MagicMock(exists=True)
        snapshot.to_dict.return_value = {"totalBytes": 5}
        self.client.document.return_value.get.return_value = snapshot
        self.assertEqual(self.store.get("a/b"), {"totalBytes": 5})
        self.client.document.assert_called_with("a/b")

        self.client.document.return_value.get.return_value = MagicMock(exists=False)
        self.assertIsNone(self.store.get("a/b"))

    def test_set_passes_merge_flag(self):
        self.store.set("a/b", {"x": 1}, merge=True)
        self.client.document.return_value.set.assert_called_once_with(
            {"x": 1}, merge=True
        )

    def test_list_ids_uses_document_references(self):
        refs = [MagicMock(id="u1"), MagicMock(id="u2")]
        self.client.collection.return_value.list_documents.return_value = refs
        self.assertEqual(self.store.list_ids("apps/x/users"), ["u1", "u2"])
        self.client.collection.assert_called_once_with("apps/x/users")

    def test_api_errors_become_store_unavailable(self):
        self.client.document.return_value.get.side_effect = (
            exceptions.ServiceUnavailable("down")
        )
        with self.assertRaises(StoreUnavailable):
            self.store.get("a/b")

    @patch("storage_quota.documents.firestore.transactional", lambda fn: fn)
    def test_transact_reads_and_writes_through_transaction(self):
        transaction = self.client.transaction.return_value
        doc_ref = self.client.document.return_value
        snapshot = MagicMock(exists=True)
        snapshot.to_dict.return_value = {"totalBytes": 10, "other": "kept"}
        doc_ref.get.return_value = snapshot

        result = self.store.transact(
            "apps/x/metadata/storage",
            lambda current: {"totalBytes": current["totalBytes"] + 5},
        )

        doc_ref.get.assert_called_once_with(transaction=transaction)
        transaction.set.assert_called_once_with(
            doc_ref, {"totalBytes": 15}, merge=True
        )
        self.assertEqual(result, {"totalBytes": 15, "other": "kept"})


if __name__ == "__main__":
    unittest.main()
