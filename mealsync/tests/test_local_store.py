import json
import tempfile
import unittest
from pathlib import Path

from mealsync.infra.Local_Store import LocalStore
from mealsync.infra.paths import table_file


def row(record_id, created_at, synced=False, **payload):
    return {
        "id": record_id,
        "payload": {"id": record_id, **payload},
        "created_at": created_at,
        "updated_at": created_at,
        "synced_to_server": synced,
    }


class TestLocalStore(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.data_dir = Path(self._tmp.name)
        self.store = LocalStore(self.data_dir)

    def tearDown(self):
        self._tmp.cleanup()

    def test_rows_survive_reopen(self):
        self.store.put("meals", row("a", "2025-01-01T10:00:00+00:00", name="Soup"))
        reopened = LocalStore(self.data_dir)
        self.assertEqual(reopened.get("meals", "a")["payload"]["name"], "Soup")

    def test_all_is_oldest_first(self):
        self.store.put("meals", row("late", "2025-01-02T10:00:00+00:00"))
        self.store.put("meals", row("early", "2025-01-01T10:00:00+00:00"))
        self.assertEqual([r["id"] for r in self.store.all("meals")], ["early", "late"])

    def test_unsynced_filters_synced_rows(self):
        self.store.put("meals", row("a", "2025-01-01T10:00:00+00:00", synced=True))
        self.store.put("meals", row("b", "2025-01-01T11:00:00+00:00"))
        self.assertEqual([r["id"] for r in self.store.unsynced("meals")], ["b"])

    def test_returned_rows_are_copies(self):
        self.store.put("meals", row("a", "2025-01-01T10:00:00+00:00", name="Soup"))
        fetched = self.store.get("meals", "a")
        fetched["payload"]["name"] = "Changed"
        self.assertEqual(self.store.get("meals", "a")["payload"]["name"], "Soup")

    def test_delete(self):
        self.store.put("meals", row("a", "2025-01-01T10:00:00+00:00"))
        self.assertTrue(self.store.delete("meals", "a"))
        self.assertFalse(self.store.delete("meals", "a"))
        self.assertEqual(self.store.count("meals"), 0)

    def test_unreadable_file_is_moved_aside(self):
        table_file(self.data_dir, "meals").write_text("{not json", encoding="utf-8")
        store = LocalStore(self.data_dir)
        self.assertEqual(store.all("meals"), [])
        self.assertTrue(list(self.data_dir.glob("meals.corrupt-*.json")))

    def test_malformed_rows_are_quarantined_not_dropped(self):
        rows = [row("good", "2025-01-01T10:00:00+00:00"), {"payload": "no id"}]
        table_file(self.data_dir, "meals").write_text(json.dumps(rows), encoding="utf-8")
        store = LocalStore(self.data_dir)
        self.assertEqual([r["id"] for r in store.all("meals")], ["good"])
        self.assertEqual(len(store.quarantined("meals")), 1)

    def test_quarantine_moves_row_out_of_table(self):
        self.store.put("meals", row("bad", "2025-01-01T10:00:00+00:00"))
        self.store.quarantine("meals", "bad", "cannot decode")
        self.assertIsNone(self.store.get("meals", "bad"))
        self.assertEqual(self.store.quarantined("meals")[0]["reason"], "cannot decode")

    def test_tombstones(self):
        self.store.add_tombstone("meals", "a")
        self.store.add_tombstone("other", "b")
        self.assertTrue(self.store.has_tombstone("meals", "a"))
        self.assertEqual(self.store.tombstones("meals"), ["a"])
        self.store.remove_tombstone("meals", "a")
        self.assertFalse(self.store.has_tombstone("meals", "a"))
        self.assertEqual(LocalStore(self.data_dir).tombstones("other"), ["b"])

    def test_memory_only_store_writes_nothing(self):
        store = LocalStore()
        store.put("meals", row("a", "2025-01-01T10:00:00+00:00"))
        self.assertEqual(store.count("meals"), 1)
        self.assertEqual(list(self.data_dir.iterdir()), [])


if __name__ == '__main__':
    unittest.main()
