"""Unit tests for the JSON key-value store."""

import json
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent.parent))

from tracking.store import KeyValueStore


class TestKeyValueStore(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self.tmpdir.name) / "nested" / "store.json"

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_missing_file_is_empty(self):
        store = KeyValueStore(self.path)
        self.assertIsNone(store.get("anything"))
        self.assertEqual(store.get("anything", 5), 5)

    def test_values_survive_reload(self):
        store = KeyValueStore(self.path)
        store.set("flag", True)
        store.update({"a": {"x": 1}, "b": "two"})

        reloaded = KeyValueStore(self.path)
        self.assertTrue(reloaded.get("flag"))
        self.assertEqual(reloaded.get("a"), {"x": 1})
        self.assertEqual(reloaded.get("b"), "two")

    def test_remove(self):
        store = KeyValueStore(self.path)
        store.update({"a": 1, "b": 2, "c": 3})
        store.remove("a", "b", "missing")

        reloaded = KeyValueStore(self.path)
        self.assertIsNone(reloaded.get("a"))
        self.assertIsNone(reloaded.get("b"))
        self.assertEqual(reloaded.get("c"), 3)

    def test_corrupt_file_starts_fresh(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text("{broken")
        store = KeyValueStore(self.path)
        self.assertEqual(store.data, {})

    def test_non_object_file_starts_fresh(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text(json.dumps([1, 2, 3]))
        store = KeyValueStore(self.path)
        self.assertEqual(store.data, {})

    def test_no_temp_files_left_behind(self):
        store = KeyValueStore(self.path)
        for i in range(5):
            store.set("counter", i)
        leftovers = [p.name for p in self.path.parent.iterdir() if p.suffix == ".tmp"]
        self.assertEqual(leftovers, [])

    def test_save_failure_is_logged_not_raised(self):
        store = KeyValueStore(self.path)
        with patch("tracking.store.tempfile.mkstemp", side_effect=OSError("disk full")):
            with self.assertLogs("tracking.store", level="ERROR"):
                store.set("key", "value")
        # In-memory value is still available to this process
        self.assertEqual(store.get("key"), "value")


if __name__ == "__main__":
    unittest.main()
