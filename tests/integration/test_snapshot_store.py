"""Integration tests for the JSON file snapshot store."""

import json
import tempfile
import unittest
from pathlib import Path

from schemaforge.domain.errors import SnapshotCorrupted
from schemaforge.infrastructure.repositories.snapshot_repository import InMemorySnapshotStore, JsonFileSnapshotStore
from tests.fixtures.test_data import TestDataFactory


class TestJsonFileSnapshotStore(unittest.TestCase):
    """Snapshot persistence against a real directory."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "state" / "snapshot.json"
        self.store = JsonFileSnapshotStore(str(self.path))

    def tearDown(self):
        self._tmp.cleanup()

    def test_missing_snapshot_reads_as_none(self):
        self.assertIsNone(self.store.read())
        self.assertIsNone(self.store.read_previous())

    def test_write_then_read(self):
        graph = TestDataFactory.create_shop_graph()

        self.store.write(graph)

        self.assertTrue(self.path.exists())
        self.assertEqual(self.store.read(), graph)
        self.assertFalse(self.store.previous_path.exists())

    def test_overwrite_keeps_exactly_one_prior_snapshot(self):
        first = TestDataFactory.create_users_graph()
        second = TestDataFactory.create_shop_graph()
        third = TestDataFactory.without_table(second, "products")

        self.store.write(first)
        self.store.write(second)
        self.store.write(third)

        self.assertEqual(self.store.read(), third)
        self.assertEqual(self.store.read_previous(), second)
        self.assertEqual(self.store.previous_path.name, "snapshot.prev.json")
        # no temporary files left behind
        self.assertEqual(sorted(p.name for p in self.path.parent.iterdir()), ["snapshot.json", "snapshot.prev.json"])

    def test_file_is_stable_json(self):
        graph = TestDataFactory.create_shop_graph()
        self.store.write(graph)
        first = self.path.read_text(encoding="utf-8")

        JsonFileSnapshotStore(str(self.path.with_name("other.json"))).write(graph)
        second = self.path.with_name("other.json").read_text(encoding="utf-8")

        self.assertEqual(first, second)
        self.assertIn("fingerprint", json.loads(first))

    def test_invalid_json_is_corrupted(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text("{not json", encoding="utf-8")

        with self.assertRaises(SnapshotCorrupted) as ctx:
            self.store.read()
        self.assertEqual(ctx.exception.location, str(self.path))

    def test_edited_snapshot_is_corrupted(self):
        self.store.write(TestDataFactory.create_users_graph())
        data = json.loads(self.path.read_text(encoding="utf-8"))
        data["graph"]["tables"][0]["name"] = "people"
        self.path.write_text(json.dumps(data), encoding="utf-8")

        with self.assertRaises(SnapshotCorrupted):
            self.store.read()


class TestInMemorySnapshotStore(unittest.TestCase):

    def test_counts_writes_and_keeps_previous(self):
        users = TestDataFactory.create_users_graph()
        shop = TestDataFactory.create_shop_graph()
        store = InMemorySnapshotStore(users)

        store.write(shop)

        self.assertEqual(store.writes, 1)
        self.assertEqual(store.read(), shop)
        self.assertEqual(store.read_previous(), users)


if __name__ == '__main__':
    unittest.main()
