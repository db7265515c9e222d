from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

import pytest

from tests.helpers import ensure_src_path, seed_image

ROOT = ensure_src_path()

from photolib.core.errors import MalformedEmbedding
from photolib.store.image_store import ImageStore

pytestmark = pytest.mark.unit


class TestImageStore(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.store = ImageStore(Path(self.temp_dir.name) / "photolib.sqlite")

    def tearDown(self) -> None:
        self.store.close()
        self.temp_dir.cleanup()

    def test_open_db_pragmas(self) -> None:
        journal = self.store.conn.execute("PRAGMA journal_mode;").fetchone()[0]
        timeout = self.store.conn.execute("PRAGMA busy_timeout;").fetchone()[0]
        self.assertEqual(str(journal).lower(), "wal")
        self.assertEqual(timeout, 5000)

    def test_add_image_starts_without_embedding(self) -> None:
        image_id = self.store.add_image("a.jpg", "holiday.jpg", "image/jpeg", 123, "/data/a.jpg")
        row = self.store.get_image(image_id)
        self.assertEqual(row["original_name"], "holiday.jpg")
        self.assertIsNone(row["embedding"])
        self.assertIsNone(self.store.get_embedding(image_id))

    def test_set_embedding_round_trip_is_exact(self) -> None:
        seed_image(self.store, "/data/42.jpg", image_id=42)
        self.assertTrue(self.store.set_embedding(42, [0.1, 0.2, 0.3]))
        self.assertEqual(self.store.get_embedding(42), [0.1, 0.2, 0.3])
        self.assertIsNotNone(self.store.get_image(42)["embedded_at"])

    def test_set_embedding_missing_row(self) -> None:
        self.assertFalse(self.store.set_embedding(999, [1.0]))

    def test_set_embedding_only_touches_one_row(self) -> None:
        a = seed_image(self.store, "/data/a.jpg")
        b = seed_image(self.store, "/data/b.jpg")
        self.store.set_embedding(a, [1.0])
        self.assertIsNone(self.store.get_embedding(b))

    def test_list_for_embedding(self) -> None:
        a = seed_image(self.store, "/data/a.jpg")
        b = seed_image(self.store, "/data/b.jpg", embedding="[0.5]")
        all_ids = [r["id"] for r in self.store.list_for_embedding()]
        missing_ids = [r["id"] for r in self.store.list_for_embedding(missing_only=True)]
        self.assertEqual(all_ids, [a, b])
        self.assertEqual(missing_ids, [a])

    def test_coverage(self) -> None:
        seed_image(self.store, "/data/a.jpg")
        seed_image(self.store, "/data/b.jpg", embedding="[0.5]")
        seed_image(self.store, "/data/c.jpg", embedding="[0.25]")
        self.assertEqual(self.store.coverage(), (3, 2))

    def test_get_embedding_malformed_raises(self) -> None:
        image_id = seed_image(self.store, "/data/a.jpg", embedding="{broken")
        with self.assertRaises(MalformedEmbedding):
            self.store.get_embedding(image_id)

    def test_delete_image(self) -> None:
        image_id = seed_image(self.store, "/data/a.jpg")
        self.assertTrue(self.store.delete_image(image_id))
        self.assertIsNone(self.store.get_image(image_id))
        self.assertFalse(self.store.delete_image(image_id))


if __name__ == "__main__":
    unittest.main()
