import tempfile
import unittest
from datetime import timedelta
from pathlib import Path

from applywatch.storage import StorageError, open_stores

from progress_factory import make_progress


class RepositoryTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.path = Path(self._tmp.name) / "nested" / "state.sqlite3"
        self.stores = open_stores(self.path)
        self.addCleanup(self.stores.close)

    def test_creates_database_file(self):
        self.assertTrue(self.path.exists())

    def test_put_get_revoke_tokens(self):
        tokens = self.stores.tokens
        self.assertIsNone(tokens.get(1))

        tokens.put(1, "abc")
        tokens.put(1, "def")
        self.assertEqual(tokens.get(1), "def")

        self.assertEqual(tokens.revoke(1), "def")
        self.assertIsNone(tokens.revoke(1))
        self.assertIsNone(tokens.get(1))

    def test_intervals_are_stored_in_minutes(self):
        intervals = self.stores.intervals
        intervals.put(5, timedelta(minutes=30))
        intervals.put(3, timedelta(hours=1))

        self.assertEqual(intervals.get(5), timedelta(minutes=30))
        self.assertEqual(
            list(intervals.entries()), [(3, timedelta(hours=1)), (5, timedelta(minutes=30))]
        )
        self.assertEqual(list(intervals.keys()), [3, 5])

    def test_progress_snapshot_survives_reopen(self):
        progress = make_progress(round_one=[(1, 3), (2, 2)])
        self.stores.progress.put(9, progress)
        self.stores.close()

        reopened = open_stores(self.path)
        self.addCleanup(reopened.close)
        self.assertEqual(reopened.progress.get(9), progress)

    def test_corrupt_value_raises_storage_error(self):
        self.stores.database.execute(
            "INSERT INTO progress (account, value) VALUES (?, ?)", (4, "{not json")
        )
        with self.assertRaises(StorageError):
            self.stores.progress.get(4)

    def test_empty_tables_have_no_entries(self):
        self.assertEqual(list(self.stores.intervals.entries()), [])


if __name__ == "__main__":
    unittest.main()
