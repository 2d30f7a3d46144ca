import tempfile
import unittest
from pathlib import Path


class TestFileLock(unittest.TestCase):
    def test_open_creates_without_truncating(self) -> None:
        from doorman.util.file_lock import open_lock

        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "door.lock"
            with open_lock(path):
                pass
            self.assertTrue(path.exists())

            path.write_bytes(b"keep")
            with open_lock(path):
                pass
            self.assertEqual(path.read_bytes(), b"keep")

    def test_open_in_missing_directory_fails_with_path(self) -> None:
        from doorman.errors import LockFileError
        from doorman.util.file_lock import open_lock

        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "missing" / "door.lock"
            with self.assertRaises(LockFileError) as ctx:
                open_lock(path)
            self.assertEqual(ctx.exception.path, path)
            self.assertIn(str(path), str(ctx.exception))

    def test_shared_locks_coexist_but_exclude_exclusive(self) -> None:
        from doorman.util.file_lock import open_lock

        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "door.lock"
            with open_lock(path) as a, open_lock(path) as b, open_lock(path) as c:
                self.assertTrue(a.try_lock_shared())
                self.assertTrue(b.try_lock_shared())
                self.assertFalse(c.try_lock_exclusive())

                a.unlock()
                b.unlock()
                self.assertTrue(c.try_lock_exclusive())

    def test_exclusive_lock_has_exactly_one_winner(self) -> None:
        from doorman.util.file_lock import open_lock

        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "node.lock"
            handles = [open_lock(path) for _ in range(4)]
            try:
                results = [h.try_lock_exclusive() for h in handles]
                self.assertEqual(results.count(True), 1)
                self.assertTrue(results[0])
            finally:
                for h in handles:
                    h.close()

    def test_close_releases_lock(self) -> None:
        from doorman.util.file_lock import open_lock

        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "node.lock"
            holder = open_lock(path)
            self.assertTrue(holder.try_lock_exclusive())
            with open_lock(path) as other:
                self.assertFalse(other.try_lock_shared())
                holder.close()
                self.assertTrue(holder.closed)
                self.assertTrue(other.try_lock_shared())

    def test_blocking_exclusive_when_uncontended(self) -> None:
        from doorman.util.file_lock import open_lock

        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "door.lock"
            with open_lock(path) as lock, open_lock(path) as other:
                lock.lock_exclusive()
                self.assertFalse(other.try_lock_shared())


if __name__ == "__main__":
    unittest.main()
