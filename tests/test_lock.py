from __future__ import annotations

from pathlib import Path
from unittest.mock import patch
import os
import tempfile
import unittest

from skia_build.errors import BuildLockError
from skia_build.lock import OutputDirectoryLock, lock_path_for


class OutputDirectoryLockTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.output = Path(self.temp_dir.name) / "target" / "skia"

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_lock_lives_beside_output_directory(self) -> None:
        self.assertEqual(lock_path_for(self.output), self.output.parent / ".skia.lock")

    def test_acquire_and_release(self) -> None:
        lock = OutputDirectoryLock(self.output)
        with lock:
            self.assertTrue(lock.held)
            self.assertEqual(lock.lock_path.read_text().strip(), str(os.getpid()))
        self.assertFalse(lock.held)
        self.assertFalse(lock.lock_path.exists())

    def test_second_owner_is_rejected(self) -> None:
        with OutputDirectoryLock(self.output):
            with self.assertRaises(BuildLockError) as ctx:
                OutputDirectoryLock(self.output).acquire()
        self.assertIn(str(os.getpid()), str(ctx.exception))

    @unittest.skipIf(os.name != "posix", "stale detection checks POSIX pids")
    def test_stale_lock_is_taken_over(self) -> None:
        lock_path = lock_path_for(self.output)
        lock_path.parent.mkdir(parents=True)
        lock_path.write_text("999999\n")
        with patch("skia_build.lock._process_alive", return_value=False):
            lock = OutputDirectoryLock(self.output)
            lock.acquire()
        self.assertTrue(lock.held)
        self.assertEqual(lock_path.read_text().strip(), str(os.getpid()))
        lock.release()

    def test_release_is_idempotent(self) -> None:
        lock = OutputDirectoryLock(self.output)
        lock.release()
        lock.acquire()
        lock.release()
        lock.release()
        self.assertFalse(lock.lock_path.exists())


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
