import os
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import patch

from video_workstation.session import (
    ENV_SESSION_FILE,
    SessionStore,
    SessionStoreError,
    default_session_path,
)


class TestSessionStore(unittest.TestCase):
    def test_values_round_trip_through_disk(self) -> None:
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "nested" / "session.json"
            store = SessionStore(path)
            store.set("generatingTasks", {"a": {"mode": "text"}})

            reopened = SessionStore(path)

            self.assertEqual(reopened.get("generatingTasks"), {"a": {"mode": "text"}})
            self.assertIsNone(reopened.get("missing"))

    def test_remove_deletes_key(self) -> None:
        with TemporaryDirectory() as tmpdir:
            store = SessionStore(Path(tmpdir) / "session.json")
            store.set("a", 1)
            store.set("b", 2)
            store.remove("a")
            store.remove("unknown")

            self.assertEqual(store.get("a", "gone"), "gone")
            self.assertEqual(store.get("b"), 2)

    def test_corrupt_file_raises(self) -> None:
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "session.json"
            path.write_text("{not json", encoding="utf-8")

            with self.assertRaises(SessionStoreError):
                SessionStore(path).get("a")

    def test_default_path_honours_environment(self) -> None:
        with patch.dict(os.environ, {ENV_SESSION_FILE: "/tmp/custom-session.json"}):
            self.assertEqual(default_session_path(), Path("/tmp/custom-session.json"))


if __name__ == "__main__":
    unittest.main()
