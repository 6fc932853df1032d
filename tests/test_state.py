import os
import sys
import tempfile
import unittest
from pathlib import Path


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from infracat.errors import StateWriteError
from infracat.state import STATE_FILE, LifecycleState, StateRecord, StateStore


class TestStateStore(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self._tmp.name)
        self.store = StateStore(self.dir)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_missing_record_is_unknown(self) -> None:
        self.assertEqual(self.store.load().state, LifecycleState.UNKNOWN)
        with self.assertRaises(OSError):
            self.store.read()

    def test_malformed_record_is_unknown(self) -> None:
        (self.dir / STATE_FILE).write_text("just a string\n")
        self.assertEqual(self.store.load().state, LifecycleState.UNKNOWN)
        with self.assertRaises(ValueError):
            self.store.read()

    def test_advance_is_monotonic(self) -> None:
        self.store.advance(LifecycleState.DEPLOYED, "apply")
        record = self.store.advance(LifecycleState.READY, "save")
        self.assertEqual(record.state, LifecycleState.DEPLOYED)
        self.assertEqual(record.last_action, "save")
        self.assertEqual(self.store.read().state, LifecycleState.DEPLOYED)

    def test_every_sequence_never_regresses(self) -> None:
        order = [LifecycleState.READY, LifecycleState.INITIALIZED, LifecycleState.READY,
                 LifecycleState.DEPLOYED, LifecycleState.INITIALIZED]
        seen = []
        for target in order:
            seen.append(self.store.advance(target, "step").state.rank)
        self.assertEqual(seen, sorted(seen))

    def test_mark_failed_keeps_state(self) -> None:
        self.store.advance(LifecycleState.INITIALIZED, "init")
        record = self.store.mark_failed("apply", "terraform apply failed")
        self.assertEqual(record.state, LifecycleState.INITIALIZED)
        self.assertTrue(self.store.read().partial)
        self.assertEqual(self.store.read().error, "terraform apply failed")

        self.store.advance(LifecycleState.DEPLOYED, "apply")
        self.assertFalse(self.store.read().partial)

    def test_record_file_format(self) -> None:
        self.store.advance(LifecycleState.READY, "save")
        text = (self.dir / STATE_FILE).read_text()
        self.assertIn("state: READY", text)
        self.assertIn("last_action: save", text)
        self.assertNotIn("error", text)

    def test_lowercase_state_accepted(self) -> None:
        (self.dir / STATE_FILE).write_text("state: initialized\ntimestamp: x\n")
        self.assertEqual(self.store.read().state, LifecycleState.INITIALIZED)

    def test_reset(self) -> None:
        self.store.advance(LifecycleState.DEPLOYED, "apply")
        self.assertEqual(self.store.reset().state, LifecycleState.READY)
        self.assertEqual(self.store.read().last_action, "reset")

    def test_write_failure(self) -> None:
        store = StateStore(self.dir / "missing")
        with self.assertRaises(StateWriteError):
            store.advance(LifecycleState.READY, "save")


class TestStateRecord(unittest.TestCase):
    def test_from_dict_tolerates_junk(self) -> None:
        record = StateRecord.from_dict({"state": "bogus", "extra": 1, "timestamp": None})
        self.assertEqual(record.state, LifecycleState.UNKNOWN)
        self.assertEqual(record.timestamp, "")


if __name__ == "__main__":
    unittest.main()
