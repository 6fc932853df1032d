import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from infracat.bridge import FetchBridge
from infracat.errors import InventoryError
from infracat.events import OptionsFetched


def run_now(fn):
    fn()


class TestFetchBridge(unittest.TestCase):
    def setUp(self) -> None:
        self.events = []

    def _bridge(self, lookup) -> FetchBridge:
        return FetchBridge(lookup, self.events.append, spawn=run_now)

    def test_success(self) -> None:
        self._bridge(lambda cluster: [f"{cluster}-a", f"{cluster}-b"]).request("vm_template", "cl1", 7)
        self.assertEqual(self.events, [OptionsFetched(key="vm_template", token=7, options=("cl1-a", "cl1-b"))])
        self.assertTrue(self.events[0].ok)

    def test_inventory_error(self) -> None:
        def lookup(cluster):
            raise InventoryError("vault approle credentials not set")

        self._bridge(lookup).request("vm_template", "cl1", 1)
        self.assertEqual(len(self.events), 1)
        self.assertFalse(self.events[0].ok)
        self.assertEqual(self.events[0].error, "vault approle credentials not set")
        self.assertEqual(self.events[0].options, ())

    def test_unexpected_error_still_reports(self) -> None:
        def lookup(cluster):
            raise RuntimeError("socket gone")

        with self.assertLogs("infracat.bridge", level="ERROR"):
            self._bridge(lookup).request("vm_template", "cl1", 2)
        self.assertEqual(self.events[0].error, "RuntimeError: socket gone")
        self.assertEqual(self.events[0].token, 2)

    def test_request_returns_before_lookup_runs(self) -> None:
        queued = []
        bridge = FetchBridge(lambda cluster: ["t"], self.events.append, spawn=queued.append)
        bridge.request("vm_template", "cl1", 1)
        self.assertEqual(self.events, [])
        queued[0]()
        self.assertEqual(len(self.events), 1)


if __name__ == "__main__":
    unittest.main()
