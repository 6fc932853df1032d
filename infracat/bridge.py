"""
Async fetch bridge

Runs a blocking lookup off the event loop and posts its outcome back as a
single OptionsFetched event. Requests are never de-duplicated or cancelled;
the controller decides which result is current from the request token.
"""

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

from infracat.errors import InventoryError
from infracat.events import OptionsFetched

logger = logging.getLogger(__name__)

Lookup = Callable[[str], list[str]]
Sink = Callable[[object], None]
Spawn = Callable[[Callable[[], None]], object]


def thread_pool_spawn(max_workers: int = 2) -> Spawn:
    pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="infracat")
    return pool.submit


class FetchBridge:
    def __init__(self, lookup: Lookup, sink: Sink, spawn: Spawn | None = None):
        self.lookup = lookup
        self.sink = sink
        self.spawn = spawn or thread_pool_spawn()

    def request(self, key: str, trigger_value: str, token: int) -> None:
        """Start a lookup and return immediately."""
        logger.debug("Fetching options for %s (trigger=%s, token=%d)", key, trigger_value, token)
        self.spawn(lambda: self.sink(self._fetch(key, trigger_value, token)))

    def _fetch(self, key: str, trigger_value: str, token: int) -> OptionsFetched:
        try:
            options = self.lookup(trigger_value)
        except InventoryError as e:
            logger.warning("Lookup for %s failed: %s", key, e)
            return OptionsFetched(key=key, token=token, error=str(e))
        except Exception as e:
            # Whatever goes wrong in the worker must still produce the one result event
            logger.exception("Unexpected lookup failure for %s", key)
            return OptionsFetched(key=key, token=token, error=f"{e.__class__.__name__}: {e}")
        return OptionsFetched(key=key, token=token, options=tuple(options))
