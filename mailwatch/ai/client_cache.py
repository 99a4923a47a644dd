"""
Bounded cache of API clients keyed by API key.
"""

import logging
import threading
import time
from collections import OrderedDict
from typing import Callable, Generic, Optional, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


class ClientCache(Generic[T]):
    """
    LRU cache mapping an API key to a live client.

    Owned by whoever wires the application together rather than kept as
    module state. Entries older than ttl_seconds are rebuilt on next use.

    Usage:
        cache = ClientCache(lambda key: Anthropic(api_key=key), max_size=16)
        client = cache.get(api_key)
    """

    def __init__(
        self,
        factory: Callable[[str], T],
        max_size: int = 16,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.factory = factory
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: "OrderedDict[str, tuple]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> T:
        """Return the cached client for key, building it on a miss."""
        with self._lock:
            now = self.clock()
            entry = self._entries.get(key)
            if entry is not None:
                client, created_at = entry
                if self.ttl_seconds is None or now - created_at < self.ttl_seconds:
                    self._entries.move_to_end(key)
                    return client
                logger.debug("Cached client expired, rebuilding")
                del self._entries[key]

            client = self.factory(key)
            self._entries[key] = (client, now)
            if len(self._entries) > self.max_size:
                self._entries.popitem(last=False)
                logger.debug(f"Client cache full ({self.max_size}), evicted least recently used")
            return client

    def clear(self):
        with self._lock:
            self._entries.clear()
