"""Time-boxed cache over the persistent key-value store.

Each entry is stored as JSON ``{"data": ..., "timestamp": <epoch millis>}``
under ``<prefix><identifier>``. There is no in-process mirror: every read
re-parses what the store holds.

Expiry: an entry is served iff ``ttl > 0`` and ``now - timestamp < ttl``.
Writes happen regardless of ttl. Expired or corrupt entries are evicted on
read. No operation raises; store failures degrade to miss / no-op.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Optional

from craftboard.errors import StoreError
from craftboard.storage.kv_store import KeyValueStore

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class TTLCache:
    def __init__(
        self,
        store: KeyValueStore,
        prefix: str,
        *,
        ttl_ms: Callable[[], int],
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.prefix = prefix
        self._ttl_ms = ttl_ms
        self._clock = clock

    def cache_key(self, identifier: str) -> str:
        return f"{self.prefix}{identifier}"

    def get(self, identifier: str) -> Optional[Any]:
        """Return cached data, or None on miss/expiry/corruption."""
        key = self.cache_key(identifier)
        try:
            raw = self.store.get(key)
        except StoreError as e:
            logger.error(f"Error reading cache {key}: {e}")
            return None
        if not raw:
            return None

        try:
            entry = json.loads(raw)
            data = entry["data"]
            timestamp = int(entry["timestamp"])
        except (ValueError, TypeError, KeyError, OverflowError) as e:
            logger.warning(f"Corrupt cache entry {key}, evicting: {e}")
            self._evict(key)
            return None

        ttl = self._current_ttl()
        if ttl > 0 and self._clock() - timestamp < ttl:
            logger.debug(f"Cache hit {key}")
            return data

        logger.debug(f"Cache expired {key}")
        self._evict(key)
        return None

    def set(self, identifier: str, data: Any) -> None:
        key = self.cache_key(identifier)
        try:
            payload = json.dumps({"data": data, "timestamp": self._clock()}, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.error(f"Cannot serialize cache entry {key}: {e}")
            return
        try:
            self.store.set(key, payload)
        except StoreError as e:
            logger.error(f"Error saving cache {key}: {e}")

    def clear(self, identifier: str) -> None:
        self._evict(self.cache_key(identifier))

    def clear_all(self) -> None:
        """Remove every entry carrying this cache's prefix."""
        try:
            keys = self.store.keys()
        except StoreError as e:
            logger.error(f"Error listing cache keys: {e}")
            return
        for key in keys:
            if key.startswith(self.prefix):
                self._evict(key)

    def _current_ttl(self) -> int:
        try:
            return int(self._ttl_ms())
        except (TypeError, ValueError):
            return 0

    def _evict(self, key: str) -> None:
        try:
            self.store.remove(key)
        except StoreError as e:
            logger.error(f"Error clearing cache {key}: {e}")
