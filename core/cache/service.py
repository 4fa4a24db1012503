"""
In-memory TTL cache shared across requests.
"""
import time
from collections import OrderedDict
from typing import Any, Callable, Optional, Tuple

from utils.logger import get_logger

logger = get_logger(__name__)


class CacheService:
    """Key-value store with per-entry TTL.

    Expired entries are dropped lazily when read; there is no background sweep.
    When the store is full the oldest inserted entry is evicted.
    """

    def __init__(self, max_size: int = 1000, clock: Callable[[], float] = time.monotonic):
        self.max_size = max_size
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[Any, float]]" = OrderedDict()

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        value, expiry = entry
        if expiry <= self._clock():
            del self._entries[key]
            logger.debug(f"Cache entry expired: {key}")
            return None
        return value

    async def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self.max_size:
            oldest_key, _ = self._entries.popitem(last=False)
            logger.debug(f"Cache full, evicted {oldest_key}")

        expiry = self._clock() + ttl_seconds if ttl_seconds else float("inf")
        self._entries[key] = (value, expiry)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
