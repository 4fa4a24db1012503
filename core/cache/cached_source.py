"""
Cache-aside wrapper around a source client.
"""
from typing import Any, Optional

from core.metrics.types import FetchResult, ProgressCallback
from .service import CacheService
from utils.logger import get_logger

logger = get_logger(__name__)


def make_cache_key(source_key: str, time_period_days: int) -> str:
    return f"{source_key}:{time_period_days}"


class CachedSourceClient:
    """Serve repeated fetches with identical parameters from the cache.

    A hit returns immediately: no upstream call and no progress callback.
    Only complete results are stored; failures propagate uncached.
    """

    def __init__(self, inner: Any, cache: CacheService, ttl_seconds: float = 3600):
        self.inner = inner
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    @property
    def name(self) -> str:
        return self.inner.name

    @property
    def cache_key_prefix(self) -> str:
        return self.inner.cache_key_prefix

    async def fetch(self, time_period_days: int,
                    progress_callback: Optional[ProgressCallback] = None) -> FetchResult:
        key = make_cache_key(self.inner.cache_key_prefix, time_period_days)

        cached = await self.cache.get(key)
        if cached is not None:
            logger.info(f"Cache hit for {self.name}", extra={"cache_key": key})
            return cached

        result = await self.inner.fetch(time_period_days, progress_callback)
        await self.cache.set(key, result, self.ttl_seconds)
        return result

    def cancel_operation(self) -> None:
        cancel = getattr(self.inner, "cancel_operation", None)
        if cancel is not None:
            cancel()
