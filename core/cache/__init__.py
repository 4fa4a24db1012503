"""
Key-value caching for upstream source fetches
"""

from .service import CacheService
from .cached_source import CachedSourceClient, make_cache_key

__all__ = [
    'CacheService',
    'CachedSourceClient',
    'make_cache_key'
]
