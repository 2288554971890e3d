"""Loading cache over pluggable backend stores.

This module provides read-through/write-through caching of files with
metadata-driven expiration.

Key components:
- LoadingCache: Main cache interface
- Options / CacheConfig: Configuration management
- validation: Expiration timestamp encoding and TTL checks
"""

from fcache.cache.config import CacheConfig, Options
from fcache.cache.manager import LoadingCache
from fcache.cache.validation import INVALIDATE_AT_KEY

__all__ = [
    "LoadingCache",
    "Options",
    "CacheConfig",
    "INVALIDATE_AT_KEY",
]
