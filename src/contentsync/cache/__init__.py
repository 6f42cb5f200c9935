"""Cache layer: keyed entries with TTL expiry and tag invalidation."""

from contentsync.cache.json_store import JsonCacheStore
from contentsync.cache.store import (
    CONTENT_TAG,
    DEFAULT_TTL_SECONDS,
    MEDIA_TAG,
    CacheEntry,
    CacheStore,
    cache_key,
    item_tag,
    taxonomy_tag,
    type_tag,
)

__all__ = [
    "CONTENT_TAG",
    "DEFAULT_TTL_SECONDS",
    "MEDIA_TAG",
    "CacheEntry",
    "CacheStore",
    "JsonCacheStore",
    "cache_key",
    "item_tag",
    "taxonomy_tag",
    "type_tag",
]
