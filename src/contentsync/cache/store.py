"""In-memory cache store with lazy expiry and tag-based invalidation.

Entries are keyed by ``{type}:{identifier-or-slug}:{filter-signature}``
and carry an expiry instant plus a set of tags. Expired entries are
treated as absent on read; ``purge_expired`` is an optional sweep.

The store is plain shared state with no internal locking. It is meant
to be driven from a single asyncio event loop, where no method here
suspends.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from contentsync.content.models import ContentType, ListFilters, TaxonomyKind

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600.0

CONTENT_TAG = "content-items"
MEDIA_TAG = "media"

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


# ---------------------------------------------------------------------------
# Keys and tags
# ---------------------------------------------------------------------------


def cache_key(
    kind: str,
    identifier: str | int = "*",
    filters: ListFilters | None = None,
) -> str:
    """Build a composite cache key.

    Args:
        kind: Item type (``post``, ``project``) or a resource kind
            (``media``, ``taxonomy``).
        identifier: Numeric ID or slug; ``*`` for collection queries.
        filters: Filters applied to the query, if any.
    """
    signature = filters.signature() if filters is not None else "all"
    return f"{kind}:{identifier}:{signature}"


def type_tag(content_type: ContentType | str) -> str:
    return f"type:{content_type}"


def item_tag(content_type: ContentType | str, item_id: int) -> str:
    return f"item:{content_type}:{item_id}"


def taxonomy_tag(kind: TaxonomyKind | str) -> str:
    return f"taxonomy:{kind}"


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------


class CacheEntry(BaseModel):
    """A cached value with its expiry and invalidation tags."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    key: str
    value: Any
    expires_at: datetime
    tags: frozenset[str] = Field(default_factory=frozenset)
    created_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class CacheStore:
    """Mapping from cache key to :class:`CacheEntry`.

    Args:
        default_ttl: TTL in seconds used when ``put`` is given none.
        max_entries: Upper bound on stored entries; 0 means unbounded.
            When full, expired entries are purged first, then the oldest
            entry is evicted.
        clock: Source of the current UTC time.
    """

    def __init__(
        self,
        *,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        max_entries: int = 0,
        clock: Clock = utc_now,
    ) -> None:
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._tag_index: dict[str, set[str]] = {}
        self._tag_versions: dict[str, int] = {}

    # ── Private helpers ──────────────────────────────────────────

    def _unindex(self, entry: CacheEntry) -> None:
        for tag in entry.tags:
            keys = self._tag_index.get(tag)
            if keys is None:
                continue
            keys.discard(entry.key)
            if not keys:
                del self._tag_index[tag]

    def _remove(self, key: str) -> CacheEntry | None:
        entry = self._entries.pop(key, None)
        if entry is not None:
            self._unindex(entry)
        return entry

    def _make_room(self) -> None:
        if not self.max_entries or len(self._entries) < self.max_entries:
            return
        self.purge_expired()
        while len(self._entries) >= self.max_entries:
            oldest = min(self._entries.values(), key=lambda e: e.created_at)
            self._remove(oldest.key)
            logger.debug("Evicted cache entry %s", oldest.key)

    def _changed(self) -> None:
        """Hook for subclasses that persist state after a mutation."""

    # ── Read operations ──────────────────────────────────────────

    def get(self, key: str) -> CacheEntry | None:
        """Return the live entry for ``key``, or None if absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            self._remove(key)
            self._changed()
            return None
        return entry

    def keys(self) -> list[str]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None

    def tag_version(self, tag: str) -> int:
        """Number of times ``tag`` has been invalidated."""
        return self._tag_versions.get(tag, 0)

    # ── Write operations ─────────────────────────────────────────

    def put(
        self,
        key: str,
        value: Any,
        ttl: float | None = None,
        tags: Iterable[str] = (),
    ) -> CacheEntry:
        """Store ``value`` under ``key``, replacing any existing entry."""
        now = self._clock()
        ttl = self.default_ttl if ttl is None else ttl
        self._remove(key)
        self._make_room()

        entry = CacheEntry(
            key=key,
            value=value,
            expires_at=now + timedelta(seconds=max(ttl, 0)),
            tags=frozenset(tags),
            created_at=now,
        )
        self._entries[key] = entry
        for tag in entry.tags:
            self._tag_index.setdefault(tag, set()).add(key)
        self._changed()
        return entry

    def delete(self, key: str) -> bool:
        """Remove one entry. Returns True if it existed."""
        removed = self._remove(key) is not None
        if removed:
            self._changed()
        return removed

    def invalidate_by_tag(self, tag: str) -> int:
        """Remove every entry carrying ``tag``. Returns the number removed."""
        self._tag_versions[tag] = self._tag_versions.get(tag, 0) + 1
        keys = self._tag_index.pop(tag, set())
        for key in list(keys):
            self._remove(key)
        if keys:
            self._changed()
        logger.info("Invalidated %d cache entries tagged %r", len(keys), tag)
        return len(keys)

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            self._remove(key)
        if expired:
            self._changed()
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()
        self._tag_index.clear()
        self._changed()
