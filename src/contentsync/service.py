"""Consumption API for the presentation layer.

Every accessor returns either a value or an :class:`Unavailable`
sentinel. Nothing here raises for remote failures; the caller decides
how to render the fallback.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TypeVar

from contentsync.cache.json_store import JsonCacheStore
from contentsync.cache.store import (
    CONTENT_TAG,
    MEDIA_TAG,
    CacheStore,
    cache_key,
    item_tag,
    taxonomy_tag,
    type_tag,
)
from contentsync.config import ContentSyncConfig
from contentsync.content.models import (
    ContentItem,
    ContentType,
    ListFilters,
    MediaItem,
    TaxonomyKind,
    TaxonomyTerm,
)
from contentsync.errors import ErrorKind, Result
from contentsync.source.client import ContentSourceClient
from contentsync.sync import Synchronizer

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Unavailable:
    """Sentinel returned when content cannot be served."""

    kind: ErrorKind
    message: str = ""

    def __bool__(self) -> bool:
        return False


def _value_or_unavailable(result: Result[T]) -> T | Unavailable:
    if result.error is None:
        return result.value  # type: ignore[return-value]
    return Unavailable(kind=result.error.kind, message=result.error.message)


class ContentService:
    """Cached read path composed of a client and a synchronizer."""

    def __init__(
        self,
        client: ContentSourceClient,
        synchronizer: Synchronizer,
        *,
        ttl: float | None = None,
    ) -> None:
        self.client = client
        self.synchronizer = synchronizer
        self.ttl = ttl

    @classmethod
    def from_config(cls, config: ContentSyncConfig) -> ContentService:
        """Build the full read path from configuration."""
        if config.cache.is_durable:
            store: CacheStore = JsonCacheStore(
                Path(config.cache.path),
                default_ttl=config.cache.default_ttl,
                max_entries=config.cache.max_entries,
            )
        else:
            store = CacheStore(
                default_ttl=config.cache.default_ttl,
                max_entries=config.cache.max_entries,
            )
        return cls(ContentSourceClient(config.source), Synchronizer(store))

    async def close(self) -> None:
        await self.client.close()

    async def __aenter__(self) -> ContentService:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ── Accessors ────────────────────────────────────────────────

    async def list_content_items(
        self,
        content_type: ContentType,
        filters: ListFilters | None = None,
    ) -> list[ContentItem] | Unavailable:
        """All items of a type matching ``filters`` (every page)."""
        filters = filters or ListFilters()
        result = await self.synchronizer.fetch_or_load(
            cache_key(content_type.value, "*", filters),
            lambda: self.client.list_all_items(content_type, filters),
            ttl=self.ttl,
            tags=(CONTENT_TAG, type_tag(content_type)),
        )
        return _value_or_unavailable(result)

    async def get_content_item(
        self,
        id_or_slug: int | str,
        content_type: ContentType = ContentType.POST,
    ) -> ContentItem | Unavailable:
        """One item by numeric ID or slug."""
        result = await self.synchronizer.fetch_or_load(
            cache_key(content_type.value, id_or_slug),
            lambda: self.client.get_item(content_type, id_or_slug),
            ttl=self.ttl,
            tags=self._item_tags(content_type, id_or_slug),
        )
        return _value_or_unavailable(result)

    async def get_media(self, media_id: int) -> MediaItem | Unavailable:
        result = await self.synchronizer.fetch_or_load(
            cache_key("media", media_id),
            lambda: self.client.get_media(media_id),
            ttl=self.ttl,
            tags=(MEDIA_TAG,),
        )
        return _value_or_unavailable(result)

    async def list_taxonomy(self, kind: TaxonomyKind) -> list[TaxonomyTerm] | Unavailable:
        result = await self.synchronizer.fetch_or_load(
            cache_key("taxonomy", kind.value),
            lambda: self.client.list_taxonomy(kind),
            ttl=self.ttl,
            tags=(taxonomy_tag(kind),),
        )
        return _value_or_unavailable(result)

    def invalidate(self, tag: str) -> int:
        """Bust every cached entry carrying ``tag``."""
        removed = self.synchronizer.invalidate(tag)
        logger.info("Invalidation of %r removed %d entries", tag, removed)
        return removed

    @staticmethod
    def _item_tags(content_type: ContentType, id_or_slug: int | str) -> tuple[str, ...]:
        tags = [CONTENT_TAG, type_tag(content_type)]
        if isinstance(id_or_slug, int) or str(id_or_slug).isdigit():
            tags.append(item_tag(content_type, int(id_or_slug)))
        return tuple(tags)
