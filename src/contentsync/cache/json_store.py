"""JSON-file backed cache store.

Persists every entry in a single JSON file, loaded on init and saved
after every mutation. Values are tagged with a ``kind`` so they can be
revived as the same typed records they were stored as.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from contentsync.cache.store import (
    DEFAULT_TTL_SECONDS,
    CacheEntry,
    CacheStore,
    Clock,
    utc_now,
)
from contentsync.content.models import ContentItem, MediaItem, TaxonomyTerm

logger = logging.getLogger(__name__)

_ADAPTERS: dict[str, TypeAdapter[Any]] = {
    "content_item": TypeAdapter(ContentItem),
    "content_items": TypeAdapter(list[ContentItem]),
    "media_item": TypeAdapter(MediaItem),
    "taxonomy": TypeAdapter(list[TaxonomyTerm]),
    "raw": TypeAdapter(Any),
}


def _value_kind(value: Any) -> str:
    if isinstance(value, ContentItem):
        return "content_item"
    if isinstance(value, MediaItem):
        return "media_item"
    if isinstance(value, list) and value:
        if all(isinstance(v, ContentItem) for v in value):
            return "content_items"
        if all(isinstance(v, TaxonomyTerm) for v in value):
            return "taxonomy"
    return "raw"


class CacheRecord(BaseModel):
    """On-disk layout of one cache entry."""

    key: str
    kind: str = "raw"
    value: Any = None
    expires_at: datetime
    tags: list[str] = Field(default_factory=list)
    created_at: datetime


class _CacheFile(BaseModel):
    records: list[CacheRecord] = Field(default_factory=list)


class JsonCacheStore(CacheStore):
    """Durable :class:`CacheStore` that survives process restarts."""

    def __init__(
        self,
        path: Path,
        *,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        max_entries: int = 0,
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(default_ttl=default_ttl, max_entries=max_entries, clock=clock)
        self._path = Path(path)
        self._loading = True
        self._load()
        self._loading = False

    @property
    def path(self) -> Path:
        return self._path

    # ── Private helpers ──────────────────────────────────────────

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            data = _CacheFile.model_validate(raw)
        except (json.JSONDecodeError, ValueError, OSError):
            logger.warning("Corrupt cache file at %s, starting empty", self._path)
            return

        now = self._clock()
        for record in data.records:
            if now >= record.expires_at:
                continue
            adapter = _ADAPTERS.get(record.kind, _ADAPTERS["raw"])
            try:
                value = adapter.validate_python(record.value)
            except ValidationError:
                logger.warning("Dropping unreadable cache record %s", record.key)
                continue
            entry = CacheEntry(
                key=record.key,
                value=value,
                expires_at=record.expires_at,
                tags=frozenset(record.tags),
                created_at=record.created_at,
            )
            self._entries[entry.key] = entry
            for tag in entry.tags:
                self._tag_index.setdefault(tag, set()).add(entry.key)
        logger.debug("Loaded %d cache entries from %s", len(self._entries), self._path)

    def _save(self) -> None:
        records = []
        for entry in self._entries.values():
            kind = _value_kind(entry.value)
            records.append(
                CacheRecord(
                    key=entry.key,
                    kind=kind,
                    value=_ADAPTERS[kind].dump_python(entry.value, mode="json"),
                    expires_at=entry.expires_at,
                    tags=sorted(entry.tags),
                    created_at=entry.created_at,
                )
            )
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(
                _CacheFile(records=records).model_dump_json(indent=2),
                encoding="utf-8",
            )
        except OSError as exc:
            logger.warning("Could not write cache file %s: %s", self._path, exc)

    def _changed(self) -> None:
        if not self._loading:
            self._save()
