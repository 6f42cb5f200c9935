"""Shared fixtures: a controllable clock and an in-memory content source."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from contentsync.content.models import (
    ContentItem,
    ContentType,
    ItemFields,
    ListFilters,
    MediaItem,
    TaxonomyKind,
    TaxonomyTerm,
)
from contentsync.errors import ErrorKind, FetchError, Result, WriteError


class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeSourceClient:
    """Stands in for ContentSourceClient with an in-memory item table.

    ``fail_titles`` makes writes with those titles fail with a
    validation rejection; ``read_error`` makes every read fail.
    """

    def __init__(self) -> None:
        self.items: dict[int, ContentItem] = {}
        self.next_id = 100
        self.calls: list[tuple[str, object]] = []
        self.fail_titles: set[str] = set()
        self.read_error: ErrorKind | None = None
        self.read_delay = 0.0

    def add(self, item: ContentItem) -> ContentItem:
        self.items[item.id] = item
        return item

    async def _read(self, name: str, arg: object) -> None:
        self.calls.append((name, arg))
        if self.read_delay:
            await asyncio.sleep(self.read_delay)
        if self.read_error is not None:
            raise FetchError(self.read_error, f"{name} failed")

    async def list_all_items(
        self, content_type: ContentType, filters: ListFilters | None = None
    ) -> Result[list[ContentItem]]:
        try:
            await self._read("list_all_items", content_type)
        except FetchError as exc:
            return Result.failure(exc)
        items = [i for i in self.items.values() if i.type == content_type]
        if filters is not None and filters.categories:
            items = [i for i in items if i.categories & filters.categories]
        return Result.success(sorted(items, key=lambda i: i.id))

    async def get_item(self, content_type: ContentType, id_or_slug: int | str) -> Result[ContentItem]:
        try:
            await self._read("get_item", id_or_slug)
        except FetchError as exc:
            return Result.failure(exc)
        for item in self.items.values():
            if item.type == content_type and (
                str(item.id) == str(id_or_slug) or item.slug == id_or_slug
            ):
                return Result.success(item)
        return Result.failure(FetchError(ErrorKind.NOT_FOUND, f"{id_or_slug} not found"))

    async def get_media(self, media_id: int) -> Result[MediaItem]:
        try:
            await self._read("get_media", media_id)
        except FetchError as exc:
            return Result.failure(exc)
        return Result.success(MediaItem(id=media_id, mime_type="image/png"))

    async def list_taxonomy(self, kind: TaxonomyKind) -> Result[list[TaxonomyTerm]]:
        try:
            await self._read("list_taxonomy", kind)
        except FetchError as exc:
            return Result.failure(exc)
        return Result.success([TaxonomyTerm(id=1, kind=kind, name="General", slug="general")])

    def _apply(self, item: ContentItem, fields: ItemFields) -> ContentItem:
        update = {}
        for name in ("title", "body", "excerpt", "status", "slug", "featured_media"):
            value = getattr(fields, name)
            if value is not None:
                update[name] = value
        if fields.categories is not None:
            update["categories"] = set(fields.categories)
        if fields.tags is not None:
            update["tags"] = set(fields.tags)
        return item.model_copy(update=update)

    async def create_item(self, content_type: ContentType, fields: ItemFields) -> Result[ContentItem]:
        self.calls.append(("create_item", fields.title))
        if fields.title in self.fail_titles:
            return Result.failure(
                WriteError(
                    ErrorKind.VALIDATION_REJECTED,
                    "Invalid parameter(s): title",
                    status=400,
                    field_errors={"title": "rejected"},
                )
            )
        self.next_id += 1
        item = ContentItem(id=self.next_id, slug=f"item-{self.next_id}", type=content_type)
        item = self._apply(item, fields)
        self.items[item.id] = item
        return Result.success(item)

    async def update_item(
        self, content_type: ContentType, item_id: int, fields: ItemFields
    ) -> Result[ContentItem]:
        self.calls.append(("update_item", item_id))
        if fields.title in self.fail_titles:
            return Result.failure(WriteError(ErrorKind.VALIDATION_REJECTED, "rejected", status=400))
        existing = self.items.get(item_id)
        if existing is None:
            return Result.failure(WriteError(ErrorKind.NOT_FOUND, f"{item_id} not found", status=404))
        item = self._apply(existing, fields)
        self.items[item_id] = item
        return Result.success(item)

    async def close(self) -> None:
        self.calls.append(("close", None))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_client() -> FakeSourceClient:
    return FakeSourceClient()
