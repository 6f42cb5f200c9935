"""Content domain models: pure Pydantic v2 data types.

These models are the strict internal representation of what the remote
content API serves. The normalizer is the only code that builds them
from raw payloads; everything downstream (cache, service, ingestion)
operates on these types and never on raw JSON.
"""

from __future__ import annotations

import hashlib
import json
from datetime import UTC, date, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ContentType(StrEnum):
    """Kinds of content item served by the remote API."""

    POST = "post"
    PAGE = "page"
    PROJECT = "project"


class ContentStatus(StrEnum):
    """Publication status of a content item."""

    PUBLISH = "publish"
    DRAFT = "draft"
    PENDING = "pending"
    PRIVATE = "private"
    FUTURE = "future"


class DateType(StrEnum):
    SINGLE = "single"
    RANGE = "range"


class DateFormat(StrEnum):
    YEAR = "year"
    MONTH_YEAR = "month-year"
    DAY_MONTH_YEAR = "day-month-year"


class TaxonomyKind(StrEnum):
    CATEGORIES = "categories"
    TAGS = "tags"


class OrderDirection(StrEnum):
    ASC = "asc"
    DESC = "desc"


# ---------------------------------------------------------------------------
# Content items
# ---------------------------------------------------------------------------


class MetaFields(BaseModel):
    """Typed extension fields attached to a content item.

    Every field is optional; absence means the source did not set it.
    ``date_end`` absent on a range means "ongoing".
    """

    subtext: str | None = None
    role: str | None = None
    company_name: str | None = None
    company_url: str | None = None
    source_url: str | None = None
    gallery: list[int] = Field(default_factory=list)
    gallery_captions: dict[int, str] = Field(default_factory=dict)
    date_type: DateType | None = None
    date_format: DateFormat | None = None
    date_start: date | None = None
    date_end: date | None = None


class ContentItem(BaseModel):
    """One published content unit (project, post, page).

    ``id`` is stable for the item's lifetime. Slug uniqueness is the
    remote source's responsibility.
    """

    id: int
    slug: str
    type: ContentType
    status: ContentStatus = ContentStatus.PUBLISH
    title: str = ""
    body: str = ""
    excerpt: str = ""
    link: str = ""
    featured_media: int | None = None
    categories: set[int] = Field(default_factory=set)
    tags: set[int] = Field(default_factory=set)
    modified_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
    meta: MetaFields = Field(default_factory=MetaFields)
    normalization_defects: list[str] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        """True when no extension field had to be degraded."""
        return not self.normalization_defects


# ---------------------------------------------------------------------------
# Media and taxonomy
# ---------------------------------------------------------------------------


class MediaSize(BaseModel):
    """One rendition of a media item (thumbnail, medium, full, ...)."""

    file: str = ""
    width: int = 0
    height: int = 0
    source_url: str = ""
    mime_type: str = ""


class MediaItem(BaseModel):
    """An uploaded media file. Never mutated by this layer."""

    id: int
    mime_type: str = ""
    width: int = 0
    height: int = 0
    alt_text: str = ""
    source_url: str = ""
    sizes: dict[str, MediaSize] = Field(default_factory=dict)


class TaxonomyTerm(BaseModel):
    """A category or tag."""

    id: int
    kind: TaxonomyKind
    name: str = ""
    slug: str = ""
    count: int = 0
    parent: int = 0


# ---------------------------------------------------------------------------
# Query and write shapes
# ---------------------------------------------------------------------------


class ListFilters(BaseModel):
    """Filters for a list query.

    Two filter sets with the same logical content produce the same
    ``signature()`` regardless of the order attributes or set members
    were supplied in.
    """

    categories: set[int] = Field(default_factory=set)
    tags: set[int] = Field(default_factory=set)
    search: str = ""
    orderby: str = ""
    order: OrderDirection | None = None
    status: ContentStatus | None = None

    def canonical(self) -> dict[str, Any]:
        """Return only the populated filters, with sets sorted."""
        data: dict[str, Any] = {}
        if self.categories:
            data["categories"] = sorted(self.categories)
        if self.tags:
            data["tags"] = sorted(self.tags)
        if self.search:
            data["search"] = self.search
        if self.orderby:
            data["orderby"] = self.orderby
        if self.order is not None:
            data["order"] = self.order.value
        if self.status is not None:
            data["status"] = self.status.value
        return data

    def signature(self) -> str:
        """Stable, order-independent encoding of the filter set."""
        canonical = self.canonical()
        if not canonical:
            return "all"
        encoded = json.dumps(canonical, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(encoded.encode("utf-8")).hexdigest()[:16]

    def to_params(self) -> dict[str, str]:
        """Render as query-string parameters for the content API."""
        params: dict[str, str] = {}
        for key, value in self.canonical().items():
            if isinstance(value, list):
                params[key] = ",".join(str(v) for v in value)
            else:
                params[key] = str(value)
        return params


class ItemFields(BaseModel):
    """Field values for a create or partial update.

    Unset fields (``None``) are omitted from the request so that an
    update leaves them untouched on the remote item.
    """

    title: str | None = None
    body: str | None = None
    excerpt: str | None = None
    status: ContentStatus | None = None
    slug: str | None = None
    featured_media: int | None = None
    categories: list[int] | None = None
    tags: list[int] | None = None
    meta: MetaFields | None = None
