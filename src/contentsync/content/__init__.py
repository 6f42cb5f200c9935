"""Content domain: typed records and the field normalizer."""

from contentsync.content.models import (
    ContentItem,
    ContentStatus,
    ContentType,
    DateFormat,
    DateType,
    ItemFields,
    ListFilters,
    MediaItem,
    MediaSize,
    MetaFields,
    OrderDirection,
    TaxonomyKind,
    TaxonomyTerm,
)

__all__ = [
    "ContentItem",
    "ContentStatus",
    "ContentType",
    "DateFormat",
    "DateType",
    "ItemFields",
    "ListFilters",
    "MediaItem",
    "MediaSize",
    "MetaFields",
    "OrderDirection",
    "TaxonomyKind",
    "TaxonomyTerm",
]
