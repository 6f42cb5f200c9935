"""Field normalizer: raw, loosely-typed payloads to strict records.

Extension-field parsers are total. A malformed gallery string or
caption map degrades to an empty value and is noted on the item's
``normalization_defects``; it never fails the surrounding fetch.

Core fields (id, slug, type) are different: if those are missing the
payload is not a content item at all, and ``normalize_item`` lets the
pydantic ``ValidationError`` propagate so the client can report a
malformed response.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, date, datetime
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from contentsync.content.models import (
    ContentItem,
    ContentStatus,
    ContentType,
    DateFormat,
    DateType,
    ItemFields,
    MediaItem,
    MediaSize,
    MetaFields,
    TaxonomyKind,
    TaxonomyTerm,
)

logger = logging.getLogger(__name__)

PRESENT_LABEL = "Present"

_STRING_META_FIELDS = ("subtext", "role", "company_name", "company_url", "source_url")


# ---------------------------------------------------------------------------
# Extension-field parsers
# ---------------------------------------------------------------------------


def parse_gallery_ids(raw: str | None) -> list[int]:
    """Parse a comma-separated list of media IDs.

    Tokens that are not integers are dropped; input order is preserved.
    """
    if not raw:
        return []
    ids: list[int] = []
    for token in str(raw).split(","):
        token = token.strip()
        if not token:
            continue
        try:
            ids.append(int(token))
        except ValueError:
            continue
    return ids


def parse_gallery_captions(raw: str | None) -> dict[int, str]:
    """Parse a JSON object mapping media IDs to captions.

    Returns an empty mapping on any parse error or when the JSON value is
    not an object. Keys that are not integers are dropped.
    """
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return {}
    if not isinstance(data, dict):
        return {}
    captions: dict[int, str] = {}
    for key, value in data.items():
        try:
            media_id = int(key)
        except (TypeError, ValueError):
            continue
        captions[media_id] = "" if value is None else str(value)
    return captions


def parse_date(raw: str | date | None) -> date | None:
    """Parse an ISO ``YYYY-MM-DD`` date, or ``None`` if absent/invalid."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat(str(raw).strip()[:10])
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Date formatting
# ---------------------------------------------------------------------------


def format_date(value: date | str, fmt: DateFormat | str) -> str:
    """Format a calendar date for display.

    ``year`` -> ``2024``; ``month-year`` -> ``01/2024``;
    ``day-month-year`` -> ``05/01/2024``. A string that is not a valid
    ISO date (or an unknown format) is returned unchanged.
    """
    parsed = parse_date(value) if isinstance(value, str) else value
    if parsed is None:
        return str(value)
    try:
        fmt = DateFormat(fmt)
    except ValueError:
        return str(value)

    if fmt == DateFormat.YEAR:
        return f"{parsed.year:04d}"
    if fmt == DateFormat.MONTH_YEAR:
        return f"{parsed.month:02d}/{parsed.year:04d}"
    return f"{parsed.day:02d}/{parsed.month:02d}/{parsed.year:04d}"


def format_date_range(
    start: date | str,
    end: date | str | None,
    fmt: DateFormat | str,
) -> str:
    """Format a start/end pair; a missing end renders as ``Present``."""
    end_label = format_date(end, fmt) if end else PRESENT_LABEL
    return f"{format_date(start, fmt)} - {end_label}"


def format_item_dates(meta: MetaFields) -> str:
    """Render the display date of an item according to its date type.

    A ``single`` date ignores ``date_end`` entirely. Items without a start
    date render as an empty string.
    """
    if meta.date_start is None:
        return ""
    fmt = meta.date_format or DateFormat.DAY_MONTH_YEAR
    if meta.date_type == DateType.RANGE:
        return format_date_range(meta.date_start, meta.date_end, fmt)
    return format_date(meta.date_start, fmt)


# ---------------------------------------------------------------------------
# Meta normalization
# ---------------------------------------------------------------------------


def _first(value: Any) -> Any:
    # Some CMS setups return single-valued meta as a one-element list.
    if isinstance(value, list):
        return value[0] if value else None
    return value


def normalize_meta(raw: dict[str, Any] | None) -> tuple[MetaFields, list[str]]:
    """Normalize a raw meta mapping.

    Returns:
        The typed meta fields and the names of fields that were present
        but malformed (and therefore degraded to a default).
    """
    if not isinstance(raw, dict):
        return MetaFields(), ([] if raw in (None, [], "") else ["meta"])

    defects: list[str] = []
    values: dict[str, Any] = {}

    for name in _STRING_META_FIELDS:
        value = _first(raw.get(name))
        if value not in (None, ""):
            values[name] = str(value)

    gallery_raw = _first(raw.get("gallery"))
    if isinstance(gallery_raw, list):
        gallery_raw = ",".join(str(v) for v in gallery_raw)
    if gallery_raw not in (None, ""):
        gallery = parse_gallery_ids(str(gallery_raw))
        if not gallery:
            defects.append("gallery")
        values["gallery"] = gallery

    captions_raw = _first(raw.get("gallery_captions"))
    if isinstance(captions_raw, dict):
        captions_raw = json.dumps(captions_raw)
    if captions_raw not in (None, ""):
        captions = parse_gallery_captions(str(captions_raw))
        if not captions and str(captions_raw).strip() != "{}":
            defects.append("gallery_captions")
        values["gallery_captions"] = captions

    for name, enum_cls in (("date_type", DateType), ("date_format", DateFormat)):
        value = _first(raw.get(name))
        if value in (None, ""):
            continue
        try:
            values[name] = enum_cls(value)
        except ValueError:
            defects.append(name)

    for name in ("date_start", "date_end"):
        value = _first(raw.get(name))
        if value in (None, ""):
            continue
        parsed = parse_date(value)
        if parsed is None:
            defects.append(name)
        else:
            values[name] = parsed

    return MetaFields(**values), defects


def encode_meta(meta: MetaFields) -> dict[str, Any]:
    """Encode meta fields into the remote's string-typed representation.

    Only fields explicitly set on ``meta`` are included, so a partial
    update does not blank the others.
    """
    encoded: dict[str, Any] = {}
    for name in meta.model_fields_set:
        value = getattr(meta, name)
        if name == "gallery":
            encoded[name] = ",".join(str(v) for v in value)
        elif name == "gallery_captions":
            encoded[name] = json.dumps({str(k): v for k, v in value.items()})
        elif isinstance(value, date):
            encoded[name] = value.isoformat()
        elif value is None:
            encoded[name] = ""
        else:
            encoded[name] = str(value)
    return encoded


# ---------------------------------------------------------------------------
# Remote payload mapping
# ---------------------------------------------------------------------------


class _RawItemCore(BaseModel):
    """Core fields a content payload must have to be usable."""

    id: int
    slug: str
    type: str


def _rendered(value: Any) -> str:
    if isinstance(value, dict):
        value = value.get("rendered", value.get("raw", ""))
    return "" if value is None else str(value)


def _int_set(values: Any) -> set[int]:
    if not isinstance(values, list):
        return set()
    result: set[int] = set()
    for v in values:
        try:
            result.add(int(v))
        except (TypeError, ValueError):
            continue
    return result


def parse_modified(raw: dict[str, Any]) -> datetime:
    """Return the item's modification instant in UTC.

    ``modified_gmt`` carries no offset and is UTC by definition; a bare
    ``modified`` is treated the same way as a best effort.
    """
    for key in ("modified_gmt", "modified"):
        value = raw.get(key)
        if not value:
            continue
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            continue
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC)
    return datetime.now(tz=UTC)


def _resolve_type(raw_type: str, fallback: ContentType | None) -> ContentType:
    try:
        return ContentType(raw_type)
    except ValueError:
        if fallback is not None:
            return fallback
        raise


def normalize_item(
    raw: dict[str, Any],
    content_type: ContentType | None = None,
) -> ContentItem:
    """Convert one raw content payload into a :class:`ContentItem`.

    Args:
        raw: Decoded JSON object from the content API.
        content_type: Type to assume when the payload's ``type`` is a
            value this layer does not know.

    Raises:
        pydantic.ValidationError: if a core field is missing or invalid.
        ValueError: if the type is unknown and no fallback was given.
    """
    if not isinstance(raw, dict):
        raise ValueError(f"Expected a JSON object, got {type(raw).__name__}")
    core = _RawItemCore.model_validate(
        {
            "id": raw.get("id"),
            "slug": raw.get("slug"),
            "type": raw.get("type") or (content_type.value if content_type else None),
        }
    )

    meta, defects = normalize_meta(raw.get("meta"))

    status_raw = raw.get("status") or ContentStatus.PUBLISH.value
    try:
        status = ContentStatus(status_raw)
    except ValueError:
        status = ContentStatus.PUBLISH
        defects.append("status")

    featured = raw.get("featured_media")
    try:
        featured_media = int(featured) if featured else None
    except (TypeError, ValueError):
        featured_media = None
        defects.append("featured_media")

    if defects:
        logger.debug("Item %s normalized with defects: %s", core.id, ", ".join(defects))

    return ContentItem(
        id=core.id,
        slug=core.slug,
        type=_resolve_type(core.type, content_type),
        status=status,
        title=_rendered(raw.get("title")),
        body=_rendered(raw.get("content")),
        excerpt=_rendered(raw.get("excerpt")),
        link=str(raw.get("link") or ""),
        featured_media=featured_media or None,
        categories=_int_set(raw.get("categories")),
        tags=_int_set(raw.get("tags")),
        modified_at=parse_modified(raw),
        meta=meta,
        normalization_defects=defects,
    )


def normalize_media(raw: dict[str, Any]) -> MediaItem:
    """Convert a raw media payload into a :class:`MediaItem`."""
    if not isinstance(raw, dict):
        raise ValueError(f"Expected a JSON object, got {type(raw).__name__}")
    details = raw.get("media_details") or {}
    if not isinstance(details, dict):
        details = {}
    sizes: dict[str, MediaSize] = {}
    for label, size in (details.get("sizes") or {}).items():
        if not isinstance(size, dict):
            continue
        sizes[label] = MediaSize(
            file=str(size.get("file") or ""),
            width=int(size.get("width") or 0),
            height=int(size.get("height") or 0),
            source_url=str(size.get("source_url") or ""),
            mime_type=str(size.get("mime_type") or ""),
        )
    return MediaItem(
        id=raw.get("id"),  # type: ignore[arg-type]
        mime_type=str(raw.get("mime_type") or ""),
        width=int(details.get("width") or 0),
        height=int(details.get("height") or 0),
        alt_text=str(raw.get("alt_text") or ""),
        source_url=str(raw.get("source_url") or ""),
        sizes=sizes,
    )


def normalize_term(raw: dict[str, Any], kind: TaxonomyKind) -> TaxonomyTerm:
    """Convert a raw category/tag payload into a :class:`TaxonomyTerm`."""
    if not isinstance(raw, dict):
        raise ValueError(f"Expected a JSON object, got {type(raw).__name__}")
    return TaxonomyTerm(
        id=raw.get("id"),  # type: ignore[arg-type]
        kind=kind,
        name=str(raw.get("name") or ""),
        slug=str(raw.get("slug") or ""),
        count=int(raw.get("count") or 0),
        parent=int(raw.get("parent") or 0),
    )


def fields_to_payload(fields: ItemFields) -> dict[str, Any]:
    """Render write fields as the remote JSON body, omitting unset fields."""
    payload: dict[str, Any] = {}
    if fields.title is not None:
        payload["title"] = fields.title
    if fields.body is not None:
        payload["content"] = fields.body
    if fields.excerpt is not None:
        payload["excerpt"] = fields.excerpt
    if fields.status is not None:
        payload["status"] = fields.status.value
    if fields.slug is not None:
        payload["slug"] = fields.slug
    if fields.featured_media is not None:
        payload["featured_media"] = fields.featured_media
    if fields.categories is not None:
        payload["categories"] = list(fields.categories)
    if fields.tags is not None:
        payload["tags"] = list(fields.tags)
    if fields.meta is not None:
        payload["meta"] = encode_meta(fields.meta)
    return payload


# ---------------------------------------------------------------------------
# Import-row preparation
# ---------------------------------------------------------------------------


class PreparedFields(BaseModel):
    """Best-effort write fields plus the problems found while preparing them."""

    fields: ItemFields = Field(default_factory=ItemFields)
    problems: list[str] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.problems


_META_KEYS = (
    *_STRING_META_FIELDS,
    "gallery",
    "gallery_captions",
    "date_type",
    "date_format",
    "date_start",
    "date_end",
)


def _prepare_meta(raw: dict[str, Any], problems: list[str]) -> MetaFields | None:
    if not raw:
        return None
    values: dict[str, Any] = {}
    for name in _STRING_META_FIELDS:
        if name in raw:
            values[name] = None if raw[name] is None else str(raw[name])

    if "gallery" in raw:
        gallery = raw["gallery"]
        if isinstance(gallery, list):
            gallery = ",".join(str(v) for v in gallery)
        values["gallery"] = parse_gallery_ids(None if gallery is None else str(gallery))

    if "gallery_captions" in raw:
        captions = raw["gallery_captions"]
        if isinstance(captions, dict):
            captions = json.dumps(captions)
        values["gallery_captions"] = parse_gallery_captions(
            None if captions is None else str(captions)
        )

    for name, enum_cls in (("date_type", DateType), ("date_format", DateFormat)):
        if raw.get(name) in (None, ""):
            continue
        try:
            values[name] = enum_cls(raw[name])
        except ValueError:
            problems.append(f"{name}: unknown value {raw[name]!r}")

    for name in ("date_start", "date_end"):
        if name not in raw:
            continue
        if raw[name] in (None, ""):
            values[name] = None
            continue
        parsed = parse_date(raw[name])
        if parsed is None:
            problems.append(f"{name}: not an ISO date {raw[name]!r}")
        else:
            values[name] = parsed

    if values.get("date_type") == DateType.RANGE and values.get("date_start") is None:
        problems.append("date_start: required for a date range")
    start, end = values.get("date_start"), values.get("date_end")
    if start and end and end < start:
        problems.append("date_end: before date_start")

    return MetaFields(**values)


def _int_list(name: str, raw: Any, problems: list[str]) -> list[int] | None:
    if raw is None:
        return None
    if isinstance(raw, str):
        raw = [t for t in raw.split(",") if t.strip()]
    if not isinstance(raw, list):
        problems.append(f"{name}: expected a list of IDs")
        return None
    ids: list[int] = []
    for value in raw:
        try:
            ids.append(int(value))
        except (TypeError, ValueError):
            problems.append(f"{name}: {value!r} is not an ID")
    return ids


def prepare_fields(values: dict[str, Any], *, creating: bool) -> PreparedFields:
    """Normalize and validate an import row into write fields.

    Args:
        values: Field values from the import batch. Meta fields may sit
            at the top level or under a ``meta`` key.
        creating: Whether the row will create a new item; a title is
            required in that case.

    Returns:
        PreparedFields whose ``problems`` is empty when the row is valid.
    """
    problems: list[str] = []

    title = values.get("title")
    if creating and not (isinstance(title, str) and title.strip()):
        problems.append("title: required when creating an item")

    status = None
    if values.get("status") not in (None, ""):
        try:
            status = ContentStatus(values["status"])
        except ValueError:
            problems.append(f"status: unknown value {values['status']!r}")

    featured = values.get("featured_media")
    featured_media = None
    if featured not in (None, ""):
        try:
            featured_media = int(featured)
        except (TypeError, ValueError):
            problems.append(f"featured_media: {featured!r} is not an ID")

    meta_raw: dict[str, Any] = {}
    nested = values.get("meta")
    if isinstance(nested, dict):
        meta_raw.update(nested)
    elif nested is not None:
        problems.append("meta: expected a mapping")
    for key in _META_KEYS:
        if key in values:
            meta_raw[key] = values[key]

    body = values.get("body", values.get("content"))
    try:
        fields = ItemFields(
            title=None if title is None else str(title),
            body=None if body is None else str(body),
            excerpt=None if values.get("excerpt") is None else str(values["excerpt"]),
            status=status,
            slug=values.get("slug") or None,
            featured_media=featured_media,
            categories=_int_list("categories", values.get("categories"), problems),
            tags=_int_list("tags", values.get("tags"), problems),
            meta=_prepare_meta(meta_raw, problems),
        )
    except ValidationError as exc:
        problems.extend(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        fields = ItemFields()

    return PreparedFields(fields=fields, problems=problems)
