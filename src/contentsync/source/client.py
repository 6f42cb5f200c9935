"""Async client for the remote content API.

Reads and writes go through a single ``aiohttp.ClientSession``. Every
public method returns a :class:`~contentsync.errors.Result`: transport
failures, timeouts, HTTP error envelopes and schema violations are all
mapped onto the error taxonomy in :mod:`contentsync.errors` and never
escape as exceptions.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Mapping
from typing import Any

import aiohttp
from pydantic import ValidationError

from contentsync.config import MAX_PAGE_SIZE, SourceConfig
from contentsync.content.models import (
    ContentItem,
    ContentType,
    ItemFields,
    ListFilters,
    MediaItem,
    TaxonomyKind,
    TaxonomyTerm,
)
from contentsync.content.normalizer import (
    fields_to_payload,
    normalize_item,
    normalize_media,
    normalize_term,
)
from contentsync.errors import ErrorKind, FetchError, Result, SyncError, WriteError

logger = logging.getLogger(__name__)

# Remote error code for a page number past the last page.
INVALID_PAGE_CODE = "rest_post_invalid_page_number"
INVALID_PARAM_CODE = "rest_invalid_param"


class _Response:
    """Decoded body plus the headers pagination needs."""

    def __init__(self, status: int, data: Any, headers: Mapping[str, str]) -> None:
        self.status = status
        self.data = data
        self.headers = headers

    @property
    def total_pages(self) -> int | None:
        raw = self.headers.get("X-WP-TotalPages")
        try:
            return int(raw) if raw is not None else None
        except ValueError:
            return None


class ContentSourceClient:
    """Client for the content API.

    Owns its HTTP session unless one is injected. Use as an async
    context manager, or call :meth:`close` when done.
    """

    def __init__(
        self,
        config: SourceConfig,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.config = config
        self.base_url = config.base_url
        self._session = session
        self._owns_session = session is None

    # ── Session lifecycle ────────────────────────────────────────

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
                headers={
                    "Accept": "application/json",
                    "User-Agent": self.config.user_agent,
                },
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> ContentSourceClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ── Private helpers ──────────────────────────────────────────

    def _collection(self, content_type: ContentType) -> str:
        return self.config.rest_bases.get(content_type.value, f"{content_type.value}s")

    def _auth_headers(self) -> dict[str, str]:
        if self.config.token:
            return {"Authorization": f"Bearer {self.config.token}"}
        if self.config.username and self.config.app_password:
            auth = aiohttp.BasicAuth(self.config.username, self.config.app_password)
            return {"Authorization": auth.encode()}
        return {}

    @staticmethod
    def _error_from_envelope(
        status: int,
        body: Any,
        *,
        write: bool,
    ) -> SyncError:
        """Map an HTTP error status and ``{code, message, status}`` envelope."""
        code = ""
        message = f"HTTP {status}"
        field_errors: dict[str, str] = {}
        if isinstance(body, dict):
            code = str(body.get("code") or "")
            message = str(body.get("message") or message)
            data = body.get("data")
            params = data.get("params") if isinstance(data, dict) else None
            if isinstance(params, dict):
                field_errors = {str(k): str(v) for k, v in params.items()}

        if status in (401, 403):
            kind = ErrorKind.UNAUTHORIZED
        elif status == 404:
            kind = ErrorKind.NOT_FOUND
        elif write and status == 400 and (code == INVALID_PARAM_CODE or field_errors):
            kind = ErrorKind.VALIDATION_REJECTED
        else:
            kind = ErrorKind.TRANSPORT

        error_cls = WriteError if write else FetchError
        return error_cls(kind, message, status=status, code=code, field_errors=field_errors)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
        write: bool = False,
    ) -> _Response:
        """Issue one request and decode its JSON body.

        Raises:
            FetchError / WriteError: on any failure, already classified.
        """
        error_cls = WriteError if write else FetchError
        url = f"{self.base_url}/{path.lstrip('/')}"
        headers = self._auth_headers()
        session = await self._get_session()

        start = time.monotonic()
        try:
            async with session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
            ) as resp:
                body = await resp.read()
                status = resp.status
                resp_headers = resp.headers.copy()
        except TimeoutError as exc:
            raise error_cls(
                ErrorKind.TIMEOUT, f"{method} {url} timed out after {self.config.timeout}s"
            ) from exc
        except aiohttp.ClientError as exc:
            raise error_cls(ErrorKind.TRANSPORT, f"{method} {url} failed: {exc}") from exc

        logger.debug(
            "%s %s -> %d in %.1fms", method, url, status, (time.monotonic() - start) * 1000
        )

        try:
            data = json.loads(body.decode("utf-8")) if body else None
        except ValueError:  # includes UnicodeDecodeError
            if status < 400:
                raise error_cls(
                    ErrorKind.MALFORMED_RESPONSE,
                    f"{method} {url} returned invalid JSON",
                    status=status,
                ) from None
            data = None

        if status >= 400:
            raise self._error_from_envelope(status, data, write=write)
        return _Response(status, data, resp_headers)

    def _malformed(self, what: str, exc: Exception, *, write: bool = False) -> SyncError:
        error_cls = WriteError if write else FetchError
        logger.warning("Malformed %s from %s: %s", what, self.base_url, exc)
        return error_cls(ErrorKind.MALFORMED_RESPONSE, f"Malformed {what}: {exc}")

    # ── Read operations ──────────────────────────────────────────

    async def _list_page(
        self,
        content_type: ContentType,
        filters: ListFilters | None,
        page: int,
        page_size: int,
    ) -> tuple[list[ContentItem], int | None]:
        if page < 1:
            raise FetchError(ErrorKind.TRANSPORT, f"Page numbers start at 1, got {page}")
        params = (filters or ListFilters()).to_params()
        params["page"] = str(page)
        params["per_page"] = str(max(1, min(page_size, MAX_PAGE_SIZE, self.config.page_size)))

        try:
            resp = await self._request("GET", self._collection(content_type), params=params)
        except FetchError as exc:
            if exc.code == INVALID_PAGE_CODE:
                return [], None
            raise

        if not isinstance(resp.data, list):
            raise self._malformed("item list", TypeError("expected a JSON array"))
        try:
            items = [normalize_item(raw, content_type) for raw in resp.data]
        except (ValidationError, ValueError, TypeError) as exc:
            raise self._malformed("item list", exc) from exc
        return items, resp.total_pages

    async def list_items(
        self,
        content_type: ContentType,
        filters: ListFilters | None = None,
        page: int = 1,
        page_size: int = MAX_PAGE_SIZE,
    ) -> Result[list[ContentItem]]:
        """Fetch one page of items.

        Args:
            content_type: Which collection to query.
            filters: Category/tag/search/order/status filters.
            page: 1-indexed page number. A page past the end is empty.
            page_size: Items per page, capped at the remote maximum.
        """
        try:
            items, _ = await self._list_page(content_type, filters, page, page_size)
        except FetchError as exc:
            logger.warning("list_items(%s) failed: %s", content_type, exc)
            return Result.failure(exc)
        return Result.success(items)

    async def list_all_items(
        self,
        content_type: ContentType,
        filters: ListFilters | None = None,
        page_size: int = MAX_PAGE_SIZE,
    ) -> Result[list[ContentItem]]:
        """Fetch every page of items matching ``filters``."""
        items: list[ContentItem] = []
        page = 1
        try:
            while True:
                batch, total_pages = await self._list_page(content_type, filters, page, page_size)
                items.extend(batch)
                if total_pages is not None:
                    if page >= total_pages:
                        break
                elif len(batch) < min(page_size, MAX_PAGE_SIZE, self.config.page_size):
                    break
                if not batch:
                    break
                page += 1
        except FetchError as exc:
            logger.warning("list_all_items(%s) failed on page %d: %s", content_type, page, exc)
            return Result.failure(exc)
        logger.debug("Fetched %d %s items across %d pages", len(items), content_type, page)
        return Result.success(items)

    async def get_item(
        self,
        content_type: ContentType,
        id_or_slug: int | str,
    ) -> Result[ContentItem]:
        """Fetch one item by numeric ID or by slug."""
        collection = self._collection(content_type)
        try:
            if isinstance(id_or_slug, int) or str(id_or_slug).isdigit():
                resp = await self._request("GET", f"{collection}/{int(id_or_slug)}")
                raw = resp.data
            else:
                resp = await self._request(
                    "GET",
                    collection,
                    params={"slug": str(id_or_slug), "per_page": "1"},
                )
                if not isinstance(resp.data, list):
                    raise self._malformed("item list", TypeError("expected a JSON array"))
                if not resp.data:
                    raise FetchError(
                        ErrorKind.NOT_FOUND, f"No {content_type} with slug {id_or_slug!r}"
                    )
                raw = resp.data[0]
            try:
                item = normalize_item(raw, content_type)
            except (ValidationError, ValueError, TypeError) as exc:
                raise self._malformed("item", exc) from exc
        except FetchError as exc:
            if exc.kind != ErrorKind.NOT_FOUND:
                logger.warning("get_item(%s, %r) failed: %s", content_type, id_or_slug, exc)
            return Result.failure(exc)
        return Result.success(item)

    async def get_media(self, media_id: int) -> Result[MediaItem]:
        """Fetch one media item."""
        try:
            resp = await self._request("GET", f"media/{int(media_id)}")
            try:
                media = normalize_media(resp.data)
            except (ValidationError, ValueError, TypeError) as exc:
                raise self._malformed("media", exc) from exc
        except FetchError as exc:
            logger.warning("get_media(%s) failed: %s", media_id, exc)
            return Result.failure(exc)
        return Result.success(media)

    async def list_taxonomy(self, kind: TaxonomyKind) -> Result[list[TaxonomyTerm]]:
        """Fetch every term of a taxonomy, following pagination."""
        terms: list[TaxonomyTerm] = []
        page = 1
        try:
            while True:
                resp = await self._request(
                    "GET",
                    kind.value,
                    params={"page": str(page), "per_page": str(MAX_PAGE_SIZE)},
                )
                if not isinstance(resp.data, list):
                    raise self._malformed("term list", TypeError("expected a JSON array"))
                try:
                    batch = [normalize_term(raw, kind) for raw in resp.data]
                except (ValidationError, ValueError, TypeError) as exc:
                    raise self._malformed("term list", exc) from exc
                terms.extend(batch)
                total_pages = resp.total_pages
                if not batch or (total_pages is not None and page >= total_pages):
                    break
                if total_pages is None and len(batch) < MAX_PAGE_SIZE:
                    break
                page += 1
        except FetchError as exc:
            if exc.code == INVALID_PAGE_CODE:
                return Result.success(terms)
            logger.warning("list_taxonomy(%s) failed: %s", kind, exc)
            return Result.failure(exc)
        return Result.success(terms)

    # ── Write operations ─────────────────────────────────────────

    def _require_credentials(self) -> None:
        if not self.config.has_credentials:
            raise WriteError(
                ErrorKind.UNAUTHORIZED, "No write credentials configured for the content API"
            )

    async def _write(self, path: str, fields: ItemFields, content_type: ContentType) -> ContentItem:
        self._require_credentials()
        resp = await self._request("POST", path, json_body=fields_to_payload(fields), write=True)
        try:
            return normalize_item(resp.data, content_type)
        except (ValidationError, ValueError, TypeError) as exc:
            raise self._malformed("write response", exc, write=True) from exc

    async def create_item(
        self,
        content_type: ContentType,
        fields: ItemFields,
    ) -> Result[ContentItem]:
        """Create a new item. Not idempotent: each call creates one item."""
        try:
            item = await self._write(self._collection(content_type), fields, content_type)
        except WriteError as exc:
            logger.warning("create_item(%s) failed: %s", content_type, exc)
            return Result.failure(exc)
        logger.info("Created %s %d (%s)", content_type, item.id, item.slug)
        return Result.success(item)

    async def update_item(
        self,
        content_type: ContentType,
        item_id: int,
        fields: ItemFields,
    ) -> Result[ContentItem]:
        """Update only the supplied fields of an existing item."""
        path = f"{self._collection(content_type)}/{int(item_id)}"
        try:
            item = await self._write(path, fields, content_type)
        except WriteError as exc:
            logger.warning("update_item(%s, %d) failed: %s", content_type, item_id, exc)
            return Result.failure(exc)
        logger.info("Updated %s %d", content_type, item.id)
        return Result.success(item)
