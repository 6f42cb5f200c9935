"""Fetch-or-serve-from-cache with single-flight loading.

Concurrent callers asking for the same missing key share one loader
call: the first caller starts a task, later callers await the same
task. The task is shielded, so a caller that gives up does not cancel
the fetch for everyone else. Failures are returned to every waiter and
never cached.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from contentsync.cache.store import CacheStore
from contentsync.errors import ErrorKind, FetchError, Result

logger = logging.getLogger(__name__)

V = TypeVar("V")

Loader = Callable[[], Awaitable[Result[V]]]


@dataclass
class SyncStats:
    """Counters for cache effectiveness."""

    hits: int = 0
    misses: int = 0
    coalesced: int = 0
    failures: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "coalesced": self.coalesced,
            "failures": self.failures,
        }


@dataclass
class _Flight:
    task: asyncio.Task[Result[Any]]
    tags: frozenset[str] = field(default_factory=frozenset)


class Synchronizer:
    """Single entry point for cached reads.

    Args:
        store: Cache store shared by every read path in the process.
    """

    def __init__(self, store: CacheStore) -> None:
        self.store = store
        self.stats = SyncStats()
        self._inflight: dict[str, _Flight] = {}

    @property
    def inflight_keys(self) -> list[str]:
        return list(self._inflight)

    async def fetch_or_load(
        self,
        key: str,
        loader: Loader[V],
        *,
        ttl: float | None = None,
        tags: Iterable[str] = (),
    ) -> Result[V]:
        """Return the cached value for ``key`` or load it exactly once.

        Args:
            key: Composite cache key.
            loader: Zero-argument coroutine function producing a Result.
            ttl: Seconds to keep a successful result; store default if None.
            tags: Invalidation tags for the stored entry.
        """
        entry = self.store.get(key)
        if entry is not None:
            self.stats.hits += 1
            logger.debug("Cache hit: %s", key)
            return Result.success(entry.value)

        flight = self._inflight.get(key)
        if flight is None:
            self.stats.misses += 1
            logger.debug("Cache miss: %s", key)
            tag_set = frozenset(tags)
            versions = {tag: self.store.tag_version(tag) for tag in tag_set}
            task = asyncio.ensure_future(self._load(key, loader, ttl, tag_set, versions))
            flight = _Flight(task=task, tags=tag_set)
            self._inflight[key] = flight
        else:
            self.stats.coalesced += 1
            logger.debug("Joining in-flight fetch: %s", key)

        return await asyncio.shield(flight.task)

    async def _load(
        self,
        key: str,
        loader: Loader[V],
        ttl: float | None,
        tags: frozenset[str],
        versions: dict[str, int],
    ) -> Result[V]:
        try:
            try:
                result = await loader()
            except Exception as exc:
                logger.exception("Loader for %s raised", key)
                result = Result.failure(
                    FetchError(ErrorKind.TRANSPORT, f"Loader for {key} raised: {exc}")
                )

            if not result.ok:
                self.stats.failures += 1
                return result

            stale = any(self.store.tag_version(tag) != v for tag, v in versions.items())
            if stale:
                logger.debug("Not caching %s: invalidated while loading", key)
            else:
                self.store.put(key, result.value, ttl=ttl, tags=tags)
            return result
        finally:
            flight = self._inflight.get(key)
            if flight is not None and flight.task is asyncio.current_task():
                del self._inflight[key]

    def invalidate(self, tag: str) -> int:
        """Drop every cached entry tagged ``tag``.

        In-flight loads carrying the tag are detached, so the next caller
        starts a fresh fetch instead of joining a stale one.
        """
        for key, flight in list(self._inflight.items()):
            if tag in flight.tags:
                del self._inflight[key]
        return self.store.invalidate_by_tag(tag)
