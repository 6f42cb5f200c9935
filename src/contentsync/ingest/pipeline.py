"""Bulk ingestion: sequential, rate-limited create-or-update.

Records are processed strictly in input order, one request at a time,
with a minimum delay between consecutive requests whatever the previous
outcome. A failing record is recorded and the batch moves on. After the
batch, the content cache tags are invalidated so readers see the writes.

Re-running a batch is safe for rows that carry an ``id`` (they update).
Rows without one create a new item on every run.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, datetime

from contentsync.cache.store import CONTENT_TAG, type_tag
from contentsync.content.models import ContentType
from contentsync.content.normalizer import prepare_fields
from contentsync.errors import Result
from contentsync.ingest.models import IngestionRecord, IngestionReport, OutcomeStatus
from contentsync.source.client import ContentSourceClient

logger = logging.getLogger(__name__)

DEFAULT_DELAY_SECONDS = 0.5

Sleep = Callable[[float], Awaitable[None]]
Invalidate = Callable[[str], int]


class BulkIngestor:
    """Runs import batches against the content API.

    Args:
        client: Source client used for writes.
        invalidate: Callback that busts a cache tag (usually
            ``Synchronizer.invalidate``); None skips invalidation.
        delay: Minimum seconds between consecutive write requests.
        sleep: Awaitable sleep, injectable for tests.
        clock: Monotonic clock in seconds, injectable for tests.
    """

    def __init__(
        self,
        client: ContentSourceClient,
        invalidate: Invalidate | None = None,
        *,
        delay: float = DEFAULT_DELAY_SECONDS,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self._invalidate = invalidate
        self.delay = max(delay, 0.0)
        self._sleep = sleep
        self._clock = clock
        self._last_request: float | None = None

    async def _throttle(self) -> None:
        if self._last_request is None:
            return
        remaining = self.delay - (self._clock() - self._last_request)
        if remaining > 0:
            await self._sleep(remaining)

    async def _process(self, record: IngestionRecord, *, dry_run: bool) -> ContentType | None:
        try:
            content_type = ContentType(record.content_type)
        except ValueError:
            record.mark_failed(f"unknown content type {record.content_type!r}")
            return None

        prepared = prepare_fields(record.values, creating=not record.is_update)
        action = "update" if record.is_update else "create"
        if not prepared.is_valid:
            record.mark_failed("; ".join(prepared.problems), action=action)
            return None
        if dry_run:
            return None

        await self._throttle()
        try:
            if record.is_update:
                result: Result = await self.client.update_item(
                    content_type, record.existing_id, prepared.fields  # type: ignore[arg-type]
                )
            else:
                result = await self.client.create_item(content_type, prepared.fields)
        except Exception as exc:
            logger.exception("Record %d: %s request raised", record.index, action)
            record.mark_failed(f"{action} raised: {exc}", action=action)
            return None
        finally:
            self._last_request = self._clock()

        if result.error is None:
            record.mark_succeeded(result.value.id, action)
            return content_type
        record.mark_failed(str(result.error), action=action, error_kind=result.error.kind.value)
        return None

    async def run(
        self,
        records: Iterable[IngestionRecord],
        *,
        dry_run: bool = False,
    ) -> IngestionReport:
        """Process every record in order and return the report.

        Args:
            records: Batch rows; their ``outcome`` is updated in place.
            dry_run: Validate only; issue no writes and invalidate nothing.
        """
        report = IngestionReport(records=list(records), dry_run=dry_run)
        report.started_at = datetime.now(tz=UTC)
        written_types: set[ContentType] = set()

        try:
            for record in report.records:
                if record.outcome.status == OutcomeStatus.FAILED:
                    # Rejected while loading the batch.
                    continue
                content_type = await self._process(record, dry_run=dry_run)
                if content_type is not None:
                    written_types.add(content_type)

                if record.outcome.status == OutcomeStatus.FAILED:
                    logger.warning("Record %d failed: %s", record.index, record.outcome.reason)
                elif record.outcome.status == OutcomeStatus.SUCCEEDED:
                    logger.info(
                        "Record %d: %s %s %d",
                        record.index,
                        record.outcome.action,
                        record.content_type,
                        record.outcome.item_id,
                    )
        finally:
            # Also runs when the batch is cancelled part-way.
            if written_types and self._invalidate is not None:
                tags = [CONTENT_TAG, *sorted(type_tag(t) for t in written_types)]
                for tag in tags:
                    self._invalidate(tag)
                report.invalidated_tags = tags

        report.completed_at = datetime.now(tz=UTC)
        logger.info(
            "Batch complete: %d succeeded, %d failed of %d",
            len(report.succeeded),
            len(report.failed),
            len(report.records),
        )
        return report
