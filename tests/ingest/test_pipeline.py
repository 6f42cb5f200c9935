"""Tests for BulkIngestor — ordered, rate-limited create-or-update."""

import asyncio

from contentsync.content.models import ContentItem, ContentType
from contentsync.errors import ErrorKind
from contentsync.ingest.loader import parse_batch
from contentsync.ingest.models import OutcomeStatus
from contentsync.ingest.pipeline import BulkIngestor


class _Timing:
    """Records requested sleeps; the monotonic clock stands still."""

    def __init__(self) -> None:
        self.sleeps: list[float] = []
        self.now = 0.0

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def clock(self) -> float:
        return self.now


def _ingestor(client, timing: _Timing | None = None, delay: float = 0.5):
    timing = timing or _Timing()
    invalidated: list[str] = []

    def invalidate(tag: str) -> int:
        invalidated.append(tag)
        return 0

    ingestor = BulkIngestor(
        client,
        invalidate,
        delay=delay,
        sleep=timing.sleep,
        clock=timing.clock,
    )
    return ingestor, invalidated


class TestRun:
    def test_one_bad_record_does_not_stop_the_batch(self, fake_client):
        records = parse_batch(
            [
                {"type": "project", "title": "One"},
                {"type": "project", "title": "Two"},
                {"type": "project", "body": "no title"},
                {"type": "project", "title": "Four"},
                {"type": "project", "title": "Five"},
            ]
        )
        ingestor, _ = _ingestor(fake_client)

        report = asyncio.run(ingestor.run(records))

        assert len(report.succeeded) == 4
        assert [r.index for r in report.failed] == [3]
        assert "title" in report.records[2].outcome.reason
        created = [arg for name, arg in fake_client.calls if name == "create_item"]
        assert created == ["One", "Two", "Four", "Five"]

    def test_remote_rejection_is_recorded_and_batch_continues(self, fake_client):
        fake_client.fail_titles = {"Bad"}
        records = parse_batch(
            [
                {"type": "post", "title": "Good"},
                {"type": "post", "title": "Bad"},
                {"type": "post", "title": "Also good"},
            ]
        )
        ingestor, _ = _ingestor(fake_client)

        report = asyncio.run(ingestor.run(records))

        failed = report.records[1].outcome
        assert failed.status == OutcomeStatus.FAILED
        assert failed.error_kind == ErrorKind.VALIDATION_REJECTED.value
        assert failed.action == "create"
        assert report.records[2].outcome.status == OutcomeStatus.SUCCEEDED

    def test_id_means_update(self, fake_client):
        fake_client.add(ContentItem(id=7, slug="old", type=ContentType.PROJECT, title="Old"))
        records = parse_batch([{"type": "project", "id": 7, "excerpt": "New excerpt"}])
        ingestor, _ = _ingestor(fake_client)

        report = asyncio.run(ingestor.run(records))

        outcome = report.records[0].outcome
        assert outcome.status == OutcomeStatus.SUCCEEDED
        assert outcome.action == "update"
        assert outcome.item_id == 7
        assert fake_client.items[7].excerpt == "New excerpt"
        assert fake_client.items[7].title == "Old"
        assert [name for name, _ in fake_client.calls] == ["update_item"]

    def test_rerun_of_update_batch_is_safe(self, fake_client):
        fake_client.add(ContentItem(id=7, slug="old", type=ContentType.PROJECT))
        rows = [{"type": "project", "id": 7, "title": "Same"}]
        ingestor, _ = _ingestor(fake_client)

        asyncio.run(ingestor.run(parse_batch(rows)))
        asyncio.run(ingestor.run(parse_batch(rows)))

        assert len(fake_client.items) == 1
        assert fake_client.items[7].title == "Same"

    def test_update_of_missing_item_fails(self, fake_client):
        records = parse_batch([{"type": "post", "id": 404, "title": "Ghost"}])
        ingestor, invalidated = _ingestor(fake_client)

        report = asyncio.run(ingestor.run(records))

        assert report.records[0].outcome.error_kind == ErrorKind.NOT_FOUND.value
        assert report.records[0].outcome.item_id == 404
        assert invalidated == []

    def test_unknown_type_fails_without_request(self, fake_client):
        records = parse_batch([{"type": "recipe", "title": "Soup"}])
        ingestor, _ = _ingestor(fake_client)

        report = asyncio.run(ingestor.run(records))

        assert "unknown content type" in report.records[0].outcome.reason
        assert fake_client.calls == []

    def test_rows_rejected_at_load_are_skipped(self, fake_client):
        records = parse_batch(["not a row", {"type": "post", "title": "Fine"}])
        ingestor, _ = _ingestor(fake_client)

        report = asyncio.run(ingestor.run(records))

        assert report.records[0].outcome.status == OutcomeStatus.FAILED
        assert report.records[1].outcome.status == OutcomeStatus.SUCCEEDED
        assert len(fake_client.calls) == 1


class TestRateLimit:
    def test_delay_between_consecutive_requests(self, fake_client):
        timing = _Timing()
        records = parse_batch([{"type": "post", "title": f"T{i}"} for i in range(4)])
        ingestor, _ = _ingestor(fake_client, timing, delay=0.5)

        asyncio.run(ingestor.run(records))

        assert timing.sleeps == [0.5, 0.5, 0.5]

    def test_delay_applies_after_failed_request(self, fake_client):
        timing = _Timing()
        fake_client.fail_titles = {"A"}
        records = parse_batch([{"type": "post", "title": "A"}, {"type": "post", "title": "B"}])
        ingestor, _ = _ingestor(fake_client, timing, delay=1.0)

        asyncio.run(ingestor.run(records))

        assert timing.sleeps == [1.0]

    def test_locally_invalid_record_does_not_wait(self, fake_client):
        timing = _Timing()
        records = parse_batch([{"type": "post", "title": "A"}, {"type": "post"}])
        ingestor, _ = _ingestor(fake_client, timing)

        asyncio.run(ingestor.run(records))

        assert timing.sleeps == []

    def test_elapsed_time_counts_toward_delay(self, fake_client):
        timing = _Timing()
        readings = iter([0.0, 0.75, 0.75])
        timing.clock = lambda: next(readings)  # type: ignore[method-assign]
        records = parse_batch([{"type": "post", "title": "A"}, {"type": "post", "title": "B"}])
        ingestor, _ = _ingestor(fake_client, timing, delay=1.0)

        asyncio.run(ingestor.run(records))

        assert timing.sleeps == [0.25]

    def test_zero_delay_never_sleeps(self, fake_client):
        timing = _Timing()
        records = parse_batch([{"type": "post", "title": f"T{i}"} for i in range(3)])
        ingestor, _ = _ingestor(fake_client, timing, delay=0)

        asyncio.run(ingestor.run(records))

        assert timing.sleeps == []


class TestInvalidation:
    def test_invalidates_written_types(self, fake_client):
        records = parse_batch(
            [{"type": "project", "title": "A"}, {"type": "post", "title": "B"}]
        )
        ingestor, invalidated = _ingestor(fake_client)

        report = asyncio.run(ingestor.run(records))

        assert invalidated == ["content-items", "type:post", "type:project"]
        assert report.invalidated_tags == invalidated

    def test_nothing_invalidated_when_all_fail(self, fake_client):
        records = parse_batch([{"type": "project"}])
        ingestor, invalidated = _ingestor(fake_client)

        report = asyncio.run(ingestor.run(records))

        assert invalidated == []
        assert report.invalidated_tags == []


class TestDryRun:
    def test_validates_without_writing(self, fake_client):
        timing = _Timing()
        records = parse_batch(
            [{"type": "post", "title": "Fine"}, {"type": "post", "status": "bogus"}]
        )
        ingestor, invalidated = _ingestor(fake_client, timing)

        report = asyncio.run(ingestor.run(records, dry_run=True))

        assert report.dry_run
        assert fake_client.calls == []
        assert invalidated == []
        assert timing.sleeps == []
        assert report.records[0].outcome.status == OutcomeStatus.PENDING
        assert report.records[1].outcome.status == OutcomeStatus.FAILED


class TestReport:
    def test_to_dict(self, fake_client):
        records = parse_batch([{"type": "post", "title": "A"}, {"type": "post"}])
        ingestor, _ = _ingestor(fake_client)

        data = asyncio.run(ingestor.run(records)).to_dict()

        assert data["total"] == 2
        assert data["succeeded"] == 1
        assert data["failed"] == 1
        assert data["records"][0]["status"] == "succeeded"
        assert data["records"][0]["action"] == "create"
        assert data["records"][1]["index"] == 2
        assert data["duration_seconds"] >= 0


class TestUnexpectedClientErrors:
    @staticmethod
    def _raise_on(fake_client, title: str):
        original = fake_client.create_item

        async def create_item(content_type, fields):
            if fields.title == title:
                raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")
            return await original(content_type, fields)

        fake_client.create_item = create_item

    def test_raising_write_fails_record_and_batch_continues(self, fake_client):
        self._raise_on(fake_client, "Boom")
        records = parse_batch(
            [
                {"type": "post", "title": "First"},
                {"type": "post", "title": "Boom"},
                {"type": "post", "title": "Third"},
            ]
        )
        ingestor, invalidated = _ingestor(fake_client)

        report = asyncio.run(ingestor.run(records))

        statuses = [r.outcome.status for r in report.records]
        assert statuses == [
            OutcomeStatus.SUCCEEDED,
            OutcomeStatus.FAILED,
            OutcomeStatus.SUCCEEDED,
        ]
        assert report.records[1].outcome.action == "create"
        assert "raised" in report.records[1].outcome.reason
        assert invalidated == ["content-items", "type:post"]

    def test_raising_write_still_counts_toward_delay(self, fake_client):
        timing = _Timing()
        self._raise_on(fake_client, "Boom")
        records = parse_batch(
            [{"type": "post", "title": "Boom"}, {"type": "post", "title": "After"}]
        )
        ingestor, _ = _ingestor(fake_client, timing, delay=1.0)

        asyncio.run(ingestor.run(records))

        assert timing.sleeps == [1.0]

    def test_invalidation_runs_when_batch_is_cancelled(self, fake_client):
        original = fake_client.create_item

        async def create_item(content_type, fields):
            if fields.title == "Stop":
                raise asyncio.CancelledError
            return await original(content_type, fields)

        fake_client.create_item = create_item
        records = parse_batch(
            [{"type": "project", "title": "Written"}, {"type": "project", "title": "Stop"}]
        )
        ingestor, invalidated = _ingestor(fake_client)

        async def scenario():
            try:
                await ingestor.run(records)
            except asyncio.CancelledError:
                return "cancelled"
            return "finished"

        assert asyncio.run(scenario()) == "cancelled"
        assert invalidated == ["content-items", "type:project"]
