"""Data models for bulk ingestion batches and their outcomes."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class OutcomeStatus(StrEnum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class RecordOutcome(BaseModel):
    status: OutcomeStatus = OutcomeStatus.PENDING
    item_id: int | None = None
    action: str = ""  # "create" or "update"
    reason: str = ""
    error_kind: str = ""


class IngestionRecord(BaseModel):
    """One row of an import batch.

    ``existing_id`` set means the row updates that item; absent means it
    creates a new one. Rows without an ID are not safe to re-run: each
    run creates another item.
    """

    index: int
    content_type: str
    existing_id: int | None = None
    values: dict[str, Any] = Field(default_factory=dict)
    outcome: RecordOutcome = Field(default_factory=RecordOutcome)

    @property
    def is_update(self) -> bool:
        return self.existing_id is not None

    def mark_succeeded(self, item_id: int, action: str) -> None:
        self.outcome = RecordOutcome(
            status=OutcomeStatus.SUCCEEDED, item_id=item_id, action=action
        )

    def mark_failed(self, reason: str, *, action: str = "", error_kind: str = "") -> None:
        self.outcome = RecordOutcome(
            status=OutcomeStatus.FAILED,
            item_id=self.existing_id,
            action=action,
            reason=reason,
            error_kind=error_kind,
        )


class IngestionReport(BaseModel):
    """Summary of a batch run."""

    records: list[IngestionRecord] = Field(default_factory=list)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    invalidated_tags: list[str] = Field(default_factory=list)
    dry_run: bool = False

    @property
    def succeeded(self) -> list[IngestionRecord]:
        return [r for r in self.records if r.outcome.status == OutcomeStatus.SUCCEEDED]

    @property
    def failed(self) -> list[IngestionRecord]:
        return [r for r in self.records if r.outcome.status == OutcomeStatus.FAILED]

    @property
    def duration_seconds(self) -> float:
        if self.started_at is None or self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dict for JSON reports."""
        return {
            "total": len(self.records),
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "dry_run": self.dry_run,
            "duration_seconds": self.duration_seconds,
            "invalidated_tags": list(self.invalidated_tags),
            "records": [
                {
                    "index": r.index,
                    "type": r.content_type,
                    "existing_id": r.existing_id,
                    **r.outcome.model_dump(mode="json"),
                }
                for r in self.records
            ],
        }
