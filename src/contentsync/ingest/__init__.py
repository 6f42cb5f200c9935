"""Bulk ingestion of import batches into the content API."""

from contentsync.ingest.loader import BatchLoadError, load_batch, parse_batch
from contentsync.ingest.models import (
    IngestionRecord,
    IngestionReport,
    OutcomeStatus,
    RecordOutcome,
)
from contentsync.ingest.pipeline import BulkIngestor

__all__ = [
    "BatchLoadError",
    "BulkIngestor",
    "IngestionRecord",
    "IngestionReport",
    "OutcomeStatus",
    "RecordOutcome",
    "load_batch",
    "parse_batch",
]
