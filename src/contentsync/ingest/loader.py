"""Load import batches from JSON or YAML files."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from contentsync.ingest.models import IngestionRecord

logger = logging.getLogger(__name__)

_ID_KEYS = ("id", "existing_id")


class BatchLoadError(ValueError):
    """The import file could not be read as a batch."""


def _row_to_record(index: int, row: Any) -> IngestionRecord:
    record = IngestionRecord(index=index, content_type="")
    if not isinstance(row, dict):
        record.mark_failed(f"row {index} is not a mapping")
        return record

    values = dict(row)
    record.content_type = str(values.pop("type", values.pop("content_type", "")) or "")

    raw_id = None
    for key in _ID_KEYS:
        if key in values:
            raw_id = values.pop(key)
    if raw_id not in (None, ""):
        try:
            record.existing_id = int(raw_id)
        except (TypeError, ValueError):
            record.values = values
            record.mark_failed(f"id {raw_id!r} is not an integer")
            return record

    record.values = values
    return record


def parse_batch(rows: Any) -> list[IngestionRecord]:
    """Turn decoded file content into ingestion records.

    Accepts a list of rows or a mapping with a ``records`` list.
    """
    if isinstance(rows, dict):
        rows = rows.get("records")
    if not isinstance(rows, list):
        raise BatchLoadError("Import batch must be a list of records")
    return [_row_to_record(i, row) for i, row in enumerate(rows, start=1)]


def load_batch(path: Path) -> list[IngestionRecord]:
    """Read an import file (``.json``, ``.yaml`` or ``.yml``).

    Raises:
        BatchLoadError: if the file is unreadable or not a batch.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise BatchLoadError(f"Cannot read {path}: {exc}") from exc

    suffix = path.suffix.lower()
    try:
        if suffix in (".yaml", ".yml"):
            rows = yaml.safe_load(text)
        else:
            rows = json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise BatchLoadError(f"Cannot parse {path}: {exc}") from exc

    records = parse_batch(rows)
    logger.info("Loaded %d records from %s", len(records), path)
    return records
