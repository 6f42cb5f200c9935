"""CLI interface for contentsync."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from contentsync.cache.json_store import JsonCacheStore
from contentsync.config import ContentSyncConfig, load_config, merge_cli_overrides
from contentsync.content.models import (
    ContentItem,
    ContentStatus,
    ContentType,
    ListFilters,
    OrderDirection,
    TaxonomyKind,
)
from contentsync.content.normalizer import format_item_dates
from contentsync.ingest.loader import BatchLoadError, load_batch
from contentsync.ingest.pipeline import BulkIngestor
from contentsync.service import ContentService, Unavailable

app = typer.Typer(
    name="contentsync",
    help="Pull, cache and bulk-ingest content from a CMS REST API.",
)

console = Console()


class _State:
    config: ContentSyncConfig = ContentSyncConfig()


state = _State()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from contentsync import __version__

        console.print(f"contentsync {__version__}")
        raise typer.Exit()


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main(
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to a .contentsync.toml file."),
    ] = None,
    url: Annotated[
        Optional[str], typer.Option("--url", help="Base URL of the CMS.")
    ] = None,
    verbose: Annotated[
        bool, typer.Option("--verbose", help="Enable debug logging.")
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """contentsync - content synchronization and caching for a CMS API."""
    config = load_config(config_path)
    config = merge_cli_overrides(config, url=url, log_level="DEBUG" if verbose else None)
    _setup_logging(config.logging.level)
    state.config = config


def _require_source() -> None:
    if not state.config.source.is_configured:
        console.print("[red]No content source URL configured.[/red] Use --url or CONTENTSYNC_URL.")
        raise typer.Exit(1)


def _fail_unavailable(result: Unavailable) -> None:
    console.print(f"[red]Content unavailable[/red] ({result.kind.value}): {result.message}")
    raise typer.Exit(1)


def _items_table(items: list[ContentItem]) -> Table:
    table = Table(title=f"{len(items)} items")
    table.add_column("ID", justify="right")
    table.add_column("Slug")
    table.add_column("Status")
    table.add_column("Dates")
    table.add_column("Modified")
    for item in items:
        table.add_row(
            str(item.id),
            item.slug,
            item.status.value,
            format_item_dates(item.meta),
            item.modified_at.strftime("%Y-%m-%d %H:%M"),
        )
    return table


@app.command(name="list")
def list_cmd(
    content_type: Annotated[ContentType, typer.Argument(help="Content type to list.")],
    category: Annotated[
        Optional[list[int]], typer.Option("--category", help="Category ID filter.")
    ] = None,
    tag: Annotated[Optional[list[int]], typer.Option("--tag", help="Tag ID filter.")] = None,
    search: Annotated[str, typer.Option("--search", help="Free-text search.")] = "",
    orderby: Annotated[str, typer.Option("--orderby", help="Field to order by.")] = "",
    order: Annotated[Optional[OrderDirection], typer.Option("--order")] = None,
    status: Annotated[Optional[ContentStatus], typer.Option("--status")] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print JSON.")] = False,
) -> None:
    """List every item of a type matching the filters."""
    _require_source()
    filters = ListFilters(
        categories=set(category or []),
        tags=set(tag or []),
        search=search,
        orderby=orderby,
        order=order,
        status=status,
    )

    async def _run() -> list[ContentItem] | Unavailable:
        async with ContentService.from_config(state.config) as service:
            return await service.list_content_items(content_type, filters)

    result = asyncio.run(_run())
    if isinstance(result, Unavailable):
        _fail_unavailable(result)
        return
    if as_json:
        console.print_json(json.dumps([i.model_dump(mode="json") for i in result]))
    else:
        console.print(_items_table(result))


@app.command(name="get")
def get_cmd(
    content_type: Annotated[ContentType, typer.Argument(help="Content type.")],
    id_or_slug: Annotated[str, typer.Argument(help="Numeric ID or slug.")],
) -> None:
    """Show one item as JSON."""
    _require_source()

    async def _run() -> ContentItem | Unavailable:
        async with ContentService.from_config(state.config) as service:
            return await service.get_content_item(id_or_slug, content_type)

    result = asyncio.run(_run())
    if isinstance(result, Unavailable):
        _fail_unavailable(result)
        return
    console.print_json(result.model_dump_json())


@app.command(name="media")
def media_cmd(
    media_id: Annotated[int, typer.Argument(help="Media ID.")],
) -> None:
    """Show one media item as JSON."""
    _require_source()

    async def _run():
        async with ContentService.from_config(state.config) as service:
            return await service.get_media(media_id)

    result = asyncio.run(_run())
    if isinstance(result, Unavailable):
        _fail_unavailable(result)
        return
    console.print_json(result.model_dump_json())


@app.command(name="terms")
def terms_cmd(
    kind: Annotated[TaxonomyKind, typer.Argument(help="categories or tags.")],
) -> None:
    """List every term of a taxonomy."""
    _require_source()

    async def _run():
        async with ContentService.from_config(state.config) as service:
            return await service.list_taxonomy(kind)

    result = asyncio.run(_run())
    if isinstance(result, Unavailable):
        _fail_unavailable(result)
        return
    table = Table(title=f"{len(result)} {kind.value}")
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Slug")
    table.add_column("Count", justify="right")
    for term in result:
        table.add_row(str(term.id), term.name, term.slug, str(term.count))
    console.print(table)


@app.command(name="ingest")
def ingest_cmd(
    batch_file: Annotated[
        Path,
        typer.Argument(help="Import file (.json, .yaml).", exists=True, dir_okay=False),
    ],
    delay: Annotated[
        Optional[float], typer.Option("--delay", help="Seconds between write requests.")
    ] = None,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="Validate records without writing.")
    ] = False,
    report_path: Annotated[
        Optional[Path], typer.Option("--report", help="Write a JSON report here.")
    ] = None,
) -> None:
    """Create or update every record of an import batch."""
    if not dry_run:
        _require_source()
    config = merge_cli_overrides(state.config, delay=delay)

    try:
        records = load_batch(batch_file)
    except BatchLoadError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from exc

    async def _run():
        async with ContentService.from_config(config) as service:
            ingestor = BulkIngestor(
                service.client,
                service.invalidate,
                delay=config.ingest.delay_seconds,
            )
            return await ingestor.run(records, dry_run=dry_run)

    report = asyncio.run(_run())

    table = Table(title="Dry run" if dry_run else "Ingestion results")
    table.add_column("#", justify="right")
    table.add_column("Type")
    table.add_column("Action")
    table.add_column("Outcome")
    table.add_column("Item", justify="right")
    table.add_column("Reason")
    for record in report.records:
        outcome = record.outcome
        table.add_row(
            str(record.index),
            record.content_type,
            outcome.action or ("update" if record.is_update else "create"),
            outcome.status.value,
            str(outcome.item_id or ""),
            outcome.reason,
        )
    console.print(table)

    if report_path is not None:
        report_path.write_text(json.dumps(report.to_dict(), indent=2), encoding="utf-8")
        console.print(f"Report written to {report_path}")

    failed = len(report.failed)
    if dry_run:
        console.print(f"{len(report.records) - failed} valid, {failed} invalid")
    else:
        console.print(f"{len(report.succeeded)} succeeded, {failed} failed")
    if failed:
        raise typer.Exit(1)


@app.command(name="invalidate")
def invalidate_cmd(
    tag: Annotated[str, typer.Argument(help="Cache tag to invalidate.")],
) -> None:
    """Invalidate a tag in the durable cache file."""
    if not state.config.cache.is_durable:
        console.print("[yellow]No durable cache configured; nothing to invalidate.[/yellow]")
        raise typer.Exit(0)
    store = JsonCacheStore(
        Path(state.config.cache.path),
        default_ttl=state.config.cache.default_ttl,
    )
    removed = store.invalidate_by_tag(tag)
    console.print(f"Invalidated {removed} entries tagged {tag!r}")


if __name__ == "__main__":
    app()
