"""ejibaya CLI - subscriber-record ETL and backup commands.

Commands:
- convert-csv: Legacy delimited export -> canonical CSV
- convert-excel: Excel workbook -> canonical CSV
- import-csv: Canonical CSV -> record store (batched insert)
- import-excel: Excel workbook -> record store (batched insert)
- import-pdf: Scanned billing PDFs -> record store (idempotent upsert)
- run: Run every source of a YAML pipeline definition
- dedupe: Remove duplicate (account, meter) records from the store
- backup: Write a complete backup archive (tables + photos)
- restore: Validate a backup archive and optionally apply it

Every command exits 0 when it completes, even if rows were skipped, and 1
on setup errors (missing file, missing configuration) or invalid archives.
"""

from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack
from pathlib import Path
from typing import Any, Coroutine, Optional

import typer
from rich.console import Console
from rich.table import Table

from ejibaya.config import AppConfig, get_config
from ejibaya.core.errors import (
    ArchiveInvalidError,
    BackupError,
    RestoreError,
    SetupError,
    StorageError,
)
from ejibaya.core.logging import configure_logging
from ejibaya.pipeline.builder import RecordBuilder
from ejibaya.pipeline.config_loader import PipelineSource, create_source, load_pipeline_config
from ejibaya.pipeline.loader import BulkLoader
from ejibaya.pipeline.orchestrator import DEFAULT_OUTPUT_NAME, run_pipeline
from ejibaya.pipeline.types import LoadMode, RunContext
from ejibaya.storage.supabase import SupabaseStore

app = typer.Typer(
    name="ejibaya",
    help="ejibaya - subscriber record ETL, bulk loading and backups",
    no_args_is_help=True,
)

console = Console()

LEGACY_CSV_NAME = " بيانات مشتركين الكوت.csv"
PDF_NAMES = ("r80_rej.pdf", "r80.pdf")

FATAL_ERRORS = (
    SetupError,
    FileNotFoundError,
    KeyError,
    ValueError,
    ArchiveInvalidError,
    BackupError,
    RestoreError,
)


@app.callback()
def main():
    """Configure logging before any command runs."""
    config = get_config()
    configure_logging(config.log_level, config.json_logs)


def _run(coro: Coroutine[Any, Any, Any]) -> Any:
    """Run a command coroutine; fatal errors exit with code 1."""
    try:
        return asyncio.run(coro)
    except FATAL_ERRORS as e:
        message = e.args[0] if isinstance(e, KeyError) and e.args else e
        console.print(f"[bold red]✗ {type(e).__name__}:[/bold red] {message}")
        raise typer.Exit(1) from e


def _find_spreadsheet(data_dir: Path) -> Path:
    """First Excel workbook in the data directory."""
    if data_dir.is_dir():
        for candidate in sorted(data_dir.iterdir()):
            if candidate.suffix.lower() in (".xlsx", ".xls"):
                return candidate
    raise FileNotFoundError(f"No Excel file found in {data_dir}")


def _builder(config: AppConfig) -> RecordBuilder:
    return RecordBuilder(reject_unknown_categories=config.extraction.reject_unknown_categories)


def _source(name: str, importer_type: str, mode: LoadMode, settings: dict, config: AppConfig) -> PipelineSource:
    return create_source(
        {"name": name, "type": importer_type, "mode": mode.value, "config": settings},
        builder=_builder(config),
    )


def _loader(store: SupabaseStore, config: AppConfig) -> BulkLoader:
    loader_config = config.loader
    return BulkLoader(
        store,
        batch_size=loader_config.batch_size,
        batch_delay_seconds=loader_config.batch_delay_seconds,
        retry_attempts=loader_config.retry_attempts,
        retry_wait_seconds=loader_config.retry_wait_seconds,
        upsert_pause_every=loader_config.upsert_pause_every,
        upsert_pause_seconds=loader_config.upsert_pause_seconds,
    )


def _open_store(config: AppConfig) -> SupabaseStore:
    store_config = config.store()
    return SupabaseStore(
        store_config.url,
        store_config.api_key,
        timeout=store_config.timeout,
        page_size=store_config.page_size,
    )


async def _run_sources(sources: list[PipelineSource], config: AppConfig) -> dict:
    """Run sources through the orchestrator, opening the store only if needed."""
    context = RunContext(preview_limit=config.extraction.preview_rows)
    needs_store = any(source.mode != LoadMode.CONVERT for source in sources)

    async with AsyncExitStack() as stack:
        loader = None
        if needs_store:
            store = await stack.enter_async_context(_open_store(config))
            loader = _loader(store, config)

        return await run_pipeline(
            sources,
            loader=loader,
            output_dir=config.data_dir,
            actor_user_id=config.backup.actor_user_id,
            context=context,
        )


def _print_summary(summary: dict) -> None:
    """Render the terminal report of a pipeline run."""
    table = Table(title="Source Results")
    table.add_column("Source", style="cyan")
    table.add_column("Mode")
    table.add_column("Status", style="bold")
    table.add_column("Built", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Inserted", justify="right")
    table.add_column("Duplicates", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Duration", justify="right")

    for result in summary["results"]:
        status_style = "green" if result.success else "red"
        table.add_row(
            result.source_name,
            result.mode.value,
            f"[{status_style}]{result.status.value}[/{status_style}]",
            str(result.records_built),
            str(result.records_rejected),
            str(result.records_inserted),
            str(result.records_duplicate),
            str(result.records_failed),
            f"{result.duration_seconds:.1f}s",
        )

    console.print(table)

    for result in summary["results"]:
        if result.output_path:
            console.print(f"[green]✓[/green] {result.message}")

    counters = summary["context"]
    console.print(
        f"\n[bold]Rows:[/bold] {counters['rows_seen']} processed, "
        f"{counters['accepted']} accepted, {counters['rejected']} skipped"
    )
    for reason, count in counters["rejections"].items():
        console.print(f"  [yellow]⚠[/yellow] {reason}: {count}")

    if summary["preview"]:
        preview = Table(title="Preview")
        for column in ("account_number", "subscriber_name", "region", "meter_number", "category"):
            preview.add_column(column)
        for record in summary["preview"]:
            preview.add_row(*record.to_csv_fields()[:5])
        console.print(preview)

    if summary["failed_sources"] > 0:
        console.print("\n[bold red]Failed Sources:[/bold red]")
        for result in summary["results"]:
            if not result.success:
                console.print(f"  • {result.source_name}: {result.message}")


def _run_and_report(sources: list[PipelineSource], config: AppConfig) -> None:
    summary = _run(_run_sources(sources, config))
    _print_summary(summary)


@app.command(name="convert-csv")
def convert_csv_cmd(
    input_file: Optional[Path] = typer.Option(None, "--input", "-i", help="Legacy delimited export"),
    output_file: Optional[Path] = typer.Option(None, "--output", "-o", help="Canonical CSV to write"),
):
    """Convert the legacy subscriber export into a canonical CSV."""
    config = get_config()
    input_file = input_file or config.data_dir / LEGACY_CSV_NAME
    output_file = output_file or config.data_dir / DEFAULT_OUTPUT_NAME
    console.print(f"[bold]Converting:[/bold] {input_file} -> {output_file}")

    source = _source(
        "legacy_csv",
        "delimited",
        LoadMode.CONVERT,
        {
            "file_path": str(input_file),
            "output_path": str(output_file),
            "delimiter": config.extraction.delimiter,
            "progress_every": config.extraction.progress_every,
        },
        config,
    )
    _run_and_report([source], config)


@app.command(name="convert-excel")
def convert_excel_cmd(
    input_file: Optional[Path] = typer.Option(None, "--input", "-i", help="Excel workbook (first sheet is read)"),
    output_file: Optional[Path] = typer.Option(None, "--output", "-o", help="Canonical CSV to write"),
):
    """Convert an Excel workbook into a canonical CSV."""
    config = get_config()
    try:
        input_file = input_file or _find_spreadsheet(config.data_dir)
    except FileNotFoundError as e:
        console.print(f"[bold red]✗[/bold red] {e}")
        raise typer.Exit(1) from e
    output_file = output_file or config.data_dir / DEFAULT_OUTPUT_NAME
    console.print(f"[bold]Converting:[/bold] {input_file} -> {output_file}")

    source = _source(
        "spreadsheet",
        "spreadsheet",
        LoadMode.CONVERT,
        {
            "file_path": str(input_file),
            "output_path": str(output_file),
            "progress_every": config.extraction.progress_every,
        },
        config,
    )
    _run_and_report([source], config)


@app.command(name="import-csv")
def import_csv_cmd(
    input_file: Optional[Path] = typer.Option(None, "--input", "-i", help="Canonical CSV"),
):
    """Load a canonical CSV into the record store in batches."""
    config = get_config()
    input_file = input_file or config.data_dir / DEFAULT_OUTPUT_NAME
    console.print(f"[bold]Importing:[/bold] {input_file}")

    source = _source(
        "canonical_csv",
        "delimited",
        LoadMode.LOAD,
        {
            "file_path": str(input_file),
            "delimiter": config.extraction.delimiter,
            "progress_every": config.extraction.progress_every,
        },
        config,
    )
    _run_and_report([source], config)


@app.command(name="import-excel")
def import_excel_cmd(
    input_file: Optional[Path] = typer.Option(None, "--input", "-i", help="Excel workbook"),
):
    """Load an Excel workbook into the record store in batches."""
    config = get_config()
    try:
        input_file = input_file or _find_spreadsheet(config.data_dir)
    except FileNotFoundError as e:
        console.print(f"[bold red]✗[/bold red] {e}")
        raise typer.Exit(1) from e
    console.print(f"[bold]Importing:[/bold] {input_file}")

    source = _source(
        "spreadsheet",
        "spreadsheet",
        LoadMode.LOAD,
        {"file_path": str(input_file), "progress_every": config.extraction.progress_every},
        config,
    )
    _run_and_report([source], config)


@app.command(name="import-pdf")
def import_pdf_cmd(
    files: Optional[list[Path]] = typer.Argument(None, help="PDF files (default: DATA/r80_rej.pdf DATA/r80.pdf)"),
):
    """Extract (account, meter) pairs from PDFs and upsert them."""
    config = get_config()
    files = files or [config.data_dir / name for name in PDF_NAMES]
    console.print(f"[bold]Importing PDFs:[/bold] {', '.join(str(f) for f in files)}")

    source = _source(
        "pdf_tables",
        "pdf",
        LoadMode.UPSERT,
        {
            "file_paths": [str(f) for f in files],
            "account_prefixes": list(config.extraction.account_prefixes),
        },
        config,
    )
    _run_and_report([source], config)


@app.command(name="run")
def run_cmd(
    config_file: Path = typer.Option(
        Path("config/pipeline.yaml"),
        "--config",
        "-c",
        help="Pipeline configuration file",
    ),
):
    """Run every source of a YAML pipeline definition.

    Each source is processed independently - storage failures are isolated
    and reported per source.
    """
    config = get_config()
    console.print("[bold]Starting pipeline[/bold]")
    console.print(f"Config: {config_file}")

    try:
        sources = load_pipeline_config(config_file, builder=_builder(config))
    except (FileNotFoundError, ValueError, SetupError) as e:
        console.print(f"[bold red]✗ Pipeline config error:[/bold red] {e}")
        raise typer.Exit(1) from e

    if not sources:
        console.print("[yellow]No sources configured or all disabled[/yellow]")
        return

    console.print(f"Loaded {len(sources)} data sources\n")
    _run_and_report(sources, config)


@app.command()
def dedupe(
    apply: bool = typer.Option(False, "--apply", help="Delete duplicates (default: dry run)"),
):
    """Remove duplicate records sharing account and meter number."""
    from ejibaya.maintenance.duplicates import remove_duplicates

    config = get_config()

    async def _dedupe():
        async with _open_store(config) as store:
            return await remove_duplicates(store, apply=apply)

    try:
        result = _run(_dedupe())
    except StorageError as e:
        console.print(f"[bold red]✗ Storage error:[/bold red] {e}")
        raise typer.Exit(1) from e

    console.print(f"Duplicate keys: {result.groups}")
    console.print(f"Records to delete: {result.to_delete}")
    if apply:
        console.print(f"[green]✓[/green] Deleted: {result.deleted}")
        if result.failed:
            console.print(f"[red]✗[/red] Failed: {result.failed}")
    elif result.to_delete:
        console.print("[yellow]Dry run - re-run with --apply to delete[/yellow]")


@app.command()
def backup(
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Directory for the archive"),
):
    """Write a complete backup archive of the store, photos included."""
    from ejibaya.backup.archiver import BackupArchiver
    from ejibaya.core.rate_limiter import RateLimiter

    config = get_config()
    backup_config = config.backup

    async def _backup():
        async with _open_store(config) as store:
            archiver = BackupArchiver(
                store,
                output_dir=output_dir or backup_config.output_dir,
                asset_timeout=backup_config.asset_timeout,
                rate_limiter=RateLimiter(backup_config.asset_delay_seconds),
                max_concurrent_fetches=backup_config.max_concurrent_fetches,
                actor_user_id=backup_config.actor_user_id,
            )
            return await archiver.create_backup()

    report = _run(_backup())
    metadata = report.metadata

    console.print(f"[bold green]✓[/bold green] Backup written: {report.archive_path}")
    console.print(f"  Users: {metadata.total_users}")
    console.print(f"  Records: {metadata.total_records}")
    console.print(f"  Photos: {metadata.total_photos}/{report.assets_referenced}")
    if report.assets_failed:
        console.print(f"  [yellow]⚠[/yellow] {len(report.assets_failed)} photos could not be downloaded")


@app.command()
def restore(
    archive: Path = typer.Argument(..., help="Backup archive (.zip) or backup_data.json"),
    apply: bool = typer.Option(False, "--apply", help="Write the validated backup to the store"),
):
    """Validate a backup archive and optionally restore it."""
    from ejibaya.backup.restorer import BackupRestorer

    config = get_config()

    async def _restore():
        if not apply:
            return await BackupRestorer().restore(archive)
        async with _open_store(config) as store:
            return await BackupRestorer(store).restore(archive, apply=True)

    report = _run(_restore())
    metadata = report.metadata

    table = Table(title=f"Backup {archive.name}")
    table.add_column("Table", style="cyan")
    table.add_column("Rows", justify="right")
    for name, count in report.table_counts.items():
        table.add_row(name, str(count))
    console.print(table)
    console.print(
        f"Schema {metadata.schema_version}, taken {metadata.backup_date}, "
        f"{metadata.total_photos} photos"
    )

    if report.applied:
        console.print("[bold green]✓[/bold green] Backup restored")
    else:
        console.print("[green]✓[/green] Backup is valid (re-run with --apply to restore)")


if __name__ == "__main__":
    app()
