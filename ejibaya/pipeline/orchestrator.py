"""Pipeline orchestrator - drives every configured source through the pipeline.

Owns the RunContext of a run: counters, rejection ledger, preview and the
cross-source dedup set all live on it, never in module state.

Key features:
- Modular: each source is an isolated importer
- Resilient: a storage failure is contained to its source
- Strict setup: missing files, configuration or credentials abort the run
- Auditable: store-touching sources append an activity-log entry
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from pathlib import Path

from ejibaya.core.audit_logger import log_action
from ejibaya.core.errors import PipelineError, SetupError
from ejibaya.pipeline.config_loader import PipelineSource
from ejibaya.pipeline.loader import BulkLoader
from ejibaya.pipeline.types import ImportResult, ImportStatus, LoadMode, RunContext
from ejibaya.reporting.csv_export import write_canonical_csv

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_NAME = "collection_records_ready.csv"


class PipelineOrchestrator:
    """Runs sources sequentially and summarizes the outcome.

    Responsibilities:
    1. Build canonical records for each source through its importer
    2. Write them to CSV, batch-load them, or upsert them (per source mode)
    3. Keep one RunContext for the whole run
    4. Record an activity-log entry for store writes
    """

    def __init__(
        self,
        sources: list[PipelineSource],
        loader: BulkLoader | None = None,
        output_dir: Path = Path("DATA"),
        actor_user_id: str | None = None,
        context: RunContext | None = None,
    ):
        """Initialize orchestrator.

        Args:
            sources: Configured sources, run in order
            loader: Bulk loader; required when any source loads or upserts
            output_dir: Default directory for converted CSV files
            actor_user_id: User recorded in activity logs (None skips logging)
            context: Run context (a fresh one is created when omitted)
        """
        self.sources = sources
        self.loader = loader
        self.output_dir = Path(output_dir)
        self.actor_user_id = actor_user_id
        self.context = context or RunContext()
        self.run_timestamp = datetime.now(timezone.utc)

    async def run(self) -> dict:
        """Execute full pipeline run.

        Returns:
            Summary dict with overall status, per-source results, run counters
            and a preview of the first accepted records

        Raises:
            SetupError / FileNotFoundError / KeyError: On fatal setup problems
        """
        logger.info(f"Starting pipeline run at {self.run_timestamp.isoformat()}")
        logger.info(f"Configured sources: {len(self.sources)}")

        needs_store = [s.name for s in self.sources if s.mode != LoadMode.CONVERT]
        if needs_store and self.loader is None:
            raise SetupError(f"Sources {needs_store} need a record store but none is configured")

        # Setup problems abort before any source writes output
        for source in self.sources:
            source.importer.validate()

        results = []
        for source in self.sources:
            result = await self._run_source(source)
            results.append(result)
            if not result.success:
                logger.warning(f"Source {source.name} failed: {result.message}")

        summary = {
            "run_timestamp": self.run_timestamp.isoformat(),
            "total_sources": len(self.sources),
            "successful_sources": sum(1 for r in results if r.success),
            "failed_sources": sum(1 for r in results if not r.success),
            "overall_success": all(r.success for r in results),
            "results": results,
            "context": self.context.summary(),
            "preview": list(self.context.preview),
            "messages": list(self.context.messages),
        }

        logger.info(
            f"Pipeline run completed: {summary['successful_sources']}/"
            f"{summary['total_sources']} sources successful"
        )

        return summary

    async def _run_source(self, source: PipelineSource) -> ImportResult:
        """Run a single source; storage failures are contained here."""
        logger.info(f"Processing source: {source.name} ({source.mode.value})")
        started = time.monotonic()
        rejected_before = self.context.rejected

        result = ImportResult(
            source_name=source.name,
            status=ImportStatus.SUCCESS,
            mode=source.mode,
        )

        records = await source.importer.collect(self.context)
        result.records_built = len(records)
        result.records_rejected = self.context.rejected - rejected_before

        try:
            if not records:
                result.status = ImportStatus.SKIPPED
                result.message = "No records to process"
            elif source.mode == LoadMode.CONVERT:
                await self._convert(source, records, result)
            elif source.mode == LoadMode.LOAD:
                await self._load(records, result)
            else:
                await self._upsert(records, result)
        except PipelineError as e:
            result.status = ImportStatus.FAILED
            result.message = f"Import failed: {e}"
            result.error_details = {
                "error_type": type(e).__name__,
                "error_message": str(e),
            }
            logger.error(f"✗ {source.name} failed: {e}", exc_info=True)

        result.duration_seconds = time.monotonic() - started

        if source.mode != LoadMode.CONVERT and result.records_inserted:
            await log_action(
                self.loader.store,
                "import_records",
                self.actor_user_id,
                target_type="collection_records",
                target_name=source.name,
                details={
                    "mode": source.mode.value,
                    "inserted": result.records_inserted,
                    "duplicates": result.records_duplicate,
                    "failed": result.records_failed,
                },
            )

        if result.success:
            logger.info(f"✓ {source.name}: {result.message}")
        return result

    async def _convert(self, source: PipelineSource, records: list, result: ImportResult) -> None:
        output_path = Path(
            source.importer.config.get("output_path") or self.output_dir / DEFAULT_OUTPUT_NAME
        )
        written = await asyncio.to_thread(write_canonical_csv, records, output_path)
        result.output_path = str(output_path)
        result.message = (
            f"Wrote {written} records to {output_path} "
            f"({result.records_rejected} rows rejected)"
        )

    async def _load(self, records: list, result: ImportResult) -> None:
        load = await self.loader.load(records, self.context)
        result.records_inserted = load.uploaded
        result.records_failed = load.failed
        result.message = (
            f"Uploaded {load.uploaded}/{load.total} records, {load.failed} failed"
        )
        if load.failed:
            result.status = (
                ImportStatus.PARTIAL_SUCCESS if load.uploaded else ImportStatus.FAILED
            )

    async def _upsert(self, records: list, result: ImportResult) -> None:
        upsert = await self.loader.upsert(records, self.context)
        result.records_inserted = upsert.inserted
        result.records_duplicate = upsert.duplicates
        result.records_failed = upsert.failed
        result.message = (
            f"Processed {upsert.total} records: {upsert.inserted} new, "
            f"{upsert.duplicates} already present, {upsert.failed} failed"
        )
        if upsert.failed:
            result.status = (
                ImportStatus.PARTIAL_SUCCESS
                if upsert.inserted or upsert.duplicates
                else ImportStatus.FAILED
            )


async def run_pipeline(
    sources: list[PipelineSource], loader: BulkLoader | None = None, **kwargs
) -> dict:
    """Convenience function to run the pipeline.

    Args:
        sources: Configured sources
        loader: Bulk loader for store-touching sources

    Returns:
        Pipeline run summary
    """
    orchestrator = PipelineOrchestrator(sources, loader=loader, **kwargs)
    return await orchestrator.run()
