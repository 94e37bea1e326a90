"""Configuration loader for pipeline data sources.

Loads source definitions from YAML and instantiates the matching importers.
Importer classes register themselves by type with ``register_importer``.

Example pipeline.yaml:

    sources:
      - name: legacy_export
        type: delimited
        mode: convert
        config:
          file_path: DATA/subscribers.csv
          output_path: DATA/collection_records_ready.csv
      - name: billing_pdfs
        type: pdf
        mode: upsert
        config:
          file_paths: [DATA/r80_rej.pdf, DATA/r80.pdf]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, List

import yaml

from ejibaya.pipeline.builder import RecordBuilder
from ejibaya.pipeline.types import LoadMode

if TYPE_CHECKING:
    from ejibaya.pipeline.base_importer import BaseImporter

logger = logging.getLogger(__name__)


# Importer registry (maps type to class)
IMPORTER_REGISTRY = {}


def register_importer(importer_type: str):
    """Decorator to register importer classes.

    Usage:
        @register_importer("delimited")
        class DelimitedFileImporter(BaseImporter):
            ...
    """

    def decorator(cls):
        IMPORTER_REGISTRY[importer_type] = cls
        return cls

    return decorator


@dataclass
class PipelineSource:
    """One configured source: its importer and what to do with its records."""

    importer: BaseImporter
    mode: LoadMode

    @property
    def name(self) -> str:
        return self.importer.source_name


def load_pipeline_config(
    config_path: Path, builder: RecordBuilder | None = None
) -> List[PipelineSource]:
    """Load pipeline configuration and instantiate importers.

    Args:
        config_path: Path to YAML configuration file
        builder: Record builder shared by every importer

    Returns:
        List of configured sources, in file order

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config is invalid
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Pipeline config not found: {config_path}")

    with open(config_path, encoding="utf-8") as f:
        config = yaml.safe_load(f)

    if not config or "sources" not in config:
        raise ValueError("Invalid pipeline config: missing 'sources' section")

    sources = []

    for source_config in config["sources"]:
        if not source_config.get("enabled", True):
            logger.info(f"Skipping disabled source: {source_config.get('name')}")
            continue

        source = create_source(source_config, builder)
        sources.append(source)
        logger.info(
            f"Loaded importer: {source.name} ({source_config['type']}, {source.mode.value})"
        )

    logger.info(f"Loaded {len(sources)} sources from config")

    return sources


def create_source(source_config: dict, builder: RecordBuilder | None = None) -> PipelineSource:
    """Create a source from one config entry.

    Raises:
        ValueError: If the type or mode is unknown, or a field is missing
    """
    # Importing the package registers every built-in importer type
    import ejibaya.pipeline.importers  # noqa: F401

    importer_type = source_config.get("type")
    source_name = source_config.get("name")

    if not source_name:
        raise ValueError("Source entry missing 'name' field")
    if not importer_type:
        raise ValueError(f"Source {source_name} missing 'type' field")

    importer_cls = IMPORTER_REGISTRY.get(importer_type)
    if importer_cls is None:
        raise ValueError(
            f"Unknown importer type: {importer_type} "
            f"(known: {', '.join(sorted(IMPORTER_REGISTRY))})"
        )

    try:
        mode = LoadMode(source_config.get("mode", LoadMode.LOAD.value))
    except ValueError as e:
        raise ValueError(f"Source {source_name}: unknown mode {source_config.get('mode')!r}") from e

    importer = importer_cls(source_name, source_config.get("config") or {}, builder=builder)
    return PipelineSource(importer=importer, mode=mode)
