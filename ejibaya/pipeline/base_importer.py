"""Base class for all source importers.

Defines the contract that all importer modules must implement.
Provides common utilities and error handling patterns.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from pathlib import Path

from ejibaya.core.errors import SetupError
from ejibaya.models import CanonicalRecord
from ejibaya.pipeline.builder import RecordBuilder
from ejibaya.pipeline.types import RunContext

logger = logging.getLogger(__name__)


class BaseImporter(ABC):
    """Abstract base class for subscriber-record importers.

    Key principles:
    1. Each importer handles exactly ONE source
    2. Importers keep no state between runs; everything run-scoped lives
       on the RunContext passed in by the driver
    3. Row problems are counted on the context, never raised
    4. All importers yield CanonicalRecord objects
    """

    def __init__(self, source_name: str, config: dict, builder: RecordBuilder | None = None):
        """Initialize importer.

        Args:
            source_name: Unique identifier for this source
            config: Configuration dict with source-specific settings
            builder: Record builder (defaults to the standard column contract)
        """
        self.source_name = source_name
        self.config = config
        self.builder = builder or RecordBuilder()
        self.logger = logging.getLogger(f"{__name__}.{source_name}")

    @abstractmethod
    def fetch_records(self, context: RunContext) -> AsyncIterator[CanonicalRecord]:
        """Yield accepted records; rejected rows are counted on ``context``.

        Raises:
            SetupError / FileNotFoundError: If the source cannot be opened
        """

    def validate(self) -> None:
        """Check required config and inputs before any source runs.

        Raises:
            SetupError / FileNotFoundError: If the source cannot be opened
        """
        self._get_path()

    async def collect(self, context: RunContext) -> list[CanonicalRecord]:
        """Materialize all accepted records of this source."""
        return [record async for record in self.fetch_records(context)]

    def _get_config_value(self, key: str, default=None, required: bool = False):
        """Get configuration value with validation.

        Raises:
            SetupError: If required key is missing
        """
        value = self.config.get(key, default)

        if required and value is None:
            raise SetupError(
                f"Required config key '{key}' missing for {self.source_name}"
            )

        return value

    def _get_path(self, key: str = "file_path") -> Path:
        """Resolve a required, existing file path from config."""
        path = Path(self._get_config_value(key, required=True))
        if not path.exists():
            raise FileNotFoundError(f"Input file not found: {path}")
        return path
