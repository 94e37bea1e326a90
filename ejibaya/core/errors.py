"""Error taxonomy for the ejibaya pipeline.

Row-level problems are never raised: they are counted on the run context.
Only setup failures and archive validation failures terminate a run.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class SetupError(PipelineError):
    """Missing input file or required configuration (FATAL_SETUP)."""


class StorageError(PipelineError):
    """A call to the remote storage API failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AssetFetchError(PipelineError):
    """A binary asset could not be downloaded while archiving."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Failed to fetch {url}: {reason}")
        self.url = url
        self.reason = reason


class BackupError(PipelineError):
    """Backup archive creation failed."""


class ArchiveInvalidError(PipelineError):
    """Archive failed structural or count validation (ARCHIVE_INVALID)."""


class RestoreError(PipelineError):
    """A validated archive could not be applied to the store."""
