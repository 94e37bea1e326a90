"""ejibaya configuration management.

Loads configuration from environment variables with sensible defaults.
Store credentials are only required by commands that talk to the store.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class StoreConfig:
    """Remote record store (Supabase / PostgREST) connection."""

    url: str
    api_key: str
    timeout: float = 30.0
    page_size: int = 1000

    @classmethod
    def from_env(cls) -> StoreConfig:
        """Load store credentials.

        Accepts both the pipeline names (SUPABASE_URL, SUPABASE_KEY) and the
        front-end names (VITE_SUPABASE_URL, VITE_SUPABASE_ANON_KEY).

        Raises:
            KeyError: If URL or key is missing
        """
        url = os.getenv("SUPABASE_URL") or os.getenv("VITE_SUPABASE_URL")
        api_key = os.getenv("SUPABASE_KEY") or os.getenv("VITE_SUPABASE_ANON_KEY")
        if not url or not api_key:
            raise KeyError(
                "SUPABASE_URL and SUPABASE_KEY environment variables are required "
                "(VITE_SUPABASE_URL / VITE_SUPABASE_ANON_KEY are also accepted)."
            )
        return cls(
            url=url,
            api_key=api_key,
            timeout=float(os.getenv("STORE_TIMEOUT", "30")),
            page_size=int(os.getenv("STORE_PAGE_SIZE", "1000")),
        )


@dataclass
class LoaderConfig:
    """Bulk loader pacing and batch sizes."""

    batch_size: int = 1000
    batch_delay_seconds: float = 0.1
    retry_attempts: int = 1  # 1 = no retry
    retry_wait_seconds: float = 1.0
    upsert_pause_every: int = 50
    upsert_pause_seconds: float = 1.0


@dataclass
class ExtractionConfig:
    """Parsing, normalization and PDF heuristics."""

    delimiter: str = ","
    account_prefixes: tuple[str, ...] = ("34",)
    preview_rows: int = 3
    reject_unknown_categories: bool = False
    progress_every: int = 10000


@dataclass
class BackupConfig:
    """Backup archive settings."""

    output_dir: Path = Path("backups")
    asset_timeout: float = 60.0
    asset_delay_seconds: float = 0.0
    max_concurrent_fetches: int = 1  # 1 = sequential
    actor_user_id: str | None = None


@dataclass
class AppConfig:
    """Root application configuration."""

    data_dir: Path = Path("DATA")
    log_level: str = "INFO"
    json_logs: bool = False

    loader: LoaderConfig = field(default_factory=LoaderConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    backup: BackupConfig = field(default_factory=BackupConfig)

    @classmethod
    def from_env(cls) -> AppConfig:
        """Load configuration from environment variables.

        Optional (with defaults):
        - DATA_DIR: Directory holding source files (default: "DATA")
        - LOG_LEVEL: Logging verbosity (default: "INFO")
        - BATCH_SIZE / BATCH_DELAY_SECONDS: Loader pacing (1000 / 0.1)
        - ACCOUNT_PREFIXES: Comma-separated account prefixes (default: "34")
        """
        prefixes = tuple(
            p.strip() for p in os.getenv("ACCOUNT_PREFIXES", "34").split(",") if p.strip()
        )
        actor = os.getenv("BACKUP_ACTOR_USER_ID") or None

        return cls(
            data_dir=Path(os.getenv("DATA_DIR", "DATA")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            json_logs=_env_bool("JSON_LOGS"),
            loader=LoaderConfig(
                batch_size=int(os.getenv("BATCH_SIZE", "1000")),
                batch_delay_seconds=float(os.getenv("BATCH_DELAY_SECONDS", "0.1")),
                retry_attempts=int(os.getenv("LOADER_RETRY_ATTEMPTS", "1")),
                retry_wait_seconds=float(os.getenv("LOADER_RETRY_WAIT_SECONDS", "1.0")),
                upsert_pause_every=int(os.getenv("UPSERT_PAUSE_EVERY", "50")),
                upsert_pause_seconds=float(os.getenv("UPSERT_PAUSE_SECONDS", "1.0")),
            ),
            extraction=ExtractionConfig(
                delimiter=os.getenv("FIELD_DELIMITER", ","),
                account_prefixes=prefixes or ("34",),
                preview_rows=int(os.getenv("PREVIEW_ROWS", "3")),
                reject_unknown_categories=_env_bool("REJECT_UNKNOWN_CATEGORIES"),
                progress_every=int(os.getenv("PROGRESS_EVERY", "10000")),
            ),
            backup=BackupConfig(
                output_dir=Path(os.getenv("BACKUP_DIR", "backups")),
                asset_timeout=float(os.getenv("BACKUP_ASSET_TIMEOUT", "60")),
                asset_delay_seconds=float(os.getenv("BACKUP_ASSET_DELAY_SECONDS", "0")),
                max_concurrent_fetches=int(os.getenv("BACKUP_MAX_CONCURRENT_FETCHES", "1")),
                actor_user_id=actor,
            ),
        )

    def store(self) -> StoreConfig:
        """Store credentials (raises KeyError when missing)."""
        return StoreConfig.from_env()


# Singleton instance (lazy-loaded)
_config: AppConfig | None = None


def get_config() -> AppConfig:
    """Get or create singleton AppConfig instance from environment."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def reset_config() -> None:
    """Drop the cached configuration (used by tests)."""
    global _config
    _config = None
