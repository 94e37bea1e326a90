"""Backup archive creation and restore."""

from ejibaya.backup.archiver import BackupArchiver
from ejibaya.backup.restorer import BackupRestorer, validate_backup

__all__ = ["BackupArchiver", "BackupRestorer", "validate_backup"]
