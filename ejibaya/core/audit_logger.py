"""Fire-and-forget activity logging against the record store."""

from __future__ import annotations

import logging
from typing import Any

from ejibaya.core.errors import StorageError
from ejibaya.storage.base import RecordStore

logger = logging.getLogger(__name__)


async def log_action(
    store: RecordStore,
    action: str,
    user_id: str | None,
    target_type: str | None = None,
    target_name: str | None = None,
    details: dict[str, Any] | None = None,
) -> bool:
    """Append an activity-log entry; failures are logged, never raised.

    Args:
        store: Record store to write to
        action: Action name (e.g., "backup_data", "import_records")
        user_id: Acting user; entries without a user are skipped
        target_type: Type of resource affected
        target_name: Human-readable name of the resource
        details: Additional details

    Returns:
        True if the entry was written
    """
    if not user_id:
        logger.debug(f"No actor configured, skipping activity log for {action}")
        return False

    entry = {
        "user_id": user_id,
        "action": action,
        "target_type": target_type,
        "target_name": target_name,
        "details": details or {},
    }

    try:
        await store.append_activity_log(entry)
    except StorageError as e:
        logger.warning(f"Activity log for {action} not written: {e}")
        return False
    return True
