"""
Activity log: one line per access event, written to the ``portal.activity``
logger and, when an activity store is configured, kept for admins to read back.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from portal.exceptions import StorageUnavailable
from portal.guard import require_permission
from portal.models import ActivityEntry, ActivityFilter, Principal
from portal.rbac import Permission
from portal.stores import ActivityStore

activity_logger = logging.getLogger("portal.activity")

MAX_LIST_LIMIT = 500


class ActivityType(str, Enum):
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    VIEW = "VIEW"
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    VERIFY = "VERIFY"


class ActivityTarget(str, Enum):
    USER = "USER"
    MEDICAL_RECORD = "MEDICAL_RECORD"
    PATIENT_PIN = "PATIENT_PIN"
    ASSISTANT = "ASSISTANT"


def log_activity(activity_type: ActivityType, target: ActivityTarget,
                 principal: Optional[Principal] = None, target_id=None,
                 details: Optional[str] = None, success: bool = True,
                 error_message: Optional[str] = None,
                 store: Optional[ActivityStore] = None) -> None:
    fields = {
        "type": activity_type.value,
        "target": target.value,
        "target_id": target_id,
        "user_id": principal.id if principal else None,
        "role": principal.role.value if principal else None,
        "success": success,
    }
    if details:
        fields["details"] = details
    if error_message:
        fields["error"] = error_message

    line = " ".join(f"{k}={v}" for k, v in fields.items())
    if success:
        activity_logger.info(line)
    else:
        activity_logger.warning(line)

    if store is None:
        return

    entry = ActivityEntry(
        timestamp=datetime.now(timezone.utc),
        activity_type=activity_type.value,
        target=target.value,
        user_id=fields["user_id"],
        role=fields["role"],
        target_id=str(target_id) if target_id is not None else None,
        success=success,
        details=details,
        error_message=error_message,
    )
    try:
        store.append(entry)
    except StorageUnavailable:
        # Never fails the request being logged.
        activity_logger.error("Activity entry not stored: %s", line)


def list_activity(store: ActivityStore, principal: Principal,
                  activity_filter: ActivityFilter) -> List[ActivityEntry]:
    """Read recorded activity back. Requires VIEW_ANALYTICS."""
    require_permission(principal, Permission.VIEW_ANALYTICS)
    return store.list_entries(activity_filter)


def activity_to_dict(entry: ActivityEntry) -> Dict[str, Any]:
    return {
        "timestamp": entry.timestamp.isoformat(),
        "type": entry.activity_type,
        "target": entry.target,
        "target_id": entry.target_id,
        "user_id": entry.user_id,
        "role": entry.role,
        "success": entry.success,
        "details": entry.details,
        "error": entry.error_message,
    }
