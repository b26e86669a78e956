"""Application log helpers"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from land_registry.models.application_log import ApplicationLog
from land_registry.models.user import User

logger = logging.getLogger(__name__)


def _status_value(status) -> Optional[str]:
    if status is None:
        return None
    return getattr(status, "value", status)


def record_action(
    db: AsyncSession,
    action: str,
    status,
    property_id: Optional[int] = None,
    owner_id: Optional[int] = None,
    actor: Optional[User] = None,
    previous_status=None,
    notes: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> ApplicationLog:
    """Add a timeline entry to the session; the caller commits"""
    entry = ApplicationLog(
        property_id=property_id,
        user_id=owner_id,
        action=action,
        status=_status_value(status),
        previous_status=_status_value(previous_status),
        performed_by=actor.id if actor else None,
        performed_by_role=actor.role.value if actor else "system",
        notes=notes,
        extra=metadata,
    )
    db.add(entry)
    logger.info(
        f"Timeline: {action} on property {property_id} "
        f"({_status_value(previous_status)} -> {_status_value(status)})"
    )
    return entry
