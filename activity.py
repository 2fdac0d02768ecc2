from typing import Any, Optional

from sqlmodel import Session

from models import ActivityAction, ActivityLog, EntityType


def log_activity(
    session: Session,
    user_id: Optional[int],
    action: ActivityAction,
    entity_type: EntityType,
    entity_id: int,
    **metadata: Any,
) -> ActivityLog:
    """Stage an audit row in the caller's transaction; the caller commits."""
    entry = ActivityLog(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=metadata,
    )
    session.add(entry)
    return entry
