import logging
from datetime import datetime, timezone

from fastapi import Request
from sqlalchemy.orm import Session

from app.core.metrics import increment_counter
from app.core.observability import log_business_event
from app.db.models.activity_log import ActivityLog
from app.db.models.user import User

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "System"


def _utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def record_activity(
    db: Session,
    request: Request | None,
    *,
    action: str,
    module: str,
    description: str,
    actor: User | None = None,
    meta_json: dict | None = None,
) -> ActivityLog:
    """Add an activity row to the session; the caller commits."""
    entry = ActivityLog(
        action=action,
        module=module,
        description=description,
        user_id=actor.id if actor else None,
        user_name=actor.full_name if actor else SYSTEM_ACTOR,
        meta_json=meta_json,
        created_at=_utc_now_naive(),
    )
    db.add(entry)
    increment_counter("activity_log_total", module=module, action=action)
    if request is not None:
        log_business_event(
            logger,
            request,
            event=f"{module}.{action}",
            actor=entry.user_name,
        )
    return entry


def serialize_activity(entry: ActivityLog) -> dict:
    return {
        "id": entry.id,
        "action": entry.action,
        "module": entry.module,
        "description": entry.description,
        "user_id": entry.user_id,
        "user_name": entry.user_name,
        "meta_json": entry.meta_json,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }
