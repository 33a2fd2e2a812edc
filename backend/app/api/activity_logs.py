import os

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.core.api_response import success_response_payload
from app.core.security import get_current_user
from app.db.models.activity_log import ActivityLog
from app.db.models.user import User
from app.db.session import get_db
from app.schemas.activity_log import ActivityLogCreate
from app.services.activity_export import activity_csv_response, activity_xlsx_response
from app.services.activity_log import record_activity, serialize_activity

router = APIRouter(prefix="/api/activity-logs", tags=["activity-logs"])

DEFAULT_LIMIT = int(os.getenv("ACTIVITY_LOG_DEFAULT_LIMIT", "100"))
MAX_LIMIT = 5000


def _recent(db: Session, limit: int) -> list[ActivityLog]:
    return (
        db.query(ActivityLog)
        .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        .limit(limit)
        .all()
    )


@router.get("")
def list_activity_logs(
    request: Request,
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
):
    return success_response_payload(request, data=[serialize_activity(x) for x in _recent(db, limit)])


@router.post("", status_code=201)
def create_activity_log(
    payload: ActivityLogCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    entry = record_activity(
        db,
        request,
        action=payload.action,
        module=payload.module,
        description=payload.description,
        actor=current_user,
        meta_json=payload.meta_json,
    )
    db.commit()
    db.refresh(entry)
    return success_response_payload(request, data=serialize_activity(entry))


@router.delete("")
def clear_activity_logs(
    request: Request,
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
):
    deleted = db.query(ActivityLog).delete()
    db.commit()
    return success_response_payload(request, data={"ok": True, "deleted": deleted})


@router.get("/export.csv")
def export_activity_logs_csv(
    limit: int = Query(MAX_LIMIT, ge=1, le=MAX_LIMIT),
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
):
    return activity_csv_response(_recent(db, limit))


@router.get("/export.xlsx")
def export_activity_logs_xlsx(
    limit: int = Query(MAX_LIMIT, ge=1, le=MAX_LIMIT),
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
):
    return activity_xlsx_response(_recent(db, limit))
