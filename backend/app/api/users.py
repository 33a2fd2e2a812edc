from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.api_response import success_response_payload
from app.core.paging import DEFAULT_PAGE_SIZE, PageWindow, fetch_page
from app.core.security import get_current_user, hash_password
from app.db.models.role import Role
from app.db.models.user import User
from app.db.session import get_db
from app.schemas.user import UserCreate, UserOut, UserUpdate
from app.services.activity_log import record_activity

router = APIRouter(prefix="/api/users", tags=["users"])


def _utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _serialize_user(user: User, role_name: str | None) -> dict:
    out = UserOut.model_validate(user)
    out.role_name = role_name
    return out.model_dump(mode="json")


def _require_role_exists(db: Session, role_id: int | None) -> None:
    if role_id is not None and db.get(Role, role_id) is None:
        raise HTTPException(status_code=400, detail="Role not found")


def _get_user_or_404(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _role_name(db: Session, role_id: int | None) -> str | None:
    if role_id is None:
        return None
    role = db.get(Role, role_id)
    return role.name if role else None


@router.get("")
def list_users(
    request: Request,
    page: int | None = None,
    page_size: int = DEFAULT_PAGE_SIZE,
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
):
    query = (
        db.query(User, Role.name)
        .outerjoin(Role, User.role_id == Role.id)
        .order_by(User.created_at.desc(), User.id.desc())
    )
    if page is None:
        items = [_serialize_user(user, role_name) for user, role_name in query.all()]
        return success_response_payload(request, data=items)
    data = fetch_page(
        query,
        PageWindow.clamp(page, page_size),
        lambda row: _serialize_user(row[0], row[1]),
    )
    return success_response_payload(request, data=data)


@router.post("", status_code=201)
def create_user(
    payload: UserCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    _require_role_exists(db, payload.role_id)
    user = User(
        username=payload.username.strip(),
        hashed_password=hash_password(payload.password),
        full_name=payload.full_name.strip(),
        email=payload.email,
        phone=payload.phone,
        role_id=payload.role_id,
        is_active=payload.is_active,
        token_version=0,
        created_at=_utc_now_naive(),
    )
    db.add(user)
    record_activity(
        db,
        request,
        action="create",
        module="users",
        description=f'User "{user.full_name}" created',
        actor=current_user,
    )
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail="Username already exists") from exc
    db.refresh(user)
    return success_response_payload(request, data=_serialize_user(user, _role_name(db, user.role_id)))


@router.patch("/{user_id}")
def update_user(
    user_id: int,
    payload: UserUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    user = _get_user_or_404(db, user_id)
    changes = payload.model_dump(exclude_unset=True)
    if "role_id" in changes:
        _require_role_exists(db, changes["role_id"])

    revoke_sessions = False
    for field, value in changes.items():
        if field == "full_name" and value is None:
            continue
        if field == "is_active" and value is None:
            continue
        if field in {"role_id", "is_active"} and getattr(user, field) != value:
            revoke_sessions = True
        setattr(user, field, value)
    # Tokens carry the role id, so a role change or deactivation ends live sessions.
    if revoke_sessions:
        user.token_version = int(user.token_version or 0) + 1

    record_activity(
        db,
        request,
        action="update",
        module="users",
        description=f'User "{user.full_name}" updated',
        actor=current_user,
        meta_json={"fields": sorted(changes)},
    )
    db.commit()
    db.refresh(user)
    return success_response_payload(request, data=_serialize_user(user, _role_name(db, user.role_id)))


@router.delete("/{user_id}")
def delete_user(
    user_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    user = _get_user_or_404(db, user_id)
    if user.id == current_user.id:
        raise HTTPException(status_code=400, detail="Cannot delete your own account")

    full_name = user.full_name
    db.delete(user)
    record_activity(
        db,
        request,
        action="delete",
        module="users",
        description=f'User "{full_name}" deleted',
        actor=current_user,
    )
    db.commit()
    return success_response_payload(request, data={"ok": True, "id": user_id})
