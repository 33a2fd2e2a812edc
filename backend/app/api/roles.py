from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.api_response import success_response_payload
from app.core.permissions import count_granted, is_admin_role_name, normalize_permissions
from app.core.security import get_current_user
from app.db.models.role import Role
from app.db.models.user import User
from app.db.session import get_db
from app.schemas.role import RoleCreate, RoleOut, RoleUpdate
from app.services.activity_log import record_activity

router = APIRouter(prefix="/api/roles", tags=["roles"])


def serialize_role(role: Role) -> dict:
    matrix = normalize_permissions(role.permissions)
    return RoleOut(
        id=role.id,
        name=role.name,
        description=role.description,
        permissions=matrix,
        granted_count=count_granted(matrix),
        is_admin=is_admin_role_name(role.name),
    ).model_dump()


def _get_role_or_404(db: Session, role_id: int) -> Role:
    role = db.get(Role, role_id)
    if not role:
        raise HTTPException(status_code=404, detail="Role not found")
    return role


def _commit_or_conflict(db: Session, name: str) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail=f'Role "{name}" already exists') from exc


@router.get("")
def list_roles(
    request: Request,
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
):
    roles = db.query(Role).order_by(Role.name.asc()).all()
    return success_response_payload(request, data=[serialize_role(role) for role in roles])


@router.get("/{role_id}")
def get_role(
    role_id: int,
    request: Request,
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
):
    return success_response_payload(request, data=serialize_role(_get_role_or_404(db, role_id)))


@router.post("", status_code=201)
def create_role(
    payload: RoleCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    role = Role(
        name=payload.name.strip(),
        description=payload.description or "",
        permissions=normalize_permissions(payload.permissions),
    )
    db.add(role)
    record_activity(
        db,
        request,
        action="create",
        module="roles",
        description=f'Role "{role.name}" created',
        actor=current_user,
    )
    _commit_or_conflict(db, role.name)
    db.refresh(role)
    return success_response_payload(request, data=serialize_role(role))


@router.patch("/{role_id}")
def update_role(
    role_id: int,
    payload: RoleUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    role = _get_role_or_404(db, role_id)
    changes = payload.model_dump(exclude_unset=True)

    new_name = changes.get("name")
    if new_name is not None:
        new_name = new_name.strip()
        if is_admin_role_name(role.name) and not is_admin_role_name(new_name):
            raise HTTPException(status_code=400, detail="The Admin role cannot be renamed")
        role.name = new_name
    if "description" in changes:
        role.description = changes["description"] or ""
    if "permissions" in changes:
        role.permissions = normalize_permissions(changes["permissions"])

    record_activity(
        db,
        request,
        action="update",
        module="roles",
        description=f'Role "{role.name}" updated',
        actor=current_user,
        meta_json={"fields": sorted(changes)},
    )
    _commit_or_conflict(db, role.name)
    db.refresh(role)
    return success_response_payload(request, data=serialize_role(role))


@router.delete("/{role_id}")
def delete_role(
    role_id: int,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    role = _get_role_or_404(db, role_id)
    if is_admin_role_name(role.name):
        raise HTTPException(status_code=400, detail="The Admin role cannot be deleted")

    name = role.name
    db.query(User).filter(User.role_id == role.id).update({User.role_id: None})
    db.delete(role)
    record_activity(
        db,
        request,
        action="delete",
        module="roles",
        description=f'Role "{name}" deleted',
        actor=current_user,
    )
    db.commit()
    return success_response_payload(request, data={"ok": True, "id": role_id})
