import os
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.permissions import ADMIN_ROLE_NAME, build_full_matrix
from app.core.security import hash_password
from app.db.models.role import Role
from app.db.models.user import User

SUPER_ADMIN_FULL_NAME = "Super Admin"


def _legacy_flags(read: bool, write: bool, delete: bool) -> dict[str, bool]:
    return {"read": read, "write": write, "delete": delete}


# Stored in the pre-view/add/edit/delete shape, the way the first clinic
# databases were seeded; normalize_permissions() reads them unchanged.
DEFAULT_ROLES: tuple[dict, ...] = (
    {
        "name": "Doctor",
        "description": "Clinical staff",
        "permissions": {
            "dashboard": _legacy_flags(True, False, False),
            "opd": _legacy_flags(True, True, False),
            "billing": _legacy_flags(True, True, False),
            "services": _legacy_flags(True, False, False),
            "medicines": _legacy_flags(True, False, False),
            "expenses": _legacy_flags(False, False, False),
            "bank": _legacy_flags(False, False, False),
            "investments": _legacy_flags(False, False, False),
            "staff": _legacy_flags(False, False, False),
            "integrations": _legacy_flags(True, False, False),
            "settings": _legacy_flags(False, False, False),
            "reports": _legacy_flags(True, False, False),
        },
    },
    {
        "name": "Receptionist",
        "description": "Front desk",
        "permissions": {
            "dashboard": _legacy_flags(True, False, False),
            "opd": _legacy_flags(True, True, False),
            "billing": _legacy_flags(True, True, False),
            "services": _legacy_flags(True, False, False),
            "medicines": _legacy_flags(True, False, False),
            "expenses": _legacy_flags(False, False, False),
            "bank": _legacy_flags(False, False, False),
            "investments": _legacy_flags(False, False, False),
            "staff": _legacy_flags(False, False, False),
            "integrations": _legacy_flags(False, False, False),
            "settings": _legacy_flags(False, False, False),
            "reports": _legacy_flags(False, False, False),
        },
    },
)


@dataclass
class AdminSyncResult:
    role_created: bool = False
    user_created: bool = False
    user_updated: bool = False
    default_roles_created: int = 0


def _utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def ensure_admin_role(db: Session, result: AdminSyncResult | None = None) -> Role:
    role = db.query(Role).filter(func.lower(Role.name) == ADMIN_ROLE_NAME.lower()).first()
    if role:
        return role
    role = Role(name=ADMIN_ROLE_NAME, description="Full access", permissions=build_full_matrix())
    db.add(role)
    db.flush()
    if result is not None:
        result.role_created = True
    return role


def seed_default_roles(db: Session, result: AdminSyncResult | None = None) -> int:
    existing = {name for (name,) in db.query(Role.name).all()}
    created = 0
    for template in DEFAULT_ROLES:
        if template["name"] in existing:
            continue
        db.add(Role(name=template["name"], description=template["description"], permissions=template["permissions"]))
        created += 1
    db.flush()
    if result is not None:
        result.default_roles_created += created
    return created


def sync_super_admin(db: Session, username: str, password: str, *, seed_roles: bool = False) -> AdminSyncResult:
    result = AdminSyncResult()
    username = username.strip()
    admin_role = ensure_admin_role(db, result)
    if seed_roles:
        seed_default_roles(db, result)

    existing = db.query(User).filter(User.username == username).first()
    if existing:
        existing.hashed_password = hash_password(password)
        existing.full_name = existing.full_name or SUPER_ADMIN_FULL_NAME
        existing.role_id = admin_role.id
        existing.is_active = True
        result.user_updated = True
    else:
        db.add(
            User(
                username=username,
                hashed_password=hash_password(password),
                full_name=SUPER_ADMIN_FULL_NAME,
                email=username if "@" in username else None,
                role_id=admin_role.id,
                is_active=True,
                token_version=0,
                created_at=_utc_now_naive(),
            )
        )
        result.user_created = True

    db.commit()
    return result
