from app.core.admin_sync import (
    AdminSyncResult,
    DEFAULT_ROLES,
    ensure_admin_role,
    env_flag,
    seed_default_roles,
    sync_super_admin,
)
from app.core.permissions import build_full_matrix, normalize_permissions
from app.core.security import verify_password
from app.db.models.role import Role
from app.db.models.user import User


def test_ensure_admin_role_creates_once(db_session):
    result = AdminSyncResult()
    first = ensure_admin_role(db_session, result)
    db_session.commit()
    assert result.role_created is True
    assert first.permissions == build_full_matrix()

    again = AdminSyncResult()
    second = ensure_admin_role(db_session, again)
    assert second.id == first.id
    assert again.role_created is False
    assert db_session.query(Role).count() == 1


def test_ensure_admin_role_reuses_differently_cased_admin(db_session):
    db_session.add(Role(name="admin", description="legacy", permissions={}))
    db_session.commit()

    result = AdminSyncResult()
    role = ensure_admin_role(db_session, result)
    assert role.name == "admin"
    assert result.role_created is False
    assert db_session.query(Role).count() == 1


def test_seed_default_roles_skips_existing_names(db_session):
    db_session.add(Role(name="Doctor", description="custom", permissions={}))
    db_session.commit()

    created = seed_default_roles(db_session)
    db_session.commit()
    assert created == len(DEFAULT_ROLES) - 1
    doctor = db_session.query(Role).filter(Role.name == "Doctor").one()
    assert doctor.description == "custom"
    assert seed_default_roles(db_session) == 0


def test_seeded_legacy_roles_normalize_to_current_matrix(db_session):
    seed_default_roles(db_session)
    db_session.commit()

    receptionist = db_session.query(Role).filter(Role.name == "Receptionist").one()
    matrix = normalize_permissions(receptionist.permissions)
    assert matrix["make_payment"] == {"view": True, "add": True, "edit": True, "delete": False}
    assert matrix["user_role"] == {"view": False, "add": False, "edit": False, "delete": False}


def test_sync_super_admin_creates_user(db_session):
    result = sync_super_admin(db_session, " owner@clinic.test ", "s3cret-pass", seed_roles=True)
    assert result.role_created is True
    assert result.user_created is True
    assert result.user_updated is False
    assert result.default_roles_created == len(DEFAULT_ROLES)

    user = db_session.query(User).filter(User.username == "owner@clinic.test").one()
    assert user.email == "owner@clinic.test"
    assert user.full_name == "Super Admin"
    assert verify_password("s3cret-pass", user.hashed_password)
    assert db_session.get(Role, user.role_id).name == "Admin"


def test_sync_super_admin_reactivates_existing_user(db_session):
    db_session.add(Role(name="Receptionist", description="", permissions={}))
    db_session.flush()
    staff_role_id = db_session.query(Role.id).filter(Role.name == "Receptionist").scalar()
    db_session.add(
        User(
            username="owner",
            hashed_password="old",
            full_name="Clinic Owner",
            role_id=staff_role_id,
            is_active=False,
            token_version=3,
        )
    )
    db_session.commit()

    result = sync_super_admin(db_session, "owner", "new-pass")
    assert result.user_updated is True
    assert result.user_created is False
    assert result.default_roles_created == 0

    user = db_session.query(User).filter(User.username == "owner").one()
    assert user.is_active is True
    assert user.full_name == "Clinic Owner"
    assert user.hashed_password.startswith("$2")
    assert db_session.get(Role, user.role_id).name == "Admin"


def test_env_flag(monkeypatch):
    monkeypatch.setenv("SEED_DEFAULT_ROLES", " Yes ")
    assert env_flag("SEED_DEFAULT_ROLES") is True
    monkeypatch.setenv("SEED_DEFAULT_ROLES", "0")
    assert env_flag("SEED_DEFAULT_ROLES") is False
    monkeypatch.delenv("SEED_DEFAULT_ROLES", raising=False)
    assert env_flag("SEED_DEFAULT_ROLES") is False
