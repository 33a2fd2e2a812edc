import logging

from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.metrics import counter_value
from app.core.observability import format_fields
from app.core.permission_gate import (
    RoleLookupError,
    RoleRecord,
    create_permission_gate,
    db_caller_role_id,
    db_role_lookup,
    evaluate_request,
)
from app.core.security import create_user_token
from app.db.models.role import Role
from app.db.models.user import User

RECEPTIONIST_ID = 2
ADMIN_ID = 1

RECEPTIONIST = RoleRecord(
    name="Receptionist",
    permissions={"appointments": {"view": True, "add": True, "edit": True, "delete": False}},
)
ADMIN = RoleRecord(name="Admin", permissions={})

RECEPTIONIST_TOKEN = "reception-session"
ADMIN_TOKEN = "admin-session"
SESSIONS = {RECEPTIONIST_TOKEN: RECEPTIONIST_ID, ADMIN_TOKEN: ADMIN_ID}


class FakeRoleLookup:
    def __init__(self, roles: dict[int, RoleRecord] | None = None, *, fail: bool = False):
        self.roles = roles or {}
        self.fail = fail
        self.calls: list[int] = []

    def __call__(self, role_id: int) -> RoleRecord | None:
        self.calls.append(role_id)
        if self.fail:
            raise RoleLookupError("database unavailable")
        return self.roles.get(role_id)


class FakeSessions:
    """Bearer token -> role id for live sessions; unknown tokens resolve to no role."""

    def __init__(self, sessions: dict[str, int] | None = None):
        self.sessions = sessions if sessions is not None else dict(SESSIONS)
        self.calls: list[str | None] = []

    def __call__(self, token: str | None) -> int | None:
        self.calls.append(token)
        return self.sessions.get(token) if token else None


def _gate_client(lookup, sessions: FakeSessions | None = None) -> TestClient:
    app = FastAPI()
    app.middleware("http")(create_permission_gate(lookup, sessions or FakeSessions()))

    @app.api_route("/api/{rest:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"])
    def catch_all(rest: str):
        return {"reached": rest}

    return TestClient(app)


def _headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _default_lookup() -> FakeRoleLookup:
    return FakeRoleLookup({RECEPTIONIST_ID: RECEPTIONIST, ADMIN_ID: ADMIN})


def test_evaluate_request_receptionist_delete_is_denied():
    decision = evaluate_request("/api/appointments/7", "DELETE", RECEPTIONIST_TOKEN, _default_lookup(), FakeSessions())
    assert decision.outcome == "deny"
    assert decision.module == "appointments"
    assert decision.action == "delete"
    assert decision.allowed is False


def test_evaluate_request_receptionist_post_is_allowed():
    decision = evaluate_request("/api/appointments", "POST", RECEPTIONIST_TOKEN, _default_lookup(), FakeSessions())
    assert decision.outcome == "allow"
    assert decision.action == "add"


def test_evaluate_request_public_path_never_reads_token():
    lookup = _default_lookup()
    sessions = FakeSessions()
    for path in ("/api/auth/login", "/api/health", "/api/public/permissions"):
        decision = evaluate_request(path, "GET", RECEPTIONIST_TOKEN, lookup, sessions)
        assert decision.outcome == "public"
    assert sessions.calls == []
    assert lookup.calls == []


def test_evaluate_request_unknown_route_is_not_gated():
    lookup = _default_lookup()
    sessions = FakeSessions()
    decision = evaluate_request("/api/nonexistent", "DELETE", RECEPTIONIST_TOKEN, lookup, sessions)
    assert decision.outcome == "ungated"
    assert sessions.calls == []
    assert lookup.calls == []


def test_evaluate_request_without_role_is_denied():
    lookup = _default_lookup()
    assert evaluate_request("/api/dashboard", "GET", None, lookup, FakeSessions()).outcome == "deny"
    assert lookup.calls == []


def test_evaluate_request_missing_role_is_denied_not_error():
    decision = evaluate_request("/api/dashboard", "GET", "orphan", _default_lookup(), FakeSessions({"orphan": 999}))
    assert decision.outcome == "deny"


def test_evaluate_request_admin_bypass():
    decision = evaluate_request("/api/settings", "DELETE", ADMIN_TOKEN, _default_lookup(), FakeSessions())
    assert decision.outcome == "admin"
    assert decision.allowed is True


def test_evaluate_request_lookup_failure_is_error():
    decision = evaluate_request("/api/dashboard", "GET", RECEPTIONIST_TOKEN, FakeRoleLookup(fail=True), FakeSessions())
    assert decision.outcome == "error"
    assert decision.allowed is False


def test_evaluate_request_session_failure_is_error():
    def broken_sessions(token):
        raise RoleLookupError("database unavailable")

    decision = evaluate_request("/api/dashboard", "GET", RECEPTIONIST_TOKEN, _default_lookup(), broken_sessions)
    assert decision.outcome == "error"


def test_evaluate_request_revoked_session_is_denied():
    lookup = _default_lookup()
    decision = evaluate_request("/api/dashboard", "GET", "logged-out", lookup, FakeSessions())
    assert decision.outcome == "deny"
    assert lookup.calls == []


def test_evaluate_request_unknown_verb_maps_to_view():
    lookup = FakeRoleLookup({5: RoleRecord(name="Viewer", permissions={"reports": {"view": True}})})
    sessions = FakeSessions({"viewer": 5})
    assert evaluate_request("/api/reports/summary", "OPTIONS", "viewer", lookup, sessions).outcome == "allow"


def test_gate_denies_receptionist_delete_with_fixed_signal():
    client = _gate_client(_default_lookup())
    response = client.delete("/api/appointments/7", headers=_headers(RECEPTIONIST_TOKEN))
    assert response.status_code == 403
    payload = response.json()
    assert payload["ok"] is False
    assert payload["error"] == {
        "code": "insufficient_permissions",
        "message": "Insufficient permissions",
        "details": None,
    }
    assert counter_value("permission_denied_total", module="appointments", action="delete") == 1


def test_gate_lets_receptionist_create_appointment():
    client = _gate_client(_default_lookup())
    response = client.post("/api/appointments", headers=_headers(RECEPTIONIST_TOKEN))
    assert response.status_code == 200
    assert response.json() == {"reached": "appointments"}


def test_gate_skips_public_auth_path_for_any_role():
    lookup = _default_lookup()
    sessions = FakeSessions()
    client = _gate_client(lookup, sessions)
    response = client.get("/api/auth/login", headers=_headers(RECEPTIONIST_TOKEN))
    assert response.status_code == 200
    assert sessions.calls == []
    assert lookup.calls == []


def test_gate_denies_gated_path_without_token():
    client = _gate_client(_default_lookup())
    response = client.get("/api/patients")
    assert response.status_code == 403


def test_gate_treats_invalid_token_as_no_role():
    lookup = _default_lookup()
    client = _gate_client(lookup)
    response = client.get("/api/appointments", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 403
    assert lookup.calls == []


def test_gate_returns_internal_error_when_lookup_fails():
    client = _gate_client(FakeRoleLookup(fail=True))
    response = client.get("/api/appointments", headers=_headers(RECEPTIONIST_TOKEN))
    assert response.status_code == 500
    assert response.json()["error"]["code"] == "permission_check_failed"
    assert response.json()["error"]["message"] == "Permission check failed"
    assert counter_value("permission_check_failed_total", module="appointments") == 1


def test_gate_admin_passes_everything():
    client = _gate_client(_default_lookup())
    for method in ("get", "post", "put", "patch", "delete"):
        response = client.request(method.upper(), "/api/settings/1", headers=_headers(ADMIN_TOKEN))
        assert response.status_code == 200


def test_db_role_lookup_reads_stored_role(db_session):
    db_session.add(Role(name="Doctor", description="", permissions={"opd": {"read": True}}))
    db_session.commit()
    role_id = db_session.query(Role.id).filter(Role.name == "Doctor").scalar()

    record = db_role_lookup(role_id)
    assert record == RoleRecord(name="Doctor", permissions={"opd": {"read": True}})
    assert db_role_lookup(role_id + 100) is None


def test_gate_logs_refusals(caplog):
    client = _gate_client(_default_lookup())
    with caplog.at_level(logging.WARNING, logger="app.core.permission_gate"):
        client.delete("/api/appointments/7", headers=_headers(RECEPTIONIST_TOKEN))
    messages = [record.getMessage() for record in caplog.records]
    assert any(
        message.startswith("permission_denied ")
        and "path=/api/appointments/7" in message
        and "module=appointments action=delete" in message
        for message in messages
    )


def test_format_fields_drops_missing_values():
    assert format_fields(module="appointments", action=None, status=403) == "module=appointments status=403"


def test_db_caller_role_id_follows_live_session(session_factory, make_role, make_user):
    role_id = make_role("Receptionist", RECEPTIONIST.permissions)
    user = make_user("reception", role_id=role_id)
    token = create_user_token(user)

    assert db_caller_role_id(token) == role_id
    assert db_caller_role_id("not-a-jwt") is None
    assert db_caller_role_id(None) is None

    with session_factory() as db:
        db.get(User, user.id).token_version = 1
        db.commit()
    assert db_caller_role_id(token) is None


def test_db_caller_role_id_rejects_deactivated_user(session_factory, make_role, make_user):
    role_id = make_role("Receptionist", RECEPTIONIST.permissions)
    user = make_user("reception", role_id=role_id)
    token = create_user_token(user)

    with session_factory() as db:
        db.get(User, user.id).is_active = False
        db.commit()
    assert db_caller_role_id(token) is None
