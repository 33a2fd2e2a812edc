"""
Request gate: every /api request is checked against the caller's role before
any route handler runs.

Flow per request: public prefix -> pass; unknown prefix -> pass; otherwise the
bearer token is resolved to a role id, the role is looked up, its stored
permissions are normalized and the (module, action) pair is checked. The token
is only read once the path is known to be gated, and a logged-out or
deactivated session counts as no role. The Admin role passes everything. A
failed lookup is a 500, never an implicit allow or deny.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal

from fastapi import Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import SQLAlchemyError

from app.core.api_response import error_json_response
from app.core.metrics import increment_counter
from app.core.observability import log_access_refusal
from app.core.permissions import (
    Action,
    is_admin_role_name,
    is_allowed,
    is_public_path,
    method_to_action,
    normalize_permissions,
    resolve_module_for_path,
)
from app.core.security import bearer_token_from_request, role_id_for_token
from app.db.models.role import Role
from app.db.session import SessionLocal

logger = logging.getLogger(__name__)

DENIED_STATUS = 403
DENIED_CODE = "insufficient_permissions"
DENIED_MESSAGE = "Insufficient permissions"
FAILED_STATUS = 500
FAILED_CODE = "permission_check_failed"
FAILED_MESSAGE = "Permission check failed"

Outcome = Literal["public", "ungated", "admin", "allow", "deny", "error"]


class RoleLookupError(Exception):
    pass


@dataclass(frozen=True)
class RoleRecord:
    name: str
    permissions: Any


RoleLookup = Callable[[int], RoleRecord | None]
CallerResolver = Callable[[str | None], int | None]


@dataclass(frozen=True)
class GateDecision:
    outcome: Outcome
    module: str | None = None
    action: Action | None = None

    @property
    def allowed(self) -> bool:
        return self.outcome in {"public", "ungated", "admin", "allow"}


def db_role_lookup(role_id: int) -> RoleRecord | None:
    try:
        with SessionLocal() as db:
            role = db.get(Role, role_id)
            if role is None:
                return None
            return RoleRecord(name=role.name, permissions=role.permissions)
    except SQLAlchemyError as exc:
        raise RoleLookupError(f"Role lookup failed for role_id={role_id}") from exc


def db_caller_role_id(token: str | None) -> int | None:
    if not token:
        return None
    try:
        with SessionLocal() as db:
            return role_id_for_token(db, token)
    except SQLAlchemyError as exc:
        raise RoleLookupError("Session lookup failed") from exc


def evaluate_request(
    path: str,
    method: str,
    token: str | None,
    role_lookup: RoleLookup = db_role_lookup,
    caller_resolver: CallerResolver = db_caller_role_id,
) -> GateDecision:
    if is_public_path(path):
        return GateDecision("public")

    module = resolve_module_for_path(path)
    if module is None:
        return GateDecision("ungated")

    action = method_to_action(method)
    role: RoleRecord | None = None
    try:
        role_id = caller_resolver(token)
        if role_id is not None:
            role = role_lookup(role_id)
    except RoleLookupError:
        logger.exception("Permission lookup failed path=%s", path)
        return GateDecision("error", module, action)

    role_name = role.name if role else None
    if is_admin_role_name(role_name):
        return GateDecision("admin", module, action)

    matrix = normalize_permissions(role.permissions if role else {})
    if is_allowed(matrix, module, action, role_name):
        return GateDecision("allow", module, action)
    return GateDecision("deny", module, action)


def create_permission_gate(
    role_lookup: RoleLookup = db_role_lookup,
    caller_resolver: CallerResolver = db_caller_role_id,
):
    async def permission_gate(request: Request, call_next):
        path = request.url.path
        decision = await run_in_threadpool(
            evaluate_request,
            path,
            request.method,
            bearer_token_from_request(request),
            role_lookup,
            caller_resolver,
        )
        if decision.allowed:
            return await call_next(request)

        if decision.outcome == "error":
            increment_counter("permission_check_failed_total", module=decision.module or "-")
            log_access_refusal(
                logger,
                request,
                event="permission_check_failed",
                module=decision.module,
                action=decision.action,
                level=logging.ERROR,
            )
            return error_json_response(
                request,
                status_code=FAILED_STATUS,
                code=FAILED_CODE,
                message=FAILED_MESSAGE,
            )

        increment_counter(
            "permission_denied_total",
            module=decision.module or "-",
            action=decision.action or "-",
        )
        log_access_refusal(
            logger,
            request,
            event="permission_denied",
            module=decision.module,
            action=decision.action,
        )
        return error_json_response(
            request,
            status_code=DENIED_STATUS,
            code=DENIED_CODE,
            message=DENIED_MESSAGE,
        )

    return permission_gate
