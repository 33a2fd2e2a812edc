"""
Module x action permission matrix shared by the API gate and the client.

Stored role permissions are schemaless JSON and may still use the legacy
read/write/delete shape, so every read goes through normalize_permissions().
"""

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Literal

Action = Literal["view", "add", "edit", "delete"]
PermissionMatrix = dict[str, dict[str, bool]]

PERMISSION_ACTIONS: tuple[Action, ...] = ("view", "add", "edit", "delete")

PERMISSION_MODULES: tuple[tuple[str, str], ...] = (
    ("dashboard", "Dashboard"),
    ("make_payment", "Make Payment (POS)"),
    ("opd", "OPD Management"),
    ("appointments", "Appointments"),
    ("services", "Services"),
    ("lab_tests", "Lab Tests"),
    ("medicines", "Medicines"),
    ("doctors", "Doctor Management"),
    ("patients", "Patient Registration"),
    ("expenses", "Expenses"),
    ("bank_transactions", "Bank Transactions"),
    ("investments", "Investments"),
    ("salary", "Salary"),
    ("user_role", "User & Role"),
    ("authentication", "Authentication"),
    ("integrations", "Integrations"),
    ("reports", "Reports"),
    ("settings", "Settings"),
)

MODULE_KEYS: tuple[str, ...] = tuple(key for key, _ in PERMISSION_MODULES)

# Older rows stored read/write/delete; write grants both add and edit.
LEGACY_ACTION_ALIASES: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "view": ("view", "read"),
    "add": ("add", "write"),
    "edit": ("edit", "write"),
    "delete": ("delete",),
})

LEGACY_MODULE_KEYS: Mapping[str, str] = MappingProxyType({
    "make_payment": "billing",
    "bank_transactions": "bank",
    "user_role": "staff",
})

# First match wins; no prefix may shadow a later one.
ROUTE_TO_MODULE: tuple[tuple[str, str], ...] = (
    ("/api/dashboard", "dashboard"),
    ("/api/bills", "make_payment"),
    ("/api/opd-visits", "opd"),
    ("/api/appointments", "appointments"),
    ("/api/services", "services"),
    ("/api/packages", "services"),
    ("/api/injections", "services"),
    ("/api/lab-tests", "lab_tests"),
    ("/api/sample-collections", "lab_tests"),
    ("/api/medicines", "medicines"),
    ("/api/medicine-purchases", "medicines"),
    ("/api/doctors", "doctors"),
    ("/api/patients", "patients"),
    ("/api/expenses", "expenses"),
    ("/api/bank-transactions", "bank_transactions"),
    ("/api/investments", "investments"),
    ("/api/investors", "investments"),
    ("/api/contributions", "investments"),
    ("/api/salaries", "salary"),
    ("/api/salary-profiles", "salary"),
    ("/api/salary-loans", "salary"),
    ("/api/loan-installments", "salary"),
    ("/api/payroll-runs", "salary"),
    ("/api/payslips", "salary"),
    ("/api/users", "user_role"),
    ("/api/roles", "user_role"),
    ("/api/integrations", "integrations"),
    ("/api/reports", "reports"),
    ("/api/settings", "settings"),
    ("/api/activity-logs", "settings"),
)

PUBLIC_PREFIXES: tuple[str, ...] = ("/api/auth", "/api/public", "/api/health")

# Sidebar entries; packages and sample collections live under their parent modules.
NAV_TO_MODULE: Mapping[str, str] = MappingProxyType({
    "/": "dashboard",
    "/billing": "make_payment",
    "/opd": "opd",
    "/appointments": "appointments",
    "/services": "services",
    "/packages": "services",
    "/lab-tests": "lab_tests",
    "/sample-collections": "lab_tests",
    "/medicines": "medicines",
    "/doctors": "doctors",
    "/register-patient": "patients",
    "/expenses": "expenses",
    "/bank": "bank_transactions",
    "/investments": "investments",
    "/salary": "salary",
    "/staff": "user_role",
    "/authentication": "authentication",
    "/integrations": "integrations",
    "/reports": "reports",
    "/settings": "settings",
})

ADMIN_ROLE_NAME = "Admin"

_METHOD_ACTIONS: Mapping[str, Action] = MappingProxyType({
    "GET": "view",
    "POST": "add",
    "PUT": "edit",
    "PATCH": "edit",
    "DELETE": "delete",
})


def build_default_matrix() -> PermissionMatrix:
    return {key: {action: False for action in PERMISSION_ACTIONS} for key in MODULE_KEYS}


def build_full_matrix() -> PermissionMatrix:
    return {key: {action: True for action in PERMISSION_ACTIONS} for key in MODULE_KEYS}


def normalize_permissions(stored: Any) -> PermissionMatrix:
    """Translate whatever is stored on a role into a complete canonical matrix.

    Unknown module keys are dropped, legacy module keys are used only when the
    canonical key is missing, and a flag counts only if it is exactly ``True``.
    Never raises.
    """
    matrix = build_default_matrix()
    if not isinstance(stored, Mapping) or not stored:
        return matrix

    for key in MODULE_KEYS:
        entry = stored.get(key)
        if entry is None:
            legacy_key = LEGACY_MODULE_KEYS.get(key)
            entry = stored.get(legacy_key) if legacy_key else None
        if not isinstance(entry, Mapping):
            continue
        for action in PERMISSION_ACTIONS:
            aliases = LEGACY_ACTION_ALIASES.get(action, (action,))
            matrix[key][action] = any(entry.get(alias) is True for alias in aliases)
    return matrix


def is_admin_role_name(role_name: str | None) -> bool:
    return (role_name or "").lower() == ADMIN_ROLE_NAME.lower()


def is_allowed(
    matrix: Mapping[str, Any] | None,
    module_key: str,
    action: Action,
    role_name: str | None = None,
) -> bool:
    if is_admin_role_name(role_name):
        return True
    if not isinstance(matrix, Mapping):
        return False
    entry = matrix.get(module_key)
    if not isinstance(entry, Mapping):
        return False
    return entry.get(action) is True


def can_view(matrix: Mapping[str, Any] | None, module_key: str, role_name: str | None = None) -> bool:
    return is_allowed(matrix, module_key, "view", role_name)


def can_add(matrix: Mapping[str, Any] | None, module_key: str, role_name: str | None = None) -> bool:
    return is_allowed(matrix, module_key, "add", role_name)


def can_edit(matrix: Mapping[str, Any] | None, module_key: str, role_name: str | None = None) -> bool:
    return is_allowed(matrix, module_key, "edit", role_name)


def can_delete(matrix: Mapping[str, Any] | None, module_key: str, role_name: str | None = None) -> bool:
    return is_allowed(matrix, module_key, "delete", role_name)


def resolve_module_for_path(path: str) -> str | None:
    for prefix, module in ROUTE_TO_MODULE:
        if path.startswith(prefix):
            return module
    return None


def is_public_path(path: str) -> bool:
    return any(path.startswith(prefix) for prefix in PUBLIC_PREFIXES)


def method_to_action(method: str) -> Action:
    # Unknown verbs fall back to view.
    return _METHOD_ACTIONS.get((method or "").upper(), "view")


def count_granted(matrix: Mapping[str, Any] | None) -> int:
    normalized = normalize_permissions(matrix)
    return sum(1 for flags in normalized.values() for value in flags.values() if value)


def visible_navigation(matrix: Mapping[str, Any] | None, role_name: str | None = None) -> list[str]:
    return [path for path, module in NAV_TO_MODULE.items() if can_view(matrix, module, role_name)]


def permissions_config_payload() -> dict:
    return {
        "actions": list(PERMISSION_ACTIONS),
        "modules": [{"key": key, "label": label} for key, label in PERMISSION_MODULES],
        "legacy_module_keys": dict(LEGACY_MODULE_KEYS),
        "nav_to_module": dict(NAV_TO_MODULE),
        "route_to_module": [{"prefix": prefix, "module": module} for prefix, module in ROUTE_TO_MODULE],
        "public_prefixes": list(PUBLIC_PREFIXES),
        "admin_role": ADMIN_ROLE_NAME,
    }
