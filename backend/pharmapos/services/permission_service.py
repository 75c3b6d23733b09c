# Overview: Service-layer operations for authorization; the single module access gate.

"""
Module Access Control

WHY: One predicate decides every module-level and action-level guard.
Routes use it through decorators.require_module / require_admin; nothing
else inspects roles or allowed modules directly.

RULES (in order):
1. dashboard is open to any authenticated user
2. ADMIN passes every check, regardless of role requirement or allowed modules
3. a role requirement the user does not hold denies
4. otherwise the module must be in the user's allowed modules

Denials are logged and raised; they are never a silent no-op.
"""

from flask import current_app, has_app_context

from ..domain import UserRole
from ..permissions import Module, MODULE_DEFINITIONS


class PermissionDeniedError(Exception):
    """Raised when user lacks access to a module or action."""
    pass


def _role_of(user) -> str | None:
    if isinstance(user, dict):
        return user.get("role")
    return getattr(user, "role", None)


def _modules_of(user) -> list[str]:
    if isinstance(user, dict):
        modules = user.get("allowedModules")
    else:
        modules = getattr(user, "allowed_modules", None)
    return list(modules or [])


def can_access(user, module_id: str, role_requirement: str | None = None) -> bool:
    """
    Authorization predicate for a (user, module, optional role) triple.

    `user` may be a User row or a domain dict from the snapshot.
    """
    if user is None:
        return False
    if module_id == Module.DASHBOARD:
        return True

    role = _role_of(user)
    if role == UserRole.ADMIN:
        return True
    if role_requirement and role != role_requirement:
        return False
    return module_id in _modules_of(user)


def is_admin(user) -> bool:
    return user is not None and _role_of(user) == UserRole.ADMIN


def accessible_modules(user) -> list[dict]:
    """Modules the navigation menu shows for this user, in menu order."""
    return [
        {"id": mod_id, "label": label, "description": description}
        for mod_id, label, description, role_requirement in MODULE_DEFINITIONS
        if can_access(user, mod_id, role_requirement)
    ]


def require_access(user, module_id: str, role_requirement: str | None = None, action: str | None = None) -> None:
    """Raise PermissionDeniedError unless can_access() allows it."""
    if can_access(user, module_id, role_requirement):
        return

    if has_app_context():
        current_app.logger.warning(
            "Access denied: user=%s role=%s module=%s role_requirement=%s action=%s",
            getattr(user, "username", None) if not isinstance(user, dict) else user.get("username"),
            _role_of(user),
            module_id,
            role_requirement,
            action,
        )

    if role_requirement:
        raise PermissionDeniedError(f"{module_id} requires role {role_requirement}")
    raise PermissionDeniedError(f"No access to module {module_id}")


def require_admin(user, action: str) -> None:
    """Explicit role-equality guard for ADMIN-only actions."""
    if is_admin(user):
        return
    if has_app_context():
        current_app.logger.warning(
            "Admin action denied: user=%s role=%s action=%s",
            getattr(user, "username", None) if not isinstance(user, dict) else user.get("username"),
            _role_of(user),
            action,
        )
    raise PermissionDeniedError(f"Only ADMIN may {action}")
