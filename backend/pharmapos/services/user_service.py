# Overview: Service-layer operations for operator accounts; encapsulates business logic and database work.

"""
User Management Service

RULES:
- Usernames are unique (ConflictError on duplicates).
- ADMIN accounts always hold every module; the stored list is rewritten on
  each save so a later demotion starts from a clean list.
- Non-admin accounts may only be granted assignable modules (no dashboard,
  nothing with a role requirement).
- At least one active ADMIN always remains: the last one cannot be deleted,
  deactivated or demoted. An ADMIN cannot delete or deactivate themself.
- Deactivating or deleting a user revokes their sessions in the same transaction.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..domain import UserRole
from ..extensions import db
from ..models import User
from ..permissions import ADMIN_MODULES, ASSIGNABLE_MODULES, DEFAULT_USER_MODULES, validate_module_id
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    validate_payload,
)
from . import record_store
from .auth_service import hash_password
from .session_service import revoke_all_user_sessions
from .snapshot_service import current_snapshot


USER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "lastName", "documentId", "username", "role", "allowedModules", "active"},
    required_on_create={"name", "username", "role"},
)


def _normalize_modules(role: str, modules) -> list[str]:
    if role == UserRole.ADMIN:
        return list(ADMIN_MODULES)

    if modules is None:
        return list(DEFAULT_USER_MODULES)

    normalized = []
    for module_id in modules:
        if not validate_module_id(module_id):
            raise ValidationError(f"Unknown module: {module_id}")
        if module_id not in ASSIGNABLE_MODULES:
            raise ValidationError(f"Module cannot be assigned: {module_id}")
        if module_id not in normalized:
            normalized.append(module_id)
    return normalized


def _validate_role(role) -> str:
    if role not in UserRole.ALL:
        raise ValidationError(f"role must be one of {', '.join(UserRole.ALL)}")
    return role


def _username_taken(username: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(User.id).filter(User.username == username)
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    return query.first() is not None


def _other_active_admins(user_id: int) -> int:
    return db.session.query(User).filter(
        User.role == UserRole.ADMIN,
        User.active.is_(True),
        User.id != user_id,
    ).count()


def _commit_user() -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Username already exists")


def list_users(snapshot=None) -> list[dict]:
    snapshot = snapshot or current_snapshot()
    return sorted(snapshot.users, key=lambda u: (u.get("username") or "").lower())


def get_user(user_id: int) -> User:
    user = record_store.get_by_id("users", user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def create_user(data: dict, snapshot=None) -> User:
    """
    Create an operator account.

    Raises ValidationError, PasswordValidationError or ConflictError.
    """
    payload = dict(data or {})
    password = payload.pop("password", None)

    patch = validate_payload(
        model=User, collection="users", payload=payload, policy=USER_POLICY, partial=False,
    )
    role = _validate_role(patch["role"])
    patch["allowedModules"] = _normalize_modules(role, patch.get("allowedModules"))
    patch.setdefault("lastName", "")
    patch.setdefault("documentId", "")

    if _username_taken(patch["username"]):
        raise ConflictError("Username already exists")

    patch["password_hash"] = hash_password(password or "")

    user = record_store.insert_one("users", patch)
    _commit_user()

    (snapshot or current_snapshot()).upsert("users", user.to_record())
    current_app.logger.info("User created: %s (%s)", user.username, user.role)
    return user


def update_user(user_id: int, data: dict, actor: User, snapshot=None) -> User:
    """
    Update profile, role, modules, active flag and optionally reset the password.
    """
    payload = dict(data or {})
    password = payload.pop("password", None)

    patch = validate_payload(
        model=User, collection="users", payload=payload, policy=USER_POLICY, partial=True,
    )

    user = get_user(user_id)

    role = _validate_role(patch["role"]) if "role" in patch else user.role
    if "role" in patch or "allowedModules" in patch:
        modules = patch.get("allowedModules")
        if modules is None and user.role != UserRole.ADMIN:
            modules = user.allowed_modules
        patch["allowedModules"] = _normalize_modules(role, modules)

    if "username" in patch and _username_taken(patch["username"], exclude_id=user.id):
        raise ConflictError("Username already exists")

    deactivating = patch.get("active") is False and user.active
    demoting = user.role == UserRole.ADMIN and role != UserRole.ADMIN

    if deactivating and actor is not None and actor.id == user.id:
        raise ConflictError("You cannot deactivate your own account")

    if (deactivating or demoting) and user.role == UserRole.ADMIN and user.active:
        if _other_active_admins(user.id) == 0:
            raise ConflictError("At least one active ADMIN must remain")

    if password:
        patch["password_hash"] = hash_password(password)

    try:
        record_store.update_by_id("users", user.id, patch)
        if deactivating or password:
            revoke_all_user_sessions(
                user.id,
                "User deactivated" if deactivating else "Password reset",
                commit=False,
            )
    except Exception:
        db.session.rollback()
        raise
    _commit_user()

    (snapshot or current_snapshot()).upsert("users", user.to_record())
    current_app.logger.info("User updated: %s by %s", user.username, getattr(actor, "username", None))
    return user


def delete_user(user_id: int, actor: User, snapshot=None) -> None:
    """
    Permanently delete an account.

    Sales and movements keep the user's denormalized name.
    """
    user = get_user(user_id)

    if actor is not None and actor.id == user.id:
        raise ConflictError("You cannot delete your own account")

    if user.role == UserRole.ADMIN and user.active and _other_active_admins(user.id) == 0:
        raise ConflictError("The last active ADMIN cannot be deleted")

    username = user.username
    try:
        # Session tokens go with the user (delete-orphan cascade)
        record_store.delete_by_id("users", user.id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    (snapshot or current_snapshot()).remove("users", user_id)
    current_app.logger.info("User deleted: %s by %s", username, getattr(actor, "username", None))
