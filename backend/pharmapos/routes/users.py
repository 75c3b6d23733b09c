# Overview: Flask API routes for user management; parses input and returns JSON responses.

"""
User management routes.

All endpoints require the users module, which is restricted to ADMIN.
"""

from flask import Blueprint, request, g, current_app

from ..domain import UserRole, jsonable
from ..permissions import Module
from ..services import user_service
from ..services.auth_service import PasswordValidationError
from ..services.snapshot_service import get_snapshot
from ..validation import ValidationError, ConflictError, NotFoundError
from ..decorators import require_auth, require_module


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


def _user_error_response(e: Exception):
    if isinstance(e, (ValidationError, PasswordValidationError)):
        return {"error": str(e)}, 400
    if isinstance(e, NotFoundError):
        return {"error": str(e)}, 404
    if isinstance(e, ConflictError):
        return {"error": str(e)}, 409
    current_app.logger.exception("User operation failed")
    return {"error": "Operation failed"}, 500


@users_bp.get("")
@require_auth
@require_module(Module.USERS, UserRole.ADMIN)
def list_users():
    users = user_service.list_users(get_snapshot())
    return {"users": jsonable(users), "count": len(users)}


@users_bp.post("")
@require_auth
@require_module(Module.USERS, UserRole.ADMIN)
def create_user():
    """
    Create an operator account.

    Body: name, lastName, documentId, username, password, role, allowedModules
    """
    data = request.get_json(silent=True) or {}
    try:
        user = user_service.create_user(data)
    except Exception as e:
        return _user_error_response(e)
    return {"user": user.to_dict()}, 201


@users_bp.put("/<int:user_id>")
@require_auth
@require_module(Module.USERS, UserRole.ADMIN)
def update_user(user_id: int):
    """Update profile, role, modules or active flag; a non-empty password resets it."""
    data = request.get_json(silent=True) or {}
    try:
        user = user_service.update_user(user_id, data, g.current_user)
    except Exception as e:
        return _user_error_response(e)
    return {"user": user.to_dict()}


@users_bp.delete("/<int:user_id>")
@require_auth
@require_module(Module.USERS, UserRole.ADMIN)
def delete_user(user_id: int):
    try:
        user_service.delete_user(user_id, g.current_user)
    except Exception as e:
        return _user_error_response(e)
    return {"message": "User deleted"}
