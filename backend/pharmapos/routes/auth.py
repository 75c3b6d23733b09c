# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- register-admin only works on an empty installation (first account, forced ADMIN)
- login returns a bearer token; every credential failure gets the same 401
- logout revokes the presented token
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..services import permission_service
from ..services.auth_service import PasswordValidationError, RegistrationClosed
from ..validation import ConflictError, ValidationError
from ..decorators import require_auth, bearer_token


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _session_payload(user, session, token) -> dict:
    return {
        "user": user.to_dict(),
        "modules": permission_service.accessible_modules(user),
        "token": token,
        "session": session.to_dict(),
    }


@auth_bp.get("/registration-status")
def registration_status_route():
    """Lets the login screen decide whether to show the first-run form."""
    return jsonify({"open": auth_service.registration_open()}), 200


@auth_bp.post("/register-admin")
def register_admin_route():
    """
    Create the first account of a fresh installation and log it in.

    Returns 403 once any user exists.
    """
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.register_admin(data)
        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return jsonify(_session_payload(user, session, token)), 201

    except RegistrationClosed as e:
        return jsonify({"error": str(e)}), 403
    except (ValidationError, PasswordValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to register administrator")
        return jsonify({"error": "Operation failed"}), 500


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username")
        password = data.get("password")

        if not username or not password:
            return jsonify({"error": "username and password required"}), 400

        user = auth_service.authenticate(username, password)
        if not user:
            current_app.logger.info("Failed login for username=%s from %s", username, request.remote_addr)
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        current_app.logger.info("User logged in: %s", user.username)
        payload = _session_payload(user, session, token)
        payload["message"] = "Login successful"
        return jsonify(payload), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Operation failed"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(bearer_token(), reason="User logout")
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    user = g.current_user
    return jsonify({
        "user": user.to_dict(),
        "modules": permission_service.accessible_modules(user),
        "session": g.session_context.session.to_dict(),
    }), 200
