# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every movement and sale is attributed to the logged-in operator.
Uses bcrypt for secure password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor BCRYPT_ROUNDS, default 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Unknown usernames still pay for one bcrypt check (no timing oracle)
- Every credential failure looks the same to the caller
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from flask import current_app, has_app_context

from ..domain import UserRole
from ..extensions import db
from ..models import User
from ..time_utils import utcnow


DEFAULT_BCRYPT_ROUNDS = 12

_dummy_hashes: dict[int, str] = {}


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class RegistrationClosed(Exception):
    """Raised when self-registration is attempted after the first account exists."""
    pass


def _rounds() -> int:
    if has_app_context():
        return int(current_app.config.get("BCRYPT_ROUNDS", DEFAULT_BCRYPT_ROUNDS))
    return DEFAULT_BCRYPT_ROUNDS


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=_rounds())
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    Returns True if password matches hash, False otherwise.
    bcrypt.checkpw() compares in constant time.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the store
        return False


def _dummy_hash() -> str:
    rounds = _rounds()
    if rounds not in _dummy_hashes:
        _dummy_hashes[rounds] = bcrypt.hashpw(b"pharmapos-dummy", bcrypt.gensalt(rounds=rounds)).decode("utf-8")
    return _dummy_hashes[rounds]


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate user with username and password.

    Returns User if credentials valid, None otherwise.
    Updates last_login_at timestamp on successful authentication.

    An unknown username, a wrong password and an inactive account all
    return None after exactly one bcrypt check.
    """
    # Exact match: surrounding whitespace is part of what was typed
    user = None
    if isinstance(username, str) and username.strip():
        user = db.session.query(User).filter(User.username == username).first()

    if user is None:
        verify_password(password or "x", _dummy_hash())
        return None

    if not verify_password(password, user.password_hash):
        return None

    if not user.active:
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def registration_open() -> bool:
    """Self-registration exists only to bootstrap the first account."""
    return db.session.query(User.id).first() is None


def register_admin(data: dict) -> User:
    """
    Create the first account of a fresh installation.

    The account is always an active ADMIN with every module, regardless of
    what the payload asks for. Raises RegistrationClosed once any user exists.
    """
    from .user_service import create_user

    if not registration_open():
        raise RegistrationClosed("Registration is closed; ask an administrator for an account")

    payload = dict(data or {})
    payload["role"] = UserRole.ADMIN
    payload["active"] = True
    payload.pop("allowedModules", None)

    user = create_user(payload)
    current_app.logger.info("Initial administrator registered: %s", user.username)
    return user
