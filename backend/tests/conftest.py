"""
Pytest fixtures for PharmaPOS backend tests.

Provides test database setup, operator accounts for each role, and test client.
"""

import pytest

from pharmapos import create_app
from pharmapos.domain import UserRole
from pharmapos.extensions import db
from pharmapos.models import User
from pharmapos.permissions import ADMIN_MODULES, Module
from pharmapos.services import inventory_service
from pharmapos.services.auth_service import hash_password
from pharmapos.services.session_service import create_session
from pharmapos.services.snapshot_service import SNAPSHOT_EXTENSION_KEY, StateSnapshot, get_snapshot


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'FALLBACK_SNAPSHOT_PATH': '',
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database and snapshot for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        app.extensions[SNAPSHOT_EXTENSION_KEY] = StateSnapshot()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def make_user(username: str, role: str, modules=None, active: bool = True) -> User:
    user = User(
        name=username.capitalize(),
        last_name="Tester",
        document_id=f"DOC-{username}",
        username=username,
        password_hash=hash_password(PASSWORD),
        role=role,
        allowed_modules=list(ADMIN_MODULES) if role == UserRole.ADMIN else list(modules or []),
        active=active,
    )
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return make_user("admin", UserRole.ADMIN)


@pytest.fixture(scope='function')
def pharmacist_user(db_session):
    return make_user(
        "pharmacist",
        UserRole.PHARMACIST,
        [Module.INVENTORY, Module.SALES, Module.REPORTS, Module.HISTORY],
    )


@pytest.fixture(scope='function')
def cashier_user(db_session):
    return make_user("cashier", UserRole.CASHIER, [Module.SALES])


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def headers_for(user: User) -> dict:
    _, token = create_session(user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return headers_for(admin_user)


@pytest.fixture(scope='function')
def pharmacist_headers(pharmacist_user):
    return headers_for(pharmacist_user)


@pytest.fixture(scope='function')
def cashier_headers(cashier_user):
    return headers_for(cashier_user)


@pytest.fixture(scope='function')
def snapshot(db_session):
    """The app snapshot, reconciled against the (empty) test database."""
    return get_snapshot()


@pytest.fixture(scope='function')
def make_product(db_session, admin_user):
    """Factory: create a product through the inventory service (with its IN movement)."""
    def _make(**overrides):
        data = {
            "name": "Amoxicillin",
            "form": "Tablet",
            "content": "500mg",
            "line": "Vita",
            "price": "1.50",
            "cost": "0.80",
            "quantity": 100,
            "minStock": 10,
        }
        data.update(overrides)
        return inventory_service.create_product(data, admin_user)
    return _make


def get_auth_token(client, username: str, password: str = PASSWORD) -> str | None:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


@pytest.fixture(scope='function')
def make_operator(db_session):
    """Factory: (user, headers) for an ad-hoc role / module combination."""
    def _make(username, role, modules=None, active=True):
        user = make_user(username, role, modules, active)
        return user, headers_for(user)
    return _make
