"""
Pytest fixtures for invoicer backend tests.

Provides a temp-file SQLite database (so separate connections and threads
see the same data), per-test table cleanup, owners, and a test client.
"""

import pytest

from invoicer import create_app
from invoicer.extensions import db
from invoicer.models import User, Customer
from invoicer.models.auth import ROLE_ADMIN
from invoicer.services.auth_service import hash_password
from invoicer.time_utils import aware_utcnow, year_in_timezone


TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    db_path = tmp_path_factory.mktemp("db") / "invoicer-test.sqlite3"
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f'sqlite:///{db_path}',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'timeout': 30, 'check_same_thread': False}},
        'BCRYPT_ROUNDS': 4,
        'NUMBERING_TIMEZONE': 'UTC',
        'NUMBERING_MAX_ATTEMPTS': 10,
        'DOCUMENT_CREATE_ATTEMPTS': 3,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Empty every table before the test."""
    with app.app_context():
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture
def current_year():
    return year_in_timezone(aware_utcnow(), "UTC")


def _make_user(db_session, username: str, role: str = "USER") -> User:
    user = User(
        username=username,
        email=f"{username}@example.com",
        password_hash=hash_password(TEST_PASSWORD),
        role=role,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def owner_a(db_session):
    return _make_user(db_session, "owner_a")


@pytest.fixture(scope='function')
def owner_b(db_session):
    return _make_user(db_session, "owner_b")


@pytest.fixture(scope='function')
def admin_user(db_session):
    return _make_user(db_session, "admin", role=ROLE_ADMIN)


@pytest.fixture(scope='function')
def customer_a(db_session, owner_a):
    customer = Customer(owner_id=owner_a.id, name="Acme Traders", gst_number="27AAAAA0000A1Z5")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def customer_b(db_session, owner_b):
    customer = Customer(owner_id=owner_b.id, name="Beta Supplies")
    db_session.add(customer)
    db_session.commit()
    return customer


def get_auth_token(client, username: str, password: str = TEST_PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def headers_a(client, owner_a):
    return auth_headers(get_auth_token(client, owner_a.username))


@pytest.fixture
def headers_b(client, owner_b):
    return auth_headers(get_auth_token(client, owner_b.username))
