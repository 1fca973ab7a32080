"""
Pytest configuration and fixtures for the association backend tests.

Every test runs against a fresh SQLite file: the ORM tables are dropped and
recreated before each test, so tests never depend on each other's data.
Environment variables are set before ``gestionale`` is imported because the
settings object and the engine are built on first import.
"""
import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="gestionale-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["SKIP_DB_INIT"] = "1"
os.environ.setdefault("SECRET_KEY", "pytest-secret-key")

from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from gestionale.main import app
from gestionale.core.security import create_access_token, create_user
from gestionale.db.session import Base, get_engine, init_db
from gestionale.domain.reports.service import StatsService
from gestionale.utils.cancellation import CancellationRegistry


@pytest.fixture(autouse=True)
def fresh_database():
    """Recreate every table and reset process-wide state before each test."""
    engine = get_engine()
    Base.metadata.drop_all(bind=engine)
    init_db()
    app.state.cancellations = CancellationRegistry()
    app.state.stats = StatsService()
    yield


@pytest.fixture
def db_session():
    with Session(get_engine()) as session:
        yield session


@pytest.fixture
def user_factory(db_session):
    """
    Create users directly via the ORM.

    Returns a callable so tests can create both admin and standard users; each
    result carries the user, a token and ready-made auth headers.
    """

    def _create_user(*, role: str = "user", password: str = "Password123!", email: str = None) -> dict:
        email = email or f"{role}_{uuid4().hex[:12]}@example.com"
        user = create_user(
            db=db_session,
            email=email,
            password=password,
            full_name="Pytest User",
            role=role,
        )
        token = create_access_token(user)
        return {
            "user": user,
            "id": user.id,
            "token": token,
            "email": email,
            "password": password,
            "headers": {"Authorization": f"Bearer {token}"},
        }

    return _create_user


@pytest.fixture
def owner(user_factory):
    return user_factory(role="user")


@pytest.fixture
def admin(user_factory):
    return user_factory(role="admin")


@pytest.fixture
def auth_headers(owner):
    return owner["headers"]


@pytest.fixture
def admin_headers(admin):
    return admin["headers"]
