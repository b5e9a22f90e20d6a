"""
Test fixtures for sanctuary tests.

Provides an in-memory database, an API client bound to it and staff/regular
users with bearer tokens.
"""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-for-sanctuary-analytics-tests")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from typing import Dict, Generator
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlalchemy.pool import StaticPool

from sanctuary.core import security
from sanctuary.core.jwt import create_access_token
from sanctuary.models.user import User


def pytest_collection_modifyitems(config, items):
    """Skip integration tests in CI (they need a real PostgreSQL database)."""
    if os.environ.get("CI") == "true":
        skip_integration = pytest.mark.skip(reason="Integration tests skipped in CI")
        for item in items:
            if "integration" in item.keywords:
                item.add_marker(skip_integration)


TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine with in-memory SQLite."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def test_session(test_engine) -> Generator[Session, None, None]:
    """Provide a test database session."""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(scope="function")
def client(test_engine):
    """Create test client with test database."""
    from sanctuary.db import get_session
    from sanctuary.main import app

    def override_get_session():
        with Session(test_engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    client = TestClient(app)
    yield client

    app.dependency_overrides.clear()


def _make_user(session: Session, user_id: int, email: str, role: str, password: str = "password123") -> User:
    user = User(
        id=user_id,
        email=email,
        hashed_password=security.get_password_hash(password),
        first_name=role.title(),
        last_name="Tester",
        role=role,
        is_active=True,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def admin_user(test_session: Session) -> User:
    return _make_user(test_session, 10, "admin@example.org", "admin", "adminpassword123")


@pytest.fixture
def member_user(test_session: Session) -> User:
    return _make_user(test_session, 11, "member@example.org", "member")


@pytest.fixture
def regular_user(test_session: Session) -> User:
    return _make_user(test_session, 12, "visitor@example.org", "user")


def _auth_headers(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(subject=user.email)}"}


@pytest.fixture
def admin_headers(admin_user: User) -> Dict[str, str]:
    return _auth_headers(admin_user)


@pytest.fixture
def member_headers(member_user: User) -> Dict[str, str]:
    return _auth_headers(member_user)


@pytest.fixture
def regular_headers(regular_user: User) -> Dict[str, str]:
    return _auth_headers(regular_user)
