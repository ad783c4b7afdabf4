"""Pytest configuration and fixtures."""

import os
import tempfile

# Keep the app's own engine (used by the lifespan hook) away from the dev database
os.environ.setdefault("DATABASE_URL", f"sqlite:///{tempfile.gettempdir()}/helpdesk_test.db")

from typing import Callable, Generator, Iterable

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import get_settings
from app.core.security import TokenCodec, get_password_hash
from app.db.base import Base
from app.db.session import get_db
from app.main import app
# Import all models to ensure they're registered with Base.metadata
from app.models import *  # noqa: F401,F403
from app.models.user import User
from app.services.user_service import ensure_default_roles, get_role

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

DEFAULT_PASSWORD = "Str0ng!Pass"


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session with the built-in roles seeded."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    ensure_default_roles(session)
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # Disable the per-IP request throttle during tests to avoid flaky failures
    from app.core.rate_limit import limiter
    limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def codec(settings) -> TokenCodec:
    return TokenCodec.from_settings(settings)


@pytest.fixture
def make_user(db_session: Session) -> Callable[..., User]:
    """Factory for users holding the given roles."""
    counter = {"n": 0}

    def _make(
        roles: Iterable[str] = ("customer",),
        email: str = None,
        password: str = DEFAULT_PASSWORD,
        status: str = "active",
        email_verified: bool = True,
        first_name: str = "Test",
        last_name: str = "User",
    ) -> User:
        counter["n"] += 1
        user = User(
            first_name=first_name,
            last_name=last_name,
            email=email or f"user{counter['n']}@example.com",
            password_hash=get_password_hash(password),
            email_verified=email_verified,
            status=status,
        )
        user.roles.extend(get_role(db_session, name) for name in roles)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def auth_headers(codec: TokenCodec) -> Callable[[User], dict]:
    """Build ``Authorization`` headers carrying a fresh token for a user."""
    def _headers(user: User) -> dict:
        token = codec.issue({"sub": str(user.id), "email": user.email, "name": user.full_name})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def customer(make_user) -> User:
    return make_user(("customer",), email="customer@example.com", first_name="Casey", last_name="Customer")


@pytest.fixture
def support_agent(make_user) -> User:
    return make_user(("support",), email="support@example.com", first_name="Sam", last_name="Support")


@pytest.fixture
def manager(make_user) -> User:
    return make_user(("manager",), email="manager@example.com", first_name="Morgan", last_name="Manager")


@pytest.fixture
def admin(make_user) -> User:
    return make_user(("admin",), email="admin@example.com", first_name="Ada", last_name="Admin")
