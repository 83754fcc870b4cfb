"""
Pytest configuration and fixtures for backend tests.
"""

import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add backend directory to path for imports
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Set test environment variables before importing config
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["http://localhost:3000"]'
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["LOG_DIR"] = ""
os.environ["SENTRY_DSN"] = ""
os.environ["ENABLE_SCHEDULER"] = "false"
os.environ["ADMIN_EMAIL"] = "admin@test.com"
os.environ["ADMIN_PASSWORD"] = "TestAdmin123!"
# Valid Fernet key for TOTP secret encryption (base64-encoded 32 bytes)
os.environ["MFA_ENCRYPTION_KEY"] = "P0LYDU58oBna0xcCcu-fgUPuS02-HzzJRarCoSA1ySA="

from authentication.auth import create_access_token, get_password_hash  # noqa: E402
from repositories.database import Base, get_db  # noqa: E402
import repositories.db_models as db_models  # noqa: E402

TEST_PASSWORD = "CorrectHorse42!"

# Test database engine (in-memory SQLite)
TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh in-memory database session for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db(db_session):
    """Alias for db_session."""
    return db_session


@pytest.fixture(scope="function")
def client(db_session):
    """Create a test client with overridden database dependency."""
    from main import app
    from helpers.rate_limiter import limiter

    # Reset rate limiter storage before each test to prevent rate limit errors
    limiter.reset()

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_account(
    db_session,
    email: str,
    password: str = TEST_PASSWORD,
    is_admin: bool = False,
    is_active: bool = True,
) -> db_models.Account:
    account = db_models.Account(
        email=email,
        hashed_password=get_password_hash(password),
        is_active=is_active,
        is_admin=is_admin,
    )
    db_session.add(account)
    db_session.commit()
    db_session.refresh(account)
    return account


@pytest.fixture
def test_account(db_session) -> db_models.Account:
    """Create a regular active account."""
    return make_account(db_session, "user@example.com")


@pytest.fixture
def other_account(db_session) -> db_models.Account:
    """Create another account (for ownership tests)."""
    return make_account(db_session, "other@example.com")


@pytest.fixture
def admin_account(db_session) -> db_models.Account:
    """Create an admin account."""
    return make_account(db_session, "admin@example.com", is_admin=True)


@pytest.fixture
def auth_headers(test_account) -> dict:
    """Bearer headers for the regular account."""
    token = create_access_token(test_account.id, test_account.email)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_auth_headers(admin_account) -> dict:
    """Bearer headers for the admin account."""
    token = create_access_token(admin_account.id, admin_account.email)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def account_factory(db_session):
    """Factory fixture creating accounts with the shared test password."""

    def _create(email: str, **kwargs) -> db_models.Account:
        return make_account(db_session, email, **kwargs)

    return _create


@pytest.fixture
def test_password() -> str:
    """Plain password shared by every fixture account."""
    return TEST_PASSWORD
