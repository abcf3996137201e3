"""Pytest fixtures and configuration for todocal tests."""

import os

from cryptography.fernet import Fernet

# Configure before any todocal import builds the engine or reads settings.
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["TOKEN_ENCRYPTION_KEY"] = Fernet.generate_key().decode("utf-8")
os.environ["GOOGLE_OAUTH_CLIENT_ID"] = "test-client-id.apps.googleusercontent.com"
os.environ["GOOGLE_OAUTH_CLIENT_SECRET"] = "test-client-secret"
os.environ["GOOGLE_OAUTH_REDIRECT_URI"] = "http://testserver/oauth/google/callback"
os.environ["APP_URL"] = "http://testserver"

import pytest
from datetime import datetime
from unittest.mock import MagicMock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from todocal.database.database import Base
from todocal.database.integration_repository import IntegrationRepository
from todocal.database.models import UserDB
from todocal.integrations.google_oauth_client import GoogleOAuthClient


# Use in-memory SQLite database for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

# Fixed "now" for clock-dependent tests (naive UTC, like stored timestamps)
FIXED_NOW = datetime(2025, 9, 20, 12, 0, 0)


@pytest.fixture
def test_user_id():
    """Test user ID for multi-user testing."""
    return "test-user-123"


@pytest.fixture(scope="function")
def db_session(test_user_id):
    """Create a database session for testing.
    
    Uses an in-memory SQLite database that is created fresh for each test.
    Also creates a test user in the database.
    """
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )
    
    Base.metadata.create_all(bind=engine)
    
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    
    # Create test users (required for foreign key constraints)
    now = datetime.utcnow()
    session.add(UserDB(id=test_user_id, email="test@example.com", name="Test User", created_at=now, updated_at=now))
    session.add(UserDB(id="other-user-456", email="other@example.com", name="Other User", created_at=now, updated_at=now))
    session.commit()
    
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def repository(db_session: Session):
    """Create an IntegrationRepository instance for testing."""
    return IntegrationRepository(db_session)


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def fixed_clock(fixed_now):
    return lambda: fixed_now


@pytest.fixture
def oauth_client():
    """A GoogleOAuthClient double; provider calls are configured per test."""
    client = MagicMock(spec=GoogleOAuthClient)
    client.timeout = 5.0
    client.authorization_url.side_effect = lambda state: f"https://accounts.google.com/o/oauth2/v2/auth?state={state}"
    client.identity_claims.return_value = None
    return client


@pytest.fixture
def token_response_factory():
    """Build a MagicMock `requests` response for the Google token endpoint."""
    def _make(payload=None, ok=True, status_code=200):
        resp = MagicMock()
        resp.ok = ok
        resp.status_code = status_code
        resp.json.return_value = payload if payload is not None else {}
        return resp
    return _make


@pytest.fixture
def test_user(test_user_id):
    """Create a test user object."""
    from todocal.models.user import User
    now = datetime.utcnow()
    return User(
        id=test_user_id,
        email="test@example.com",
        name="Test User",
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def test_client(db_session: Session, test_user):
    """Create a FastAPI test client with overridden database dependency and authentication."""
    from todocal.api.app import app
    from todocal.database.database import get_db
    from todocal.auth.dependencies import get_current_user
    
    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close the session here, let the fixture handle it
    
    def override_get_current_user():
        return test_user
    
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    
    with TestClient(app) as client:
        yield client
    
    app.dependency_overrides.clear()
