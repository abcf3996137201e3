"""Tests for JWT session authentication on integration endpoints."""

import pytest
from fastapi.testclient import TestClient

from todocal.auth.jwt import create_access_token, get_user_id_from_token


@pytest.fixture
def unauthenticated_client(db_session):
    """Test client with the real auth dependency and the test database."""
    from todocal.api.app import app
    from todocal.database.database import get_db

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


def test_token_round_trip(test_user_id):
    token = create_access_token(test_user_id)
    assert get_user_id_from_token(token) == test_user_id


def test_garbage_token_has_no_user():
    assert get_user_id_from_token("not-a-jwt") is None


def test_missing_token_is_rejected(unauthenticated_client):
    response = unauthenticated_client.get("/integrations/google")
    assert response.status_code == 401


def test_invalid_token_is_rejected(unauthenticated_client):
    response = unauthenticated_client.get(
        "/integrations/google",
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert response.status_code == 401


def test_unknown_user_is_rejected(unauthenticated_client):
    token = create_access_token("ghost-user")
    response = unauthenticated_client.get(
        "/integrations/google",
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 401


def test_valid_token_reaches_endpoint(unauthenticated_client, test_user_id):
    token = create_access_token(test_user_id)
    response = unauthenticated_client.get(
        "/integrations/google",
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 200
    assert response.json()["connected"] is False
