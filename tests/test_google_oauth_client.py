"""Tests for the Google OAuth HTTP client."""

import pytest
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

import requests

from todocal.integrations.errors import ProviderError, ProviderUnavailable
from todocal.integrations.google_oauth_client import (
    GOOGLE_REVOKE_URL,
    GOOGLE_TOKEN_URL,
    GoogleOAuthClient,
)
from todocal.models.integration import TokenResponse


@pytest.fixture
def client():
    return GoogleOAuthClient(
        client_id="client-id",
        client_secret="client-secret",
        redirect_uri="http://testserver/oauth/google/callback",
        timeout=3.0,
    )


def test_authorization_url_requests_offline_consent(client):
    url = client.authorization_url("nonce-1")
    query = parse_qs(urlparse(url).query)

    assert url.startswith("https://accounts.google.com/o/oauth2/v2/auth?")
    assert query["state"] == ["nonce-1"]
    assert query["access_type"] == ["offline"]
    assert query["prompt"] == ["consent"]
    assert query["response_type"] == ["code"]
    assert query["redirect_uri"] == ["http://testserver/oauth/google/callback"]
    assert "https://www.googleapis.com/auth/calendar.readonly" in query["scope"][0].split()


def test_exchange_code_posts_form(client, token_response_factory):
    payload = {"access_token": "A", "expires_in": 3599, "refresh_token": "R", "scope": "openid", "token_type": "Bearer"}
    with patch(
        "todocal.integrations.google_oauth_client.requests.post",
        return_value=token_response_factory(payload),
    ) as mock_post:
        tokens = client.exchange_code("auth-code")

    assert tokens == TokenResponse(**payload)
    args, kwargs = mock_post.call_args
    assert args[0] == GOOGLE_TOKEN_URL
    assert kwargs["data"]["grant_type"] == "authorization_code"
    assert kwargs["data"]["code"] == "auth-code"
    assert kwargs["data"]["client_secret"] == "client-secret"
    assert kwargs["timeout"] == 3.0


def test_refresh_posts_refresh_grant(client, token_response_factory):
    with patch(
        "todocal.integrations.google_oauth_client.requests.post",
        return_value=token_response_factory({"access_token": "A2", "expires_in": 3600}),
    ) as mock_post:
        tokens = client.refresh("R")

    assert tokens.access_token == "A2"
    assert tokens.refresh_token is None
    data = mock_post.call_args.kwargs["data"]
    assert data["grant_type"] == "refresh_token"
    assert data["refresh_token"] == "R"


def test_error_response_carries_oauth_error_code(client, token_response_factory):
    with patch(
        "todocal.integrations.google_oauth_client.requests.post",
        return_value=token_response_factory({"error": "invalid_grant"}, ok=False, status_code=400),
    ):
        with pytest.raises(ProviderError) as exc_info:
            client.refresh("R")

    assert exc_info.value.http_status == 400
    assert exc_info.value.error == "invalid_grant"


def test_non_json_error_response(client):
    resp = MagicMock()
    resp.ok = False
    resp.status_code = 500
    resp.json.side_effect = ValueError("no json")
    with patch("todocal.integrations.google_oauth_client.requests.post", return_value=resp):
        with pytest.raises(ProviderError) as exc_info:
            client.exchange_code("code")
    assert exc_info.value.error is None


def test_malformed_success_payload_is_provider_error(client, token_response_factory):
    with patch(
        "todocal.integrations.google_oauth_client.requests.post",
        return_value=token_response_factory({"token_type": "Bearer"}),
    ):
        with pytest.raises(ProviderError):
            client.exchange_code("code")


def test_network_failure_is_provider_unavailable(client):
    with patch(
        "todocal.integrations.google_oauth_client.requests.post",
        side_effect=requests.ConnectionError("down"),
    ):
        with pytest.raises(ProviderUnavailable):
            client.exchange_code("code")


def test_missing_client_credentials():
    client = GoogleOAuthClient(client_id="id", client_secret=None, timeout=1.0)
    client.client_secret = None
    with patch("todocal.integrations.google_oauth_client.requests.post") as mock_post:
        with pytest.raises(RuntimeError):
            client.refresh("R")
    mock_post.assert_not_called()


def test_revoke_posts_token(client, token_response_factory):
    with patch(
        "todocal.integrations.google_oauth_client.requests.post",
        return_value=token_response_factory({}),
    ) as mock_post:
        client.revoke("A")

    args, kwargs = mock_post.call_args
    assert args[0] == GOOGLE_REVOKE_URL
    assert kwargs["data"] == {"token": "A"}


def test_revoke_error(client, token_response_factory):
    with patch(
        "todocal.integrations.google_oauth_client.requests.post",
        return_value=token_response_factory({"error": "invalid_token"}, ok=False, status_code=400),
    ):
        with pytest.raises(ProviderError):
            client.revoke("A")


def test_identity_claims_verifies_id_token(client):
    claims = {"id": "sub-1", "email": "a@example.com", "name": "A", "avatar": None}
    with patch(
        "todocal.integrations.google_oauth_client.verify_google_token",
        return_value=claims,
    ) as mock_verify:
        result = client.identity_claims(TokenResponse(access_token="A", id_token="jwt"))

    assert result == claims
    mock_verify.assert_called_once_with("jwt", "client-id", timeout=3.0)


def test_identity_claims_without_id_token(client):
    with patch("todocal.integrations.google_oauth_client.verify_google_token") as mock_verify:
        assert client.identity_claims(TokenResponse(access_token="A")) is None
    mock_verify.assert_not_called()


def test_id_token_cert_fetch_uses_client_timeout(client):
    seen = {}

    def fake_request(self, method, url, **kwargs):
        seen["url"] = url
        seen["timeout"] = kwargs.get("timeout")
        raise requests.ConnectionError("offline")

    with patch("requests.Session.request", new=fake_request):
        result = client.identity_claims(TokenResponse(access_token="A", id_token="x.y.z"))

    assert result is None
    assert seen["timeout"] == client.timeout
