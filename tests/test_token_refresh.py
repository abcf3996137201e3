"""Tests for TokenRefreshManager."""

import pytest
from datetime import datetime, timedelta

from todocal.integrations.errors import (
    NotConnected,
    ProviderError,
    ProviderUnavailable,
    ReauthorizationRequired,
    RefreshFailed,
    Revoked,
)
from todocal.integrations.token_refresh import TokenRefreshManager
from todocal.models.integration import TokenResponse


def _seed(repository, user_id, *, expires_at, refresh_token="refresh-1", access_token="access-1"):
    return repository.upsert_from_consent(
        user_id,
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=expires_at,
        scope="https://www.googleapis.com/auth/calendar.readonly",
        meta={"email": "test@example.com"},
    )


@pytest.fixture
def manager(repository, oauth_client, fixed_clock):
    return TokenRefreshManager(repository, oauth_client, skew=timedelta(seconds=60), clock=fixed_clock)


class TestEnsureFreshToken:

    def test_fresh_token_is_returned_without_provider_call(self, fixed_now, manager, repository, oauth_client, test_user_id):
        credential = _seed(repository, test_user_id, expires_at=fixed_now + timedelta(minutes=30))

        assert manager.ensure_fresh_token(credential) == "access-1"
        oauth_client.refresh.assert_not_called()

    def test_token_inside_skew_window_is_refreshed(self, fixed_now, manager, repository, oauth_client, test_user_id):
        credential = _seed(repository, test_user_id, expires_at=fixed_now + timedelta(seconds=30))
        oauth_client.refresh.return_value = TokenResponse(access_token="A2", expires_in=3600)

        assert manager.ensure_fresh_token(credential) == "A2"
        oauth_client.refresh.assert_called_once_with("refresh-1")

    def test_expired_token_refresh_persists_new_token_and_expiry(self, fixed_now, manager, repository, oauth_client, test_user_id):
        credential = _seed(repository, test_user_id, expires_at=fixed_now - timedelta(minutes=5))
        oauth_client.refresh.return_value = TokenResponse(access_token="A2", expires_in=3600)

        token = manager.ensure_fresh_token(credential)

        stored = repository.get(test_user_id)
        assert token == "A2"
        assert stored.access_token == "A2"
        assert stored.expires_at == fixed_now + timedelta(seconds=3600) - timedelta(seconds=60)
        assert stored.refresh_token == "refresh-1"

    def test_missing_expiry_triggers_refresh(self, fixed_now, manager, repository, oauth_client, test_user_id):
        credential = _seed(repository, test_user_id, expires_at=None)
        oauth_client.refresh.return_value = TokenResponse(access_token="A2", expires_in=3600)

        assert manager.ensure_fresh_token(credential) == "A2"

    def test_rotated_refresh_token_is_stored(self, fixed_now, manager, repository, oauth_client, test_user_id):
        credential = _seed(repository, test_user_id, expires_at=fixed_now - timedelta(minutes=5))
        oauth_client.refresh.return_value = TokenResponse(access_token="A2", expires_in=3600, refresh_token="refresh-2")

        manager.ensure_fresh_token(credential)

        assert repository.get(test_user_id).refresh_token == "refresh-2"

    def test_revoked_credential_fails(self, fixed_now, manager, repository, oauth_client, test_user_id):
        _seed(repository, test_user_id, expires_at=fixed_now + timedelta(hours=1))
        credential = repository.mark_revoked(test_user_id)

        with pytest.raises(Revoked):
            manager.ensure_fresh_token(credential)
        oauth_client.refresh.assert_not_called()

    def test_expired_without_refresh_token_requires_reauthorization(self, fixed_now, manager, repository, oauth_client, test_user_id):
        credential = _seed(repository, test_user_id, expires_at=fixed_now - timedelta(minutes=5), refresh_token=None)

        with pytest.raises(ReauthorizationRequired):
            manager.ensure_fresh_token(credential)
        oauth_client.refresh.assert_not_called()

    def test_provider_error_leaves_credential_untouched(self, fixed_now, manager, repository, oauth_client, test_user_id):
        expires_at = fixed_now - timedelta(minutes=5)
        credential = _seed(repository, test_user_id, expires_at=expires_at)
        oauth_client.refresh.side_effect = ProviderError("boom", http_status=500, error="internal_failure")

        with pytest.raises(RefreshFailed):
            manager.ensure_fresh_token(credential)

        stored = repository.get(test_user_id)
        assert stored.access_token == "access-1"
        assert stored.expires_at == expires_at

    def test_network_failure_is_refresh_failed(self, fixed_now, manager, repository, oauth_client, test_user_id):
        credential = _seed(repository, test_user_id, expires_at=fixed_now - timedelta(minutes=5))
        oauth_client.refresh.side_effect = ProviderUnavailable("timeout")

        with pytest.raises(RefreshFailed):
            manager.ensure_fresh_token(credential)
        assert repository.get(test_user_id).access_token == "access-1"

    def test_rejected_refresh_token_requires_reauthorization(self, fixed_now, manager, repository, oauth_client, test_user_id):
        credential = _seed(repository, test_user_id, expires_at=fixed_now - timedelta(minutes=5))
        oauth_client.refresh.side_effect = ProviderError("bad grant", http_status=400, error="invalid_grant")

        with pytest.raises(ReauthorizationRequired):
            manager.ensure_fresh_token(credential)
        assert repository.get(test_user_id).access_token == "access-1"

    def test_credential_deleted_during_refresh(self, fixed_now, manager, repository, oauth_client, test_user_id):
        credential = _seed(repository, test_user_id, expires_at=fixed_now - timedelta(minutes=5))
        repository.delete(test_user_id)
        oauth_client.refresh.return_value = TokenResponse(access_token="A2", expires_in=3600)

        with pytest.raises(NotConnected):
            manager.ensure_fresh_token(credential)


class TestFreshTokenFor:

    def test_not_connected(self, fixed_now, manager, test_user_id):
        with pytest.raises(NotConnected):
            manager.fresh_token_for(test_user_id)

    def test_returns_token_and_credential(self, fixed_now, manager, repository, test_user_id):
        _seed(repository, test_user_id, expires_at=fixed_now + timedelta(hours=1))

        token, credential = manager.fresh_token_for(test_user_id)

        assert token == "access-1"
        assert credential.user_id == test_user_id
