"""Access-token refresh for stored Google credentials.

The common path is cheap: a token that is still valid beyond the skew window is
returned as-is without contacting Google. Otherwise the refresh token is
exchanged and the new (access token, expiry) pair is stored in one commit.
Failed refreshes never touch the stored credential.

Concurrent refreshes for one credential may race; each writes a complete pair,
so the last writer wins without mixing fields from two responses.
"""

import logging
import os
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple

from todocal.database.integration_repository import IntegrationRepository
from todocal.integrations.errors import (
    NotConnected,
    ProviderError,
    ProviderUnavailable,
    ReauthorizationRequired,
    RefreshFailed,
    Revoked,
)
from todocal.integrations.google_oauth_client import GoogleOAuthClient
from todocal.models.constants import (
    DEFAULT_TOKEN_LIFETIME_SECONDS,
    PROVIDER_GOOGLE,
    TOKEN_EXPIRY_SKEW_SECONDS,
)
from todocal.models.integration import IntegrationCredential

logger = logging.getLogger(__name__)

# OAuth error codes meaning the refresh token itself is no longer usable.
_REAUTH_ERRORS = {"invalid_grant", "unauthorized_client"}


def expiry_skew() -> timedelta:
    return timedelta(seconds=int(os.getenv("TOKEN_EXPIRY_SKEW_SECONDS", str(TOKEN_EXPIRY_SKEW_SECONDS))))


class TokenRefreshManager:
    """Hands out usable access tokens, refreshing them when near expiry."""

    def __init__(
        self,
        repository: IntegrationRepository,
        oauth_client: GoogleOAuthClient,
        *,
        skew: Optional[timedelta] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.repository = repository
        self.oauth_client = oauth_client
        self.skew = skew if skew is not None else expiry_skew()
        self._clock = clock

    def is_fresh(self, credential: IntegrationCredential) -> bool:
        """True if the access token outlives now + skew window."""
        if credential.expires_at is None:
            return False
        return self._clock() + self.skew < credential.expires_at

    def ensure_fresh_token(self, credential: IntegrationCredential) -> str:
        """Return a usable access token for `credential`.

        Raises:
            Revoked: credential was disconnected
            ReauthorizationRequired: no refresh token, or Google rejected it
            RefreshFailed: transient provider/network failure during refresh
        """
        if credential.revoked:
            raise Revoked()

        if self.is_fresh(credential):
            return credential.access_token

        if not credential.refresh_token:
            logger.info(f"No refresh token stored for user {credential.user_id}; re-authorization required")
            raise ReauthorizationRequired()

        try:
            token = self.oauth_client.refresh(credential.refresh_token)
        except ProviderError as e:
            if e.error in _REAUTH_ERRORS:
                logger.info(f"Refresh token rejected for user {credential.user_id} ({e.error})")
                raise ReauthorizationRequired() from e
            logger.warning(f"Token refresh failed for user {credential.user_id}: {e}")
            raise RefreshFailed() from e
        except ProviderUnavailable as e:
            logger.warning(f"Token refresh failed for user {credential.user_id}: {e}")
            raise RefreshFailed() from e

        lifetime = token.expires_in if token.expires_in is not None else DEFAULT_TOKEN_LIFETIME_SECONDS
        expires_at = self._clock() + timedelta(seconds=lifetime) - self.skew
        updated = self.repository.update_access_token(
            credential.user_id,
            access_token=token.access_token,
            expires_at=expires_at,
            refresh_token=token.refresh_token,
            provider=credential.provider,
        )
        if updated is None:
            # Row was hard-deleted by a concurrent disconnect.
            raise NotConnected()
        logger.debug(f"Refreshed {credential.provider} access token for user {credential.user_id}")
        return token.access_token

    def fresh_token_for(self, user_id: str, provider: str = PROVIDER_GOOGLE) -> Tuple[str, IntegrationCredential]:
        """Load the user's credential and return (access token, credential).

        Raises:
            NotConnected: no credential at all
            Revoked: credential exists but was disconnected
        """
        credential = self.repository.get(user_id, provider)
        if credential is None:
            raise NotConnected()
        return self.ensure_fresh_token(credential), credential
