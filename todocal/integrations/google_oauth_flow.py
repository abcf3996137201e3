"""Google Calendar connect/disconnect flow.

1. initiate: mint a single-use `state` nonce bound to the user, return the
   Google consent URL. No session or cookie is involved.
2. complete_callback: consume the nonce, exchange the code, upsert the
   credential. The callback is unauthenticated; the nonce is the only link
   back to the user.
3. revoke: best-effort revocation at Google, then local revocation, which
   always happens.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from todocal.database.integration_repository import IntegrationRepository
from todocal.auth.state_store import generate_state
from todocal.integrations.errors import (
    InvalidOrExpiredState,
    NotConnected,
    ProviderError,
    ProviderUnavailable,
)
from todocal.integrations.google_oauth_client import GoogleOAuthClient
from todocal.models.constants import DEFAULT_TOKEN_LIFETIME_SECONDS, PROVIDER_GOOGLE
from todocal.models.integration import ConnectionStatus, IntegrationCredential

logger = logging.getLogger(__name__)


class GoogleOAuthFlow:
    """Orchestrates the authorization-code flow for Google Calendar."""

    def __init__(
        self,
        repository: IntegrationRepository,
        state_store,
        oauth_client: GoogleOAuthClient,
        *,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.repository = repository
        self.state_store = state_store
        self.oauth_client = oauth_client
        self._clock = clock

    def initiate(self, user_id: str) -> str:
        """Start the flow for `user_id` and return the Google consent URL."""
        state = generate_state()
        self.state_store.put(state, user_id)
        logger.info(f"Google Calendar connect started for user {user_id} (state={state[:8]}...)")
        return self.oauth_client.authorization_url(state)

    def complete_callback(self, state: str, code: str) -> IntegrationCredential:
        """Finish the flow from Google's redirect.

        Raises:
            InvalidOrExpiredState: `state` unknown, already used, or expired;
                nothing is created or modified
            ProviderUnavailable: Google unreachable during the code exchange
            ProviderError: Google rejected the code
        """
        user_id = self.state_store.pop(state) if state else None
        if not user_id:
            logger.info(f"Rejected Google callback with unknown or expired state ({(state or '')[:8]}...)")
            raise InvalidOrExpiredState()

        token = self.oauth_client.exchange_code(code)

        claims = self.oauth_client.identity_claims(token) or {}
        meta = {
            "email": claims.get("email"),
            "name": claims.get("name"),
            "avatar": claims.get("avatar"),
        }
        lifetime = token.expires_in if token.expires_in is not None else DEFAULT_TOKEN_LIFETIME_SECONDS

        credential = self.repository.upsert_from_consent(
            user_id,
            access_token=token.access_token,
            refresh_token=token.refresh_token,
            expires_at=self._clock() + timedelta(seconds=lifetime),
            scope=token.scope,
            meta=meta,
            provider_account_id=claims.get("id"),
            provider=PROVIDER_GOOGLE,
        )
        logger.info(f"Google Calendar connected for user {user_id}")
        return credential

    def abandon(self, state: Optional[str]) -> Optional[str]:
        """Consume the nonce of a flow the user declined at Google.

        Returns the user ID the nonce belonged to, if it was still valid.
        """
        user_id = self.state_store.pop(state) if state else None
        if user_id:
            logger.info(f"Google Calendar connect declined by user {user_id}")
        return user_id

    def revoke(self, user_id: str, hard_delete: bool = False) -> None:
        """Disconnect Google Calendar for `user_id`.

        Raises:
            NotConnected: no active credential
        """
        credential = self.repository.get_active(user_id, PROVIDER_GOOGLE)
        if credential is None:
            raise NotConnected()

        token = credential.access_token or credential.refresh_token
        if token:
            try:
                self.oauth_client.revoke(token)
            except (ProviderError, ProviderUnavailable) as e:
                logger.warning(f"Best-effort Google token revocation failed for user {user_id}: {e}")

        if hard_delete:
            self.repository.delete(user_id, PROVIDER_GOOGLE)
            logger.info(f"Google Calendar credential deleted for user {user_id}")
        else:
            self.repository.mark_revoked(user_id, PROVIDER_GOOGLE, revoked_at=self._clock())
            logger.info(f"Google Calendar credential revoked for user {user_id}")

    def connection_status(self, user_id: str) -> ConnectionStatus:
        """Connection state for the integrations page; never raises for "not connected"."""
        credential = self.repository.get(user_id, PROVIDER_GOOGLE)
        if credential is None:
            return ConnectionStatus(connected=False)
        return ConnectionStatus(
            connected=credential.is_active(),
            email=credential.meta.get("email"),
            name=credential.meta.get("name"),
            avatar=credential.meta.get("avatar"),
            expires_at=credential.expires_at,
        )
