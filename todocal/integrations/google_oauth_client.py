"""Google OAuth2 HTTP client for the Calendar integration.

Talks to Google's plain OAuth endpoints with `requests`:
- authorization URL (browser redirect, not called directly)
- token endpoint (authorization-code exchange and refresh)
- revocation endpoint

Every call has a bounded timeout. Transport failures surface as
`ProviderUnavailable`; error responses as `ProviderError`.
"""

import functools
import logging
import os
from typing import Dict, Optional, Sequence
from urllib.parse import urlencode

import requests
from dotenv import load_dotenv
from google.auth import exceptions as google_auth_exceptions
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token
from pydantic import ValidationError

from todocal.integrations.errors import ProviderError, ProviderUnavailable
from todocal.models.constants import GOOGLE_HTTP_TIMEOUT_SECONDS
from todocal.models.integration import TokenResponse

load_dotenv()

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"

CALENDAR_READONLY_SCOPE = "https://www.googleapis.com/auth/calendar.readonly"
SCOPES = ["openid", "email", "profile", CALENDAR_READONLY_SCOPE]

_DEFAULT_REDIRECT_URI = "http://localhost:8000/oauth/google/callback"


def http_timeout_seconds() -> float:
    return float(os.getenv("GOOGLE_HTTP_TIMEOUT_SECONDS", str(GOOGLE_HTTP_TIMEOUT_SECONDS)))


def verify_google_token(
    id_token_str: str,
    client_id: Optional[str],
    timeout: Optional[float] = None,
) -> Optional[Dict]:
    """Verify a Google ID token and extract the identity claims we keep.

    Args:
        id_token_str: ID token returned by the token endpoint
        client_id: OAuth client ID the token must be issued for
        timeout: Timeout in seconds for fetching Google's signing certs
                 (GOOGLE_HTTP_TIMEOUT_SECONDS if None)

    Returns:
        Dictionary with id, email, name, avatar, or None if invalid
    """
    if timeout is None:
        timeout = http_timeout_seconds()
    request = functools.partial(google_requests.Request(), timeout=timeout)
    try:
        idinfo = id_token.verify_oauth2_token(
            id_token_str,
            request,
            client_id,
        )

        if idinfo.get("iss") not in ["accounts.google.com", "https://accounts.google.com"]:
            return None

        return {
            "id": idinfo["sub"],
            "email": idinfo.get("email"),
            "name": idinfo.get("name"),
            "avatar": idinfo.get("picture"),
        }
    except (ValueError, KeyError, google_auth_exceptions.GoogleAuthError) as e:
        logger.warning(f"Could not verify Google ID token: {type(e).__name__}")
        return None


class GoogleOAuthClient:
    """Client for Google's OAuth2 endpoints."""

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        scopes: Optional[Sequence[str]] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize the OAuth client.

        Args:
            client_id: OAuth client ID. If None, reads GOOGLE_OAUTH_CLIENT_ID.
            client_secret: OAuth client secret. If None, reads GOOGLE_OAUTH_CLIENT_SECRET.
            redirect_uri: Callback URL registered with Google. If None, reads
                          GOOGLE_OAUTH_REDIRECT_URI.
            scopes: Scopes to request (defaults to identity + calendar read-only).
            timeout: Per-request timeout in seconds (GOOGLE_HTTP_TIMEOUT_SECONDS).
        """
        self.client_id = client_id or os.getenv("GOOGLE_OAUTH_CLIENT_ID")
        self.client_secret = client_secret or os.getenv("GOOGLE_OAUTH_CLIENT_SECRET")
        self.redirect_uri = (redirect_uri or os.getenv("GOOGLE_OAUTH_REDIRECT_URI", _DEFAULT_REDIRECT_URI)).strip()
        self.scopes = list(scopes or SCOPES)
        self.timeout = timeout if timeout is not None else http_timeout_seconds()

    def authorization_url(self, state: str) -> str:
        """Build the consent URL; `state` carries our nonce."""
        if not self.client_id:
            raise RuntimeError("GOOGLE_OAUTH_CLIENT_ID is not set.")
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "access_type": "offline",  # Ask for a refresh token
            "prompt": "consent",
            "include_granted_scopes": "true",
            "state": state,
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    def exchange_code(self, code: str) -> TokenResponse:
        """Exchange an authorization code for tokens."""
        return self._token_request({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
        })

    def refresh(self, refresh_token: str) -> TokenResponse:
        """Exchange a refresh token for a new access token."""
        return self._token_request({
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        })

    def revoke(self, token: str) -> None:
        """Revoke an access or refresh token at Google."""
        try:
            response = requests.post(
                GOOGLE_REVOKE_URL,
                data={"token": token},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ProviderUnavailable(f"Google token revocation failed: {type(e).__name__}") from e
        if not response.ok:
            raise ProviderError(
                f"Google token revocation returned HTTP {response.status_code}",
                http_status=response.status_code,
                error=_error_code(response),
            )

    def identity_claims(self, token_response: TokenResponse) -> Optional[Dict]:
        """Identity claims (id, email, name, avatar) from the exchange's ID token."""
        if not token_response.id_token:
            return None
        return verify_google_token(token_response.id_token, self.client_id, timeout=self.timeout)

    def _token_request(self, form: Dict[str, str]) -> TokenResponse:
        if not self.client_id or not self.client_secret:
            raise RuntimeError("GOOGLE_OAUTH_CLIENT_ID and GOOGLE_OAUTH_CLIENT_SECRET must be set.")
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            **form,
        }
        grant_type = form.get("grant_type")
        try:
            response = requests.post(GOOGLE_TOKEN_URL, data=data, timeout=self.timeout)
        except requests.RequestException as e:
            raise ProviderUnavailable(f"Google token endpoint unreachable ({grant_type}): {type(e).__name__}") from e

        if not response.ok:
            error = _error_code(response)
            logger.warning(f"Google token endpoint rejected {grant_type}: HTTP {response.status_code} ({error})")
            raise ProviderError(
                f"Google token endpoint returned HTTP {response.status_code}",
                http_status=response.status_code,
                error=error,
            )

        try:
            return TokenResponse(**response.json())
        except (ValueError, TypeError, ValidationError) as e:
            raise ProviderError(f"Unexpected token response from Google ({grant_type})") from e


def _error_code(response) -> Optional[str]:
    """Best-effort OAuth `error` field from an error response."""
    try:
        payload = response.json()
    except ValueError:
        return None
    if isinstance(payload, dict):
        error = payload.get("error")
        return error if isinstance(error, str) else None
    return None
