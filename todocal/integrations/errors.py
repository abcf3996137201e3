"""Typed failures raised by the Google integration core.

Transport-level exceptions from `requests` never escape the integration
package; they are wrapped in one of these.
"""

from typing import Optional


class IntegrationError(Exception):
    """Base class for integration failures."""

    code = "integration_error"
    status_code = 500
    default_message = "Integration error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)


class InvalidOrExpiredState(IntegrationError):
    """Callback `state` was never issued, already consumed, or expired."""

    code = "invalid_state"
    status_code = 400
    default_message = "Authorization request expired or was already used. Please try again."


class NotConnected(IntegrationError):
    """No active credential for the user."""

    code = "not_connected"
    status_code = 404
    default_message = "Google Calendar is not connected."


class Revoked(IntegrationError):
    """Credential exists but was disconnected."""

    code = "revoked"
    status_code = 409
    default_message = "Google Calendar was disconnected. Connect it again to continue."


class ReauthorizationRequired(IntegrationError):
    """Refresh token is missing or was rejected; the user must consent again."""

    code = "reauthorization_required"
    status_code = 409
    default_message = "Google authorization expired. Connect Google Calendar again."


class RefreshFailed(IntegrationError):
    """Transient failure while refreshing an access token."""

    code = "refresh_failed"
    status_code = 503
    default_message = "Could not refresh Google access token. Try again shortly."


class ProviderUnavailable(IntegrationError):
    """Network error or timeout talking to the provider."""

    code = "provider_unavailable"
    status_code = 503
    default_message = "Google is unreachable right now. Try again shortly."


class ProviderError(IntegrationError):
    """Provider answered with an error status or an unexpected payload."""

    code = "provider_error"
    status_code = 502
    default_message = "Google returned an unexpected response."

    def __init__(self, message: Optional[str] = None, *, http_status: Optional[int] = None, error: Optional[str] = None):
        super().__init__(message)
        self.http_status = http_status
        self.error = error


class InvalidInput(IntegrationError):
    """Caller supplied a malformed date range or out-of-bounds limit."""

    code = "invalid_input"
    status_code = 422
    default_message = "Invalid request parameters."
