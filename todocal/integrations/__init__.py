"""Google integration core: OAuth flow, token refresh and calendar reads."""

from todocal.integrations.errors import (
    IntegrationError,
    InvalidOrExpiredState,
    NotConnected,
    Revoked,
    ReauthorizationRequired,
    RefreshFailed,
    ProviderUnavailable,
    ProviderError,
    InvalidInput,
)

__all__ = [
    "IntegrationError",
    "InvalidOrExpiredState",
    "NotConnected",
    "Revoked",
    "ReauthorizationRequired",
    "RefreshFailed",
    "ProviderUnavailable",
    "ProviderError",
    "InvalidInput",
]
