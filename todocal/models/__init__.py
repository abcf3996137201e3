"""Data models for todocal."""

from todocal.models.user import User
from todocal.models.integration import (
    IntegrationCredential,
    TokenResponse,
    ConnectionStatus,
    CalendarSummary,
    NormalizedEvent,
)

__all__ = [
    "User",
    "IntegrationCredential",
    "TokenResponse",
    "ConnectionStatus",
    "CalendarSummary",
    "NormalizedEvent",
]
