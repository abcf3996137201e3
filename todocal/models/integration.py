"""Integration data models for todocal (credentials, calendars, events)."""

from datetime import date, datetime
from typing import Any, Dict, Optional, Union
from pydantic import BaseModel, Field

from todocal.models.constants import PROVIDER_GOOGLE


class IntegrationCredential(BaseModel):
    """Decrypted view of a stored provider credential.

    Never serialize this model to clients or logs; it carries raw tokens.
    """

    id: str = Field(..., description="Credential row identifier")
    user_id: str = Field(..., description="Owning user ID")
    provider: str = Field(PROVIDER_GOOGLE, description="Provider name")
    provider_account_id: Optional[str] = Field(None, description="Provider-side account ID (Google 'sub')")
    access_token: str = Field(..., description="Current access token")
    refresh_token: Optional[str] = Field(None, description="Refresh token, if the provider issued one")
    expires_at: Optional[datetime] = Field(None, description="Access token expiry (UTC)")
    scope: Optional[str] = Field(None, description="Granted scopes, space separated")
    meta: Dict[str, Any] = Field(default_factory=dict, description="Provider identity metadata (email, name, avatar)")
    revoked_at: Optional[datetime] = Field(None, description="Revocation timestamp (null if active)")
    created_at: Optional[datetime] = Field(None, description="Row creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="Row last update timestamp")

    @property
    def revoked(self) -> bool:
        return self.revoked_at is not None

    def is_active(self) -> bool:
        """True until the credential is disconnected."""
        return self.revoked_at is None


class TokenResponse(BaseModel):
    """Parsed token endpoint response (code exchange or refresh)."""

    access_token: str
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None
    scope: Optional[str] = None
    token_type: Optional[str] = None
    id_token: Optional[str] = None


class ConnectionStatus(BaseModel):
    """Connection state shown on the integrations page."""

    connected: bool = Field(..., description="Whether an active credential exists")
    email: Optional[str] = None
    name: Optional[str] = None
    avatar: Optional[str] = None
    expires_at: Optional[datetime] = None


class CalendarSummary(BaseModel):
    """One entry of the user's Google calendar list."""

    id: str
    title: Optional[str] = None
    is_primary: bool = False
    time_zone: Optional[str] = None


class NormalizedEvent(BaseModel):
    """Provider event mapped into the application's event shape."""

    id: str = Field(..., description="Provider event ID")
    title: str = Field(..., description="Event title (placeholder when blank)")
    start: Optional[Union[datetime, date]] = Field(None, description="Date for all-day events, timestamp otherwise")
    end: Optional[Union[datetime, date]] = Field(None, description="Date for all-day events, timestamp otherwise")
    all_day: bool = Field(False, description="True iff the start carries a date and no time of day")
    location: Optional[str] = None
    html_link: Optional[str] = None
    status: Optional[str] = None
    organizer_email: Optional[str] = None
    calendar_id: str = Field(..., description="Calendar the event was read from")
