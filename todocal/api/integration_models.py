"""Request/response models for the Google integration endpoints."""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class AuthUrlResponse(BaseModel):
    """Consent URL for programmatic callers (`redirect=false`)."""
    url: str = Field(..., description="Google authorization URL to send the browser to")


class RevokeRequest(BaseModel):
    """Request model for disconnecting Google Calendar."""
    hard_delete: bool = Field(False, description="Delete the credential instead of marking it revoked")


class RevokeResponse(BaseModel):
    ok: bool = True


class AccessTokenResponse(BaseModel):
    """Fresh access token for browser-side Google API use."""
    connected: bool
    access_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    email: Optional[str] = None


class ErrorResponse(BaseModel):
    detail: str
    code: str
