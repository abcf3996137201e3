"""FastAPI web application for todocal's Google Calendar integration."""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from todocal.api.integration_models import (
    AccessTokenResponse,
    AuthUrlResponse,
    ErrorResponse,
    RevokeRequest,
    RevokeResponse,
)
from todocal.auth.dependencies import get_current_user
from todocal.auth.state_store import build_state_store
from todocal.database.database import get_db, init_db
from todocal.database.integration_repository import IntegrationRepository
from todocal.integrations.errors import (
    IntegrationError,
    InvalidOrExpiredState,
    NotConnected,
    ProviderError,
    ProviderUnavailable,
    ReauthorizationRequired,
    RefreshFailed,
    Revoked,
)
from todocal.integrations.google_calendar import GoogleCalendarClient
from todocal.integrations.google_oauth_client import GoogleOAuthClient
from todocal.integrations.google_oauth_flow import GoogleOAuthFlow
from todocal.integrations.token_refresh import TokenRefreshManager
from todocal.models.constants import DEFAULT_EVENT_LIMIT
from todocal.models.integration import CalendarSummary, ConnectionStatus, NormalizedEvent
from todocal.models.user import User

load_dotenv()

logger = logging.getLogger(__name__)

APP_URL = os.getenv("APP_URL", "http://localhost:8000").rstrip("/")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


# Initialize FastAPI app
app = FastAPI(
    title="todocal API",
    description="Todos and calendar with Google Calendar integration",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(IntegrationError)
async def integration_error_handler(request: Request, exc: IntegrationError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": str(exc), "code": exc.code},
    )


# Dependency wiring

def get_oauth_client() -> GoogleOAuthClient:
    return GoogleOAuthClient()


def get_state_store(db: Session = Depends(get_db)):
    return build_state_store(db)


def get_integration_repository(db: Session = Depends(get_db)) -> IntegrationRepository:
    return IntegrationRepository(db)


def get_oauth_flow(
    repository: IntegrationRepository = Depends(get_integration_repository),
    state_store=Depends(get_state_store),
    oauth_client: GoogleOAuthClient = Depends(get_oauth_client),
) -> GoogleOAuthFlow:
    return GoogleOAuthFlow(repository, state_store, oauth_client)


def get_token_manager(
    repository: IntegrationRepository = Depends(get_integration_repository),
    oauth_client: GoogleOAuthClient = Depends(get_oauth_client),
) -> TokenRefreshManager:
    return TokenRefreshManager(repository, oauth_client)


def get_calendar_client(
    token_manager: TokenRefreshManager = Depends(get_token_manager),
) -> GoogleCalendarClient:
    return GoogleCalendarClient(token_manager)


# Documented shapes of IntegrationError responses
_NOT_CONNECTED = {404: {"model": ErrorResponse, "description": "Google Calendar not connected"}}
_PROVIDER_FAILURES = {
    409: {"model": ErrorResponse, "description": "Reconnect required"},
    502: {"model": ErrorResponse, "description": "Unexpected response from Google"},
    503: {"model": ErrorResponse, "description": "Google unreachable or token refresh failed"},
}


def _calendar_redirect(outcome: str) -> RedirectResponse:
    return RedirectResponse(url=f"{APP_URL}/calendar?google={outcome}", status_code=302)


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "healthy", "version": "0.1.0"}


@app.get("/integrations/google", response_model=ConnectionStatus)
def google_connection_status(
    current_user: User = Depends(get_current_user),
    flow: GoogleOAuthFlow = Depends(get_oauth_flow),
):
    """Connection status for the integrations page."""
    return flow.connection_status(current_user.id)


@app.get(
    "/oauth/google/redirect",
    responses={
        200: {"model": AuthUrlResponse, "description": "JSON payload (redirect=false)"},
        302: {"description": "Redirect to Google authorization URL"},
    },
)
def google_connect(
    redirect: bool = Query(True, description="Redirect the browser (default) or return the URL as JSON"),
    current_user: User = Depends(get_current_user),
    flow: GoogleOAuthFlow = Depends(get_oauth_flow),
):
    """Start connecting Google Calendar."""
    url = flow.initiate(current_user.id)
    if redirect:
        return RedirectResponse(url=url, status_code=302)
    return AuthUrlResponse(url=url)


@app.get("/oauth/google/callback")
def google_callback(
    state: Optional[str] = Query(None),
    code: Optional[str] = Query(None),
    error: Optional[str] = Query(None, description="OAuth error from Google (e.g. access_denied)"),
    flow: GoogleOAuthFlow = Depends(get_oauth_flow),
):
    """Google redirect target. Unauthenticated: the user is recovered from `state`."""
    if error or not code:
        user_id = flow.abandon(state)
        if user_id is None:
            return _calendar_redirect("error_state")
        logger.info(f"Google callback without code for user {user_id} (error={error})")
        return _calendar_redirect("denied" if error else "error")

    try:
        flow.complete_callback(state, code)
    except InvalidOrExpiredState:
        return _calendar_redirect("error_state")
    except (ProviderError, ProviderUnavailable) as e:
        logger.warning(f"Google code exchange failed: {type(e).__name__}: {e}")
        return _calendar_redirect("error")
    return _calendar_redirect("connected")


@app.post("/integrations/google/revoke", response_model=RevokeResponse, responses=_NOT_CONNECTED)
def google_revoke(
    body: Optional[RevokeRequest] = None,
    current_user: User = Depends(get_current_user),
    flow: GoogleOAuthFlow = Depends(get_oauth_flow),
):
    """Disconnect Google Calendar (soft revoke unless hard_delete)."""
    hard_delete = body.hard_delete if body else False
    flow.revoke(current_user.id, hard_delete=hard_delete)
    return RevokeResponse(ok=True)


@app.get("/integrations/google/access-token", response_model=AccessTokenResponse)
def google_access_token(
    current_user: User = Depends(get_current_user),
    token_manager: TokenRefreshManager = Depends(get_token_manager),
):
    """Fresh access token for browser-side use; `connected=false` when unavailable."""
    try:
        access_token, _ = token_manager.fresh_token_for(current_user.id)
    except (NotConnected, Revoked, ReauthorizationRequired, RefreshFailed) as e:
        logger.debug(f"No usable Google token for user {current_user.id}: {e.code}")
        return AccessTokenResponse(connected=False)

    credential = token_manager.repository.get(current_user.id)
    return AccessTokenResponse(
        connected=True,
        access_token=access_token,
        expires_at=credential.expires_at if credential else None,
        email=credential.meta.get("email") if credential else None,
    )


@app.get(
    "/api/google/calendars",
    response_model=List[CalendarSummary],
    responses={**_NOT_CONNECTED, **_PROVIDER_FAILURES},
)
def google_calendars(
    current_user: User = Depends(get_current_user),
    calendar_client: GoogleCalendarClient = Depends(get_calendar_client),
):
    """List the user's Google calendars."""
    return calendar_client.list_calendars(current_user.id)


@app.get(
    "/api/google/events",
    response_model=List[NormalizedEvent],
    responses={**_NOT_CONNECTED, **_PROVIDER_FAILURES},
)
def google_events(
    calendar_id: str = Query(..., alias="calendarId"),
    time_from: datetime = Query(..., alias="from", description="ISO-8601 start of range"),
    time_to: datetime = Query(..., alias="to", description="ISO-8601 end of range"),
    limit: int = Query(DEFAULT_EVENT_LIMIT, description="Maximum events (1-250)"),
    current_user: User = Depends(get_current_user),
    calendar_client: GoogleCalendarClient = Depends(get_calendar_client),
):
    """List events of one Google calendar within [from, to]."""
    return calendar_client.list_events(current_user.id, calendar_id, time_from, time_to, limit)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
