"""Google Calendar read integration for todocal.

Reads the user's calendar list and events over the Calendar REST API using a
fresh access token from `TokenRefreshManager`. Results are not cached; every
call re-queries Google.
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union
from urllib.parse import quote

import requests

from todocal.integrations.errors import InvalidInput, NotConnected, ProviderError, ProviderUnavailable
from todocal.integrations.token_refresh import TokenRefreshManager
from todocal.models.constants import (
    DEFAULT_EVENT_LIMIT,
    MAX_EVENT_LIMIT,
    MIN_EVENT_LIMIT,
    PROVIDER_GOOGLE,
    UNTITLED_EVENT_TITLE,
)
from todocal.models.integration import CalendarSummary, NormalizedEvent

logger = logging.getLogger(__name__)

GOOGLE_CALENDAR_API_BASE = "https://www.googleapis.com/calendar/v3"


def to_rfc3339(value: datetime) -> str:
    """Format a datetime for Google; naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _as_aware(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def parse_event_time(when: Optional[Dict[str, Any]]) -> Tuple[Optional[Union[datetime, date]], bool]:
    """Parse a Google event start/end object.

    Returns:
        (value, is_date_only). All-day events carry `date` ("2025-09-20") and no
        `dateTime`; timed events carry an RFC 3339 `dateTime`.
    """
    if not when:
        return None, False
    date_time = when.get("dateTime")
    if date_time:
        if date_time.endswith("Z"):
            date_time = date_time[:-1] + "+00:00"
        return datetime.fromisoformat(date_time), False
    date_only = when.get("date")
    if date_only:
        return date.fromisoformat(date_only), True
    return None, False


def normalize_event(item: Dict[str, Any], calendar_id: str) -> NormalizedEvent:
    """Map a Google Calendar event resource to NormalizedEvent."""
    if not item.get("id"):
        raise ProviderError("Google Calendar returned an event without an id")
    try:
        start, all_day = parse_event_time(item.get("start"))
        end, _ = parse_event_time(item.get("end"))
    except (TypeError, ValueError) as e:
        raise ProviderError(f"Unparseable event time in event {item.get('id')}") from e

    title = (item.get("summary") or "").strip() or UNTITLED_EVENT_TITLE
    organizer = item.get("organizer") or {}

    return NormalizedEvent(
        id=item["id"],
        title=title,
        start=start,
        end=end,
        all_day=all_day,
        location=item.get("location"),
        html_link=item.get("htmlLink"),
        status=item.get("status"),
        organizer_email=organizer.get("email"),
        calendar_id=calendar_id,
    )


class GoogleCalendarClient:
    """Read-only facade over the Google Calendar API."""

    def __init__(self, token_manager: TokenRefreshManager, api_base: str = GOOGLE_CALENDAR_API_BASE):
        self.token_manager = token_manager
        self.api_base = api_base.rstrip("/")

    @property
    def timeout(self) -> float:
        return self.token_manager.oauth_client.timeout

    def list_calendars(self, user_id: str) -> List[CalendarSummary]:
        """List the user's calendars.

        Raises:
            NotConnected: no active Google credential
        """
        access_token = self._access_token(user_id)
        calendars = []
        for item in self._paginate(access_token, "/users/me/calendarList", {}):
            if not item.get("id"):
                raise ProviderError("Google Calendar returned a calendar without an id")
            calendars.append(CalendarSummary(
                id=item["id"],
                title=item.get("summaryOverride") or item.get("summary"),
                is_primary=bool(item.get("primary", False)),
                time_zone=item.get("timeZone"),
            ))
        return calendars

    def list_events(
        self,
        user_id: str,
        calendar_id: str,
        time_from: datetime,
        time_to: datetime,
        limit: int = DEFAULT_EVENT_LIMIT,
    ) -> List[NormalizedEvent]:
        """List single (expanded) events in [time_from, time_to], ordered by start time.

        Input is validated before any store or provider access.

        Raises:
            InvalidInput: time_from >= time_to, or limit outside [1, 250]
            NotConnected: no active Google credential
        """
        validate_event_query(calendar_id, time_from, time_to, limit)

        access_token = self._access_token(user_id)
        params = {
            "singleEvents": "true",
            "orderBy": "startTime",
            "timeMin": to_rfc3339(time_from),
            "timeMax": to_rfc3339(time_to),
            "maxResults": limit,
        }
        path = f"/calendars/{quote(calendar_id, safe='')}/events"

        events: List[NormalizedEvent] = []
        for item in self._paginate(access_token, path, params):
            events.append(normalize_event(item, calendar_id))
            if len(events) >= limit:
                break
        return events

    def _access_token(self, user_id: str) -> str:
        credential = self.token_manager.repository.get_active(user_id, PROVIDER_GOOGLE)
        if credential is None:
            raise NotConnected()
        return self.token_manager.ensure_fresh_token(credential)

    def _paginate(self, access_token: str, path: str, params: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
        page_token = None
        while True:
            page_params = dict(params)
            if page_token:
                page_params["pageToken"] = page_token
            payload = self._get(access_token, path, page_params)
            items = payload.get("items") or []
            if not isinstance(items, list):
                raise ProviderError(f"Unexpected 'items' in Google response for {path}")
            for item in items:
                yield item
            page_token = payload.get("nextPageToken")
            if not page_token:
                return

    def _get(self, access_token: str, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.api_base}{path}"
        try:
            response = requests.get(
                url,
                headers={"Authorization": f"Bearer {access_token}"},
                params=params,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ProviderUnavailable(f"Google Calendar unreachable: {type(e).__name__}") from e

        if not response.ok:
            logger.warning(f"Google Calendar GET {path} returned HTTP {response.status_code}")
            raise ProviderError(
                f"Google Calendar returned HTTP {response.status_code}",
                http_status=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderError("Google Calendar returned a non-JSON response") from e
        if not isinstance(payload, dict):
            raise ProviderError("Google Calendar returned an unexpected payload")
        return payload


def validate_event_query(calendar_id: str, time_from: datetime, time_to: datetime, limit: int) -> None:
    """Caller-facing contract for event reads."""
    if not calendar_id or not calendar_id.strip():
        raise InvalidInput("calendarId is required.")
    if _as_aware(time_from) >= _as_aware(time_to):
        raise InvalidInput("'from' must be earlier than 'to'.")
    if isinstance(limit, bool) or not isinstance(limit, int) or not (MIN_EVENT_LIMIT <= limit <= MAX_EVENT_LIMIT):
        raise InvalidInput(f"limit must be between {MIN_EVENT_LIMIT} and {MAX_EVENT_LIMIT}.")
