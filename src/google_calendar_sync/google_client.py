"""
Google Calendar API connectivity wrapper.
"""

import datetime
import json
import logging
from pathlib import Path

from google.auth.exceptions import RefreshError
from google.auth.exceptions import TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from google_calendar_sync.models import CalendarSyncError
from google_calendar_sync.models import RateLimitedError
from google_calendar_sync.models import RemoteApiError
from google_calendar_sync.models import RemoteEvent
from google_calendar_sync.models import RemoteNotFoundError
from google_calendar_sync.models import RemoteTime
from google_calendar_sync.models import SyncConfig

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar"]

_PAGE_SIZE = 250
_NOT_FOUND_STATUSES = {404, 410}
_RATE_LIMIT_REASONS = ("rateLimitExceeded", "userRateLimitExceeded")
# Request timeout and throttling on Google's side; worth another attempt.
_TRANSIENT_CLIENT_STATUSES = {408, 409}


def build_client(config: SyncConfig) -> "GoogleCalendarClient | None":
    """Return a connected client, or None when sync is disabled or unauthorised.

    Callers treat None as "no remote calendar available" and do nothing.
    """
    if not config.enabled:
        logger.info("Google Calendar sync is disabled in configuration")
        return None
    client = GoogleCalendarClient(config.token_file)
    try:
        client.connect()
    except CalendarSyncError as e:
        logger.error(f"Google Calendar unavailable: {e}")
        return None
    return client


def translate_http_error(e: HttpError, what: str) -> RemoteApiError:
    """Map an HttpError onto the sync error taxonomy."""
    status = getattr(e.resp, "status", None)
    try:
        status = int(status) if status is not None else None
    except (TypeError, ValueError):
        status = None
    message = f"{what}: HTTP {status}: {_error_text(e)}"

    if status in _NOT_FOUND_STATUSES:
        return RemoteNotFoundError(message, status=status)
    if status == 429 or (status == 403 and _is_rate_limit(e)):
        return RateLimitedError(message, status=status)
    transient = status is None or status >= 500 or status in _TRANSIENT_CLIENT_STATUSES
    return RemoteApiError(message, status=status, transient=transient)


def _error_text(e: HttpError) -> str:
    reason = getattr(e, "reason", None)
    if reason:
        return str(reason)
    content = getattr(e, "content", b"") or b""
    return content.decode("utf-8", errors="replace")[:200]


def _is_rate_limit(e: HttpError) -> bool:
    content = getattr(e, "content", b"") or b""
    text = content.decode("utf-8", errors="replace") + str(getattr(e, "reason", "") or "")
    return any(reason in text for reason in _RATE_LIMIT_REASONS)


# ---------------------------------------------------------------------------
# Resource <-> RemoteEvent conversion
# ---------------------------------------------------------------------------


def event_from_resource(item: dict) -> RemoteEvent:
    """Convert a Calendar API event resource into a RemoteEvent."""
    return RemoteEvent(
        id=item.get("id", ""),
        summary=item.get("summary", "") or "",
        description=item.get("description", "") or "",
        location=item.get("location", "") or "",
        start=_time_from_resource(item.get("start")),
        end=_time_from_resource(item.get("end")),
        recurrence=list(item.get("recurrence") or []),
        recurring_event_id=item.get("recurringEventId", "") or "",
        updated=_parse_timestamp(item.get("updated")),
        cancelled=item.get("status") == "cancelled",
    )


def resource_from_event(event: RemoteEvent) -> dict:
    """Convert a RemoteEvent into an API request body."""
    body = {
        "summary": event.summary,
        "description": event.description,
    }
    if event.location:
        body["location"] = event.location
    if event.start is not None:
        body["start"] = _time_to_resource(event.start)
    if event.end is not None:
        body["end"] = _time_to_resource(event.end)
    if event.recurrence:
        body["recurrence"] = list(event.recurrence)
    return body


def _time_from_resource(value: dict | None) -> RemoteTime | None:
    if not value:
        return None
    if value.get("dateTime"):
        return RemoteTime(
            date_time=_parse_timestamp(value["dateTime"]),
            time_zone=value.get("timeZone"),
        )
    if value.get("date"):
        return RemoteTime(date=datetime.date.fromisoformat(value["date"]))
    return None


def _time_to_resource(value: RemoteTime) -> dict:
    if value.is_all_day:
        return {"date": value.date.isoformat()}
    out = {"dateTime": value.date_time.isoformat()}
    if value.time_zone:
        out["timeZone"] = value.time_zone
    return out


def _parse_timestamp(value: str | None) -> datetime.datetime | None:
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.datetime.fromisoformat(value)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class GoogleCalendarClient:
    """Wrapper for Google Calendar API v3 event operations.

    Every method performs exactly one API request; throttling and retries
    are the caller's business (see ``throttle.call_with_retry``).
    """

    def __init__(self, token_file: Path, scopes: list[str] | None = None):
        self.token_file = token_file
        self.scopes = scopes or SCOPES
        self.service = None

    def connect(self):
        """Load stored OAuth credentials, refreshing them if expired."""
        if not self.token_file.exists():
            raise CalendarSyncError(f"OAuth token file not found: {self.token_file}")

        try:
            creds = Credentials.from_authorized_user_file(str(self.token_file), self.scopes)
        except (ValueError, json.JSONDecodeError) as e:
            raise CalendarSyncError(f"Invalid OAuth token file {self.token_file}: {e}") from e

        if not creds.valid:
            if not (creds.expired and creds.refresh_token):
                raise CalendarSyncError("Stored OAuth token is invalid and cannot be refreshed")
            try:
                creds.refresh(Request())
            except (RefreshError, TransportError) as e:
                raise CalendarSyncError(f"Failed to refresh OAuth token: {e}") from e
            self.token_file.write_text(creds.to_json())
            logger.debug("Refreshed OAuth token")

        self.service = build("calendar", "v3", credentials=creds, cache_discovery=False)

    def _execute(self, request, what: str):
        try:
            return request.execute()
        except HttpError as e:
            raise translate_http_error(e, what) from e
        except (TransportError, TimeoutError, ConnectionError, OSError) as e:
            raise RemoteApiError(f"{what}: {e}", transient=True) from e

    def _events(self):
        if self.service is None:
            raise CalendarSyncError("Client not connected")
        return self.service.events()

    def list_calendars(self) -> list[dict]:
        """Return the user's calendar list entries (id, summary, primary, accessRole)."""
        if self.service is None:
            raise CalendarSyncError("Client not connected")
        calendars = []
        page_token = None
        while True:
            result = self._execute(
                self.service.calendarList().list(pageToken=page_token), "list calendars"
            )
            for item in result.get("items", []):
                calendars.append(
                    {
                        "id": item["id"],
                        "summary": item.get("summary", ""),
                        "primary": bool(item.get("primary")),
                        "access_role": item.get("accessRole", ""),
                    }
                )
            page_token = result.get("nextPageToken")
            if not page_token:
                return calendars

    def list_events(
        self,
        calendar_ref: str,
        time_min: datetime.datetime,
        time_max: datetime.datetime,
        show_deleted: bool = True,
        single_events: bool = True,
        page_token: str | None = None,
    ) -> tuple[list[RemoteEvent], str | None]:
        """Fetch one page of events; returns (events, next_page_token)."""
        params = {
            "calendarId": calendar_ref,
            "timeMin": time_min.isoformat(),
            "timeMax": time_max.isoformat(),
            "showDeleted": show_deleted,
            "singleEvents": single_events,
            "maxResults": _PAGE_SIZE,
        }
        if single_events:
            params["orderBy"] = "startTime"
        if page_token:
            params["pageToken"] = page_token
        result = self._execute(self._events().list(**params), f"list events in {calendar_ref}")
        events = [event_from_resource(item) for item in result.get("items", [])]
        return events, result.get("nextPageToken")

    def get_event(self, calendar_ref: str, event_id: str) -> RemoteEvent:
        result = self._execute(
            self._events().get(calendarId=calendar_ref, eventId=event_id),
            f"get event {event_id}",
        )
        return event_from_resource(result)

    def create_event(self, calendar_ref: str, event: RemoteEvent) -> RemoteEvent:
        result = self._execute(
            self._events().insert(calendarId=calendar_ref, body=resource_from_event(event)),
            f"create event in {calendar_ref}",
        )
        return event_from_resource(result)

    def update_event(self, calendar_ref: str, event_id: str, event: RemoteEvent) -> RemoteEvent:
        result = self._execute(
            self._events().update(
                calendarId=calendar_ref, eventId=event_id, body=resource_from_event(event)
            ),
            f"update event {event_id}",
        )
        return event_from_resource(result)

    def delete_event(self, calendar_ref: str, event_id: str):
        self._execute(
            self._events().delete(calendarId=calendar_ref, eventId=event_id),
            f"delete event {event_id}",
        )
