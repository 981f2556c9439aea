"""
Conversion between local events and remote event resources.

Privacy mode is one-way: when a calendar syncs as busy, only the busy text
and the time slot leave the local side.
"""

import datetime
import html
import re
from dataclasses import dataclass
from zoneinfo import ZoneInfo

from google_calendar_sync.models import DEFAULT_BUSY_TEXT
from google_calendar_sync.models import UNTITLED_EVENT
from google_calendar_sync.models import Calendar
from google_calendar_sync.models import Event
from google_calendar_sync.models import Recurrence
from google_calendar_sync.models import RemoteEvent
from google_calendar_sync.models import RemoteTime
from google_calendar_sync.recurrence import decode_rule
from google_calendar_sync.recurrence import encode_rule

_ONE_DAY = datetime.timedelta(days=1)

_BREAK_RE = re.compile(r"<\s*br\s*/?\s*>|</\s*(p|div|li|h[1-6])\s*>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


@dataclass
class LocalEventFields:
    """Local field values derived from one remote event."""

    title: str
    description: str
    location: str
    start_at: datetime.datetime
    end_at: datetime.datetime
    has_time: bool
    recurrence: Recurrence | None = None

    def apply_to(self, event: Event):
        event.title = self.title
        event.description = self.description
        event.location = self.location
        event.start_at = self.start_at
        event.end_at = self.end_at
        event.has_time = self.has_time
        event.apply_recurrence(self.recurrence)


def strip_html(text: str) -> str:
    """Reduce rich-text markup to plain text."""
    if not text:
        return ""
    text = _BREAK_RE.sub("\n", text)
    text = _TAG_RE.sub("", text)
    text = html.unescape(text)
    return _BLANK_LINES_RE.sub("\n\n", text).strip()


def to_remote(
    event: Event,
    calendar: Calendar,
    tz_name: str,
    default_busy_text: str = DEFAULT_BUSY_TEXT,
) -> RemoteEvent:
    """Build the remote payload for a local event.

    Timed events keep their wall-clock values and carry ``tz_name`` so the
    remote side displays the same time.  All-day end dates become exclusive.
    """
    remote = RemoteEvent()

    if calendar.sync_as_busy:
        remote.summary = calendar.busy_text or default_busy_text
        remote.description = ""
    else:
        remote.summary = event.title
        remote.description = strip_html(event.description)
        remote.location = event.location or ""

    end_at = event.end_at or event.start_at
    if event.has_time:
        remote.start = RemoteTime(date_time=event.start_at, time_zone=tz_name)
        remote.end = RemoteTime(date_time=end_at, time_zone=tz_name)
    else:
        end_date = max(end_at.date(), event.start_at.date())
        remote.start = RemoteTime(date=event.start_at.date())
        remote.end = RemoteTime(date=end_date + _ONE_DAY)

    rule = encode_rule(event.recurrence, event.start_at, ZoneInfo(tz_name))
    if rule:
        remote.recurrence = [rule]

    return remote


def from_remote(
    remote: RemoteEvent,
    tz: ZoneInfo,
    master: RemoteEvent | None = None,
) -> LocalEventFields:
    """Derive local field values from a remote event.

    ``master`` is the series master when ``remote`` is an expanded instance;
    recurrence settings come from it rather than from the instance.
    """
    start = remote.start or RemoteTime(date=datetime.date.today())
    start_at = _to_wall_clock(start, tz)

    if remote.end is None:
        end_at = start_at
    elif start.is_all_day and remote.end.is_all_day:
        end_at = max(_to_wall_clock(remote.end, tz) - _ONE_DAY, start_at)
    else:
        end_at = _to_wall_clock(remote.end, tz)

    source = master if master is not None else remote
    return LocalEventFields(
        title=remote.summary or UNTITLED_EVENT,
        description=remote.description or "",
        location=remote.location or "",
        start_at=start_at,
        end_at=end_at,
        has_time=not start.is_all_day,
        recurrence=decode_rule(source.recurrence, tz),
    )


def _to_wall_clock(value: RemoteTime, tz: ZoneInfo) -> datetime.datetime:
    """Naive local wall-clock value for a remote date or date-time."""
    if value.is_all_day:
        return datetime.datetime.combine(value.date, datetime.time())
    dt = value.date_time
    if dt.tzinfo is None:
        if not value.time_zone:
            return dt
        dt = dt.replace(tzinfo=ZoneInfo(value.time_zone))
    return dt.astimezone(tz).replace(tzinfo=None)
