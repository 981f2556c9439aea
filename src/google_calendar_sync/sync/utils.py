"""
Stateless helpers shared by the sync engines.
"""

import datetime
import hashlib
import json
from typing import Callable
from zoneinfo import ZoneInfo

from google_calendar_sync.google_client import resource_from_event
from google_calendar_sync.models import Calendar
from google_calendar_sync.models import Event
from google_calendar_sync.models import RemoteEvent

Clock = Callable[[], datetime.datetime]


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def wall_clock(moment: datetime.datetime, tz: ZoneInfo) -> datetime.datetime:
    """Naive wall-clock value of an aware ``moment`` in ``tz``."""
    return moment.astimezone(tz).replace(tzinfo=None)


def localize(wall: datetime.datetime, tz: ZoneInfo) -> datetime.datetime:
    """Aware datetime for a naive wall-clock value in ``tz``."""
    return wall.replace(tzinfo=tz)


def start_of_day(wall: datetime.datetime) -> datetime.datetime:
    return datetime.datetime.combine(wall.date(), datetime.time())


def sync_horizon(
    calendar: Calendar, wall_now: datetime.datetime, default_days: int
) -> datetime.datetime:
    """Calendar's own horizon, or ``default_days`` from now."""
    if calendar.sync_horizon is not None:
        return calendar.sync_horizon
    return wall_now + datetime.timedelta(days=default_days)


def is_expired_recurrence(event: Event, wall_now: datetime.datetime) -> bool:
    """A recurring event whose end-of-repetition date has passed."""
    return event.recurring and event.repeat_end is not None and event.repeat_end < wall_now


def compute_hash(payload: RemoteEvent) -> str:
    """
    Generate SHA256 hash of an export payload for change detection.

    Only the fields sent to the remote side take part, serialized as the
    request body.
    """
    body = json.dumps(resource_from_event(payload), sort_keys=True, ensure_ascii=False)
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


def is_unchanged_since_sync(event: Event, remote_calendar_ref: str, payload_hash: str) -> bool:
    """The copy in ``remote_calendar_ref`` already holds exactly this payload."""
    if not event.remote_export_id or event.last_synced_at is None:
        return False
    if event.remote_export_calendar != remote_calendar_ref:
        return False
    return bool(event.remote_export_hash) and event.remote_export_hash == payload_hash
