"""
In-memory fake remote calendar for testing.

Duck-type-compatible stand-in for GoogleCalendarClient.  No network or OAuth
is required: events live in plain dicts keyed by calendar ref and event id.
"""

import copy
import datetime
from zoneinfo import ZoneInfo

from google_calendar_sync.models import RemoteEvent
from google_calendar_sync.models import RemoteNotFoundError
from google_calendar_sync.models import RemoteTime

UTC = datetime.timezone.utc


def _instant(value: RemoteTime | None) -> datetime.datetime:
    if value is None:
        return datetime.datetime.min.replace(tzinfo=UTC)
    if value.is_all_day:
        return datetime.datetime.combine(value.date, datetime.time(), tzinfo=UTC)
    dt = value.date_time
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=ZoneInfo(value.time_zone or "UTC"))
    return dt


class FakeRemoteCalendar:
    """In-memory stub that satisfies the GoogleCalendarClient duck-type contract."""

    def __init__(self, page_size: int = 250):
        self.page_size = page_size
        self.now = datetime.datetime(2025, 6, 1, 8, 0, tzinfo=UTC)
        # calendar ref → event id → RemoteEvent (what list_events returns)
        self._events: dict[str, dict[str, RemoteEvent]] = {}
        # calendar ref → master id → RemoteEvent (series masters, get_event only)
        self._masters: dict[str, dict[str, RemoteEvent]] = {}
        self._failures: list[Exception] = []
        self._next_id = 0
        self.creates: list[tuple[str, str]] = []
        self.updates: list[tuple[str, str]] = []
        self.deletes: list[tuple[str, str]] = []
        self.gets: list[tuple[str, str]] = []
        self.list_calls = 0
        self.payloads: dict[str, RemoteEvent] = {}

    # ------------------------------------------------------------------ #
    # Internal helpers                                                      #
    # ------------------------------------------------------------------ #

    def _maybe_fail(self):
        if self._failures:
            raise self._failures.pop(0)

    def _new_id(self) -> str:
        self._next_id += 1
        return f"remote-{self._next_id}"

    def _calendar(self, calendar_ref: str) -> dict[str, RemoteEvent]:
        return self._events.setdefault(calendar_ref, {})

    # ------------------------------------------------------------------ #
    # GoogleCalendarClient interface                                        #
    # ------------------------------------------------------------------ #

    def list_calendars(self) -> list[dict]:
        self._maybe_fail()
        return [
            {"id": ref, "summary": ref, "primary": False, "access_role": "owner"}
            for ref in sorted(self._events)
        ]

    def list_events(
        self,
        calendar_ref,
        time_min,
        time_max,
        show_deleted=True,
        single_events=True,
        page_token=None,
    ):
        self.list_calls += 1
        self._maybe_fail()
        matching = [
            copy.deepcopy(event)
            for event in self._calendar(calendar_ref).values()
            if (show_deleted or not event.cancelled)
            and (event.start is None or time_min <= _instant(event.start) <= time_max)
        ]
        matching.sort(key=lambda event: (_instant(event.start), event.id))
        offset = int(page_token or 0)
        page = matching[offset : offset + self.page_size]
        next_offset = offset + self.page_size
        next_token = str(next_offset) if next_offset < len(matching) else None
        return page, next_token

    def get_event(self, calendar_ref, event_id) -> RemoteEvent:
        self.gets.append((calendar_ref, event_id))
        self._maybe_fail()
        for source in (self._masters.get(calendar_ref, {}), self._calendar(calendar_ref)):
            if event_id in source:
                return copy.deepcopy(source[event_id])
        raise RemoteNotFoundError(f"get event {event_id}: HTTP 404")

    def create_event(self, calendar_ref, event: RemoteEvent) -> RemoteEvent:
        self._maybe_fail()
        stored = copy.deepcopy(event)
        stored.id = self._new_id()
        stored.updated = self.now
        self._calendar(calendar_ref)[stored.id] = stored
        self.creates.append((calendar_ref, stored.id))
        self.payloads[stored.id] = copy.deepcopy(stored)
        return copy.deepcopy(stored)

    def update_event(self, calendar_ref, event_id, event: RemoteEvent) -> RemoteEvent:
        self._maybe_fail()
        events = self._calendar(calendar_ref)
        if event_id not in events:
            raise RemoteNotFoundError(f"update event {event_id}: HTTP 404")
        stored = copy.deepcopy(event)
        stored.id = event_id
        stored.updated = self.now
        events[event_id] = stored
        self.updates.append((calendar_ref, event_id))
        self.payloads[event_id] = copy.deepcopy(stored)
        return copy.deepcopy(stored)

    def delete_event(self, calendar_ref, event_id):
        self._maybe_fail()
        events = self._calendar(calendar_ref)
        if event_id not in events:
            raise RemoteNotFoundError(f"delete event {event_id}: HTTP 410")
        del events[event_id]
        self.deletes.append((calendar_ref, event_id))

    # ------------------------------------------------------------------ #
    # Test helpers                                                          #
    # ------------------------------------------------------------------ #

    def fail_next(self, *errors: Exception):
        """Raise ``errors`` from the next API calls, one per call."""
        self._failures.extend(errors)

    def add_event(self, calendar_ref: str, event: RemoteEvent) -> RemoteEvent:
        """Put an event on the remote side without recording a create."""
        if not event.id:
            event.id = self._new_id()
        if event.updated is None:
            event.updated = self.now
        self._calendar(calendar_ref)[event.id] = event
        return event

    def add_series(
        self,
        calendar_ref: str,
        master: RemoteEvent,
        instance_starts: list[datetime.datetime],
        duration: datetime.timedelta = datetime.timedelta(hours=1),
    ) -> list[RemoteEvent]:
        """Store a series master plus its expanded, timed instances."""
        if master.updated is None:
            master.updated = self.now
        self._masters.setdefault(calendar_ref, {})[master.id] = master
        instances = []
        for start in instance_starts:
            instance = RemoteEvent(
                id=f"{master.id}_{start:%Y%m%dT%H%M%S}",
                summary=master.summary,
                description=master.description,
                location=master.location,
                start=RemoteTime(date_time=start, time_zone="UTC"),
                end=RemoteTime(date_time=start + duration, time_zone="UTC"),
                recurring_event_id=master.id,
                updated=master.updated,
            )
            instances.append(self.add_event(calendar_ref, instance))
        return instances

    def remove(self, calendar_ref: str, event_id: str):
        """Hard-delete an event behind the sync's back."""
        self._calendar(calendar_ref).pop(event_id, None)

    def cancel(self, calendar_ref: str, event_id: str):
        """Soft-delete an event the way the provider reports deletions."""
        self._calendar(calendar_ref)[event_id].cancelled = True

    def events(self, calendar_ref: str) -> dict[str, RemoteEvent]:
        return self._calendar(calendar_ref)

    def reset_counters(self):
        """Clear the recorded calls between sync runs."""
        self.creates.clear()
        self.updates.clear()
        self.deletes.clear()
        self.gets.clear()
        self.list_calls = 0
