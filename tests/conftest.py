"""
Shared pytest fixtures, fake clocks and event helpers.
"""

import datetime

import pytest

from google_calendar_sync.db import CalendarStore
from google_calendar_sync.models import Calendar
from google_calendar_sync.models import Event
from google_calendar_sync.models import RemoteEvent
from google_calendar_sync.models import RemoteTime
from google_calendar_sync.models import SyncConfig
from google_calendar_sync.sync.from_remote import ImportEngine
from google_calendar_sync.sync.to_remote import ExportEngine
from google_calendar_sync.throttle import RateLimiter
from tests.fake_client import FakeRemoteCalendar

UTC = datetime.timezone.utc

# Sunday 2025-06-01 08:00 UTC; every test runs "now" at this instant.
NOW = datetime.datetime(2025, 6, 1, 8, 0, tzinfo=UTC)

IMPORT_CAL = "import-cal@group.calendar.google.com"
EXPORT_CAL = "export-cal@group.calendar.google.com"


class FakeClock:
    """Aware-UTC clock the engines read instead of the system time."""

    def __init__(self, now: datetime.datetime = NOW):
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += datetime.timedelta(**kwargs)


class FakeTime:
    """Monotonic seconds plus a sleep that only advances them."""

    def __init__(self, start: float = 1_000_020.0):
        self.now = start
        self.sleeps: list[float] = []

    def time(self) -> float:
        return self.now

    def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


def make_calendar(store: CalendarStore, **kwargs) -> Calendar:
    """Insert a sync-enabled calendar (import + export refs unset unless given)."""
    values = {"title": "Club events", "sync_enabled": True}
    values.update(kwargs)
    calendar = Calendar(**values)
    store.insert_calendar(calendar)
    store.commit()
    return calendar


def make_event(store: CalendarStore, calendar: Calendar, **kwargs) -> Event:
    """Insert a timed one-hour event three days from NOW."""
    start = kwargs.pop("start_at", datetime.datetime(2025, 6, 4, 12, 30))
    values = {
        "calendar_id": calendar.id,
        "title": "Board meeting",
        "start_at": start,
        "end_at": start + datetime.timedelta(hours=1),
        "has_time": True,
        "modified_at": NOW - datetime.timedelta(days=1),
    }
    values.update(kwargs)
    event = Event(**values)
    store.insert_event(event)
    store.commit()
    return event


def remote_timed(
    summary: str,
    start: datetime.datetime,
    hours: int = 1,
    **kwargs,
) -> RemoteEvent:
    """Remote event with UTC civil times."""
    return RemoteEvent(
        summary=summary,
        start=RemoteTime(date_time=start, time_zone="UTC"),
        end=RemoteTime(date_time=start + datetime.timedelta(hours=hours), time_zone="UTC"),
        **kwargs,
    )


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "test_store.db"


@pytest.fixture
def store(db_path):
    with CalendarStore(db_path) as db:
        yield db


@pytest.fixture
def sync_config(db_path, tmp_path):
    return SyncConfig(
        store_db_path=db_path,
        token_file=tmp_path / "token.json",
        timezone="UTC",
        min_call_delay_ms=0,
        dry_run=False,
        verbose=False,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def limiter(fake_time):
    return RateLimiter(
        min_interval=0.0,
        max_calls_per_minute=590,
        clock=fake_time.time,
        sleep=fake_time.sleep,
    )


@pytest.fixture
def remote():
    return FakeRemoteCalendar()


@pytest.fixture
def exporter(store, remote, limiter, sync_config, clock):
    return ExportEngine(store, remote, limiter, sync_config, clock=clock)


@pytest.fixture
def importer(store, remote, limiter, sync_config, clock, exporter):
    return ImportEngine(store, remote, limiter, sync_config, exporter=exporter, clock=clock)
