"""
Pure data models — no Google API or sqlite imports.
"""

import datetime
from dataclasses import dataclass
from dataclasses import field
from enum import Enum
from pathlib import Path

DEFAULT_STORE_DB = Path.home() / ".local/share/google-calendar-sync.db"
DEFAULT_CONFIG = Path.home() / ".config/google-calendar-sync.conf"
DEFAULT_TOKEN_FILE = Path.home() / ".config/google-calendar-sync-token.json"

DEFAULT_BUSY_TEXT = "Busy"
UNTITLED_EVENT = "Untitled Event"


class CalendarSyncError(Exception):
    """Base exception for calendar sync errors."""

    pass


class RemoteApiError(CalendarSyncError):
    """A remote calendar call failed.

    ``transient`` marks failures worth retrying (server errors, timeouts,
    dropped connections).  Client errors such as a malformed payload are
    not retried.
    """

    def __init__(self, message: str, status: int | None = None, transient: bool = True):
        super().__init__(message)
        self.status = status
        self.transient = transient


class RemoteNotFoundError(RemoteApiError):
    """The referenced remote event (or calendar) no longer exists."""

    def __init__(self, message: str, status: int | None = 404):
        super().__init__(message, status=status, transient=False)


class RateLimitedError(RemoteApiError):
    """The provider rejected the call because the quota was exhausted."""

    def __init__(self, message: str, status: int | None = 403):
        super().__init__(message, status=status, transient=True)


class Origin(Enum):
    """Last writer of a local event."""

    LOCAL = "local"
    REMOTE = "remote"


class SyncDirection(Enum):
    IMPORT = "import"
    EXPORT = "export"
    BOTH = "both"

    @property
    def includes_import(self) -> bool:
        return self in (SyncDirection.IMPORT, SyncDirection.BOTH)

    @property
    def includes_export(self) -> bool:
        return self in (SyncDirection.EXPORT, SyncDirection.BOTH)


class RepeatUnit(Enum):
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"
    YEARS = "years"


@dataclass
class Recurrence:
    """Structured recurrence descriptor of a local event.

    ``count`` of 0 means unbounded by count; ``until`` of None means no end
    date.  When both are set the count wins.
    """

    unit: RepeatUnit
    interval: int = 1
    count: int = 0
    until: datetime.datetime | None = None


@dataclass
class Calendar:
    """Sync-relevant subset of a local calendar."""

    id: int | None = None
    title: str = ""
    sync_enabled: bool = False
    import_calendar_ref: str = ""
    export_calendar_ref: str = ""
    sync_as_busy: bool = False
    busy_text: str = ""
    # Naive wall-clock bound; None means "now + SyncConfig.sync_horizon_days".
    sync_horizon: datetime.datetime | None = None
    last_sync: datetime.datetime | None = None

    @property
    def shares_remote_calendar(self) -> bool:
        """True when import and export point at the same remote calendar."""
        return bool(self.import_calendar_ref) and (
            self.import_calendar_ref == self.export_calendar_ref
        )


@dataclass
class Event:
    """Local event.

    ``start_at``/``end_at`` are naive wall-clock values (midnight for all-day
    events, with an inclusive end date).  ``last_synced_at`` and
    ``modified_at`` are aware UTC timestamps.

    ``remote_export_calendar`` is the remote calendar holding the export copy
    and ``remote_export_hash`` the digest of the payload last written there.
    """

    calendar_id: int
    title: str
    start_at: datetime.datetime
    id: int | None = None
    description: str = ""
    location: str = ""
    published: bool = True
    end_at: datetime.datetime | None = None
    has_time: bool = False
    recurring: bool = False
    repeat_unit: RepeatUnit | None = None
    repeat_interval: int = 1
    repeat_end: datetime.datetime | None = None
    repeat_count: int = 0
    remote_import_id: str = ""
    remote_export_id: str = ""
    remote_origin: Origin = Origin.LOCAL
    remote_source_calendar: str = ""
    remote_export_calendar: str = ""
    remote_export_hash: str = ""
    last_synced_at: datetime.datetime | None = None
    modified_at: datetime.datetime | None = None

    @property
    def recurrence(self) -> Recurrence | None:
        if not self.recurring or self.repeat_unit is None:
            return None
        return Recurrence(
            unit=self.repeat_unit,
            interval=max(1, self.repeat_interval),
            count=self.repeat_count,
            until=self.repeat_end,
        )

    def apply_recurrence(self, recurrence: Recurrence | None):
        """Overwrite the recurrence fields from a structured descriptor."""
        if recurrence is None:
            self.recurring = False
            self.repeat_unit = None
            self.repeat_interval = 1
            self.repeat_count = 0
            self.repeat_end = None
            return
        self.recurring = True
        self.repeat_unit = recurrence.unit
        self.repeat_interval = recurrence.interval
        self.repeat_count = recurrence.count
        # repeatEnd XOR repeatCount
        self.repeat_end = None if recurrence.count > 0 else recurrence.until


@dataclass
class RemoteTime:
    """Start or end of a remote event: a civil date, or civil time plus zone."""

    date: datetime.date | None = None
    date_time: datetime.datetime | None = None
    time_zone: str | None = None

    @property
    def is_all_day(self) -> bool:
        return self.date is not None and self.date_time is None


@dataclass
class RemoteEvent:
    """Provider-neutral view of one remote event resource."""

    id: str = ""
    summary: str = ""
    description: str = ""
    location: str = ""
    start: RemoteTime | None = None
    end: RemoteTime | None = None
    recurrence: list[str] = field(default_factory=list)
    recurring_event_id: str = ""
    updated: datetime.datetime | None = None
    cancelled: bool = False

    @property
    def series_id(self) -> str:
        """Series master id for instances, own id otherwise."""
        return self.recurring_event_id or self.id


@dataclass
class SyncConfig:
    """Configuration for calendar sync operation."""

    store_db_path: Path = DEFAULT_STORE_DB
    token_file: Path = DEFAULT_TOKEN_FILE
    enabled: bool = True
    timezone: str = "UTC"
    min_call_delay_ms: int = 500
    max_calls_per_minute: int = 590  # provider limit is 600/minute
    max_retries: int = 3
    sync_horizon_days: int = 365
    busy_text: str = DEFAULT_BUSY_TEXT
    dry_run: bool = False
    verbose: bool = False


@dataclass
class SyncStats:
    """Statistics for one engine pass."""

    added: int = 0
    modified: int = 0
    deleted: int = 0
    skipped: int = 0
    errors: int = 0

    @property
    def synced(self) -> int:
        return self.added + self.modified + self.deleted


@dataclass
class SyncResult:
    """Aggregate outcome of an orchestrated sync run."""

    synced: int = 0
    errors: int = 0
    calendars: dict[int, SyncStats] = field(default_factory=dict)
