"""
SQLite calendar store: local calendars and events plus their sync bookkeeping.
"""

import datetime
import sqlite3
from collections.abc import Iterable
from pathlib import Path

from google_calendar_sync.models import Calendar
from google_calendar_sync.models import CalendarSyncError
from google_calendar_sync.models import Event
from google_calendar_sync.models import Origin
from google_calendar_sync.models import RepeatUnit

_EVENT_COLUMNS = (
    "calendar_id",
    "title",
    "description",
    "location",
    "published",
    "start_at",
    "end_at",
    "has_time",
    "recurring",
    "repeat_unit",
    "repeat_interval",
    "repeat_end",
    "repeat_count",
    "remote_import_id",
    "remote_export_id",
    "remote_origin",
    "remote_source_calendar",
    "remote_export_calendar",
    "remote_export_hash",
    "last_synced_at",
    "modified_at",
)

_CALENDAR_COLUMNS = (
    "title",
    "sync_enabled",
    "import_calendar_ref",
    "export_calendar_ref",
    "sync_as_busy",
    "busy_text",
    "sync_horizon",
    "last_sync",
)


def _dump_dt(value: datetime.datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _load_dt(value: str | None) -> datetime.datetime | None:
    return datetime.datetime.fromisoformat(value) if value else None


class CalendarStore:
    """Manages the SQLite database holding calendars and events."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.conn: sqlite3.Connection | None = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def connect(self):
        """Initialize and connect to the store database."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path))
        self.conn.row_factory = sqlite3.Row  # Enable column access by name
        self._init_schema()

    def _init_schema(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS calendars (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL DEFAULT '',
                sync_enabled INTEGER NOT NULL DEFAULT 0,
                import_calendar_ref TEXT NOT NULL DEFAULT '',
                export_calendar_ref TEXT NOT NULL DEFAULT '',
                sync_as_busy INTEGER NOT NULL DEFAULT 0,
                busy_text TEXT NOT NULL DEFAULT '',
                sync_horizon TEXT,
                last_sync TEXT
            );
            CREATE TABLE IF NOT EXISTS events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                calendar_id INTEGER NOT NULL REFERENCES calendars(id),
                title TEXT NOT NULL DEFAULT '',
                description TEXT NOT NULL DEFAULT '',
                location TEXT NOT NULL DEFAULT '',
                published INTEGER NOT NULL DEFAULT 1,
                start_at TEXT NOT NULL,
                end_at TEXT,
                has_time INTEGER NOT NULL DEFAULT 0,
                recurring INTEGER NOT NULL DEFAULT 0,
                repeat_unit TEXT,
                repeat_interval INTEGER NOT NULL DEFAULT 1,
                repeat_end TEXT,
                repeat_count INTEGER NOT NULL DEFAULT 0,
                remote_import_id TEXT NOT NULL DEFAULT '',
                remote_export_id TEXT NOT NULL DEFAULT '',
                remote_origin TEXT NOT NULL DEFAULT 'local',
                remote_source_calendar TEXT NOT NULL DEFAULT '',
                remote_export_calendar TEXT NOT NULL DEFAULT '',
                remote_export_hash TEXT NOT NULL DEFAULT '',
                last_synced_at TEXT,
                modified_at TEXT
            );
            CREATE INDEX IF NOT EXISTS idx_events_import
                ON events(calendar_id, remote_import_id);
            CREATE INDEX IF NOT EXISTS idx_events_export
                ON events(calendar_id, remote_export_id);
        """)
        self.conn.commit()

    def _require_conn(self) -> sqlite3.Connection:
        if self.conn is None:
            raise CalendarSyncError("Calendar store not connected")
        return self.conn

    # ------------------------------------------------------------------ #
    # Calendars                                                            #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _calendar_from_row(row: sqlite3.Row) -> Calendar:
        return Calendar(
            id=row["id"],
            title=row["title"],
            sync_enabled=bool(row["sync_enabled"]),
            import_calendar_ref=row["import_calendar_ref"],
            export_calendar_ref=row["export_calendar_ref"],
            sync_as_busy=bool(row["sync_as_busy"]),
            busy_text=row["busy_text"],
            sync_horizon=_load_dt(row["sync_horizon"]),
            last_sync=_load_dt(row["last_sync"]),
        )

    @staticmethod
    def _calendar_params(calendar: Calendar) -> tuple:
        return (
            calendar.title,
            int(calendar.sync_enabled),
            calendar.import_calendar_ref or "",
            calendar.export_calendar_ref or "",
            int(calendar.sync_as_busy),
            calendar.busy_text or "",
            _dump_dt(calendar.sync_horizon),
            _dump_dt(calendar.last_sync),
        )

    def get_calendar(self, calendar_id: int) -> Calendar | None:
        row = (
            self._require_conn()
            .execute("SELECT * FROM calendars WHERE id = ?", (calendar_id,))
            .fetchone()
        )
        return self._calendar_from_row(row) if row else None

    def list_calendars(self, sync_enabled_only: bool = False) -> list[Calendar]:
        query = "SELECT * FROM calendars"
        if sync_enabled_only:
            query += " WHERE sync_enabled = 1"
        query += " ORDER BY id"
        return [self._calendar_from_row(row) for row in self._require_conn().execute(query)]

    def insert_calendar(self, calendar: Calendar) -> int:
        placeholders = ", ".join("?" for _ in _CALENDAR_COLUMNS)
        cursor = self._require_conn().execute(
            f"INSERT INTO calendars ({', '.join(_CALENDAR_COLUMNS)}) VALUES ({placeholders})",
            self._calendar_params(calendar),
        )
        calendar.id = cursor.lastrowid
        return calendar.id

    def update_calendar(self, calendar: Calendar):
        assignments = ", ".join(f"{col} = ?" for col in _CALENDAR_COLUMNS)
        self._require_conn().execute(
            f"UPDATE calendars SET {assignments} WHERE id = ?",
            (*self._calendar_params(calendar), calendar.id),
        )

    def set_last_sync(self, calendar_id: int, timestamp: datetime.datetime):
        self._require_conn().execute(
            "UPDATE calendars SET last_sync = ? WHERE id = ?",
            (_dump_dt(timestamp), calendar_id),
        )

    # ------------------------------------------------------------------ #
    # Events                                                               #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _event_from_row(row: sqlite3.Row) -> Event:
        return Event(
            id=row["id"],
            calendar_id=row["calendar_id"],
            title=row["title"],
            description=row["description"],
            location=row["location"],
            published=bool(row["published"]),
            start_at=_load_dt(row["start_at"]),
            end_at=_load_dt(row["end_at"]),
            has_time=bool(row["has_time"]),
            recurring=bool(row["recurring"]),
            repeat_unit=RepeatUnit(row["repeat_unit"]) if row["repeat_unit"] else None,
            repeat_interval=row["repeat_interval"],
            repeat_end=_load_dt(row["repeat_end"]),
            repeat_count=row["repeat_count"],
            remote_import_id=row["remote_import_id"],
            remote_export_id=row["remote_export_id"],
            remote_origin=Origin(row["remote_origin"]),
            remote_source_calendar=row["remote_source_calendar"],
            remote_export_calendar=row["remote_export_calendar"],
            remote_export_hash=row["remote_export_hash"],
            last_synced_at=_load_dt(row["last_synced_at"]),
            modified_at=_load_dt(row["modified_at"]),
        )

    @staticmethod
    def _event_params(event: Event) -> tuple:
        return (
            event.calendar_id,
            event.title,
            event.description or "",
            event.location or "",
            int(event.published),
            _dump_dt(event.start_at),
            _dump_dt(event.end_at),
            int(event.has_time),
            int(event.recurring),
            event.repeat_unit.value if event.repeat_unit else None,
            event.repeat_interval,
            _dump_dt(event.repeat_end),
            event.repeat_count,
            event.remote_import_id or "",
            event.remote_export_id or "",
            event.remote_origin.value,
            event.remote_source_calendar or "",
            event.remote_export_calendar or "",
            event.remote_export_hash or "",
            _dump_dt(event.last_synced_at),
            _dump_dt(event.modified_at),
        )

    def get_event(self, event_id: int) -> Event | None:
        row = (
            self._require_conn()
            .execute("SELECT * FROM events WHERE id = ?", (event_id,))
            .fetchone()
        )
        return self._event_from_row(row) if row else None

    def list_events(self, calendar_id: int) -> list[Event]:
        cursor = self._require_conn().execute(
            "SELECT * FROM events WHERE calendar_id = ? ORDER BY start_at, id", (calendar_id,)
        )
        return [self._event_from_row(row) for row in cursor]

    def insert_event(self, event: Event) -> int:
        placeholders = ", ".join("?" for _ in _EVENT_COLUMNS)
        cursor = self._require_conn().execute(
            f"INSERT INTO events ({', '.join(_EVENT_COLUMNS)}) VALUES ({placeholders})",
            self._event_params(event),
        )
        event.id = cursor.lastrowid
        return event.id

    def update_event(self, event: Event):
        assignments = ", ".join(f"{col} = ?" for col in _EVENT_COLUMNS)
        self._require_conn().execute(
            f"UPDATE events SET {assignments} WHERE id = ?",
            (*self._event_params(event), event.id),
        )

    def delete_event(self, event_id: int):
        self._require_conn().execute("DELETE FROM events WHERE id = ?", (event_id,))

    # ------------------------------------------------------------------ #
    # Remote-id lookups                                                    #
    # ------------------------------------------------------------------ #

    def _find_by_remote_id(
        self, column: str, remote_ids: Iterable[str], calendar_id: int | None
    ) -> Event | None:
        ids = [remote_id for remote_id in remote_ids if remote_id]
        if not ids:
            return None
        placeholders = ", ".join("?" for _ in ids)
        query = f"SELECT * FROM events WHERE {column} IN ({placeholders})"
        params = list(ids)
        if calendar_id is not None:
            query += " AND calendar_id = ?"
            params.append(calendar_id)
        row = self._require_conn().execute(query + " ORDER BY id LIMIT 1", params).fetchone()
        return self._event_from_row(row) if row else None

    def find_event_by_import_id(self, remote_ids: Iterable[str], calendar_id: int) -> Event | None:
        """First event of the calendar imported from any of ``remote_ids``."""
        return self._find_by_remote_id("remote_import_id", remote_ids, calendar_id)

    def find_event_by_export_id(
        self, remote_ids: Iterable[str], calendar_id: int | None = None
    ) -> Event | None:
        """Event whose export copy has one of ``remote_ids``, in any calendar by default."""
        return self._find_by_remote_id("remote_export_id", remote_ids, calendar_id)

    def list_exported_events(self, calendar_id: int) -> list[Event]:
        cursor = self._require_conn().execute(
            "SELECT * FROM events WHERE calendar_id = ? AND remote_export_id != '' ORDER BY id",
            (calendar_id,),
        )
        return [self._event_from_row(row) for row in cursor]

    def list_imported_events(self, calendar_id: int) -> list[Event]:
        cursor = self._require_conn().execute(
            "SELECT * FROM events WHERE calendar_id = ? AND remote_import_id != '' ORDER BY id",
            (calendar_id,),
        )
        return [self._event_from_row(row) for row in cursor]

    def event_counts(self, calendar_id: int) -> dict[str, int]:
        """Totals used by the status command."""
        row = (
            self._require_conn()
            .execute(
                """
                SELECT
                    COUNT(*)                                           AS total,
                    COALESCE(SUM(remote_import_id != ''), 0)           AS imported,
                    COALESCE(SUM(remote_export_id != ''), 0)           AS exported,
                    COALESCE(SUM(remote_origin = 'remote'), 0)         AS remote_origin
                FROM events WHERE calendar_id = ?
                """,
                (calendar_id,),
            )
            .fetchone()
        )
        return {key: row[key] for key in row.keys()}

    def commit(self):
        """Commit pending transactions."""
        if self.conn:
            self.conn.commit()

    def close(self):
        """Close the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
