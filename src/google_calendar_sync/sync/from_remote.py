"""
Import: pull remote events into the local calendar and clean up remote deletions.
"""

import logging
import sqlite3
from zoneinfo import ZoneInfo

from google_calendar_sync.db import CalendarStore
from google_calendar_sync.google_client import GoogleCalendarClient
from google_calendar_sync.models import Calendar
from google_calendar_sync.models import CalendarSyncError
from google_calendar_sync.models import Event
from google_calendar_sync.models import RemoteApiError
from google_calendar_sync.models import RemoteEvent
from google_calendar_sync.models import RemoteNotFoundError
from google_calendar_sync.models import SyncConfig
from google_calendar_sync.models import SyncStats
from google_calendar_sync.sync.origin import is_cross_export
from google_calendar_sync.sync.origin import is_locally_authoritative
from google_calendar_sync.sync.origin import mark_imported
from google_calendar_sync.sync.to_remote import ExportEngine
from google_calendar_sync.sync.utils import Clock
from google_calendar_sync.sync.utils import localize
from google_calendar_sync.sync.utils import start_of_day
from google_calendar_sync.sync.utils import sync_horizon
from google_calendar_sync.sync.utils import utcnow
from google_calendar_sync.sync.utils import wall_clock
from google_calendar_sync.throttle import RateLimiter
from google_calendar_sync.throttle import call_with_retry
from google_calendar_sync.translator import from_remote

logger = logging.getLogger(__name__)


class ImportEngine:
    """Mirrors one remote calendar into a local calendar.

    Recurring series are expanded remotely; only the first instance seen per
    series is materialised, carrying the series master's recurrence rule and
    the master id as its import id.
    """

    def __init__(
        self,
        store: CalendarStore,
        client: GoogleCalendarClient,
        limiter: RateLimiter,
        config: SyncConfig,
        exporter: ExportEngine | None = None,
        clock: Clock | None = None,
    ):
        self.store = store
        self.client = client
        self.limiter = limiter
        self.config = config
        self.clock = clock or utcnow
        self.tz = ZoneInfo(config.timezone)
        self.exporter = exporter or ExportEngine(store, client, limiter, config, clock=self.clock)
        self.stats = SyncStats()

    def _call(self, operation, description: str):
        return call_with_retry(
            self.limiter, operation, description, max_retries=self.config.max_retries
        )

    def import_calendar(self, calendar: Calendar) -> int:
        """Import ``calendar``'s remote events; returns local creates+updates+deletes."""
        remote_ref = calendar.import_calendar_ref
        if not remote_ref:
            return 0

        wall_now = wall_clock(self.clock(), self.tz)
        horizon = sync_horizon(calendar, wall_now, self.config.sync_horizon_days)
        # Cleanup covers all of today, so the fetch has to as well.
        time_min = localize(start_of_day(wall_now), self.tz)
        time_max = localize(horizon, self.tz)

        seen: set[str] = set()
        series_done: set[str] = set()
        count = 0
        complete = True
        page_token = None
        pages = 0

        logger.info(f"Importing events of '{calendar.title}' from {remote_ref}...")
        while True:
            try:
                remote_events, page_token = self._call(
                    lambda token=page_token: self.client.list_events(
                        remote_ref,
                        time_min,
                        time_max,
                        show_deleted=True,
                        single_events=True,
                        page_token=token,
                    ),
                    f"list events in {remote_ref}",
                )
            except RemoteApiError as e:
                logger.error(f"Failed to fetch events from {remote_ref}: {e}")
                self.stats.errors += 1
                complete = False
                break
            pages += 1

            for remote in remote_events:
                try:
                    if self._import_one(remote, calendar, seen, series_done):
                        count += 1
                except (CalendarSyncError, sqlite3.Error) as e:
                    logger.error(f"Failed to import remote event {remote.id}: {e}")
                    self.stats.errors += 1
                    # A failed event must not look remotely deleted.
                    seen.update((remote.id, remote.series_id))

            if not page_token:
                break

        logger.debug(f"Fetched {pages} page(s), {len(seen)} remote ids seen")
        if complete:
            count += self._cleanup(calendar, seen, wall_now, horizon)
        else:
            logger.warning(f"Incomplete fetch from {remote_ref}, skipping deletion cleanup")
        return count

    def _import_one(
        self,
        remote: RemoteEvent,
        calendar: Calendar,
        seen: set[str],
        series_done: set[str],
    ) -> bool:
        # Cancelled entries never count as seen; cleanup treats them as deleted.
        if remote.cancelled:
            return False

        series_id = remote.series_id
        seen.update((remote.id, series_id))
        if series_id in series_done:
            return False
        series_done.add(series_id)

        if self.store.find_event_by_export_id([remote.id, series_id]) is not None:
            logger.debug(f"Skipping remote event {remote.id}: it is one of our exports")
            self.stats.skipped += 1
            return False

        local = self.store.find_event_by_import_id([remote.id, series_id], calendar.id)
        if local is not None and is_locally_authoritative(local):
            logger.debug(f"Skipping remote event {remote.id}: local event {local.id} was edited")
            self.stats.skipped += 1
            return False

        if (
            local is not None
            and local.last_synced_at is not None
            and remote.updated is not None
            and remote.updated <= local.last_synced_at
        ):
            self.stats.skipped += 1
            return False

        master = self._fetch_master(remote, calendar.import_calendar_ref)
        fields = from_remote(remote, self.tz, master=master)
        now = self.clock()

        if local is None:
            local = Event(calendar_id=calendar.id, title=fields.title, start_at=fields.start_at)
            fields.apply_to(local)
            local.published = True
            local.remote_import_id = series_id
            mark_imported(local, calendar.import_calendar_ref, now)
            self.store.insert_event(local)
            self.stats.added += 1
            logger.debug(f"Created event {local.id} from remote {series_id}")
        else:
            fields.apply_to(local)
            local.remote_import_id = series_id
            mark_imported(local, calendar.import_calendar_ref, now)
            self.store.update_event(local)
            self.stats.modified += 1
            logger.debug(f"Updated event {local.id} from remote {series_id}")
        self.store.commit()

        self._cross_export(local, calendar)
        return True

    def _fetch_master(self, remote: RemoteEvent, remote_ref: str) -> RemoteEvent | None:
        if not remote.recurring_event_id:
            return None
        try:
            return self._call(
                lambda: self.client.get_event(remote_ref, remote.recurring_event_id),
                f"get series {remote.recurring_event_id}",
            )
        except RemoteNotFoundError:
            logger.warning(
                f"Series master {remote.recurring_event_id} not found, importing "
                f"{remote.id} as a single event"
            )
            return None

    def _cross_export(self, event: Event, calendar: Calendar):
        export_ref = calendar.export_calendar_ref
        if not export_ref or not is_cross_export(event, export_ref):
            return
        self.exporter.export_event(event, export_ref, event.remote_export_id or None, calendar)

    def _cleanup(self, calendar: Calendar, seen: set[str], wall_now, horizon) -> int:
        """Delete future imported events whose remote source disappeared."""
        today = start_of_day(wall_now)
        remote_ref = calendar.import_calendar_ref
        deleted = 0

        for event in self.store.list_imported_events(calendar.id):
            if event.start_at < today or event.start_at > horizon:
                continue
            if event.remote_source_calendar and event.remote_source_calendar != remote_ref:
                continue
            if event.remote_import_id in seen:
                continue

            try:
                if event.remote_export_id:
                    self.exporter.delete_exported(event, calendar)
                self.store.delete_event(event.id)
                self.store.commit()
            except (CalendarSyncError, sqlite3.Error) as e:
                logger.error(f"Failed to remove event {event.id} deleted remotely: {e}")
                self.stats.errors += 1
                continue

            self.stats.deleted += 1
            deleted += 1
            logger.debug(f"Deleted event {event.id} (remote {event.remote_import_id} is gone)")
        return deleted
