"""
CalendarSynchronizer — thin orchestrator that delegates to the sync engines.
"""

import logging

from google_calendar_sync.db import CalendarStore
from google_calendar_sync.google_client import GoogleCalendarClient
from google_calendar_sync.models import Calendar
from google_calendar_sync.models import SyncConfig
from google_calendar_sync.models import SyncDirection
from google_calendar_sync.models import SyncResult
from google_calendar_sync.models import SyncStats
from google_calendar_sync.sync.direction import resolve_directions
from google_calendar_sync.sync.from_remote import ImportEngine
from google_calendar_sync.sync.to_remote import ExportEngine
from google_calendar_sync.sync.utils import Clock
from google_calendar_sync.sync.utils import utcnow
from google_calendar_sync.throttle import RateLimiter


class CalendarSynchronizer:
    """Main synchronization entry point.

    ``client`` may be None (sync disabled or no credentials); every run then
    returns an empty result.
    """

    def __init__(
        self,
        store: CalendarStore,
        client: GoogleCalendarClient | None,
        config: SyncConfig,
        limiter: RateLimiter | None = None,
        clock: Clock | None = None,
    ):
        self.store = store
        self.client = client
        self.config = config
        self.clock = clock or utcnow
        self.logger = logging.getLogger(__name__)
        self.limiter = limiter or RateLimiter.from_config(config)
        self.exporter = None
        self.importer = None
        if client is not None:
            self.exporter = ExportEngine(store, client, self.limiter, config, clock=self.clock)
            self.importer = ImportEngine(
                store, client, self.limiter, config, exporter=self.exporter, clock=self.clock
            )

    def _select_calendars(self, calendar_id: int | None) -> list[Calendar]:
        if calendar_id is None:
            return self.store.list_calendars(sync_enabled_only=True)
        calendar = self.store.get_calendar(calendar_id)
        if calendar is None:
            self.logger.error(f"Calendar {calendar_id} not found")
            return []
        return [calendar]

    def run_sync(
        self, calendar_id: int | None = None, direction: SyncDirection = SyncDirection.BOTH
    ) -> SyncResult:
        """Sync every enabled calendar (or just ``calendar_id``); import runs before export."""
        result = SyncResult()
        if self.client is None:
            self.logger.info("No remote calendar client available, nothing to sync")
            return result

        for calendar in self._select_calendars(calendar_id):
            active = resolve_directions(calendar, direction)
            if active.idle:
                self.logger.debug(f"Calendar '{calendar.title}': nothing to do")
                continue

            stats = SyncStats()
            result.calendars[calendar.id] = stats
            if self.config.dry_run:
                self.logger.info(
                    f"[DRY RUN] Calendar '{calendar.title}': would {active.describe()}"
                )
                continue

            self.importer.stats = stats
            self.exporter.stats = stats
            try:
                synced = 0
                if active.importing:
                    synced += self.importer.import_calendar(calendar)
                if active.exporting:
                    synced += self.exporter.export_calendar(calendar)
                self.store.set_last_sync(calendar.id, self.clock())
                self.store.commit()
            except Exception as e:
                self.logger.error(f"Sync of calendar '{calendar.title}' failed: {e}", exc_info=True)
                stats.errors += 1
                result.errors += stats.errors
                continue

            result.synced += synced
            result.errors += stats.errors
            self.logger.info(
                f"Calendar '{calendar.title}': {synced} synced "
                f"(+{stats.added} ~{stats.modified} -{stats.deleted}), "
                f"{stats.skipped} skipped, {stats.errors} errors"
            )

        return result

    def clear_calendar(self, calendar_id: int) -> SyncResult:
        """Remove every remote copy exported from one calendar."""
        result = SyncResult()
        if self.client is None:
            self.logger.info("No remote calendar client available, nothing to clear")
            return result
        calendar = self.store.get_calendar(calendar_id)
        if calendar is None:
            self.logger.error(f"Calendar {calendar_id} not found")
            return result

        stats = SyncStats()
        result.calendars[calendar.id] = stats
        if self.config.dry_run:
            exported = self.store.list_exported_events(calendar.id)
            self.logger.info(
                f"[DRY RUN] Would remove {len(exported)} exported events of '{calendar.title}'"
            )
            return result

        self.exporter.stats = stats
        result.synced = self.exporter.drop_exported(calendar)
        result.errors = stats.errors
        return result
