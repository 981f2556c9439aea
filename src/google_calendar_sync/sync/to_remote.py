"""
Export: push local events to the remote calendar.
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
from google_calendar_sync.models import RemoteNotFoundError
from google_calendar_sync.models import SyncConfig
from google_calendar_sync.models import SyncStats
from google_calendar_sync.sync.origin import forget_export
from google_calendar_sync.sync.origin import is_export_loop
from google_calendar_sync.sync.origin import mark_exported
from google_calendar_sync.sync.utils import Clock
from google_calendar_sync.sync.utils import compute_hash
from google_calendar_sync.sync.utils import is_expired_recurrence
from google_calendar_sync.sync.utils import is_unchanged_since_sync
from google_calendar_sync.sync.utils import sync_horizon
from google_calendar_sync.sync.utils import utcnow
from google_calendar_sync.sync.utils import wall_clock
from google_calendar_sync.throttle import RateLimiter
from google_calendar_sync.throttle import call_with_retry
from google_calendar_sync.translator import to_remote

logger = logging.getLogger(__name__)


class ExportEngine:
    """Creates, updates and deletes remote copies of local events."""

    def __init__(
        self,
        store: CalendarStore,
        client: GoogleCalendarClient,
        limiter: RateLimiter,
        config: SyncConfig,
        clock: Clock | None = None,
    ):
        self.store = store
        self.client = client
        self.limiter = limiter
        self.config = config
        self.clock = clock or utcnow
        self.tz = ZoneInfo(config.timezone)
        self.stats = SyncStats()

    def _call(self, operation, description: str):
        return call_with_retry(
            self.limiter, operation, description, max_retries=self.config.max_retries
        )

    def _save(self, event: Event):
        if event.id is not None:
            self.store.update_event(event)
            self.store.commit()

    def skip_reason(self, event: Event, calendar: Calendar, remote_calendar_ref: str) -> str | None:
        """First matching skip rule for ``event``, or None if it may be exported."""
        wall_now = wall_clock(self.clock(), self.tz)
        if not event.published:
            return "unpublished"
        if is_export_loop(event, remote_calendar_ref):
            return f"imported from {remote_calendar_ref}"
        if is_expired_recurrence(event, wall_now):
            return "recurrence ended"
        horizon = sync_horizon(calendar, wall_now, self.config.sync_horizon_days)
        if event.start_at > horizon:
            return "beyond sync horizon"
        return None

    def export_calendar(self, calendar: Calendar) -> int:
        """Export every event of ``calendar``; returns the number of remote writes."""
        remote_ref = calendar.export_calendar_ref
        if not remote_ref:
            return 0

        events = self.store.list_events(calendar.id)
        logger.info(f"Exporting {len(events)} events of '{calendar.title}' to {remote_ref}...")

        count = 0
        for event in events:
            try:
                if self._export_one(event, calendar, remote_ref):
                    count += 1
            except (CalendarSyncError, sqlite3.Error) as e:
                logger.error(f"Failed to export event {event.id} ('{event.title}'): {e}")
                self.stats.errors += 1
        return count

    def _export_one(self, event: Event, calendar: Calendar, remote_ref: str) -> bool:
        if not event.published:
            if event.remote_export_id:
                logger.info(f"Event {event.id} was unpublished, removing remote copy")
                return self.delete_exported(event, calendar)
            self.stats.skipped += 1
            return False

        wall_now = wall_clock(self.clock(), self.tz)
        if is_expired_recurrence(event, wall_now) and event.remote_export_id:
            logger.info(
                f"Recurring event {event.id} ended on {event.repeat_end}, removing remote copy"
            )
            return self.delete_exported(event, calendar)

        remote_id = self.export_event(
            event, remote_ref, event.remote_export_id or None, calendar, skip_unchanged=True
        )
        return remote_id is not None

    def export_event(
        self,
        event: Event,
        remote_calendar_ref: str,
        existing_remote_id: str | None = None,
        calendar: Calendar | None = None,
        skip_unchanged: bool = False,
    ) -> str | None:
        """Create or update the remote copy of one event.

        A copy living in a different remote calendar is deleted there and
        created anew in ``remote_calendar_ref``.  With ``skip_unchanged`` no
        write happens when that calendar already holds the same payload.

        Returns the remote id, or None when the event is skipped or the
        write failed.  Failures are logged and counted, never raised.
        """
        if calendar is None:
            calendar = self.store.get_calendar(event.calendar_id)
            if calendar is None:
                raise CalendarSyncError(f"Calendar {event.calendar_id} not found")

        reason = self.skip_reason(event, calendar, remote_calendar_ref)
        if reason:
            logger.debug(f"Skipping export of event {event.id} ('{event.title}'): {reason}")
            self.stats.skipped += 1
            return None

        payload = to_remote(event, calendar, self.config.timezone, self.config.busy_text)
        payload_hash = compute_hash(payload)
        if skip_unchanged and is_unchanged_since_sync(event, remote_calendar_ref, payload_hash):
            logger.debug(f"Event {event.id} unchanged since last sync")
            self.stats.skipped += 1
            return None

        remote_id = existing_remote_id
        try:
            if remote_id and event.remote_export_calendar not in ("", remote_calendar_ref):
                self._move_away(event, remote_id)
                remote_id = None

            if remote_id:
                try:
                    self._call(
                        lambda: self.client.update_event(remote_calendar_ref, remote_id, payload),
                        f"update event {remote_id}",
                    )
                    self.stats.modified += 1
                    logger.debug(f"Updated remote event {remote_id} from event {event.id}")
                except RemoteNotFoundError:
                    logger.info(
                        f"Remote event {remote_id} no longer exists, recreating event {event.id}"
                    )
                    forget_export(event)
                    self._save(event)
                    remote_id = None

            if not remote_id:
                created = self._call(
                    lambda: self.client.create_event(remote_calendar_ref, payload),
                    f"create event in {remote_calendar_ref}",
                )
                remote_id = created.id
                self.stats.added += 1
                logger.debug(f"Created remote event {remote_id} from event {event.id}")
        except RemoteApiError as e:
            logger.error(f"Failed to export event {event.id} ('{event.title}'): {e}")
            self.stats.errors += 1
            return None

        mark_exported(event, remote_id, remote_calendar_ref, payload_hash, self.clock())
        self._save(event)
        return remote_id

    def _move_away(self, event: Event, remote_id: str):
        """Remove the copy left in the previous export calendar."""
        old_ref = event.remote_export_calendar
        logger.info(
            f"Export target of event {event.id} changed, removing copy {remote_id} from {old_ref}"
        )
        try:
            self._call(
                lambda: self.client.delete_event(old_ref, remote_id),
                f"delete event {remote_id}",
            )
        except RemoteNotFoundError:
            logger.debug(f"Remote event {remote_id} was already deleted")
        forget_export(event)
        self._save(event)

    def delete_exported(self, event: Event, calendar: Calendar) -> bool:
        """Delete the remote copy of ``event`` and forget its export id.

        The copy is removed from the calendar it was written to, falling back
        to the current export target.  A copy that is already gone counts as
        deleted.  Other remote errors propagate to the caller.
        """
        if not event.remote_export_id:
            return False
        remote_ref = event.remote_export_calendar or calendar.export_calendar_ref
        if not remote_ref:
            raise CalendarSyncError(
                f"Event {event.id} has a remote copy but calendar '{calendar.title}' "
                f"has no export target"
            )

        remote_id = event.remote_export_id
        try:
            self._call(
                lambda: self.client.delete_event(remote_ref, remote_id),
                f"delete event {remote_id}",
            )
        except RemoteNotFoundError:
            logger.debug(f"Remote event {remote_id} was already deleted")

        forget_export(event)
        self._save(event)
        self.stats.deleted += 1
        logger.debug(f"Deleted remote event {remote_id} of event {event.id}")
        return True

    def drop_exported(self, calendar: Calendar) -> int:
        """Delete every remote copy exported from ``calendar``.

        Copies are removed from the calendar each was written to, so this also
        works after the export target was changed or switched off.
        """
        events = self.store.list_exported_events(calendar.id)
        if not events and not calendar.export_calendar_ref:
            logger.warning(f"Calendar '{calendar.title}' has no export target")
            return 0

        logger.info(f"Removing {len(events)} exported events of '{calendar.title}'...")
        count = 0
        for event in events:
            try:
                if self.delete_exported(event, calendar):
                    count += 1
            except (CalendarSyncError, sqlite3.Error) as e:
                logger.error(f"Failed to remove remote copy of event {event.id}: {e}")
                self.stats.errors += 1
        return count
