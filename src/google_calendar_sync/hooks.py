"""
Export work triggered by local edits (save, delete, copy of a single event).
"""

import logging

from google_calendar_sync.db import CalendarStore
from google_calendar_sync.google_client import GoogleCalendarClient
from google_calendar_sync.models import Calendar
from google_calendar_sync.models import CalendarSyncError
from google_calendar_sync.models import Event
from google_calendar_sync.models import SyncConfig
from google_calendar_sync.sync.origin import clear_remote_links
from google_calendar_sync.sync.origin import mark_local_edit
from google_calendar_sync.sync.to_remote import ExportEngine
from google_calendar_sync.sync.utils import Clock
from google_calendar_sync.sync.utils import is_expired_recurrence
from google_calendar_sync.sync.utils import utcnow
from google_calendar_sync.sync.utils import wall_clock
from google_calendar_sync.throttle import RateLimiter

logger = logging.getLogger(__name__)


class EventChangeHandler:
    """Keeps the export copy of a single event current as the user edits it."""

    def __init__(
        self,
        store: CalendarStore,
        client: GoogleCalendarClient | None,
        config: SyncConfig,
        limiter: RateLimiter | None = None,
        clock: Clock | None = None,
    ):
        self.store = store
        self.config = config
        self.clock = clock or utcnow
        self.exporter = None
        if client is not None:
            self.exporter = ExportEngine(
                store,
                client,
                limiter or RateLimiter.from_config(config),
                config,
                clock=self.clock,
            )

    def _export_calendar(self, event: Event) -> Calendar | None:
        """The event's calendar, if it currently exports anywhere."""
        if self.exporter is None:
            return None
        calendar = self.store.get_calendar(event.calendar_id)
        if calendar is None or not calendar.sync_enabled or not calendar.export_calendar_ref:
            return None
        return calendar

    def on_save(self, event: Event, was_published: bool = True) -> str | None:
        """Handle a local save; returns the remote id when the event was exported.

        ``was_published`` is the published flag before this save.  Only the
        published to unpublished transition removes the remote copy; an event
        that stays unpublished is left to the next full export pass.
        """
        if mark_local_edit(event, self.clock()):
            logger.debug(f"Event {event.id} edited locally, local side is now authoritative")
        self.store.update_event(event)
        self.store.commit()

        calendar = self._export_calendar(event)
        if calendar is None:
            return None

        try:
            if not event.published:
                if was_published and event.remote_export_id:
                    logger.info(f"Event {event.id} unpublished, removing remote copy")
                    self.exporter.delete_exported(event, calendar)
                return None

            wall_now = wall_clock(self.clock(), self.exporter.tz)
            if is_expired_recurrence(event, wall_now):
                if event.remote_export_id:
                    logger.info(f"Recurring event {event.id} has ended, removing remote copy")
                    self.exporter.delete_exported(event, calendar)
                return None
        except CalendarSyncError as e:
            logger.error(f"Failed to remove remote copy of event {event.id}: {e}")
            return None

        return self.exporter.export_event(
            event, calendar.export_calendar_ref, event.remote_export_id or None, calendar
        )

    def on_delete(self, event: Event) -> bool:
        """Remove the export copy of an event that is being deleted locally."""
        if not event.remote_export_id:
            return False
        calendar = self._export_calendar(event)
        if calendar is None:
            return False
        try:
            return self.exporter.delete_exported(event, calendar)
        except CalendarSyncError as e:
            logger.error(f"Failed to remove remote copy of event {event.id}: {e}")
            return False

    def on_copy(self, event: Event) -> Event:
        """A copied event is a new local event with no remote history."""
        clear_remote_links(event)
        event.modified_at = self.clock()
        if event.id is not None:
            self.store.update_event(event)
            self.store.commit()
        return event
