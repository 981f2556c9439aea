"""
Origin tracking: who last wrote a local event, and where it was imported from.

An event imported from remote calendar X must never be pushed back into X,
and a remote event that is merely the reflection of one of our own exports
must never be imported.  A local edit hands authority back to the local side.
"""

import datetime

from google_calendar_sync.models import Event
from google_calendar_sync.models import Origin


def is_export_loop(event: Event, export_calendar_ref: str) -> bool:
    """True when exporting ``event`` would re-push it into its source calendar."""
    return (
        event.remote_origin is Origin.REMOTE
        and bool(event.remote_source_calendar)
        and event.remote_source_calendar == export_calendar_ref
    )


def is_cross_export(event: Event, export_calendar_ref: str) -> bool:
    """True when an imported event goes to a calendar other than its source."""
    return event.remote_origin is Origin.REMOTE and not is_export_loop(event, export_calendar_ref)


def mark_local_edit(event: Event, now: datetime.datetime) -> bool:
    """Record a direct local edit.  Returns True if the origin flipped."""
    flipped = event.remote_origin is Origin.REMOTE
    event.remote_origin = Origin.LOCAL
    event.modified_at = now
    return flipped


def mark_imported(event: Event, source_calendar_ref: str, now: datetime.datetime):
    """Stamp an event written by the import engine."""
    event.remote_origin = Origin.REMOTE
    event.remote_source_calendar = source_calendar_ref
    event.last_synced_at = now
    event.modified_at = now


def mark_exported(
    event: Event,
    remote_id: str,
    remote_calendar_ref: str,
    payload_hash: str,
    now: datetime.datetime,
):
    """Stamp a successful export with where it went and what was sent.

    Imported events keep their remote origin when cross-exported so the
    same-calendar loop check keeps working for them.
    """
    event.remote_export_id = remote_id
    event.remote_export_calendar = remote_calendar_ref
    event.remote_export_hash = payload_hash
    event.last_synced_at = now
    if event.remote_origin is not Origin.REMOTE:
        event.remote_origin = Origin.LOCAL


def forget_export(event: Event):
    """Drop the export copy bookkeeping after the copy was removed."""
    event.remote_export_id = ""
    event.remote_export_calendar = ""
    event.remote_export_hash = ""
    event.last_synced_at = None


def is_locally_authoritative(event: Event) -> bool:
    """Imports must not overwrite events whose last writer was local."""
    return event.remote_origin is Origin.LOCAL


def clear_remote_links(event: Event):
    """Forget every remote association, e.g. on a copied event."""
    event.remote_import_id = ""
    event.remote_source_calendar = ""
    forget_export(event)
    event.remote_origin = Origin.LOCAL
