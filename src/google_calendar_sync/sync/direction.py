"""
Per-calendar sync direction policy.
"""

from dataclasses import dataclass

from google_calendar_sync.models import Calendar
from google_calendar_sync.models import SyncDirection


@dataclass(frozen=True)
class ActiveDirections:
    """Which engines run for a calendar, and against which remote calendar."""

    import_ref: str | None = None
    export_ref: str | None = None

    @property
    def importing(self) -> bool:
        return self.import_ref is not None

    @property
    def exporting(self) -> bool:
        return self.export_ref is not None

    @property
    def idle(self) -> bool:
        return not (self.importing or self.exporting)

    def describe(self) -> str:
        parts = []
        if self.importing:
            parts.append(f"import from {self.import_ref}")
        if self.exporting:
            parts.append(f"export to {self.export_ref}")
        return ", ".join(parts) or "nothing to do"


def resolve_directions(
    calendar: Calendar, requested: SyncDirection = SyncDirection.BOTH
) -> ActiveDirections:
    """Import runs iff an import ref is set, export iff an export ref is set.

    Both require ``sync_enabled``; ``requested`` narrows the result further.
    """
    if not calendar.sync_enabled:
        return ActiveDirections()

    import_ref = None
    export_ref = None
    if requested.includes_import and calendar.import_calendar_ref:
        import_ref = calendar.import_calendar_ref
    if requested.includes_export and calendar.export_calendar_ref:
        export_ref = calendar.export_calendar_ref
    return ActiveDirections(import_ref=import_ref, export_ref=export_ref)
