"""
Command-line interface for Google Calendar Sync.
"""

import datetime
import logging
import os
from configparser import ConfigParser
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from google_calendar_sync.db import CalendarStore
from google_calendar_sync.google_client import build_client
from google_calendar_sync.models import DEFAULT_CONFIG
from google_calendar_sync.models import DEFAULT_STORE_DB
from google_calendar_sync.models import DEFAULT_TOKEN_FILE
from google_calendar_sync.models import Calendar
from google_calendar_sync.models import CalendarSyncError
from google_calendar_sync.models import SyncConfig
from google_calendar_sync.models import SyncDirection
from google_calendar_sync.models import SyncResult
from google_calendar_sync.sync import CalendarSynchronizer
from google_calendar_sync.sync.direction import resolve_directions

# ---------------------------------------------------------------------------
# Typer app
# ---------------------------------------------------------------------------

app = typer.Typer(
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="Bidirectional sync between local calendars and Google Calendar.",
)

console = Console()

_CONFIG_SECTION = "calendar-sync"
_TRUE_VALUES = {"1", "true", "yes", "on"}


# ---------------------------------------------------------------------------
# Global state shared across subcommands
# ---------------------------------------------------------------------------


@dataclass
class _State:
    config_path: Path = field(default_factory=lambda: DEFAULT_CONFIG)
    store_db: Path | None = None
    verbose: bool = False


state = _State()


@app.callback()
def _global(
    config: Annotated[
        Path,
        typer.Option("--config", "-c", help=f"Config file path (default: {DEFAULT_CONFIG})"),
    ] = DEFAULT_CONFIG,
    store_db: Annotated[
        Path | None,
        typer.Option("--store-db", help=f"Calendar store path (default: {DEFAULT_STORE_DB})"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose debug output"),
    ] = False,
) -> None:
    state.config_path = config
    state.store_db = store_db
    state.verbose = verbose
    _setup_logging(verbose)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False, console=console)],
    )
    # The discovery client logs every request at INFO.
    logging.getLogger("googleapiclient").setLevel(logging.WARNING)


def _load_config_file(config_path: Path) -> dict[str, str]:
    if not config_path.exists():
        return {}
    parser = ConfigParser()
    parser.read(config_path)
    if _CONFIG_SECTION not in parser:
        return {}
    return dict(parser[_CONFIG_SECTION])


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


def _as_int(config_file: dict[str, str], key: str, default: int) -> int:
    value = config_file.get(key)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise typer.BadParameter(f"{key} must be an integer, got {value!r}") from None


def _build_config(dry_run: bool = False) -> SyncConfig:
    config_file = _load_config_file(state.config_path)
    defaults = SyncConfig()

    enabled = _as_bool(config_file.get("enabled"), True)
    if os.environ.get("GOOGLE_CALENDAR_ENABLED") is not None:
        enabled = _as_bool(os.environ["GOOGLE_CALENDAR_ENABLED"], True)

    store_db = state.store_db or Path(config_file.get("store_db") or DEFAULT_STORE_DB).expanduser()
    token_file = Path(config_file.get("token_file") or DEFAULT_TOKEN_FILE).expanduser()

    return SyncConfig(
        store_db_path=store_db,
        token_file=token_file,
        enabled=enabled,
        timezone=config_file.get("timezone") or os.environ.get("TZ") or defaults.timezone,
        min_call_delay_ms=_as_int(config_file, "min_call_delay_ms", defaults.min_call_delay_ms),
        max_calls_per_minute=_as_int(
            config_file, "max_calls_per_minute", defaults.max_calls_per_minute
        ),
        max_retries=_as_int(config_file, "max_retries", defaults.max_retries),
        sync_horizon_days=_as_int(config_file, "sync_horizon_days", defaults.sync_horizon_days),
        busy_text=config_file.get("busy_text") or defaults.busy_text,
        dry_run=dry_run,
        verbose=state.verbose,
    )


def _preflight(cfg: SyncConfig) -> None:
    from google_calendar_sync.preflight import run_preflight_checks

    if not run_preflight_checks(cfg, console):
        raise typer.Exit(1)


def _print_results(result: SyncResult, store: CalendarStore) -> None:
    results = Table(show_header=True, header_style="bold cyan", box=None, padding=(0, 2))
    results.add_column("Calendar")
    results.add_column("Added", justify="right")
    results.add_column("Modified", justify="right")
    results.add_column("Deleted", justify="right")
    results.add_column("Skipped", justify="right")
    results.add_column("Errors", justify="right")
    for calendar_id, stats in result.calendars.items():
        calendar = store.get_calendar(calendar_id)
        error_val = Text(str(stats.errors))
        if stats.errors:
            error_val.stylize("bold red")
        results.add_row(
            calendar.title if calendar else str(calendar_id),
            str(stats.added),
            str(stats.modified),
            str(stats.deleted),
            str(stats.skipped),
            error_val,
        )

    summary = Text()
    summary.append(f"Synced {result.synced}, errors {result.errors}")
    if result.errors == 0:
        summary.append(" ✓", style="green")
    else:
        summary.stylize("bold red")

    if result.calendars:
        console.print(Panel(results, title="[bold]Results[/bold]", expand=False))
    console.print(summary)


def _format_ts(value: datetime.datetime | None) -> str:
    if value is None:
        return "—"
    return value.astimezone().strftime("%Y-%m-%d %H:%M:%S")


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------

_DRY_RUN = Annotated[bool, typer.Option("--dry-run", "-n", help="Preview changes without applying")]
_YES = Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")]


@app.command()
def sync(
    calendar_id: Annotated[
        int | None,
        typer.Argument(help="Local calendar id (default: every calendar with sync enabled)"),
    ] = None,
    direction: Annotated[
        SyncDirection,
        typer.Option("--direction", "-d", help="Which way to sync", case_sensitive=False),
    ] = SyncDirection.BOTH,
    dry_run: _DRY_RUN = False,
) -> None:
    """Import from and export to Google Calendar."""
    cfg = _build_config(dry_run=dry_run)
    if not cfg.enabled:
        console.print("[yellow]Google Calendar sync is disabled — nothing to do.[/]")
        return
    _preflight(cfg)

    info = Text()
    info.append("  Store:     ", style="bold")
    info.append(f"{cfg.store_db_path}\n")
    info.append("  Calendars: ", style="bold")
    info.append(f"{calendar_id if calendar_id is not None else 'all enabled'}\n")
    info.append("  Direction: ", style="bold")
    info.append(
        {
            SyncDirection.BOTH: "↔ Bidirectional",
            SyncDirection.IMPORT: "← Import only",
            SyncDirection.EXPORT: "→ Export only",
        }[direction],
        style="cyan",
    )
    info.append("\n  Timezone:  ", style="bold")
    info.append(cfg.timezone)
    if cfg.dry_run:
        info.append("\n  Mode:      ")
        info.append("DRY RUN", style="bold magenta")
    console.print(Panel(info, title="[bold]Google Calendar Sync[/bold]"))

    try:
        with CalendarStore(cfg.store_db_path) as store:
            synchronizer = CalendarSynchronizer(store, build_client(cfg), cfg)
            result = synchronizer.run_sync(calendar_id, direction)
            _print_results(result, store)
    except CalendarSyncError as e:
        console.print(f"[bold red]Sync failed:[/] {e}")
        raise typer.Exit(1) from None
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted by user[/]")
        raise typer.Exit(130) from None

    if result.errors:
        raise typer.Exit(1)


@app.command()
def clear(
    calendar_id: Annotated[int, typer.Argument(help="Local calendar id")],
    dry_run: _DRY_RUN = False,
    yes: _YES = False,
) -> None:
    """Delete every event this tool exported from a calendar to Google."""
    cfg = _build_config(dry_run=dry_run)
    _preflight(cfg)

    with CalendarStore(cfg.store_db_path) as store:
        calendar = store.get_calendar(calendar_id)
        if calendar is None:
            console.print(f"[bold red]Error:[/] Calendar [cyan]{calendar_id}[/] not found.")
            raise typer.Exit(1)
        exported = len(store.list_exported_events(calendar.id))
        if not calendar.export_calendar_ref and not exported:
            console.print(f"[yellow]Calendar '{calendar.title}' has no export target.[/]")
            return

        info = Text()
        info.append("  Calendar:  ", style="bold")
        info.append(f"{calendar.title} ({calendar.id})\n")
        info.append("  Target:    ", style="bold")
        info.append(f"{calendar.export_calendar_ref or '(export switched off)'}\n")
        info.append("  Operation: ")
        info.append(f"CLEAR ({exported} exported events)", style="bold red")
        if cfg.dry_run:
            info.append("\n  Mode:      ")
            info.append("DRY RUN", style="bold magenta")
        console.print(Panel(info, title="[bold]Google Calendar Sync[/bold]"))

        if not yes and not cfg.dry_run:
            typer.confirm("Proceed?", abort=True)

        synchronizer = CalendarSynchronizer(store, build_client(cfg), cfg)
        result = synchronizer.clear_calendar(calendar.id)
        _print_results(result, store)

    if result.errors:
        raise typer.Exit(1)


@app.command()
def status() -> None:
    """Show configuration, calendars and what the store tracks."""
    cfg = _build_config()
    config_exists = state.config_path.exists()
    db_exists = cfg.store_db_path.exists()
    token_exists = cfg.token_file.exists()

    cfg_info = Text()
    cfg_info.append("  Config:   ", style="bold")
    cfg_info.append(str(state.config_path) + " ")
    cfg_info.append(
        "✓" if config_exists else "(not found)", style="green" if config_exists else "red"
    )
    cfg_info.append("\n  Store:    ", style="bold")
    cfg_info.append(str(cfg.store_db_path) + " ")
    cfg_info.append("✓" if db_exists else "(not found)", style="green" if db_exists else "yellow")
    cfg_info.append("\n  Token:    ", style="bold")
    cfg_info.append(str(cfg.token_file) + " ")
    cfg_info.append(
        "✓" if token_exists else "(not found)", style="green" if token_exists else "red"
    )
    cfg_info.append("\n  Sync:     ", style="bold")
    cfg_info.append(
        "enabled" if cfg.enabled else "disabled", style="green" if cfg.enabled else "yellow"
    )
    cfg_info.append("\n  Timezone: ", style="bold")
    cfg_info.append(cfg.timezone)

    console.print(Panel(cfg_info, title="[bold]Google Calendar Sync — Status[/bold]"))

    if not db_exists:
        console.print(
            "[yellow]No calendar store yet — run[/] "
            "[cyan]google-calendar-sync configure[/] "
            "[yellow]to create a calendar.[/]"
        )
        return

    with CalendarStore(cfg.store_db_path) as store:
        calendars = store.list_calendars()
        if not calendars:
            console.print("[yellow]Calendar store is empty — no calendars configured yet.[/]")
            return

        table = Table(show_header=True, header_style="bold cyan", box=None, padding=(0, 2))
        table.add_column("Id", justify="right")
        table.add_column("Calendar")
        table.add_column("Directions")
        table.add_column("Busy")
        table.add_column("Events", justify="right")
        table.add_column("Imported", justify="right")
        table.add_column("Exported", justify="right")
        table.add_column("Last sync")
        for calendar in calendars:
            counts = store.event_counts(calendar.id)
            active = resolve_directions(calendar)
            directions = Text(active.describe(), style="dim" if active.idle else "cyan")
            table.add_row(
                str(calendar.id),
                calendar.title,
                directions,
                "yes" if calendar.sync_as_busy else "no",
                str(counts["total"]),
                str(counts["imported"]),
                str(counts["exported"]),
                _format_ts(calendar.last_sync),
            )
        console.print(Panel(table, title="[bold]Calendars[/bold]", expand=False))


@app.command()
def calendars() -> None:
    """List the Google calendars the stored token can access."""
    cfg = _build_config()
    client = build_client(cfg)
    if client is None:
        console.print("[bold red]Error:[/] Google Calendar is not available (see log).")
        raise typer.Exit(1)

    try:
        entries = client.list_calendars()
    except CalendarSyncError as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(1) from None

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Summary / Id", min_width=36, overflow="fold")
    table.add_column("Access")
    for entry in entries:
        name_cell = Text()
        name_cell.append(entry["summary"] or "(unnamed)", style="bold")
        if entry["primary"]:
            name_cell.append("  (primary)", style="green")
        name_cell.append("\n")
        name_cell.append(entry["id"], style="dim")
        role = entry["access_role"]
        style = "green" if role in ("owner", "writer") else "yellow"
        table.add_row(name_cell, Text(role or "unknown", style=style))
    console.print(table)


@app.command()
def configure(
    calendar_id: Annotated[
        int | None,
        typer.Argument(help="Local calendar id (omit to create a new calendar)"),
    ] = None,
    title: Annotated[str | None, typer.Option(help="Calendar title")] = None,
    enable: Annotated[
        bool | None, typer.Option("--enable/--disable", help="Turn sync on or off")
    ] = None,
    import_from: Annotated[
        str | None, typer.Option("--import-from", help="Google calendar id to import from")
    ] = None,
    export_to: Annotated[
        str | None, typer.Option("--export-to", help="Google calendar id to export to")
    ] = None,
    busy: Annotated[
        bool | None, typer.Option("--busy/--no-busy", help="Export as busy blocks only")
    ] = None,
    busy_text: Annotated[
        str | None, typer.Option("--busy-text", help="Title used for busy blocks")
    ] = None,
    horizon: Annotated[
        str | None,
        typer.Option("--horizon", help="Sync horizon YYYY-MM-DD ('' for the default)"),
    ] = None,
) -> None:
    """Create a calendar or change its sync settings.

    Pass an empty string to [cyan]--import-from[/] or [cyan]--export-to[/]
    to switch that direction off.
    """
    cfg = _build_config()
    with CalendarStore(cfg.store_db_path) as store:
        if calendar_id is None:
            calendar = Calendar(title=title or "Calendar")
        else:
            calendar = store.get_calendar(calendar_id)
            if calendar is None:
                console.print(f"[bold red]Error:[/] Calendar [cyan]{calendar_id}[/] not found.")
                raise typer.Exit(1)
            if title is not None:
                calendar.title = title

        if enable is not None:
            calendar.sync_enabled = enable
        previous_export = calendar.export_calendar_ref
        if import_from is not None:
            calendar.import_calendar_ref = import_from
        if export_to is not None:
            calendar.export_calendar_ref = export_to
        if busy is not None:
            calendar.sync_as_busy = busy
        if busy_text is not None:
            calendar.busy_text = busy_text
        if horizon is not None:
            if horizon == "":
                calendar.sync_horizon = None
            else:
                try:
                    day = datetime.date.fromisoformat(horizon)
                except ValueError:
                    console.print(f"[bold red]Error:[/] Invalid date: {horizon!r}")
                    raise typer.Exit(1) from None
                calendar.sync_horizon = datetime.datetime.combine(day, datetime.time(23, 59, 59))

        if calendar.id is None:
            store.insert_calendar(calendar)
            verb = "Created"
        else:
            store.update_calendar(calendar)
            verb = "Updated"
        store.commit()
        exported = 0
        if calendar.export_calendar_ref != previous_export and previous_export:
            exported = len(store.list_exported_events(calendar.id))

    active = resolve_directions(calendar)
    console.print(
        f"{verb} calendar [bold]{calendar.title}[/] [dim]({calendar.id})[/dim]: "
        f"[cyan]{active.describe()}[/]"
    )
    if calendar.shares_remote_calendar:
        console.print(
            "[dim]Import and export use the same Google calendar; "
            "imported events will not be exported back.[/dim]"
        )
    if exported:
        if calendar.export_calendar_ref:
            console.print(
                f"[yellow]{exported} exported events will move from {previous_export} "
                f"to {calendar.export_calendar_ref} on the next sync.[/]"
            )
        else:
            console.print(
                f"[yellow]{exported} exported events remain in {previous_export}; "
                f"run [cyan]clear {calendar.id}[/cyan] to remove them.[/]"
            )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    app()
