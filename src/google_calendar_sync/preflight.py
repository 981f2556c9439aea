"""
Preflight checks run before sync to catch common misconfigurations early.
"""

import json
import logging
import sqlite3
from zoneinfo import ZoneInfo
from zoneinfo import ZoneInfoNotFoundError

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from google_calendar_sync.models import SyncConfig

logger = logging.getLogger(__name__)

_TOKEN_KEYS = ("client_id", "client_secret", "refresh_token")


def run_preflight_checks(cfg: SyncConfig, console: Console) -> bool:
    """Return True if sync may proceed; print issues and return False otherwise."""
    issues: list[tuple[str, str, str]] = []  # (label, detail, hint)

    # 1. OAuth token present and well-formed
    token_file = cfg.token_file
    if not token_file.exists():
        logger.error("OAuth token file not found: %s", token_file)
        issues.append(
            (
                "OAuth token",
                f"not found: {token_file}",
                "Authorise the app and save the authorized-user JSON there, "
                "or set token_file in the config",
            )
        )
    else:
        try:
            data = json.loads(token_file.read_text())
        except (OSError, ValueError) as e:
            logger.error("OAuth token file unreadable (%s): %s", token_file, e)
            issues.append(("OAuth token", f"{token_file}: {e}", "Re-create the token file"))
        else:
            missing = [key for key in _TOKEN_KEYS if not data.get(key)]
            if missing:
                issues.append(
                    (
                        "OAuth token",
                        f"missing {', '.join(missing)}",
                        "The token must be an authorized-user file with a refresh token",
                    )
                )

    # 2. Timezone is a valid IANA name
    try:
        ZoneInfo(cfg.timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        logger.error("Unknown timezone %r: %s", cfg.timezone, e)
        issues.append(
            ("Timezone", f"unknown zone {cfg.timezone!r}", "Use an IANA name such as Europe/Berlin")
        )

    # 3. Store DB parent dir writable + DB readable if it exists
    db_path = cfg.store_db_path
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error("Cannot create store directory %s: %s", db_path.parent, e)
        issues.append(
            (
                "Calendar store",
                f"{db_path}: {e}",
                f"Check permissions on {db_path.parent}",
            )
        )
    else:
        if db_path.exists():
            try:
                conn = sqlite3.connect(db_path)
                try:
                    conn.execute("SELECT 1")
                    # BEGIN IMMEDIATE needs a write lock and a journal file next to the DB.
                    conn.execute("BEGIN IMMEDIATE")
                    conn.execute("ROLLBACK")
                finally:
                    conn.close()
            except sqlite3.Error as e:
                logger.error("Calendar store not readable/writable (%s): %s", db_path, e)
                issues.append(
                    (
                        "Calendar store",
                        f"{db_path}: {e}",
                        f"Check permissions on {db_path.parent} "
                        f"(journal files must be creatable alongside the DB)",
                    )
                )

    if issues:
        _print_issues(issues, console)
        return False

    return True


def _print_issues(issues: list[tuple[str, str, str]], console: Console) -> None:
    body = Text()
    for i, (label, detail, hint) in enumerate(issues):
        if i:
            body.append("\n")
        body.append(f"  ✗  {label}: ", style="bold red")
        body.append(detail, style="bold red")
        body.append(f"\n       → {hint}", style="yellow")

    console.print(Panel(body, title="[bold red]Preflight checks failed[/bold red]"))
