"""
Tests for the command-line interface and the preflight checks.
"""

import datetime
import io
import json

import pytest
import typer
from rich.console import Console
from typer.testing import CliRunner

from google_calendar_sync import cli
from google_calendar_sync.cli import app
from google_calendar_sync.db import CalendarStore
from google_calendar_sync.models import Event
from google_calendar_sync.models import SyncConfig
from google_calendar_sync.preflight import run_preflight_checks
from tests.conftest import EXPORT_CAL
from tests.conftest import IMPORT_CAL

runner = CliRunner()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("GOOGLE_CALENDAR_ENABLED", raising=False)
    monkeypatch.setenv("TZ", "UTC")


@pytest.fixture
def paths(tmp_path):
    return {
        "config": tmp_path / "sync.conf",
        "db": tmp_path / "store.db",
        "token": tmp_path / "token.json",
    }


def _invoke(paths, *args):
    return runner.invoke(
        app, ["--config", str(paths["config"]), "--store-db", str(paths["db"]), *args]
    )


def _write_config(paths, **values):
    lines = ["[calendar-sync]"] + [f"{key} = {value}" for key, value in values.items()]
    paths["config"].write_text("\n".join(lines) + "\n")


# ---------------------------------------------------------------------------
# configure / status
# ---------------------------------------------------------------------------


def test_configure_creates_calendar(paths):
    result = _invoke(
        paths, "configure", "--title", "Club", "--enable", "--import-from", IMPORT_CAL
    )

    assert result.exit_code == 0, result.output
    assert "Created calendar" in result.output
    with CalendarStore(paths["db"]) as store:
        [calendar] = store.list_calendars()
    assert calendar.title == "Club"
    assert calendar.sync_enabled is True
    assert calendar.import_calendar_ref == IMPORT_CAL


def test_configure_updates_existing_calendar(paths):
    _invoke(paths, "configure", "--title", "Club", "--enable")

    result = _invoke(
        paths, "configure", "1", "--export-to", EXPORT_CAL, "--busy", "--horizon", "2025-12-31"
    )

    assert result.exit_code == 0, result.output
    with CalendarStore(paths["db"]) as store:
        calendar = store.get_calendar(1)
    assert calendar.export_calendar_ref == EXPORT_CAL
    assert calendar.sync_as_busy is True
    assert calendar.sync_horizon.isoformat() == "2025-12-31T23:59:59"


def test_configure_rejects_bad_horizon(paths):
    result = _invoke(paths, "configure", "--horizon", "next year")
    assert result.exit_code == 1


def test_configure_unknown_calendar(paths):
    result = _invoke(paths, "configure", "42", "--enable")
    assert result.exit_code == 1
    assert "not found" in result.output


def _store_exported_event(paths):
    with CalendarStore(paths["db"]) as store:
        store.insert_event(
            Event(
                calendar_id=1,
                title="Match",
                start_at=datetime.datetime(2025, 6, 4, 12, 0),
                remote_export_id="remote-1",
                remote_export_calendar=EXPORT_CAL,
            )
        )
        store.commit()


def test_configure_new_export_target_announces_move(paths):
    _invoke(paths, "configure", "--title", "Club", "--enable", "--export-to", EXPORT_CAL)
    _store_exported_event(paths)

    result = _invoke(paths, "configure", "1", "--export-to", "new-target")

    assert result.exit_code == 0, result.output
    assert "move" in result.output


def test_configure_export_off_points_to_clear(paths):
    _invoke(paths, "configure", "--title", "Club", "--enable", "--export-to", EXPORT_CAL)
    _store_exported_event(paths)

    result = _invoke(paths, "configure", "1", "--export-to", "")

    assert result.exit_code == 0, result.output
    assert "clear" in result.output
    with CalendarStore(paths["db"]) as store:
        assert store.get_calendar(1).export_calendar_ref == ""


def test_status_lists_calendars(paths):
    _invoke(paths, "configure", "--title", "Club", "--enable", "--export-to", EXPORT_CAL)

    result = _invoke(paths, "status")

    assert result.exit_code == 0, result.output
    assert "Club" in result.output


def test_status_without_store(paths):
    result = _invoke(paths, "status")
    assert result.exit_code == 0
    assert "No calendar store yet" in result.output


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------


def test_sync_disabled_in_config_does_nothing(paths):
    _write_config(paths, enabled="false")

    result = _invoke(paths, "sync")

    assert result.exit_code == 0
    assert "disabled" in result.output


def test_sync_disabled_by_environment(paths, monkeypatch):
    monkeypatch.setenv("GOOGLE_CALENDAR_ENABLED", "0")
    result = _invoke(paths, "sync")
    assert result.exit_code == 0
    assert "disabled" in result.output


def test_sync_without_token_fails_preflight(paths):
    _write_config(paths, token_file=str(paths["token"]))

    result = _invoke(paths, "sync")

    assert result.exit_code == 1
    assert "Preflight checks failed" in result.output


# ---------------------------------------------------------------------------
# Config parsing
# ---------------------------------------------------------------------------


def test_build_config_reads_file(paths, monkeypatch):
    _write_config(
        paths,
        timezone="Europe/Berlin",
        min_call_delay_ms="250",
        max_retries="5",
        busy_text="Away",
        token_file=str(paths["token"]),
    )
    monkeypatch.setattr(cli.state, "config_path", paths["config"])
    monkeypatch.setattr(cli.state, "store_db", paths["db"])

    cfg = cli._build_config(dry_run=True)

    assert cfg.timezone == "Europe/Berlin"
    assert cfg.min_call_delay_ms == 250
    assert cfg.max_retries == 5
    assert cfg.busy_text == "Away"
    assert cfg.token_file == paths["token"]
    assert cfg.store_db_path == paths["db"]
    assert cfg.dry_run is True
    assert cfg.max_calls_per_minute == 590


def test_build_config_rejects_non_integer(paths, monkeypatch):
    _write_config(paths, max_retries="lots")
    monkeypatch.setattr(cli.state, "config_path", paths["config"])

    with pytest.raises(typer.BadParameter):
        cli._build_config()


# ---------------------------------------------------------------------------
# Preflight
# ---------------------------------------------------------------------------


def _preflight_config(paths, **kwargs) -> SyncConfig:
    values = {"store_db_path": paths["db"], "token_file": paths["token"], "timezone": "UTC"}
    values.update(kwargs)
    return SyncConfig(**values)


def _quiet_console() -> Console:
    return Console(file=io.StringIO())


def test_preflight_passes_with_valid_setup(paths):
    paths["token"].write_text(
        json.dumps({"client_id": "id", "client_secret": "secret", "refresh_token": "r"})
    )
    assert run_preflight_checks(_preflight_config(paths), _quiet_console()) is True


def test_preflight_reports_incomplete_token(paths):
    paths["token"].write_text(json.dumps({"client_id": "id"}))
    console = Console(record=True, width=120)

    assert run_preflight_checks(_preflight_config(paths), console) is False
    assert "client_secret" in console.export_text()


def test_preflight_reports_unknown_timezone(paths):
    paths["token"].write_text(
        json.dumps({"client_id": "id", "client_secret": "secret", "refresh_token": "r"})
    )
    console = Console(record=True, width=120)

    cfg = _preflight_config(paths, timezone="Mars/Olympus")
    assert run_preflight_checks(cfg, console) is False
    assert "Mars/Olympus" in console.export_text()
