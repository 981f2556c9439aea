"""
Tests for RRULE encoding and decoding.
"""

import datetime
import logging
from zoneinfo import ZoneInfo

import pytest

from google_calendar_sync.models import Recurrence
from google_calendar_sync.models import RepeatUnit
from google_calendar_sync.recurrence import decode_rule
from google_calendar_sync.recurrence import encode_rule

UTC = ZoneInfo("UTC")
BERLIN = ZoneInfo("Europe/Berlin")

WEDNESDAY = datetime.datetime(2025, 6, 4, 18, 0)


def _parts(rule: str) -> set[str]:
    assert rule.startswith("RRULE:")
    return set(rule[len("RRULE:") :].split(";"))


# ---------------------------------------------------------------------------
# encode_rule
# ---------------------------------------------------------------------------


def test_encode_non_recurring_returns_none():
    assert encode_rule(None, WEDNESDAY, UTC) is None


def test_encode_biweekly_count_on_start_weekday():
    rule = encode_rule(Recurrence(RepeatUnit.WEEKS, interval=2, count=5), WEDNESDAY, UTC)
    assert _parts(rule) == {"FREQ=WEEKLY", "INTERVAL=2", "BYDAY=WE", "COUNT=5"}


def test_encode_weekly_uses_weekday_of_start():
    friday = datetime.datetime(2025, 6, 6, 9, 0)
    rule = encode_rule(Recurrence(RepeatUnit.WEEKS), friday, UTC)
    assert "BYDAY=FR" in _parts(rule)


def test_encode_unbounded_monthly_is_bare_frequency():
    assert encode_rule(Recurrence(RepeatUnit.MONTHS), WEDNESDAY, UTC) == "RRULE:FREQ=MONTHLY"


@pytest.mark.parametrize(
    "unit, freq",
    [
        (RepeatUnit.DAYS, "FREQ=DAILY"),
        (RepeatUnit.WEEKS, "FREQ=WEEKLY"),
        (RepeatUnit.MONTHS, "FREQ=MONTHLY"),
        (RepeatUnit.YEARS, "FREQ=YEARLY"),
    ],
)
def test_encode_frequency_units(unit, freq):
    parts = _parts(encode_rule(Recurrence(unit), WEDNESDAY, UTC))
    assert freq in parts
    assert not any(part.startswith("INTERVAL") for part in parts)


def test_encode_count_takes_precedence_over_until():
    recurrence = Recurrence(
        RepeatUnit.DAYS, count=3, until=datetime.datetime(2025, 7, 1, 23, 59, 59)
    )
    parts = _parts(encode_rule(recurrence, WEDNESDAY, UTC))
    assert "COUNT=3" in parts
    assert not any(part.startswith("UNTIL") for part in parts)


def test_encode_until_is_written_in_utc():
    recurrence = Recurrence(RepeatUnit.DAYS, until=datetime.datetime(2025, 7, 4, 23, 59, 59))
    parts = _parts(encode_rule(recurrence, WEDNESDAY, BERLIN))
    # Berlin is UTC+2 in July.
    assert "UNTIL=20250704T215959Z" in parts


# ---------------------------------------------------------------------------
# decode_rule
# ---------------------------------------------------------------------------


def test_round_trip_biweekly_count():
    recurrence = Recurrence(RepeatUnit.WEEKS, interval=2, count=5)
    decoded = decode_rule([encode_rule(recurrence, WEDNESDAY, UTC)], UTC)
    assert decoded == recurrence


def test_round_trip_until_in_local_zone():
    recurrence = Recurrence(RepeatUnit.DAYS, until=datetime.datetime(2025, 7, 4, 23, 59, 59))
    decoded = decode_rule(encode_rule(recurrence, WEDNESDAY, BERLIN), BERLIN)
    assert decoded == recurrence


def test_decode_date_only_until_includes_whole_day():
    decoded = decode_rule(["RRULE:FREQ=DAILY;UNTIL=20250710"], UTC)
    assert decoded.until == datetime.datetime(2025, 7, 10, 23, 59, 59)
    assert decoded.count == 0


def test_decode_ignores_non_rrule_lines():
    lines = ["EXDATE;VALUE=DATE:20250611", "RRULE:FREQ=YEARLY"]
    assert decode_rule(lines, UTC) == Recurrence(RepeatUnit.YEARS)


@pytest.mark.parametrize(
    "lines",
    [
        None,
        [],
        ["EXDATE;VALUE=DATE:20250611"],
        ["RRULE:FREQ=HOURLY;INTERVAL=4"],
        ["RRULE:FREQ=SECONDLY"],
        ["RRULE:INTERVAL=2;COUNT=3"],
    ],
)
def test_decode_unsupported_means_not_recurring(lines):
    assert decode_rule(lines, UTC) is None


def test_decode_malformed_rule_means_not_recurring():
    assert decode_rule(["RRULE:FREQ=WEEKLY;COUNT=abc"], UTC) is None


@pytest.mark.parametrize(
    "rule, dropped",
    [
        ("RRULE:FREQ=MONTHLY;BYMONTHDAY=15", "BYMONTHDAY"),
        ("RRULE:FREQ=MONTHLY;BYDAY=MO;BYSETPOS=1", "BYSETPOS"),
        ("RRULE:FREQ=WEEKLY;BYDAY=MO,WE,FR", "BYDAY=MO,WE,FR"),
        ("RRULE:FREQ=MONTHLY;BYDAY=-1FR", "BYDAY=-1FR"),
    ],
)
def test_decode_logs_dropped_selectors(caplog, rule, dropped):
    caplog.set_level(logging.INFO, logger="google_calendar_sync.recurrence")

    decoded = decode_rule([rule], UTC)

    assert decoded is not None
    assert dropped in caplog.text


def test_decode_single_weekday_is_not_reported(caplog):
    caplog.set_level(logging.INFO, logger="google_calendar_sync.recurrence")
    decoded = decode_rule(["RRULE:FREQ=WEEKLY;INTERVAL=3;BYDAY=TU"], UTC)
    assert decoded == Recurrence(RepeatUnit.WEEKS, interval=3)
    assert "not kept locally" not in caplog.text
