"""
RRULE encoding/decoding for local recurrence settings.

Only the subset the local calendar can represent is modelled: a frequency
unit, an interval, and one termination clause (COUNT or UNTIL).  Anything
richer coming from the remote side is accepted but reduced to that subset.
"""

import datetime
import logging
import re
from zoneinfo import ZoneInfo

from icalendar import vRecur

from google_calendar_sync.models import Recurrence
from google_calendar_sync.models import RepeatUnit

logger = logging.getLogger(__name__)

UTC = ZoneInfo("UTC")

_FREQ_BY_UNIT = {
    RepeatUnit.DAYS: "DAILY",
    RepeatUnit.WEEKS: "WEEKLY",
    RepeatUnit.MONTHS: "MONTHLY",
    RepeatUnit.YEARS: "YEARLY",
}
_UNIT_BY_FREQ = {freq: unit for unit, freq in _FREQ_BY_UNIT.items()}

# Indexed by datetime.weekday()
_WEEKDAYS = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")

# BYDAY values with an ordinal prefix ("1MO", "-1FR") select by position.
_POSITIONAL_BYDAY_RE = re.compile(r"^[+-]?\d")

# Selectors that narrow a rule beyond unit + interval; dropped on decode.
_UNMODELLED_PARTS = ("BYMONTHDAY", "BYSETPOS", "BYYEARDAY", "BYWEEKNO", "BYMONTH", "BYHOUR")

_RRULE_PREFIX = "RRULE:"


def encode_rule(
    recurrence: Recurrence | None, start: datetime.datetime, tz: ZoneInfo
) -> str | None:
    """Build an ``RRULE:`` line for a local recurrence, or None if not recurring.

    ``start`` is the naive wall-clock start of the series; weekly rules repeat
    on its weekday.  ``until`` is interpreted in ``tz`` and written in UTC.
    """
    if recurrence is None:
        return None

    rule = vRecur({"FREQ": _FREQ_BY_UNIT[recurrence.unit]})
    if recurrence.interval > 1:
        rule["INTERVAL"] = recurrence.interval
    if recurrence.unit is RepeatUnit.WEEKS:
        rule["BYDAY"] = _WEEKDAYS[start.weekday()]

    if recurrence.count > 0:
        rule["COUNT"] = recurrence.count
    elif recurrence.until is not None:
        until = recurrence.until
        if until.tzinfo is None:
            until = until.replace(tzinfo=tz)
        rule["UNTIL"] = until.astimezone(UTC)

    return _RRULE_PREFIX + rule.to_ical().decode("utf-8")


def decode_rule(lines: list[str] | str | None, tz: ZoneInfo) -> Recurrence | None:
    """Parse the first RRULE line of a remote event into a Recurrence.

    Returns None ("not recurring") for missing rules, rules without a FREQ
    and frequencies the local calendar cannot express.
    """
    if not lines:
        return None
    if isinstance(lines, str):
        lines = [lines]

    body = None
    for line in lines:
        if line.upper().startswith(_RRULE_PREFIX):
            body = line[len(_RRULE_PREFIX) :]
            break
    if body is None:
        return None

    try:
        rule = vRecur.from_ical(body)
    except ValueError as e:
        logger.info(f"Ignoring unparseable recurrence rule {body!r}: {e}")
        return None

    freqs = rule.get("FREQ")
    if not freqs:
        return None
    unit = _UNIT_BY_FREQ.get(str(freqs[0]).upper())
    if unit is None:
        logger.debug(f"Unsupported recurrence frequency in {body!r}")
        return None

    interval = max(1, int(_first(rule, "INTERVAL", 1)))
    count = max(0, int(_first(rule, "COUNT", 0)))
    until = None
    if count == 0:
        until = _to_wall_clock(_first(rule, "UNTIL", None), tz)

    dropped = [part for part in _UNMODELLED_PARTS if part in rule]
    bydays = [str(day) for day in rule.get("BYDAY", [])]
    if len(bydays) > 1 or any(_POSITIONAL_BYDAY_RE.match(day) for day in bydays):
        dropped.append("BYDAY=" + ",".join(bydays))
    if dropped:
        logger.info(
            f"Recurrence rule {body!r} uses selectors that are not kept locally: "
            f"{', '.join(dropped)}"
        )

    return Recurrence(unit=unit, interval=interval, count=count, until=until)


def _first(rule: vRecur, key: str, default):
    values = rule.get(key)
    if not values:
        return default
    if isinstance(values, (list, tuple)):
        return values[0]
    return values


def _to_wall_clock(value, tz: ZoneInfo) -> datetime.datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        if value.tzinfo is None:
            return value
        return value.astimezone(tz).replace(tzinfo=None)
    if isinstance(value, datetime.date):
        # A date-only UNTIL includes that whole day.
        return datetime.datetime.combine(value, datetime.time(23, 59, 59))
    return None
