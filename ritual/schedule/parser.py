"""
Schedule parser — human-readable phrases to 5-field cron recurrences.

Supported forms (case-insensitive, surrounding whitespace ignored):

    daily at 8:00 AM            → "0 8 * * *"
    every Monday at 9:00 AM     → "0 9 * * 1"
    every 2 hours               → "0 */2 * * *"
    every 15 minutes            → "*/15 * * * *"
    monthly at 6:30 PM          → "30 18 1 * *"

Every pattern is anchored, so a normalized phrase matches at most one form.
Anything else is rejected with UnrecognizedSchedule.

Usage:
    parsed = parse("daily at 8:00 AM")
    parsed.recurrence                    # "0 8 * * *"
    next_occurrence(parsed.recurrence, datetime.now(timezone.utc))
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from croniter import croniter

from ritual.core.errors import InvalidRecurrence, InvalidWeekday, UnrecognizedSchedule


@dataclass(frozen=True, slots=True)
class ParsedSchedule:
    """Canonical recurrence plus a display string. Equal by value."""

    recurrence: str
    description: str


WEEKDAYS: dict[str, int] = {
    "sunday": 0,
    "monday": 1,
    "tuesday": 2,
    "wednesday": 3,
    "thursday": 4,
    "friday": 5,
    "saturday": 6,
}

_CLOCK = r"(?P<hour>\d{1,2}):(?P<minute>\d{2})\s*(?P<meridiem>am|pm)?"


def _to_24h(phrase: str, match: re.Match[str]) -> tuple[int, int]:
    """Convert the clock groups of a match to (hour, minute) in 24h time."""
    hour = int(match["hour"])
    minute = int(match["minute"])
    meridiem = match["meridiem"]

    if minute > 59:
        raise UnrecognizedSchedule(phrase, "minute must be 00-59")
    if meridiem is None:
        if hour > 23:
            raise UnrecognizedSchedule(phrase, "hour must be 0-23")
        return hour, minute

    if not 1 <= hour <= 12:
        raise UnrecognizedSchedule(phrase, "hour must be 1-12 with am/pm")
    if meridiem == "pm" and hour != 12:
        hour += 12
    elif meridiem == "am" and hour == 12:
        hour = 0
    return hour, minute


def _every_n(phrase: str, match: re.Match[str], upper: int) -> int:
    n = int(match["n"])
    if not 1 <= n <= upper:
        raise UnrecognizedSchedule(phrase, f"interval must be 1-{upper}")
    return n


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}" if n == 1 else f"{n} {unit}s"


# ── Form builders ─────────────────────────────────────────────────────────────


def _daily(phrase: str, match: re.Match[str]) -> ParsedSchedule:
    hour, minute = _to_24h(phrase, match)
    return ParsedSchedule(
        recurrence=f"{minute} {hour} * * *",
        description=f"Daily at {hour:02d}:{minute:02d}",
    )


def _weekly(phrase: str, match: re.Match[str]) -> ParsedSchedule:
    day_name = match["day"]
    if day_name not in WEEKDAYS:
        raise InvalidWeekday(day_name)
    hour, minute = _to_24h(phrase, match)
    return ParsedSchedule(
        recurrence=f"{minute} {hour} * * {WEEKDAYS[day_name]}",
        description=f"Every {day_name} at {hour:02d}:{minute:02d}",
    )


def _hourly(phrase: str, match: re.Match[str]) -> ParsedSchedule:
    n = _every_n(phrase, match, 23)
    return ParsedSchedule(recurrence=f"0 */{n} * * *", description=f"Every {_plural(n, 'hour')}")


def _minutely(phrase: str, match: re.Match[str]) -> ParsedSchedule:
    n = _every_n(phrase, match, 59)
    return ParsedSchedule(recurrence=f"*/{n} * * * *", description=f"Every {_plural(n, 'minute')}")


def _monthly(phrase: str, match: re.Match[str]) -> ParsedSchedule:
    hour, minute = _to_24h(phrase, match)
    return ParsedSchedule(
        recurrence=f"{minute} {hour} 1 * *",
        description=f"Monthly on the 1st at {hour:02d}:{minute:02d}",
    )


# Tried in order; patterns are disjoint so the order only affects speed.
FORMS: list[tuple[str, re.Pattern[str], Callable[[str, re.Match[str]], ParsedSchedule]]] = [
    ("daily", re.compile(rf"daily at {_CLOCK}"), _daily),
    ("weekly", re.compile(rf"every (?P<day>[a-z]+) at {_CLOCK}"), _weekly),
    ("hourly", re.compile(r"every (?P<n>\d+) hours?"), _hourly),
    ("minutely", re.compile(r"every (?P<n>\d+) minutes?"), _minutely),
    ("monthly", re.compile(rf"monthly at {_CLOCK}"), _monthly),
]


def normalize(phrase: str) -> str:
    """Lower-case, trim, and collapse inner whitespace."""
    return " ".join(phrase.lower().split())


def parse(phrase: str) -> ParsedSchedule:
    """
    Parse a schedule phrase.

    Raises:
        UnrecognizedSchedule: no form matches, or a field is out of range
        InvalidWeekday: weekly form with an unknown day name
    """
    normalized = normalize(phrase)
    for _name, pattern, build in FORMS:
        match = pattern.fullmatch(normalized)
        if match:
            return build(phrase, match)
    raise UnrecognizedSchedule(phrase)


def matching_forms(phrase: str) -> list[str]:
    """Names of every form whose pattern matches the phrase (at most one)."""
    normalized = normalize(phrase)
    return [name for name, pattern, _ in FORMS if pattern.fullmatch(normalized)]


# ── Recurrence evaluation ─────────────────────────────────────────────────────


def validate_recurrence(recurrence: str) -> bool:
    """True if the recurrence is a 5-field expression croniter accepts."""
    if len(recurrence.split()) != 5:
        return False
    return bool(croniter.is_valid(recurrence))


def next_occurrence(recurrence: str, from_: datetime) -> datetime:
    """
    First occurrence of the recurrence strictly after from_.

    A naive from_ is read as UTC; the result carries from_'s timezone.

    Raises:
        InvalidRecurrence: the expression cannot be interpreted
    """
    if not validate_recurrence(recurrence):
        raise InvalidRecurrence(recurrence, "expected a valid 5-field cron expression")
    if from_.tzinfo is None:
        from_ = from_.replace(tzinfo=timezone.utc)

    try:
        it = croniter(recurrence, from_)
        nxt: datetime = it.get_next(datetime)
        while nxt <= from_:
            nxt = it.get_next(datetime)
    except (ValueError, KeyError) as e:
        raise InvalidRecurrence(recurrence, str(e)) from e
    return nxt


def next_run_for(phrase: str, from_: datetime | None = None) -> datetime:
    """Parse a phrase and return its next occurrence after from_ (default: now)."""
    parsed = parse(phrase)
    return next_occurrence(parsed.recurrence, from_ or datetime.now(timezone.utc))
