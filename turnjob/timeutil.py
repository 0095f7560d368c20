from __future__ import annotations

from datetime import date, datetime, timedelta

DAY_KEYS = ("lun", "mar", "mer", "gio", "ven", "sab", "dom")


def parse_hhmm(value: str) -> int:
    """Return minutes after midnight for an ``HH:MM`` string.

    ``24:00`` is accepted as the end of the day.
    """
    parts = value.split(":") if isinstance(value, str) else []
    if len(parts) != 2 or not all(part.isdigit() and len(part) == 2 for part in parts):
        raise ValueError(f"invalid time {value!r}, expected HH:MM")
    hours, minutes = int(parts[0]), int(parts[1])
    if minutes > 59 or hours > 24 or (hours == 24 and minutes):
        raise ValueError(f"invalid time {value!r}, expected HH:MM")
    return hours * 60 + minutes


def minutes_between(start: str, end: str) -> int:
    return parse_hhmm(end) - parse_hhmm(start)


def hours_between(start: str, end: str) -> float:
    return minutes_between(start, end) / 60


def windows_overlap(
    a_start: str | None,
    a_end: str | None,
    b_start: str | None,
    b_end: str | None,
) -> bool:
    # A window without times covers the whole day.
    if not a_start or not a_end or not b_start or not b_end:
        return True
    return parse_hhmm(a_start) < parse_hhmm(b_end) and parse_hhmm(b_start) < parse_hhmm(a_end)


def describe_window(start: str | None, end: str | None) -> str:
    if not start or not end:
        return "full day"
    return f"{start}-{end}"


def day_key(day: date) -> str:
    return DAY_KEYS[day.weekday()]


def daterange(start: date, end: date) -> list[date]:
    return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]


def at(day: date, hhmm: str) -> datetime:
    return datetime.combine(day, datetime.min.time()) + timedelta(minutes=parse_hhmm(hhmm))


def iso_week_bounds(day: date) -> tuple[date, date]:
    monday = day - timedelta(days=day.weekday())
    return monday, monday + timedelta(days=6)
