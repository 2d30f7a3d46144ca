from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def local_hhmm(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime("%H:%M")


def utc_from_epoch(ts: int) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(int(ts), tz=timezone.utc)
    except (OverflowError, OSError, ValueError, TypeError):
        return None


def parse_docker_created(ts: str) -> Optional[datetime]:
    """Parse docker's `CreatedAt` column, e.g. "2024-01-15 10:30:00 -0800 PST".

    The trailing zone abbreviation is informational only; the numeric offset wins.
    """
    parts = (ts or "").split()
    if len(parts) < 3:
        return None
    try:
        dt = datetime.strptime(" ".join(parts[:3]), "%Y-%m-%d %H:%M:%S %z")
    except ValueError:
        return None
    return dt.astimezone(timezone.utc)


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}" if n == 1 else f"{n} {unit}s"


def humanize_duration(delta: timedelta) -> str:
    """Rough, present-tense English for an elapsed duration ("5 minutes", "an hour")."""
    secs = abs(int(delta.total_seconds()))
    if secs <= 10:
        return "now"
    if secs < 45:
        return "seconds"
    if secs < 90:
        return "a minute"
    mins = secs // 60
    if mins < 45:
        return _plural(mins, "minute")
    if mins < 90:
        return "an hour"
    hours = mins // 60
    if hours < 22:
        return _plural(hours, "hour")
    if hours < 36:
        return "a day"
    days = hours // 24
    if days < 26:
        return _plural(days, "day")
    if days < 45:
        return "a month"
    if days < 320:
        return _plural(max(days // 30, 2), "month")
    if days < 548:
        return "a year"
    return _plural(max(days // 365, 2), "year")
