from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time as dtime, timedelta, timezone


@dataclass(frozen=True)
class WeekRange:
    start: datetime   # Monday 00:00:00
    end: datetime     # Sunday 23:59:59.999999
    label: str        # e.g. "2/9~2/15"


def week_range(moment: datetime | date | None = None) -> WeekRange:
    """Monday-to-Sunday week containing ``moment`` (local time by default)."""
    moment = moment or datetime.now()
    day = moment.date() if isinstance(moment, datetime) else moment
    monday = day - timedelta(days=day.weekday())
    sunday = monday + timedelta(days=6)
    return WeekRange(
        start=datetime.combine(monday, dtime.min),
        end=datetime.combine(sunday, dtime.max),
        label=f"{monday.month}/{monday.day}~{sunday.month}/{sunday.day}",
    )


def to_db_datetime(moment: datetime | None) -> str | None:
    """'YYYY-MM-DD HH:MM:SS' in UTC, the format stored in the trades table."""
    if moment is None:
        return None
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment.strftime("%Y-%m-%d %H:%M:%S")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
