"""
Weight entry edit window.

An entry may be edited until the end of the calendar day after its
measurement day, evaluated in Europe/Warsaw regardless of server or client
timezone. Example: measured 2025-01-10 -> editable until 2025-01-11 23:59:59
Warsaw time.
"""
from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

WARSAW = ZoneInfo("Europe/Warsaw")


def warsaw_day_bounds(instant: datetime) -> tuple[datetime, datetime]:
    """[start, end) of the Warsaw calendar day containing ``instant``, as UTC."""
    local_day = instant.astimezone(WARSAW).date()
    start = datetime.combine(local_day, time.min, tzinfo=WARSAW)
    end = datetime.combine(local_day + timedelta(days=1), time.min, tzinfo=WARSAW)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def edit_deadline(measurement_date: datetime) -> datetime:
    """First instant (UTC) at which the entry is no longer editable."""
    local_day = measurement_date.astimezone(WARSAW).date()
    # start of D+2 in Warsaw; DST shifts are absorbed by zoneinfo
    cutoff = datetime.combine(local_day + timedelta(days=2), time.min, tzinfo=WARSAW)
    return cutoff.astimezone(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def is_within_edit_window(measurement_date: datetime, now: datetime | None = None) -> bool:
    measurement_date = _as_utc(measurement_date)
    now = _as_utc(now) if now is not None else datetime.now(timezone.utc)
    return now < edit_deadline(measurement_date)
