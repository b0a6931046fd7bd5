"""Conversión entre epoch en milisegundos y fechas locales."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, tzinfo

from dateutil import tz

_LOCAL_TZ = tz.tzlocal()


def resolve_tz(name: str | None) -> tzinfo:
    """Resolve an IANA zone name; ``None`` or empty means the machine zone.

    Raises:
        ValueError: If the zone name is unknown.
    """
    if not name:
        return _LOCAL_TZ
    zone = tz.gettz(name)
    if zone is None:
        raise ValueError(f"Unknown time zone: {name}")
    return zone


def to_datetime(timestamp_ms: int, zone: tzinfo | None = None) -> datetime:
    """Epoch milliseconds -> aware datetime in ``zone`` (local by default)."""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=zone or _LOCAL_TZ)


def to_timestamp_ms(dt: datetime, zone: tzinfo | None = None) -> int:
    """Aware or naive datetime -> epoch milliseconds (naive means ``zone``)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=zone or _LOCAL_TZ)
    return int(round(dt.timestamp() * 1000))


def now_ms() -> int:
    return to_timestamp_ms(datetime.now(tz=_LOCAL_TZ))


def local_hour(timestamp_ms: object, zone: tzinfo | None = None) -> int | None:
    """Hour of day (0-23) or ``None`` when the timestamp is not parseable."""
    if isinstance(timestamp_ms, bool) or not isinstance(timestamp_ms, int | float):
        return None
    try:
        return to_datetime(int(timestamp_ms), zone).hour
    except (OverflowError, OSError, ValueError):
        return None


def local_day(timestamp_ms: int, zone: tzinfo | None = None) -> date:
    return to_datetime(timestamp_ms, zone).date()


def day_bounds_ms(
    start_day: date, end_day: date, zone: tzinfo | None = None
) -> tuple[int, int]:
    """Inclusive epoch-ms bounds: ``start_day`` 00:00 through the end of ``end_day``."""
    zone = zone or _LOCAL_TZ
    start = datetime.combine(start_day, time.min).replace(tzinfo=zone)
    end = datetime.combine(end_day + timedelta(days=1), time.min).replace(tzinfo=zone)
    return to_timestamp_ms(start), to_timestamp_ms(end) - 1


def week_bounds_ms(
    now: datetime | None = None, zone: tzinfo | None = None
) -> tuple[int, int]:
    """Inclusive bounds of the Monday-Sunday week that contains ``now``."""
    zone = zone or _LOCAL_TZ
    current = now.astimezone(zone) if now is not None else datetime.now(tz=zone)
    monday = current.date() - timedelta(days=current.weekday())
    return day_bounds_ms(monday, monday + timedelta(days=6), zone)
