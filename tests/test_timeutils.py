from __future__ import annotations

from datetime import date, datetime

import pytest
from dateutil import tz

from salud_log.timeutils import (
    day_bounds_ms,
    local_day,
    local_hour,
    resolve_tz,
    to_datetime,
    to_timestamp_ms,
    week_bounds_ms,
)

_T0 = 1_735_812_000_000  # 2025-01-02 10:00 UTC


def test_to_datetime_and_back() -> None:
    dt = to_datetime(_T0, tz.UTC)
    assert dt == datetime(2025, 1, 2, 10, 0, tzinfo=tz.UTC)
    assert to_timestamp_ms(dt) == _T0
    assert to_timestamp_ms(datetime(2025, 1, 2, 10, 0), tz.UTC) == _T0


def test_local_hour_respects_zone() -> None:
    assert local_hour(_T0, tz.UTC) == 10
    assert local_hour(_T0, tz.gettz("America/Argentina/Buenos_Aires")) == 7
    assert local_day(_T0, tz.UTC) == date(2025, 1, 2)


@pytest.mark.parametrize("value", [None, "10:00", True, float("inf")])
def test_local_hour_unparseable_is_none(value: object) -> None:
    assert local_hour(value, tz.UTC) is None


def test_day_bounds_are_inclusive() -> None:
    start, end = day_bounds_ms(date(2025, 1, 2), date(2025, 1, 3), tz.UTC)
    assert start == 1_735_776_000_000
    assert end == 1_735_776_000_000 + 2 * 86_400_000 - 1


def test_week_bounds_start_on_monday() -> None:
    start, end = week_bounds_ms(datetime(2025, 1, 12, 23, 0, tzinfo=tz.UTC), tz.UTC)
    assert to_datetime(start, tz.UTC) == datetime(2025, 1, 6, tzinfo=tz.UTC)
    assert to_datetime(end + 1, tz.UTC) == datetime(2025, 1, 13, tzinfo=tz.UTC)


def test_resolve_tz() -> None:
    assert resolve_tz("UTC") is not None
    assert resolve_tz(None) is not None
    with pytest.raises(ValueError):
        resolve_tz("Nowhere/Imaginary")
