from __future__ import annotations

from datetime import date, datetime
from pathlib import Path

import pandas as pd
from dateutil import tz

from salud_log.consolidate import (
    DAILY_COLUMNS,
    build_calendar,
    build_timeline,
    daily_summary,
    drop_empty_days,
    export_frame,
    group_by_day,
    records_to_frame,
)
from salud_log.model import (
    BloodPressureReading,
    FoodEntry,
    GlucoseReading,
    InsulinDose,
    LogEntry,
    MealType,
    RecordKind,
)
from salud_log.storage import SQLiteStore

UTC = tz.UTC


def _ts(day: int, hour: int, minute: int = 0) -> int:
    return int(datetime(2025, 1, day, hour, minute, tzinfo=UTC).timestamp() * 1000)


def test_records_to_frame_sorts_and_formats() -> None:
    readings = [
        GlucoseReading(value=150.0, timestamp=_ts(3, 7, 5), context="fasting"),
        GlucoseReading(value=120.0, timestamp=_ts(2, 21, 30), notes="cena"),
    ]

    df = records_to_frame(RecordKind.GLUCOSE, readings, UTC)

    assert list(df.columns) == ["datetime", "date", "time", "value", "context", "notes"]
    assert df["date"].tolist() == ["2025-01-02", "2025-01-03"]
    assert df["time"].tolist() == ["21:30", "07:05"]
    assert df["value"].tolist() == [120.0, 150.0]
    assert df.iloc[1]["context"] == "fasting"
    assert df.iloc[0]["context"] is None


def test_records_to_frame_text_columns_hold_none_for_missing() -> None:
    readings = [
        GlucoseReading(value=100.0, timestamp=_ts(2, 8)),
        GlucoseReading(value=110.0, timestamp=_ts(2, 9), context="fasting"),
    ]
    doses = [InsulinDose(units=4.0, insulin_type="rapid", timestamp=_ts(2, 8))]

    glucose = records_to_frame(RecordKind.GLUCOSE, readings, UTC)
    insulin = records_to_frame(RecordKind.INSULIN, doses, UTC)

    for col in ("date", "time", "context", "notes"):
        assert glucose[col].dtype == object
    assert glucose["notes"].tolist() == [None, None]
    assert glucose["context"].tolist() == [None, "fasting"]
    assert insulin["notes"].tolist() == [None]
    assert insulin["type"].tolist() == ["rapid"]


def test_records_to_frame_converts_glucose_units() -> None:
    readings = [GlucoseReading(value=120.0, timestamp=_ts(2, 8))]
    df = records_to_frame(RecordKind.GLUCOSE, readings, UTC, "mmol/L")
    assert df.iloc[0]["value"] == 6.7


def test_records_to_frame_empty_has_columns() -> None:
    df = records_to_frame(RecordKind.FOOD, [], UTC)
    assert df.empty
    assert list(df.columns) == ["datetime", "date", "time", "name", "carbs", "notes"]


def test_export_frame_keeps_kind_columns() -> None:
    records = [BloodPressureReading(systolic=120, diastolic=80, timestamp=_ts(2, 8))]
    df = export_frame(
        RecordKind.BLOOD_PRESSURE,
        records_to_frame(RecordKind.BLOOD_PRESSURE, records, UTC),
    )
    assert list(df.columns) == ["date", "systolic", "diastolic", "notes"]
    assert df.iloc[0]["systolic"] == 120


def test_build_calendar_inclusive() -> None:
    cal = build_calendar(date(2025, 1, 30), date(2025, 2, 2))
    assert cal["date"].tolist() == [
        date(2025, 1, 30),
        date(2025, 1, 31),
        date(2025, 2, 1),
        date(2025, 2, 2),
    ]


def test_daily_summary_merges_kinds_and_drops_empty_days() -> None:
    glucose = [
        GlucoseReading(value=100.0, timestamp=_ts(2, 8)),
        GlucoseReading(value=120.0, timestamp=_ts(2, 20)),
        GlucoseReading(value=150.0, timestamp=_ts(4, 8)),
    ]
    insulin = [InsulinDose(units=5.0, insulin_type="rapid", timestamp=_ts(2, 8))]
    food = [FoodEntry(name="Té", timestamp=_ts(3, 17), meal_type=MealType.SNACK)]

    df = daily_summary(glucose, insulin, food, UTC)

    assert list(df.columns) == list(DAILY_COLUMNS)
    assert df["date"].tolist() == [date(2025, 1, 2), date(2025, 1, 4)]
    first = df.iloc[0]
    assert first["glucose_count"] == 2
    assert first["glucose_min"] == 100.0
    assert first["glucose_max"] == 120.0
    assert first["glucose_avg"] == 110
    assert first["insulin_units"] == 5.0
    assert pd.isna(first["carbs_g"])
    assert pd.isna(df.iloc[1]["insulin_units"])


def test_daily_summary_empty() -> None:
    df = daily_summary([], [], [], UTC)
    assert df.empty
    assert list(df.columns) == list(DAILY_COLUMNS)


def test_drop_empty_days_without_metric_columns() -> None:
    df = pd.DataFrame({"date": [date(2025, 1, 2)]})
    assert drop_empty_days(df).equals(df)


def test_group_by_day_orders_days_and_readings() -> None:
    readings = [
        GlucoseReading(value=3.0, timestamp=_ts(3, 9)),
        GlucoseReading(value=2.0, timestamp=_ts(2, 22)),
        GlucoseReading(value=1.0, timestamp=_ts(2, 6)),
    ]

    grouped = group_by_day(readings, UTC)

    assert [day for day, _ in grouped] == [date(2025, 1, 2), date(2025, 1, 3)]
    assert [r.value for r in grouped[0][1]] == [1.0, 2.0]


def test_group_by_day_uses_local_zone() -> None:
    # 01:00 UTC is still the previous day in Buenos Aires (UTC-3)
    readings = [GlucoseReading(value=1.0, timestamp=_ts(3, 1))]
    grouped = group_by_day(readings, tz.gettz("America/Argentina/Buenos_Aires"))
    assert grouped[0][0] == date(2025, 1, 2)


def test_build_timeline_merges_kinds_newest_first(tmp_path: Path) -> None:
    store = SQLiteStore(tmp_path / "salud.sqlite3")
    store.glucose.create(GlucoseReading(value=100.0, timestamp=_ts(2, 8)))
    store.food.create(
        FoodEntry(name="Pan", timestamp=_ts(2, 8), meal_type=MealType.BREAKFAST)
    )
    store.insulin.create(
        InsulinDose(units=4.0, insulin_type="rapid", timestamp=_ts(2, 9))
    )
    store.blood_pressure.create(
        BloodPressureReading(systolic=120, diastolic=80, timestamp=_ts(1, 9))
    )

    timeline = build_timeline(store)

    assert all(isinstance(e, LogEntry) for e in timeline)
    assert [e.kind for e in timeline] == [
        RecordKind.INSULIN,
        RecordKind.GLUCOSE,
        RecordKind.FOOD,
        RecordKind.BLOOD_PRESSURE,
    ]
    assert timeline[0].record.units == 4.0  # type: ignore[union-attr]


def test_build_timeline_range_and_kinds(tmp_path: Path) -> None:
    store = SQLiteStore(tmp_path / "salud.sqlite3")
    store.glucose.create(GlucoseReading(value=100.0, timestamp=_ts(2, 8)))
    store.glucose.create(GlucoseReading(value=110.0, timestamp=_ts(5, 8)))
    store.insulin.create(
        InsulinDose(units=4.0, insulin_type="rapid", timestamp=_ts(2, 9))
    )

    timeline = build_timeline(store, _ts(1, 0), _ts(3, 0), kinds=["glucose"])

    assert [(e.kind, e.timestamp) for e in timeline] == [
        (RecordKind.GLUCOSE, _ts(2, 8))
    ]
