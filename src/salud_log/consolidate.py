"""Consolidación de registros: frames por tipo, resumen diario y línea de tiempo."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date, tzinfo
from typing import TYPE_CHECKING, Any, cast

import pandas as pd

from salud_log.model import (
    FoodEntry,
    GlucoseReading,
    GlucoseUnits,
    HealthRecord,
    InsulinDose,
    LogEntry,
    RecordKind,
)
from salud_log.timeutils import to_datetime
from salud_log.units import glucose_value, round_int

if TYPE_CHECKING:
    from salud_log.storage import SQLiteStore

# Export column set per kind (also the CSV header order).
KIND_COLUMNS: dict[RecordKind, tuple[str, ...]] = {
    RecordKind.GLUCOSE: ("date", "time", "value", "context", "notes"),
    RecordKind.INSULIN: ("date", "time", "units", "type", "notes"),
    RecordKind.FOOD: ("date", "time", "name", "carbs", "notes"),
    RecordKind.A1C: ("date", "value", "notes"),
    RecordKind.WEIGHT: ("date", "value", "notes"),
    RecordKind.BLOOD_PRESSURE: ("date", "systolic", "diastolic", "notes"),
}

# Free-text and enum columns; missing values stay ``None`` in these.
TEXT_COLUMNS: tuple[str, ...] = ("date", "time", "name", "type", "context", "notes")

DAILY_COLUMNS: tuple[str, ...] = (
    "date",
    "glucose_count",
    "glucose_min",
    "glucose_max",
    "glucose_avg",
    "insulin_units",
    "carbs_g",
)


def _enum_text(value: Any) -> str | None:
    if value is None:
        return None
    return str(getattr(value, "value", value))


def _record_row(
    kind: RecordKind, record: Any, zone: tzinfo | None, units: GlucoseUnits | str
) -> dict[str, object]:
    dt = to_datetime(record.timestamp, zone)
    row: dict[str, object] = {
        "datetime": dt,
        "date": dt.date().isoformat(),
        "time": dt.strftime("%H:%M"),
        "notes": record.notes,
    }
    if kind is RecordKind.GLUCOSE:
        row["value"] = glucose_value(record.value, units)
        row["context"] = _enum_text(record.context)
    elif kind is RecordKind.INSULIN:
        row["units"] = record.units
        row["type"] = _enum_text(record.insulin_type)
    elif kind is RecordKind.FOOD:
        row["name"] = record.name
        row["carbs"] = record.carbs
    elif kind is RecordKind.BLOOD_PRESSURE:
        row["systolic"] = record.systolic
        row["diastolic"] = record.diastolic
    else:
        row["value"] = record.value
    return row


def records_to_frame(
    kind: RecordKind,
    records: Sequence[HealthRecord],
    zone: tzinfo | None = None,
    units: GlucoseUnits | str = GlucoseUnits.MG_DL,
) -> pd.DataFrame:
    """Convert records of one kind to a DataFrame, oldest first.

    Columns are ``datetime`` followed by the kind's export columns.
    Glucose values are expressed in ``units``. Text columns have object
    dtype with ``None`` for missing values, whatever string dtype pandas
    would infer.
    """
    columns = ["datetime", *KIND_COLUMNS[kind]]
    rows = [_record_row(kind, r, zone, units) for r in records]
    if not rows:
        return pd.DataFrame(columns=columns)
    df = pd.DataFrame(rows)[columns].copy()
    for col in columns:
        if col in TEXT_COLUMNS:
            text = df[col].astype(object)
            df[col] = text.where(text.notna(), None)
    return df.sort_values("datetime", kind="stable").reset_index(drop=True)


def export_frame(kind: RecordKind, frame: pd.DataFrame) -> pd.DataFrame:
    """Drop helper columns, keeping only the export column set."""
    return frame.loc[:, list(KIND_COLUMNS[kind])]


def build_calendar(min_day: date, max_day: date) -> pd.DataFrame:
    """Build inclusive day calendar DataFrame."""
    days = pd.date_range(start=min_day, end=max_day, freq="D")
    return pd.DataFrame({"date": days.date})


def _daily_values(
    records: Iterable[Any], attr: str, zone: tzinfo | None
) -> pd.DataFrame:
    rows = [
        {"date": to_datetime(r.timestamp, zone).date(), "value": getattr(r, attr)}
        for r in records
    ]
    out = pd.DataFrame(rows, columns=["date", "value"])
    out["value"] = pd.to_numeric(out["value"], errors="coerce")
    return out


def daily_summary(
    glucose: Sequence[GlucoseReading],
    insulin: Sequence[InsulinDose],
    food: Sequence[FoodEntry],
    zone: tzinfo | None = None,
) -> pd.DataFrame:
    """Per-day glucose count/min/max/avg, insulin units and carbs.

    Full outer merge over a day calendar; days with no data are dropped.
    """
    g = _daily_values(glucose, "value", zone)
    i = _daily_values(insulin, "units", zone)
    f = _daily_values(food, "carbs", zone)
    if g.empty and i.empty and f.empty:
        return pd.DataFrame(columns=list(DAILY_COLUMNS))

    all_days = [cast(date, d) for frame in (g, i, f) for d in frame["date"]]
    cal = build_calendar(min(all_days), max(all_days))

    out = cal
    if not g.empty:
        g_daily = g.groupby("date", as_index=False).agg(
            glucose_count=("value", "count"),
            glucose_min=("value", "min"),
            glucose_max=("value", "max"),
            glucose_avg=("value", "mean"),
        )
        g_daily["glucose_avg"] = g_daily["glucose_avg"].map(round_int)
        out = out.merge(g_daily, on="date", how="left")
    if not i.empty:
        i_daily = i.groupby("date", as_index=False).agg(insulin_units=("value", "sum"))
        out = out.merge(i_daily, on="date", how="left")
    if not f.empty:
        f_daily = f.groupby("date", as_index=False).agg(
            carbs_g=("value", lambda s: s.sum(min_count=1))
        )
        out = out.merge(f_daily, on="date", how="left")

    for col in DAILY_COLUMNS:
        if col not in out.columns:
            out[col] = pd.NA
    out = out[list(DAILY_COLUMNS)].sort_values("date").reset_index(drop=True)
    return drop_empty_days(out)


def drop_empty_days(df: pd.DataFrame) -> pd.DataFrame:
    """Drop days where every metric column is null/NA.

    Args:
        df: Daily summary DataFrame.

    Returns:
        DataFrame without fully-empty days.
    """
    if df.empty:
        return df

    existing = [c for c in DAILY_COLUMNS if c != "date" and c in df.columns]
    if not existing:
        return df

    mask = df[existing].notna().any(axis=1)
    return df.loc[mask].reset_index(drop=True)


def group_by_day(
    readings: Iterable[GlucoseReading], zone: tzinfo | None = None
) -> list[tuple[date, list[GlucoseReading]]]:
    """Agrupa lecturas por día local; días y lecturas en orden ascendente."""
    grouped: dict[date, list[GlucoseReading]] = {}
    for reading in readings:
        day = to_datetime(reading.timestamp, zone).date()
        grouped.setdefault(day, []).append(reading)
    return [
        (day, sorted(grouped[day], key=lambda r: r.timestamp))
        for day in sorted(grouped)
    ]


def build_timeline(
    store: SQLiteStore,
    start_ms: int | None = None,
    end_ms: int | None = None,
    kinds: Iterable[RecordKind | str] | None = None,
) -> list[LogEntry]:
    """Merge every record kind into one newest-first list of ``LogEntry``.

    Without bounds, all records are read; with bounds, each kind is
    range-filtered in SQL.
    """
    selected = [RecordKind(k) for k in kinds] if kinds is not None else list(RecordKind)
    entries: list[LogEntry] = []
    for kind in selected:
        repo = store.repository(kind)
        if start_ms is None and end_ms is None:
            records = repo.get_many()
        else:
            records = repo.get_many_in_range(
                start_ms if start_ms is not None else 0,
                end_ms if end_ms is not None else 2**62,
            )
        entries.extend(LogEntry(kind, r) for r in records)
    # stable sort keeps kind order for equal timestamps
    entries.sort(key=lambda e: e.timestamp, reverse=True)
    return entries
