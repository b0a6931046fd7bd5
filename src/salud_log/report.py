"""Generación de reportes: documento HTML imprimible y archivos CSV por tipo."""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from pathlib import Path
from typing import Any

import pandas as pd

from salud_log.consolidate import (
    KIND_COLUMNS,
    daily_summary,
    export_frame,
    group_by_day,
    records_to_frame,
)
from salud_log.errors import ValidationError
from salud_log.excel_writer import ExcelLayout, write_report_workbook
from salud_log.model import (
    A1CReading,
    BloodPressureReading,
    FoodEntry,
    GlucoseReading,
    InsulinDose,
    RecordKind,
    UserSettings,
    WeightMeasurement,
)
from salud_log.output import write_text_atomic
from salud_log.stats import (
    FoodStats,
    GlucoseSummary,
    InsulinStats,
    bmi_category,
    calculate_bmi,
    food_stats,
    insulin_stats,
    summary_stats,
)
from salud_log.storage import SQLiteStore
from salud_log.timeutils import day_bounds_ms, to_datetime
from salud_log.units import format_glucose, format_number, weight_to_kg

logger = logging.getLogger(__name__)

KIND_TITLES: dict[RecordKind, str] = {
    RecordKind.GLUCOSE: "Glucose",
    RecordKind.INSULIN: "Insulin",
    RecordKind.FOOD: "Food",
    RecordKind.A1C: "A1C",
    RecordKind.WEIGHT: "Weight",
    RecordKind.BLOOD_PRESSURE: "Blood pressure",
}

_NUMERIC_EXPORT_COLUMNS = ("value", "units", "carbs", "systolic", "diastolic")

_STYLE = """
body { font-family: Arial, sans-serif; margin: 0; padding: 20px; color: #333; }
.header { text-align: center; margin-bottom: 30px; }
.title { font-size: 20px; margin: 10px 0; }
.date-range { font-size: 16px; color: #666; }
.user-info { margin: 20px 0; padding: 15px; background-color: #f5f5f5; }
.section { margin: 25px 0; }
.section-title { font-size: 18px; color: #0066cc; border-bottom: 1px solid #ddd; }
.stats-container { display: flex; flex-wrap: wrap; justify-content: space-between; }
.stat-box { width: 30%; background-color: #f9f9f9; padding: 15px; margin-bottom: 15px; }
.stat-title { font-size: 14px; color: #666; }
.stat-value { font-size: 20px; font-weight: bold; color: #0066cc; }
table { width: 100%; border-collapse: collapse; margin: 15px 0; }
th, td { padding: 8px 10px; text-align: left; border-bottom: 1px solid #ddd; }
th { background-color: #f2f2f2; }
.footer { text-align: center; margin-top: 50px; color: #999; font-size: 12px; }
"""


@dataclass(frozen=True)
class ReportData:
    """Snapshot of every record kind within a closed date range (oldest first)."""

    start_day: date
    end_day: date
    settings: UserSettings
    glucose: list[GlucoseReading] = field(default_factory=list)
    food: list[FoodEntry] = field(default_factory=list)
    insulin: list[InsulinDose] = field(default_factory=list)
    a1c: list[A1CReading] = field(default_factory=list)
    weight: list[WeightMeasurement] = field(default_factory=list)
    blood_pressure: list[BloodPressureReading] = field(default_factory=list)

    def records(self, kind: RecordKind) -> list[Any]:
        return {
            RecordKind.GLUCOSE: self.glucose,
            RecordKind.FOOD: self.food,
            RecordKind.INSULIN: self.insulin,
            RecordKind.A1C: self.a1c,
            RecordKind.WEIGHT: self.weight,
            RecordKind.BLOOD_PRESSURE: self.blood_pressure,
        }[kind]


@dataclass(frozen=True, eq=False)
class ReportStats:
    glucose: GlucoseSummary
    insulin: InsulinStats
    food: FoodStats
    daily: pd.DataFrame
    latest_weight: float | None = None
    bmi: float | None = None
    bmi_category: str | None = None


@dataclass(frozen=True)
class ReportArtifacts:
    """Paths written by one export request."""

    document: Path
    tables: dict[RecordKind, Path]
    workbook: Path | None = None


def report_basename(start_day: date, end_day: date) -> str:
    return f"salud_report_{start_day.isoformat()}_to_{end_day.isoformat()}"


def table_filename(start_day: date, end_day: date, kind: RecordKind) -> str:
    span = f"{start_day.isoformat()}_to_{end_day.isoformat()}"
    return f"salud_data_{span}_{kind.value}.csv"


class ReportGenerator:
    """Builds date-bounded reports from the store.

    Args:
        store: Record store to read from.
        output_dir: Where artifacts are written; defaults to the user's
            ``export_dir`` setting, else ``<cwd>/reports``.
        zone: Time zone used for calendar days and displayed times.
    """

    def __init__(
        self,
        store: SQLiteStore,
        output_dir: Path | None = None,
        zone: tzinfo | None = None,
    ) -> None:
        self._store = store
        self._output_dir = output_dir
        self._zone = zone

    def output_dir(self, settings: UserSettings) -> Path:
        if self._output_dir is not None:
            return self._output_dir
        if settings.export_dir:
            return Path(settings.export_dir).expanduser()
        return Path.cwd() / "reports"

    def collect(self, start_day: date, end_day: date) -> ReportData:
        """Fetch every kind range-filtered in SQL, plus the user settings once."""
        if end_day < start_day:
            raise ValidationError("end_day", "must not be before start_day")
        start_ms, end_ms = day_bounds_ms(start_day, end_day, self._zone)
        store = self._store
        return ReportData(
            start_day=start_day,
            end_day=end_day,
            settings=store.settings.get(),
            glucose=store.glucose.get_many_in_range(start_ms, end_ms),
            food=store.food.get_many_in_range(start_ms, end_ms),
            insulin=store.insulin.get_many_in_range(start_ms, end_ms),
            a1c=store.a1c.get_many_in_range(start_ms, end_ms),
            weight=store.weight.get_many_in_range(start_ms, end_ms),
            blood_pressure=store.blood_pressure.get_many_in_range(start_ms, end_ms),
        )

    def compute(self, data: ReportData) -> ReportStats:
        settings = data.settings
        latest_weight = None
        bmi = None
        if data.weight:
            latest_weight = max(data.weight, key=lambda w: w.timestamp).value
            bmi = calculate_bmi(
                weight_to_kg(latest_weight, str(_enum_value(settings.weight_unit))),
                settings.height_cm,
            )
        return ReportStats(
            glucose=summary_stats(
                data.glucose, settings.target_low, settings.target_high
            ),
            insulin=insulin_stats(data.insulin, self._zone),
            food=food_stats(data.food, self._zone),
            daily=daily_summary(data.glucose, data.insulin, data.food, self._zone),
            latest_weight=latest_weight,
            bmi=bmi,
            bmi_category=bmi_category(bmi) if bmi is not None else None,
        )

    def frames(self, data: ReportData) -> dict[RecordKind, pd.DataFrame]:
        """Export frames for the non-empty kinds, chronological within each."""
        units = _enum_value(data.settings.units)
        out: dict[RecordKind, pd.DataFrame] = {}
        for kind in KIND_COLUMNS:
            records = data.records(kind)
            if records:
                frame = records_to_frame(kind, records, self._zone, units)
                out[kind] = export_frame(kind, frame)
        return out

    def render_tables(self, data: ReportData) -> dict[RecordKind, str]:
        """CSV text per non-empty kind; text fields are quoted when needed."""
        tables = {kind: _format_numbers(df) for kind, df in self.frames(data).items()}
        return {
            kind: frame.to_csv(
                index=False,
                header=[c.capitalize() for c in frame.columns],
                lineterminator="\n",
            )
            for kind, frame in tables.items()
        }

    def render_html(
        self,
        data: ReportData,
        stats: ReportStats,
        generated_on: date | None = None,
    ) -> str:
        """Render the printable HTML document."""
        generated_on = generated_on or datetime.now(tz=self._zone).date()
        settings = data.settings
        units = str(_enum_value(settings.units))
        g = stats.glucose
        insulin = stats.insulin
        food = stats.food

        parts = [
            "<!DOCTYPE html>",
            "<html>",
            "<head>",
            '<meta charset="utf-8">',
            "<title>Salud Log Health Report</title>",
            f"<style>{_STYLE}</style>",
            "</head>",
            "<body>",
            '<div class="header">',
            '<h1 class="title">Health Report</h1>',
            f'<p class="date-range">{_day(data.start_day)} - {_day(data.end_day)}</p>',
            "</div>",
            self._profile_block(settings, stats),
            _section(
                "Blood Sugar Overview",
                _stat_boxes(
                    [
                        ("Average", format_glucose(g.average, units)),
                        ("Lowest", format_glucose(g.min, units)),
                        ("Highest", format_glucose(g.max, units)),
                        ("In Range", f"{format_number(g.in_range_pct)}%"),
                        ("High", f"{format_number(g.high_pct)}%"),
                        ("Low", f"{format_number(g.low_pct)}%"),
                        ("Std Dev", format_glucose(g.std_dev, units)),
                        ("Readings", str(g.count)),
                    ]
                ),
                "<h3>Daily Summary</h3>",
                _table(
                    [
                        "Date",
                        "Readings",
                        "Average",
                        "Min",
                        "Max",
                        "Insulin (units)",
                        "Carbs (g)",
                    ],
                    [
                        [
                            _day(row["date"]),
                            _cell_number(row["glucose_count"]),
                            _cell_number(row["glucose_avg"]),
                            _cell_number(row["glucose_min"]),
                            _cell_number(row["glucose_max"]),
                            _cell_number(row["insulin_units"]),
                            _cell_number(row["carbs_g"]),
                        ]
                        for _, row in stats.daily.iterrows()
                    ],
                ),
                "<h3>Blood Sugar Readings</h3>",
                _table(
                    ["Date &amp; Time", "Value", "Context", "Notes"],
                    [
                        [
                            self._datetime(r.timestamp),
                            format_glucose(r.value, units),
                            _text(_enum_value(r.context)),
                            _text(r.notes),
                        ]
                        for _, day_readings in group_by_day(data.glucose, self._zone)
                        for r in day_readings
                    ],
                ),
            ),
            _section(
                "Insulin Overview",
                _stat_boxes(
                    [
                        (
                            "Total Insulin",
                            f"{format_number(insulin.total_units)} units",
                        ),
                        (
                            "Average Per Day",
                            f"{format_number(insulin.average_per_day)} units",
                        ),
                        ("Number of Doses", str(insulin.doses_count)),
                    ]
                ),
                "<h3>Insulin Doses</h3>",
                _table(
                    ["Date &amp; Time", "Units", "Type", "Notes"],
                    [
                        [
                            self._datetime(d.timestamp),
                            format_number(d.units),
                            _text(_enum_value(d.insulin_type)),
                            _text(d.notes),
                        ]
                        for d in data.insulin
                    ],
                ),
            ),
            _section(
                "Food Overview",
                _stat_boxes(
                    [
                        ("Total Carbs", f"{format_number(food.total_carbs)} g"),
                        (
                            "Average Per Day",
                            f"{format_number(food.average_carbs_per_day)} g",
                        ),
                        ("Number of Entries", str(food.entries_count)),
                    ]
                ),
                "<h3>Food Entries</h3>",
                _table(
                    ["Date &amp; Time", "Food", "Meal", "Carbs (g)", "Notes"],
                    [
                        [
                            self._datetime(f.timestamp),
                            _text(f.name),
                            _text(_enum_value(f.meal_type)),
                            _text(format_number(f.carbs) or None),
                            _text(f.notes),
                        ]
                        for f in data.food
                    ],
                ),
            ),
        ]
        if data.a1c:
            parts.append(
                _section(
                    "A1C Readings",
                    _table(
                        ["Date", "Value (%)", "Notes"],
                        [
                            [
                                self._date(r.timestamp),
                                format_number(r.value),
                                _text(r.notes),
                            ]
                            for r in data.a1c
                        ],
                    ),
                )
            )
        if data.weight:
            weight_unit = html.escape(str(_enum_value(settings.weight_unit)))
            parts.append(
                _section(
                    "Weight Measurements",
                    _table(
                        ["Date", f"Weight ({weight_unit})", "Notes"],
                        [
                            [
                                self._date(w.timestamp),
                                format_number(w.value),
                                _text(w.notes),
                            ]
                            for w in data.weight
                        ],
                    ),
                )
            )
        if data.blood_pressure:
            parts.append(
                _section(
                    "Blood Pressure Readings",
                    _table(
                        ["Date", "Systolic", "Diastolic", "Notes"],
                        [
                            [
                                self._date(b.timestamp),
                                str(b.systolic),
                                str(b.diastolic),
                                _text(b.notes),
                            ]
                            for b in data.blood_pressure
                        ],
                    ),
                )
            )
        parts.extend(
            [
                '<div class="footer">'
                f"<p>Generated by Salud Log on {_day(generated_on)}</p>"
                "</div>",
                "</body>",
                "</html>",
            ]
        )
        return "\n".join(parts) + "\n"

    def generate(
        self,
        start_day: date,
        end_day: date,
        include_workbook: bool = False,
        generated_on: date | None = None,
    ) -> ReportArtifacts:
        """Write the HTML document, one CSV per non-empty kind and optionally an XLSX.

        Raises:
            ValidationError: If ``end_day`` is before ``start_day``.
            ExportFailure: If an artifact cannot be written.
        """
        data = self.collect(start_day, end_day)
        stats = self.compute(data)
        out_dir = self.output_dir(data.settings)
        base = report_basename(start_day, end_day)

        document = write_text_atomic(
            out_dir / f"{base}.html", self.render_html(data, stats, generated_on)
        )
        logger.info("Report document written: %s", document)

        tables: dict[RecordKind, Path] = {}
        for kind, text in self.render_tables(data).items():
            path = out_dir / table_filename(start_day, end_day, kind)
            write_text_atomic(path, text)
            tables[kind] = path
            logger.info("Report table written: %s", path)

        workbook = None
        if include_workbook:
            sheets = {KIND_TITLES[k]: df for k, df in self.frames(data).items()}
            workbook = write_report_workbook(
                sheets, out_dir / f"{base}.xlsx", ExcelLayout(), daily=stats.daily
            )
            logger.info("Report workbook written: %s", workbook)

        return ReportArtifacts(document=document, tables=tables, workbook=workbook)

    def _profile_block(self, settings: UserSettings, stats: ReportStats) -> str:
        lines = [
            "<p><strong>Name:</strong> "
            f"{_text(settings.full_name or None, 'Not provided')}</p>",
            f"<p><strong>Email:</strong> {_text(settings.email, 'Not provided')}</p>",
            "<p><strong>Diabetes Type:</strong> "
            f"{_text(settings.diabetes_type, 'Not specified')}</p>",
            "<p><strong>Target Range:</strong> "
            f"{format_glucose(settings.target_low, _enum_value(settings.units))} - "
            f"{format_glucose(settings.target_high, _enum_value(settings.units))}</p>",
        ]
        if stats.latest_weight is not None:
            unit = html.escape(str(_enum_value(settings.weight_unit)))
            lines.append(
                "<p><strong>Weight:</strong> "
                f"{format_number(stats.latest_weight)} {unit}</p>"
            )
        if settings.height_cm:
            lines.append(
                "<p><strong>Height:</strong> "
                f"{format_number(settings.height_cm)} cm</p>"
            )
        if stats.bmi is not None:
            lines.append(
                "<p><strong>BMI:</strong> "
                f"{format_number(stats.bmi)} ({stats.bmi_category})</p>"
            )
        return '<div class="user-info">' + "".join(lines) + "</div>"

    def _datetime(self, timestamp_ms: int) -> str:
        return to_datetime(timestamp_ms, self._zone).strftime("%b %d, %Y %H:%M")

    def _date(self, timestamp_ms: int) -> str:
        return _day(to_datetime(timestamp_ms, self._zone).date())


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def _day(day: date) -> str:
    return day.strftime("%b %d, %Y")


def _text(value: Any, default: str = "-") -> str:
    if value is None or value == "":
        return default
    return html.escape(str(value))


def _cell_number(value: Any) -> str:
    if value is None or pd.isna(value):
        return "-"
    return format_number(float(value))


def _format_numbers(frame: pd.DataFrame) -> pd.DataFrame:
    """Numbers as plain text (120 instead of 120.0), missing values empty."""
    out = frame.copy()
    for col in _NUMERIC_EXPORT_COLUMNS:
        if col in out.columns:
            out[col] = out[col].map(_number_text)
    return out


def _section(title: str, *body: str) -> str:
    return (
        '<div class="section">'
        f'<h2 class="section-title">{html.escape(title)}</h2>'
        + "".join(body)
        + "</div>"
    )


def _stat_boxes(items: list[tuple[str, str]]) -> str:
    boxes = "".join(
        '<div class="stat-box">'
        f'<div class="stat-title">{html.escape(title)}</div>'
        f'<div class="stat-value">{html.escape(value)}</div>'
        "</div>"
        for title, value in items
    )
    return f'<div class="stats-container">{boxes}</div>'


def _table(headers: list[str], rows: list[list[str]]) -> str:
    """Headers are trusted markup; cells must already be escaped."""
    head = "".join(f"<th>{h}</th>" for h in headers)
    body = "".join(
        "<tr>" + "".join(f"<td>{c}</td>" for c in row) + "</tr>" for row in rows
    )
    return f"<table><thead><tr>{head}</tr></thead><tbody>{body}</tbody></table>"


def _number_text(value: Any) -> str:
    if value is None or pd.isna(value):
        return ""
    return format_number(float(value))
