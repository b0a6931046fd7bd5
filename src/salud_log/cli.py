"""CLI para registrar datos de salud, ver estadísticas y exportar reportes."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import MISSING, fields
from datetime import date, datetime, timedelta, tzinfo
from pathlib import Path
from typing import Any

from dateutil import parser as date_parser

from salud_log.consolidate import build_timeline, export_frame, records_to_frame
from salud_log.errors import SaludLogError, ValidationError
from salud_log.insights import RuleBasedInsights, generate_insights
from salud_log.logging_config import setup_logging
from salud_log.model import RECORD_TYPES, SETTINGS_FIELDS, LogEntry, RecordKind
from salud_log.report import ReportGenerator
from salud_log.stats import (
    bucket_by_meal_context,
    bucket_by_time_of_day,
    food_stats,
    insulin_stats,
    meal_context_insight,
    summary_stats,
    time_of_day_insight,
)
from salud_log.storage import SQLiteStore
from salud_log.timeutils import (
    day_bounds_ms,
    now_ms,
    resolve_tz,
    to_datetime,
    to_timestamp_ms,
)
from salud_log.units import format_glucose, format_number

logger = logging.getLogger(__name__)

_KINDS = [k.value for k in RecordKind]
_BOOL_FIELDS = {"notifications", "dark_mode"}
_TEXT_FIELDS = {
    "name",
    "notes",
    "context",
    "meal_type",
    "insulin_type",
    "email",
    "first_name",
    "last_name",
    "diabetes_type",
    "export_dir",
    "weight_unit",
}
_NULL_WORDS = {"", "none", "null"}
_TRUE_WORDS = {"true", "yes", "on", "1"}
_FALSE_WORDS = {"false", "no", "off", "0"}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list; ``sys.argv[1:]`` when omitted.

    Returns:
        Parsed argparse namespace.
    """
    parser = argparse.ArgumentParser(
        prog="salud-log",
        description="Registro local de glucosa, comidas, insulina y otros datos.",
    )
    parser.add_argument(
        "--db",
        default="salud_log.sqlite3",
        help="Archivo SQLite (default: ./salud_log.sqlite3).",
    )
    parser.add_argument("--log-level", default="WARNING", help="Nivel de logging.")
    parser.add_argument("--log-file", default=None, help="Archivo de log opcional.")
    parser.add_argument(
        "--tz", default=None, help="Zona horaria IANA (default: la de la máquina)."
    )
    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Registrar un dato.")
    add.add_argument("kind", choices=_KINDS)
    add.add_argument("fields", nargs="*", metavar="FIELD=VALUE")
    add.add_argument("--at", default=None, help="Fecha/hora ISO (default: ahora).")

    lst = sub.add_parser("list", help="Listar registros de un tipo, del más reciente.")
    lst.add_argument("kind", choices=_KINDS)
    lst.add_argument(
        "--limit", type=int, default=None, help="Máximo de registros a mostrar."
    )
    lst.add_argument("--week", action="store_true", help="Solo la semana actual.")

    log = sub.add_parser("log", help="Línea de tiempo unificada de todos los tipos.")
    log.add_argument("--days", type=int, default=None)

    upd = sub.add_parser("update", help="Modificar campos de un registro.")
    upd.add_argument("kind", choices=_KINDS)
    upd.add_argument("id", type=int)
    upd.add_argument("fields", nargs="+", metavar="FIELD=VALUE")

    dele = sub.add_parser("delete", help="Borrar un registro.")
    dele.add_argument("kind", choices=_KINDS)
    dele.add_argument("id", type=int)

    stats = sub.add_parser("stats", help="Estadísticas de los últimos días.")
    stats.add_argument("--days", type=int, default=14)

    ins = sub.add_parser("insights", help="Observaciones sobre las lecturas recientes.")
    ins.add_argument("--days", type=int, default=14)

    rep = sub.add_parser("report", help="Exportar reporte HTML + CSV.")
    rep.add_argument("--start", required=True, help="Primer día (YYYY-MM-DD).")
    rep.add_argument("--end", required=True, help="Último día (YYYY-MM-DD).")
    rep.add_argument("--xlsx", action="store_true", help="Agregar también un Excel.")
    rep.add_argument("--out", default=None, help="Directorio de salida.")

    st = sub.add_parser("settings", help="Ver o modificar la configuración.")
    st.add_argument("fields", nargs="*", metavar="FIELD=VALUE")

    return parser.parse_args(argv)


def coerce_value(field: str, raw: str) -> Any:
    """Convert a command-line string to the type the field expects."""
    if raw.strip().lower() in _NULL_WORDS:
        return None
    if field in _BOOL_FIELDS:
        word = raw.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
        raise ValidationError(field, "must be true or false")
    if field in _TEXT_FIELDS:
        return raw
    for cast in (int, float):
        try:
            return cast(raw)
        except ValueError:
            continue
    # left as text; validation reports the type error
    return raw


def parse_assignments(pairs: list[str]) -> dict[str, Any]:
    """``["value=120", "notes=after run"]`` -> typed mapping."""
    out: dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ValidationError(pair, "expected FIELD=VALUE")
        out[key] = coerce_value(key, raw)
    return out


def parse_day(text: str) -> date:
    try:
        return date.fromisoformat(text)
    except ValueError:
        raise ValidationError("date", f"expected YYYY-MM-DD, got {text!r}") from None


def _parse_at(text: str | None, zone: tzinfo) -> int:
    if text is None:
        return now_ms()
    try:
        return to_timestamp_ms(date_parser.isoparse(text), zone)
    except ValueError:
        raise ValidationError(
            "at", f"expected an ISO date/time, got {text!r}"
        ) from None


def build_record(kind: RecordKind, values: dict[str, Any], timestamp_ms: int) -> Any:
    """Instantiate the record dataclass for ``kind`` from parsed fields."""
    record_type = RECORD_TYPES[kind]
    allowed = {f.name for f in fields(record_type)} - {"id", "timestamp"}
    for key in values:
        if key not in allowed:
            raise ValidationError(key, f"unknown field for {kind.value}")
    for f in fields(record_type):
        if f.name in allowed and f.default is MISSING and f.name not in values:
            raise ValidationError(f.name, "is required")
    return record_type(timestamp=timestamp_ms, **values)


def _last_days(days: int, zone: tzinfo) -> tuple[date, date]:
    if days < 1:
        raise ValidationError("days", f"must be >= 1, got {days}")
    today = datetime.now(tz=zone).date()
    return today - timedelta(days=days - 1), today


def _describe(entry: LogEntry, units: Any) -> str:
    r: Any = entry.record
    kind = entry.kind
    if kind is RecordKind.GLUCOSE:
        text = format_glucose(r.value, units)
    elif kind is RecordKind.FOOD:
        carbs = f" ({format_number(r.carbs)} g)" if r.carbs is not None else ""
        text = f"{r.name}{carbs}"
    elif kind is RecordKind.INSULIN:
        insulin_type = getattr(r.insulin_type, "value", r.insulin_type)
        text = f"{format_number(r.units)} units {insulin_type}"
    elif kind is RecordKind.A1C:
        text = f"{format_number(r.value)}%"
    elif kind is RecordKind.WEIGHT:
        text = format_number(r.value)
    else:
        text = f"{r.systolic}/{r.diastolic}"
    return text


def _cmd_add(store: SQLiteStore, ns: argparse.Namespace, zone: tzinfo) -> int:
    kind = RecordKind(ns.kind)
    record = build_record(kind, parse_assignments(ns.fields), _parse_at(ns.at, zone))
    new_id = store.repository(kind).create(record)
    print(f"OK: {kind.value} record {new_id} saved")
    return 0


def _cmd_list(store: SQLiteStore, ns: argparse.Namespace, zone: tzinfo) -> int:
    kind = RecordKind(ns.kind)
    repo = store.repository(kind)
    if ns.limit is not None and ns.limit < 0:
        raise ValidationError("limit", f"must be >= 0, got {ns.limit}")
    if ns.week:
        records = repo.get_current_week(zone=zone)
        if ns.limit is not None:
            newest = sorted(records, key=lambda r: (r.timestamp, r.id), reverse=True)
            records = newest[: ns.limit]
    else:
        records = repo.get_many(ns.limit)
    if not records:
        print(f"No {kind.value} records.")
        return 0
    ordered = sorted(records, key=lambda r: (r.timestamp, r.id))
    units = store.settings.get().units
    frame = export_frame(kind, records_to_frame(kind, ordered, zone, units))
    frame.insert(0, "id", [r.id for r in ordered])
    print(frame.iloc[::-1].fillna("").to_string(index=False))
    return 0


def _cmd_log(store: SQLiteStore, ns: argparse.Namespace, zone: tzinfo) -> int:
    if ns.days is None:
        entries = build_timeline(store)
    else:
        start_ms, end_ms = day_bounds_ms(*_last_days(ns.days, zone), zone)
        entries = build_timeline(store, start_ms, end_ms)
    if not entries:
        print("No records.")
        return 0
    units = store.settings.get().units
    for entry in entries:
        when = to_datetime(entry.timestamp, zone).strftime("%Y-%m-%d %H:%M")
        print(f"{when}  {entry.kind.value:<14} #{entry.id}  {_describe(entry, units)}")
    return 0


def _cmd_update(store: SQLiteStore, ns: argparse.Namespace, zone: tzinfo) -> int:
    kind = RecordKind(ns.kind)
    store.repository(kind).update(ns.id, parse_assignments(ns.fields))
    print(f"OK: {kind.value} record {ns.id} updated")
    return 0


def _cmd_delete(store: SQLiteStore, ns: argparse.Namespace, zone: tzinfo) -> int:
    kind = RecordKind(ns.kind)
    store.repository(kind).delete(ns.id)
    print(f"OK: {kind.value} record {ns.id} deleted")
    return 0


def _cmd_stats(store: SQLiteStore, ns: argparse.Namespace, zone: tzinfo) -> int:
    start_ms, end_ms = day_bounds_ms(*_last_days(ns.days, zone), zone)
    settings = store.settings.get()
    readings = store.glucose.get_many_in_range(start_ms, end_ms)
    summary = summary_stats(readings, settings.target_low, settings.target_high)
    insulin = insulin_stats(store.insulin.get_many_in_range(start_ms, end_ms), zone)
    food = food_stats(store.food.get_many_in_range(start_ms, end_ms), zone)

    units = settings.units
    print(f"Last {ns.days} days, {summary.count} readings")
    print(f"  Average:  {format_glucose(summary.average, units)}")
    print(f"  Lowest:   {format_glucose(summary.min, units)}")
    print(f"  Highest:  {format_glucose(summary.max, units)}")
    print(f"  Std dev:  {format_glucose(summary.std_dev, units)}")
    print(
        f"  In range: {format_number(summary.in_range_pct)}%  "
        f"high: {format_number(summary.high_pct)}%  "
        f"low: {format_number(summary.low_pct)}%"
    )
    print(
        f"Insulin: {format_number(insulin.total_units)} units "
        f"in {insulin.doses_count} doses "
        f"({format_number(insulin.average_per_day)} per day)"
    )
    print(
        f"Food: {format_number(food.total_carbs)} g carbs "
        f"in {food.entries_count} entries "
        f"({format_number(food.average_carbs_per_day)} g per day)"
    )
    print(time_of_day_insight(bucket_by_time_of_day(readings, zone), len(readings)))
    print(meal_context_insight(bucket_by_meal_context(readings), len(readings)))
    return 0


def _cmd_insights(store: SQLiteStore, ns: argparse.Namespace, zone: tzinfo) -> int:
    start_ms, end_ms = day_bounds_ms(*_last_days(ns.days, zone), zone)
    strategy = RuleBasedInsights.from_settings(store.settings.get(), zone=zone)
    for line in generate_insights(
        store.glucose.get_many_in_range(start_ms, end_ms),
        store.food.get_many_in_range(start_ms, end_ms),
        store.insulin.get_many_in_range(start_ms, end_ms),
        strategy=strategy,
    ):
        print(f"- {line}")
    return 0


def _cmd_report(store: SQLiteStore, ns: argparse.Namespace, zone: tzinfo) -> int:
    out_dir = Path(ns.out).expanduser() if ns.out else None
    generator = ReportGenerator(store, output_dir=out_dir, zone=zone)
    artifacts = generator.generate(
        parse_day(ns.start), parse_day(ns.end), include_workbook=ns.xlsx
    )
    print(f"OK: Report: {artifacts.document}")
    for path in artifacts.tables.values():
        print(f"OK: Data: {path}")
    if artifacts.workbook is not None:
        print(f"OK: Workbook: {artifacts.workbook}")
    return 0


def _cmd_settings(store: SQLiteStore, ns: argparse.Namespace, zone: tzinfo) -> int:
    if ns.fields:
        store.settings.update(parse_assignments(ns.fields))
    settings = store.settings.get()
    for name in SETTINGS_FIELDS:
        value = getattr(settings, name)
        print(f"{name}: {getattr(value, 'value', value)}")
    return 0


_COMMANDS = {
    "add": _cmd_add,
    "list": _cmd_list,
    "log": _cmd_log,
    "update": _cmd_update,
    "delete": _cmd_delete,
    "stats": _cmd_stats,
    "insights": _cmd_insights,
    "report": _cmd_report,
    "settings": _cmd_settings,
}


def main(argv: list[str] | None = None) -> int:
    """Run the CLI.

    Returns:
        Exit code (0 on success, 2 on a data or storage error).
    """
    ns = parse_args(argv)
    try:
        setup_logging(ns.log_level, ns.log_file)
        zone = resolve_tz(ns.tz)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    try:
        store = SQLiteStore(Path(ns.db).expanduser())
        return _COMMANDS[ns.command](store, ns, zone)
    except SaludLogError as exc:
        logger.debug("Command %s failed", ns.command, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 2
