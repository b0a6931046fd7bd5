"""Persistencia SQLite para registros de salud y configuración del usuario."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, tzinfo
from enum import Enum
from pathlib import Path
from typing import Any, Generic, TypeVar

from salud_log.errors import NotFoundError, StorageFailure, ValidationError
from salud_log.model import (
    SETTINGS_FIELDS,
    A1CReading,
    BloodPressureReading,
    FoodEntry,
    GlucoseReading,
    GlucoseUnits,
    HealthRecord,
    InsulinDose,
    InsulinType,
    MealContext,
    MealType,
    RecordKind,
    UserSettings,
    WeightMeasurement,
    WeightUnit,
)
from salud_log.timeutils import week_bounds_ms
from salud_log.validation import (
    check_update_fields,
    validate_record,
    validate_settings,
    validate_update,
)

logger = logging.getLogger(__name__)

_R = TypeVar("_R")
_T = TypeVar("_T")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS user_settings (
    id INTEGER PRIMARY KEY,
    email TEXT,
    first_name TEXT,
    last_name TEXT,
    diabetes_type TEXT,
    notifications INTEGER DEFAULT 1,
    dark_mode INTEGER DEFAULT 0,
    units TEXT DEFAULT 'mg/dL'
);

CREATE TABLE IF NOT EXISTS blood_sugar_readings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    value REAL NOT NULL,
    timestamp INTEGER NOT NULL,
    context TEXT,
    notes TEXT
);

CREATE TABLE IF NOT EXISTS food_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    carbs REAL,
    timestamp INTEGER NOT NULL,
    notes TEXT
);

CREATE TABLE IF NOT EXISTS insulin_doses (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    units REAL NOT NULL,
    type TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    notes TEXT
);

CREATE TABLE IF NOT EXISTS a1c_readings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    value REAL NOT NULL,
    timestamp INTEGER NOT NULL,
    notes TEXT
);

CREATE TABLE IF NOT EXISTS weight_measurements (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    value REAL NOT NULL,
    timestamp INTEGER NOT NULL,
    notes TEXT
);

CREATE TABLE IF NOT EXISTS blood_pressure_readings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    systolic INTEGER NOT NULL,
    diastolic INTEGER NOT NULL,
    timestamp INTEGER NOT NULL,
    notes TEXT
);

CREATE INDEX IF NOT EXISTS idx_blood_sugar_timestamp ON blood_sugar_readings(timestamp);
CREATE INDEX IF NOT EXISTS idx_food_timestamp ON food_entries(timestamp);
CREATE INDEX IF NOT EXISTS idx_insulin_timestamp ON insulin_doses(timestamp);
CREATE INDEX IF NOT EXISTS idx_a1c_timestamp ON a1c_readings(timestamp);
CREATE INDEX IF NOT EXISTS idx_weight_timestamp ON weight_measurements(timestamp);
CREATE INDEX IF NOT EXISTS idx_bp_timestamp ON blood_pressure_readings(timestamp);
"""

# Columnas agregadas después de la primera versión del esquema.
_ADDED_COLUMNS: dict[str, tuple[tuple[str, str], ...]] = {
    "food_entries": (("meal_type", "TEXT NOT NULL DEFAULT 'snack'"),),
    "user_settings": (
        ("target_low", "REAL DEFAULT 70"),
        ("target_high", "REAL DEFAULT 180"),
        ("fasting_low", "REAL DEFAULT 80"),
        ("fasting_high", "REAL DEFAULT 130"),
        ("height_cm", "REAL"),
        ("weight_unit", "TEXT DEFAULT 'kg'"),
        ("export_dir", "TEXT DEFAULT ''"),
    ),
}

_NULLABLE_SETTINGS = ("email", "first_name", "last_name", "diabetes_type", "height_cm")

_ENUM_FIELDS: dict[str, type[Enum]] = {
    "context": MealContext,
    "meal_type": MealType,
    "insulin_type": InsulinType,
    "units": GlucoseUnits,
    "weight_unit": WeightUnit,
}


@dataclass(frozen=True)
class TableSpec:
    """Mapping between one record kind and its SQLite table."""

    kind: RecordKind
    table: str
    record_type: type
    # (dataclass field, column) pairs, without id
    columns: tuple[tuple[str, str], ...]

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(column for _, column in self.columns)


TABLES: dict[RecordKind, TableSpec] = {
    RecordKind.GLUCOSE: TableSpec(
        RecordKind.GLUCOSE,
        "blood_sugar_readings",
        GlucoseReading,
        (
            ("value", "value"),
            ("timestamp", "timestamp"),
            ("context", "context"),
            ("notes", "notes"),
        ),
    ),
    RecordKind.FOOD: TableSpec(
        RecordKind.FOOD,
        "food_entries",
        FoodEntry,
        (
            ("name", "name"),
            ("carbs", "carbs"),
            ("timestamp", "timestamp"),
            ("meal_type", "meal_type"),
            ("notes", "notes"),
        ),
    ),
    RecordKind.INSULIN: TableSpec(
        RecordKind.INSULIN,
        "insulin_doses",
        InsulinDose,
        (
            ("units", "units"),
            ("insulin_type", "type"),
            ("timestamp", "timestamp"),
            ("notes", "notes"),
        ),
    ),
    RecordKind.A1C: TableSpec(
        RecordKind.A1C,
        "a1c_readings",
        A1CReading,
        (("value", "value"), ("timestamp", "timestamp"), ("notes", "notes")),
    ),
    RecordKind.WEIGHT: TableSpec(
        RecordKind.WEIGHT,
        "weight_measurements",
        WeightMeasurement,
        (("value", "value"), ("timestamp", "timestamp"), ("notes", "notes")),
    ),
    RecordKind.BLOOD_PRESSURE: TableSpec(
        RecordKind.BLOOD_PRESSURE,
        "blood_pressure_readings",
        BloodPressureReading,
        (
            ("systolic", "systolic"),
            ("diastolic", "diastolic"),
            ("timestamp", "timestamp"),
            ("notes", "notes"),
        ),
    ),
}


class SQLiteStore:
    """Repositorio SQLite con un sub-repositorio por tipo de registro.

    The store holds no cache: every call goes to the database file, so
    callers refetch after a write instead of mirroring state.
    """

    def __init__(self, db_path: Path | str) -> None:
        """Create store and ensure schema exists.

        Raises:
            StorageFailure: If the schema cannot be created or migrated.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()
        self.glucose: RecordRepository[GlucoseReading] = RecordRepository(
            self, TABLES[RecordKind.GLUCOSE]
        )
        self.food: RecordRepository[FoodEntry] = RecordRepository(
            self, TABLES[RecordKind.FOOD]
        )
        self.insulin: RecordRepository[InsulinDose] = RecordRepository(
            self, TABLES[RecordKind.INSULIN]
        )
        self.a1c: RecordRepository[A1CReading] = RecordRepository(
            self, TABLES[RecordKind.A1C]
        )
        self.weight: RecordRepository[WeightMeasurement] = RecordRepository(
            self, TABLES[RecordKind.WEIGHT]
        )
        self.blood_pressure: RecordRepository[BloodPressureReading] = RecordRepository(
            self, TABLES[RecordKind.BLOOD_PRESSURE]
        )
        self.settings = SettingsRepository(self)

    @property
    def db_path(self) -> Path:
        return self._db_path

    def repository(self, kind: RecordKind | str) -> RecordRepository[Any]:
        """Devuelve el repositorio de un tipo de registro."""
        return {
            RecordKind.GLUCOSE: self.glucose,
            RecordKind.FOOD: self.food,
            RecordKind.INSULIN: self.insulin,
            RecordKind.A1C: self.a1c,
            RecordKind.WEIGHT: self.weight,
            RecordKind.BLOOD_PRESSURE: self.blood_pressure,
        }[RecordKind(kind)]

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """One connection per transaction: commit on success, rollback on error."""
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    def read(
        self, action: str, fn: Callable[[sqlite3.Connection], _T], fallback: _T
    ) -> _T:
        """Run a read; engine errors are logged and replaced by ``fallback``."""
        try:
            with self.transaction() as conn:
                return fn(conn)
        except sqlite3.Error:
            logger.exception("Error while trying to %s; returning fallback", action)
            return fallback

    def write(self, action: str, fn: Callable[[sqlite3.Connection], _T]) -> _T:
        """Run a write in one transaction; engine errors become ``StorageFailure``."""
        try:
            with self.transaction() as conn:
                return fn(conn)
        except sqlite3.Error as exc:
            logger.exception("Error while trying to %s", action)
            raise StorageFailure(f"Could not {action}: {exc}") from exc

    def _init_schema(self) -> None:
        def init(conn: sqlite3.Connection) -> None:
            conn.executescript(SCHEMA_SQL)
            self._migrate(conn)
            _ensure_settings_row(conn)

        self.write("initialize the database schema", init)

    def _migrate(self, conn: sqlite3.Connection) -> None:
        """Apply lightweight schema migrations."""
        for table, added in _ADDED_COLUMNS.items():
            cols = {row["name"] for row in conn.execute(f"PRAGMA table_info({table})")}
            for column, ddl in added:
                if column not in cols:
                    logger.info("Migrating %s: adding column %s", table, column)
                    conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}")


class RecordRepository(Generic[_R]):
    """CRUD over one record kind.

    Reads never raise on engine errors (they return an empty result);
    writes raise ``StorageFailure`` so a failed health-data write is never
    reported as saved.
    """

    def __init__(self, store: SQLiteStore, spec: TableSpec) -> None:
        self._store = store
        self._spec = spec

    @property
    def kind(self) -> RecordKind:
        return self._spec.kind

    def create(self, record: _R) -> int:
        """Insert a record and return the id assigned by SQLite.

        Raises:
            ValidationError: If a field violates its constraint or an id is given.
            StorageFailure: If the engine fails.
        """
        if getattr(record, "id", None) is not None:
            raise ValidationError("id", "is assigned by the store")
        if not isinstance(record, self._spec.record_type):
            raise TypeError(
                f"Expected {self._spec.record_type.__name__}, "
                f"got {type(record).__name__}"
            )
        clean = validate_record(record)  # type: ignore[arg-type]
        cols = self._spec.column_names
        placeholders = ", ".join("?" for _ in cols)
        sql = (
            f"INSERT INTO {self._spec.table} ({', '.join(cols)}) "
            f"VALUES ({placeholders})"
        )
        params = _record_params(clean, self._spec)

        def insert(conn: sqlite3.Connection) -> int:
            cur = conn.execute(sql, params)
            return int(cur.lastrowid)

        record_id = self._store.write(f"add {self.kind.value} record", insert)
        logger.debug("Created %s record %s", self.kind.value, record_id)
        return record_id

    def get(self, record_id: int) -> _R | None:
        """Fetch one record by id, ``None`` if it does not exist."""
        sql = f"SELECT * FROM {self._spec.table} WHERE id = ?"

        def fetch(conn: sqlite3.Connection) -> _R | None:
            row = conn.execute(sql, (record_id,)).fetchone()
            return None if row is None else _record_from_row(row, self._spec)

        action = f"get {self.kind.value} record {record_id}"
        return self._store.read(action, fetch, None)

    def get_many(self, limit: int | None = None) -> list[_R]:
        """Most recent records first; all of them when ``limit`` is None."""
        if limit is not None and limit < 0:
            raise ValidationError("limit", f"must be >= 0, got {limit}")
        sql = f"SELECT * FROM {self._spec.table} ORDER BY timestamp DESC, id DESC"
        params: tuple[int, ...] = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (limit,)
        return self._select(f"get {self.kind.value} records", sql, params)

    def get_many_in_range(self, start_ms: int, end_ms: int) -> list[_R]:
        """Records with ``start_ms <= timestamp <= end_ms``, oldest first."""
        sql = (
            f"SELECT * FROM {self._spec.table} "
            "WHERE timestamp >= ? AND timestamp <= ? ORDER BY timestamp ASC, id ASC"
        )
        return self._select(
            f"get {self.kind.value} records in range", sql, (int(start_ms), int(end_ms))
        )

    def get_current_week(
        self, now: datetime | None = None, zone: tzinfo | None = None
    ) -> list[_R]:
        """Registros de la semana actual (lunes a domingo, hora local)."""
        start_ms, end_ms = week_bounds_ms(now, zone)
        return self.get_many_in_range(start_ms, end_ms)

    def update(self, record_id: int, changes: Mapping[str, Any]) -> None:
        """Apply only the supplied fields to an existing record.

        Raises:
            NotFoundError: If ``record_id`` does not exist.
            ValidationError: If a field is unknown, immutable or invalid.
            StorageFailure: If the engine fails.
        """
        changes = dict(changes)
        check_update_fields(self._spec.record_type, changes)
        if not changes:
            return
        columns = dict(self._spec.columns)
        assignments = ", ".join(f"{columns[name]} = ?" for name in changes)
        select_sql = f"SELECT * FROM {self._spec.table} WHERE id = ?"
        update_sql = f"UPDATE {self._spec.table} SET {assignments} WHERE id = ?"

        def apply(conn: sqlite3.Connection) -> None:
            row = conn.execute(select_sql, (record_id,)).fetchone()
            if row is None:
                raise NotFoundError(self.kind.value, record_id)
            current = _record_from_row(row, self._spec)
            clean = validate_update(current, changes)
            params = [_db_value(clean[name]) for name in changes]
            conn.execute(update_sql, (*params, record_id))

        self._store.write(f"update {self.kind.value} record {record_id}", apply)

    def delete(self, record_id: int) -> None:
        """Delete by id; a missing id is a no-op."""
        sql = f"DELETE FROM {self._spec.table} WHERE id = ?"

        def remove(conn: sqlite3.Connection) -> None:
            conn.execute(sql, (record_id,))

        self._store.write(f"delete {self.kind.value} record {record_id}", remove)

    def _select(self, action: str, sql: str, params: tuple[int, ...]) -> list[_R]:
        def fetch(conn: sqlite3.Connection) -> list[_R]:
            rows = conn.execute(sql, params).fetchall()
            return [_record_from_row(row, self._spec) for row in rows]

        return self._store.read(action, fetch, [])


class SettingsRepository:
    """Singleton ``user_settings`` row."""

    def __init__(self, store: SQLiteStore) -> None:
        self._store = store

    def get(self) -> UserSettings:
        """Return the settings, creating the default row first when missing.

        Engine errors are logged and the defaults are returned.
        """

        def fetch(conn: sqlite3.Connection) -> UserSettings:
            _ensure_settings_row(conn)
            return _settings_from_row(_settings_row(conn))

        return self._store.read("get user settings", fetch, UserSettings())

    def update(self, changes: Mapping[str, Any]) -> None:
        """Merge only the supplied keys into the stored settings.

        Raises:
            ValidationError: If a key is unknown or a value is invalid.
            StorageFailure: If the engine fails.
        """
        changes = dict(changes)
        for key in changes:
            if key not in SETTINGS_FIELDS:
                raise ValidationError(key, "unknown settings field")
        if not changes:
            return
        assignments = ", ".join(f"{name} = ?" for name in changes)

        def apply(conn: sqlite3.Connection) -> None:
            _ensure_settings_row(conn)
            row = _settings_row(conn)
            merged = validate_settings(replace(_settings_from_row(row), **changes))
            params = [_db_value(getattr(merged, name)) for name in changes]
            conn.execute(
                f"UPDATE user_settings SET {assignments} WHERE id = ?",
                (*params, row["id"]),
            )

        self._store.write("update user settings", apply)


def _ensure_settings_row(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        INSERT INTO user_settings (id, notifications, dark_mode, units)
        SELECT 1, 1, 0, 'mg/dL'
        WHERE NOT EXISTS (SELECT 1 FROM user_settings)
        """
    )


def _settings_row(conn: sqlite3.Connection) -> sqlite3.Row:
    return conn.execute("SELECT * FROM user_settings ORDER BY id LIMIT 1").fetchone()


def _settings_from_row(row: sqlite3.Row) -> UserSettings:
    defaults = UserSettings()
    values: dict[str, Any] = {}
    for name in SETTINGS_FIELDS:
        raw = row[name]
        if raw is None and name not in _NULLABLE_SETTINGS:
            values[name] = getattr(defaults, name)
        elif name in ("notifications", "dark_mode"):
            values[name] = bool(raw)
        else:
            values[name] = _enum_or_raw(name, raw)
    return UserSettings(**values)


def _record_from_row(row: sqlite3.Row, spec: TableSpec) -> Any:
    values = {field: _enum_or_raw(field, row[column]) for field, column in spec.columns}
    return spec.record_type(id=int(row["id"]), **values)


def _record_params(record: HealthRecord, spec: TableSpec) -> tuple[Any, ...]:
    return tuple(_db_value(getattr(record, field)) for field, _ in spec.columns)


def _enum_or_raw(field: str, raw: Any) -> Any:
    enum_cls = _ENUM_FIELDS.get(field)
    if enum_cls is None or raw is None:
        return raw
    try:
        return enum_cls(raw)
    except ValueError:
        return raw


def _db_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return int(value)
    return value
