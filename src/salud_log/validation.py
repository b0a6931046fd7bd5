"""Validación de campos antes de escribir en el store."""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import fields, replace
from enum import Enum
from typing import Any, TypeVar

from salud_log.errors import ValidationError
from salud_log.model import (
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
    UserSettings,
    WeightMeasurement,
    WeightUnit,
)

_E = TypeVar("_E", bound=Enum)


def _number(field: str, value: Any) -> float:
    if value is None:
        raise ValidationError(field, "is required")
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ValidationError(field, f"must be a number, got {value!r}")
    if not math.isfinite(value):
        raise ValidationError(field, f"must be finite, got {value!r}")
    return float(value)


def _positive(field: str, value: Any) -> float:
    number = _number(field, value)
    if number <= 0:
        raise ValidationError(field, f"must be greater than 0, got {value!r}")
    return number


def _integer(field: str, value: Any) -> int:
    number = _number(field, value)
    if not number.is_integer():
        raise ValidationError(field, f"must be an integer, got {value!r}")
    return int(number)


def _positive_int(field: str, value: Any) -> int:
    number = _integer(field, value)
    if number <= 0:
        raise ValidationError(field, f"must be greater than 0, got {number}")
    return number


def _name(field: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field, "must be a non-empty string")
    return value


def _carbs(field: str, value: Any) -> float | None:
    if value is None:
        return None
    carbs = _number(field, value)
    if carbs < 0:
        raise ValidationError(field, f"must be >= 0, got {value!r}")
    return carbs


def _check_pressure(systolic: int, diastolic: int) -> None:
    if diastolic >= systolic:
        raise ValidationError(
            "diastolic", f"must be lower than systolic ({diastolic} >= {systolic})"
        )


def _timestamp(value: Any) -> int:
    return _integer("timestamp", value)


def _enum(
    field: str, value: Any, enum_cls: type[_E], *, optional: bool = False
) -> _E | None:
    if value is None:
        if optional:
            return None
        raise ValidationError(field, "is required")
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(str(m.value) for m in enum_cls)
        raise ValidationError(
            field, f"unrecognized value {value!r} (allowed: {allowed})"
        ) from None


def _text(field: str, value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(field, f"must be text, got {value!r}")
    return value


def validate_record(record: HealthRecord) -> HealthRecord:
    """Check field constraints and return the record with normalized values.

    Enums given as strings are converted to their enum member, integral
    numbers are converted to ``int``/``float`` as the schema expects.

    Raises:
        ValidationError: Naming the first offending field.
    """
    if isinstance(record, GlucoseReading):
        return replace(
            record,
            value=_positive("value", record.value),
            timestamp=_timestamp(record.timestamp),
            context=_enum("context", record.context, MealContext, optional=True),
            notes=_text("notes", record.notes),
        )
    if isinstance(record, FoodEntry):
        return replace(
            record,
            name=_name("name", record.name),
            timestamp=_timestamp(record.timestamp),
            meal_type=_enum("meal_type", record.meal_type, MealType),
            carbs=_carbs("carbs", record.carbs),
            notes=_text("notes", record.notes),
        )
    if isinstance(record, InsulinDose):
        return replace(
            record,
            units=_positive("units", record.units),
            insulin_type=_enum("insulin_type", record.insulin_type, InsulinType),
            timestamp=_timestamp(record.timestamp),
            notes=_text("notes", record.notes),
        )
    if isinstance(record, A1CReading | WeightMeasurement):
        return replace(
            record,
            value=_positive("value", record.value),
            timestamp=_timestamp(record.timestamp),
            notes=_text("notes", record.notes),
        )
    if isinstance(record, BloodPressureReading):
        systolic = _positive_int("systolic", record.systolic)
        diastolic = _positive_int("diastolic", record.diastolic)
        _check_pressure(systolic, diastolic)
        return replace(
            record,
            systolic=systolic,
            diastolic=diastolic,
            timestamp=_timestamp(record.timestamp),
            notes=_text("notes", record.notes),
        )
    raise TypeError(f"Not a health record: {type(record).__name__}")


def check_update_fields(record_type: type, updates: dict[str, Any]) -> None:
    """Reject keys that are unknown or not editable (``id`` and ``timestamp``)."""
    known = {f.name for f in fields(record_type)}
    for key in updates:
        if key in ("id", "timestamp"):
            raise ValidationError(key, "cannot be changed after creation")
        if key not in known:
            raise ValidationError(key, f"unknown field for {record_type.__name__}")


_UPDATE_RULES: dict[type, dict[str, Callable[[str, Any], Any]]] = {
    GlucoseReading: {
        "value": _positive,
        "context": lambda f, v: _enum(f, v, MealContext, optional=True),
        "notes": _text,
    },
    FoodEntry: {
        "name": _name,
        "meal_type": lambda f, v: _enum(f, v, MealType),
        "carbs": _carbs,
        "notes": _text,
    },
    InsulinDose: {
        "units": _positive,
        "insulin_type": lambda f, v: _enum(f, v, InsulinType),
        "notes": _text,
    },
    A1CReading: {"value": _positive, "notes": _text},
    WeightMeasurement: {"value": _positive, "notes": _text},
    BloodPressureReading: {
        "systolic": _positive_int,
        "diastolic": _positive_int,
        "notes": _text,
    },
}


def validate_update(current: HealthRecord, changes: dict[str, Any]) -> dict[str, Any]:
    """Check and normalize the supplied fields of an edit.

    Stored fields that are not being changed are not re-checked, so a row
    holding a value outside today's enums can still have its notes edited.
    The systolic/diastolic rule is checked against the merged values
    whenever either side changes.

    Args:
        current: The record as currently stored.
        changes: Field names to new values (already checked by
            ``check_update_fields``).

    Returns:
        The normalized changes.

    Raises:
        ValidationError: Naming the first offending field.
    """
    rules = _UPDATE_RULES.get(type(current))
    if rules is None:
        raise TypeError(f"Not a health record: {type(current).__name__}")
    clean = {name: rules[name](name, value) for name, value in changes.items()}
    if isinstance(current, BloodPressureReading) and (
        "systolic" in clean or "diastolic" in clean
    ):
        _check_pressure(
            clean.get("systolic", current.systolic),
            clean.get("diastolic", current.diastolic),
        )
    return clean


def validate_settings(settings: UserSettings) -> UserSettings:
    """Valida la configuración completa (después de aplicar un merge)."""
    target_low = _positive("target_low", settings.target_low)
    target_high = _positive("target_high", settings.target_high)
    if target_low >= target_high:
        raise ValidationError("target_low", "must be lower than target_high")
    fasting_low = _positive("fasting_low", settings.fasting_low)
    fasting_high = _positive("fasting_high", settings.fasting_high)
    if fasting_low >= fasting_high:
        raise ValidationError("fasting_low", "must be lower than fasting_high")
    height = None
    if settings.height_cm is not None:
        height = _positive("height_cm", settings.height_cm)
    for name in ("notifications", "dark_mode"):
        if not isinstance(getattr(settings, name), bool):
            raise ValidationError(name, "must be true or false")
    for name in ("email", "first_name", "last_name", "diabetes_type"):
        _text(name, getattr(settings, name))
    export_dir = "" if settings.export_dir is None else settings.export_dir
    if not isinstance(export_dir, str):
        raise ValidationError("export_dir", "must be text")
    return replace(
        settings,
        units=_enum("units", settings.units, GlucoseUnits),
        weight_unit=_enum("weight_unit", settings.weight_unit, WeightUnit),
        target_low=target_low,
        target_high=target_high,
        fasting_low=fasting_low,
        fasting_high=fasting_high,
        height_cm=height,
        export_dir=export_dir,
    )
