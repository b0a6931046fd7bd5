"""Modelos tipados para los registros de salud y la configuración del usuario."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


class RecordKind(str, Enum):
    """The six persisted health-data categories."""

    GLUCOSE = "glucose"
    FOOD = "food"
    INSULIN = "insulin"
    A1C = "a1c"
    WEIGHT = "weight"
    BLOOD_PRESSURE = "blood_pressure"


class MealContext(str, Enum):
    BEFORE_MEAL = "before_meal"
    AFTER_MEAL = "after_meal"
    FASTING = "fasting"
    BEDTIME = "bedtime"
    OTHER = "other"


class MealType(str, Enum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACK = "snack"


class InsulinType(str, Enum):
    RAPID = "rapid"
    LONG = "long"
    MIXED = "mixed"
    SHORT = "short"
    INTERMEDIATE = "intermediate"
    OTHER = "other"


class GlucoseUnits(str, Enum):
    MG_DL = "mg/dL"
    MMOL_L = "mmol/L"


class WeightUnit(str, Enum):
    KG = "kg"
    LB = "lb"


@dataclass(frozen=True)
class GlucoseReading:
    """One blood-glucose reading, value always stored in mg/dL."""

    value: float
    timestamp: int
    context: MealContext | str | None = None
    notes: str | None = None
    id: int | None = None


@dataclass(frozen=True)
class FoodEntry:
    """A logged meal or snack (carbs in grams)."""

    name: str
    timestamp: int
    meal_type: MealType | str
    carbs: float | None = None
    notes: str | None = None
    id: int | None = None


@dataclass(frozen=True)
class InsulinDose:
    units: float
    insulin_type: InsulinType | str
    timestamp: int
    notes: str | None = None
    id: int | None = None


@dataclass(frozen=True)
class A1CReading:
    value: float
    timestamp: int
    notes: str | None = None
    id: int | None = None


@dataclass(frozen=True)
class WeightMeasurement:
    """Weight in the user's ``weight_unit`` (kg by default)."""

    value: float
    timestamp: int
    notes: str | None = None
    id: int | None = None


@dataclass(frozen=True)
class BloodPressureReading:
    systolic: int
    diastolic: int
    timestamp: int
    notes: str | None = None
    id: int | None = None


HealthRecord = Union[
    GlucoseReading,
    FoodEntry,
    InsulinDose,
    A1CReading,
    WeightMeasurement,
    BloodPressureReading,
]

RECORD_TYPES: dict[RecordKind, type] = {
    RecordKind.GLUCOSE: GlucoseReading,
    RecordKind.FOOD: FoodEntry,
    RecordKind.INSULIN: InsulinDose,
    RecordKind.A1C: A1CReading,
    RecordKind.WEIGHT: WeightMeasurement,
    RecordKind.BLOOD_PRESSURE: BloodPressureReading,
}


def kind_of(record: HealthRecord) -> RecordKind:
    """Devuelve el tipo de registro a partir de la clase."""
    for kind, cls in RECORD_TYPES.items():
        if isinstance(record, cls):
            return kind
    raise TypeError(f"Not a health record: {type(record).__name__}")


@dataclass(frozen=True)
class LogEntry:
    """Tagged variant for the unified log: kind discriminant + kind payload."""

    kind: RecordKind
    record: HealthRecord

    @property
    def timestamp(self) -> int:
        return self.record.timestamp

    @property
    def id(self) -> int | None:
        return self.record.id


@dataclass(frozen=True)
class UserSettings:
    """Singleton user configuration persisted in SQLite."""

    units: GlucoseUnits | str = GlucoseUnits.MG_DL
    notifications: bool = True
    dark_mode: bool = False
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    diabetes_type: str | None = None
    target_low: float = 70.0
    target_high: float = 180.0
    fasting_low: float = 80.0
    fasting_high: float = 130.0
    height_cm: float | None = None
    weight_unit: WeightUnit | str = WeightUnit.KG
    export_dir: str = ""

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)


SETTINGS_FIELDS: tuple[str, ...] = tuple(UserSettings.__dataclass_fields__)
