from __future__ import annotations

import pytest

from salud_log.errors import ValidationError
from salud_log.model import (
    A1CReading,
    BloodPressureReading,
    FoodEntry,
    GlucoseReading,
    GlucoseUnits,
    InsulinDose,
    InsulinType,
    MealContext,
    MealType,
    UserSettings,
    WeightUnit,
)
from salud_log.validation import (
    check_update_fields,
    validate_record,
    validate_settings,
    validate_update,
)

_TS = 1_735_812_000_000


def test_validate_record_coerces_enum_strings() -> None:
    reading = validate_record(
        GlucoseReading(value=110, timestamp=_TS, context="before_meal")
    )
    assert isinstance(reading, GlucoseReading)
    assert reading.context is MealContext.BEFORE_MEAL
    assert reading.value == 110.0

    dose = validate_record(InsulinDose(units=3, insulin_type="mixed", timestamp=_TS))
    assert isinstance(dose, InsulinDose)
    assert dose.insulin_type is InsulinType.MIXED


def test_glucose_context_is_optional() -> None:
    reading = validate_record(GlucoseReading(value=95.0, timestamp=_TS))
    assert isinstance(reading, GlucoseReading)
    assert reading.context is None


@pytest.mark.parametrize(
    "value", [None, "120", float("inf"), float("nan"), 0, -5, True]
)
def test_glucose_value_must_be_positive_finite_number(value: object) -> None:
    with pytest.raises(ValidationError) as exc_info:
        reading = GlucoseReading(value=value, timestamp=_TS)  # type: ignore[arg-type]
        validate_record(reading)
    assert exc_info.value.field == "value"


def test_unrecognized_enum_lists_allowed_values() -> None:
    with pytest.raises(ValidationError) as exc_info:
        validate_record(GlucoseReading(value=100.0, timestamp=_TS, context="brunch"))
    assert exc_info.value.field == "context"
    assert "before_meal" in str(exc_info.value)


def test_food_entry_rules() -> None:
    entry = validate_record(FoodEntry(name="Arroz", timestamp=_TS, meal_type="lunch"))
    assert isinstance(entry, FoodEntry)
    assert entry.meal_type is MealType.LUNCH
    assert entry.carbs is None

    with pytest.raises(ValidationError, match="name"):
        validate_record(FoodEntry(name="  ", timestamp=_TS, meal_type=MealType.LUNCH))
    with pytest.raises(ValidationError, match="carbs"):
        validate_record(
            FoodEntry(name="Arroz", timestamp=_TS, meal_type="lunch", carbs=-1)
        )
    with pytest.raises(ValidationError, match="meal_type"):
        entry = FoodEntry(
            name="Arroz", timestamp=_TS, meal_type=None  # type: ignore[arg-type]
        )
        validate_record(entry)


def test_blood_pressure_diastolic_must_be_lower() -> None:
    with pytest.raises(ValidationError) as exc_info:
        validate_record(
            BloodPressureReading(systolic=110, diastolic=120, timestamp=_TS)
        )
    assert exc_info.value.field == "diastolic"
    assert "120 >= 110" in str(exc_info.value)

    with pytest.raises(ValidationError):
        validate_record(
            BloodPressureReading(systolic=120, diastolic=120, timestamp=_TS)
        )
    with pytest.raises(ValidationError, match="systolic"):
        reading = BloodPressureReading(
            systolic=120.5, diastolic=80, timestamp=_TS  # type: ignore[arg-type]
        )
        validate_record(reading)


def test_timestamp_must_be_integral() -> None:
    with pytest.raises(ValidationError, match="timestamp"):
        validate_record(A1CReading(value=6.1, timestamp=1.5))  # type: ignore[arg-type]


def test_check_update_fields() -> None:
    check_update_fields(GlucoseReading, {"value": 100.0, "notes": "ok"})
    with pytest.raises(ValidationError, match="cannot be changed"):
        check_update_fields(GlucoseReading, {"id": 3})
    with pytest.raises(ValidationError, match="cannot be changed"):
        check_update_fields(GlucoseReading, {"timestamp": _TS})
    with pytest.raises(ValidationError, match="unknown field"):
        check_update_fields(GlucoseReading, {"carbs": 10})


def test_validate_update_checks_only_supplied_fields() -> None:
    stored = GlucoseReading(value=140.0, timestamp=_TS, context="pre-meal", id=1)
    assert validate_update(stored, {"notes": "ok", "value": 150}) == {
        "notes": "ok",
        "value": 150.0,
    }
    assert validate_update(stored, {"context": "fasting"}) == {
        "context": MealContext.FASTING
    }
    with pytest.raises(ValidationError, match="context"):
        validate_update(stored, {"context": "brunch"})

    food = FoodEntry(name="Arroz", timestamp=_TS, meal_type="lunch", id=2)
    with pytest.raises(ValidationError, match="name"):
        validate_update(food, {"name": " "})
    with pytest.raises(ValidationError, match="carbs"):
        validate_update(food, {"carbs": -1})


def test_validate_update_checks_pressure_against_stored_side() -> None:
    stored = BloodPressureReading(systolic=130, diastolic=85, timestamp=_TS, id=1)
    assert validate_update(stored, {"diastolic": 90.0}) == {"diastolic": 90}
    with pytest.raises(ValidationError) as exc_info:
        validate_update(stored, {"systolic": 80})
    assert exc_info.value.field == "diastolic"
    assert "85 >= 80" in str(exc_info.value)
    with pytest.raises(ValidationError, match="systolic"):
        validate_update(stored, {"systolic": 0})


def test_validate_settings() -> None:
    clean = validate_settings(
        UserSettings(units="mmol/L", weight_unit="lb", height_cm=170)
    )
    assert clean.units is GlucoseUnits.MMOL_L
    assert clean.weight_unit is WeightUnit.LB
    assert clean.height_cm == 170.0

    with pytest.raises(ValidationError, match="target_low"):
        validate_settings(UserSettings(target_low=180.0, target_high=180.0))
    with pytest.raises(ValidationError, match="fasting_low"):
        validate_settings(UserSettings(fasting_low=140.0))
    with pytest.raises(ValidationError, match="notifications"):
        validate_settings(UserSettings(notifications="yes"))  # type: ignore[arg-type]
    with pytest.raises(ValidationError, match="height_cm"):
        validate_settings(UserSettings(height_cm=0))
