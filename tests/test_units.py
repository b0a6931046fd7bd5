from __future__ import annotations

import pytest

from salud_log.model import GlucoseUnits
from salud_log.units import (
    format_glucose,
    format_number,
    glucose_value,
    mgdl_to_mmoll,
    mmoll_to_mgdl,
    round_half_up,
    round_int,
    weight_to_kg,
)


@pytest.mark.parametrize(
    ("value", "ndigits", "expected"),
    [(2.5, 0, 3.0), (-2.5, 0, -3.0), (66.5, 0, 67.0), (0.05, 1, 0.1), (66.66, 1, 66.7)],
)
def test_round_half_up_rounds_away_from_zero(
    value: float, ndigits: int, expected: float
) -> None:
    assert round_half_up(value, ndigits) == expected


def test_round_int_returns_int() -> None:
    assert round_int(130.0) == 130
    assert isinstance(round_int(129.5), int)
    assert round_int(129.5) == 130


def test_glucose_conversions() -> None:
    assert mgdl_to_mmoll(120) == 6.7
    assert mmoll_to_mgdl(6.7) == 121
    assert glucose_value(180.0, GlucoseUnits.MG_DL) == 180.0
    assert glucose_value(180.0, "mmol/L") == 10.0


def test_format_glucose_uses_unit_label() -> None:
    assert format_glucose(120.0, "mg/dL") == "120 mg/dL"
    assert format_glucose(120.0, GlucoseUnits.MMOL_L) == "6.7 mmol/L"


def test_format_number_drops_trailing_zero() -> None:
    assert format_number(120.0) == "120"
    assert format_number(6.5) == "6.5"
    assert format_number(7) == "7"
    assert format_number(None) == ""


def test_weight_to_kg() -> None:
    assert weight_to_kg(70.0, "kg") == 70.0
    assert weight_to_kg(100.0, "lb") == pytest.approx(45.359237)
