"""Conversión de unidades de glucosa y redondeo."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from salud_log.model import GlucoseUnits

MG_DL_TO_MMOL_L = 0.0555
MMOL_L_TO_MG_DL = 18.0182
LB_TO_KG = 0.45359237


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round half away from zero (Python's ``round`` rounds half to even)."""
    quantum = Decimal(1).scaleb(-ndigits)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def round_int(value: float) -> int:
    """Round half away from zero to an ``int``."""
    return int(round_half_up(value))


def mgdl_to_mmoll(mgdl: float) -> float:
    return round_half_up(mgdl * MG_DL_TO_MMOL_L, 1)


def mmoll_to_mgdl(mmoll: float) -> int:
    return round_int(mmoll * MMOL_L_TO_MG_DL)


def glucose_value(value: float, units: GlucoseUnits | str) -> float:
    """Return a stored mg/dL value expressed in ``units``."""
    if GlucoseUnits(units) is GlucoseUnits.MMOL_L:
        return mgdl_to_mmoll(value)
    return value


def format_glucose(value: float, units: GlucoseUnits | str) -> str:
    """Format a stored mg/dL value with its unit label, e.g. ``"6.7 mmol/L"``."""
    unit = GlucoseUnits(units)
    return f"{format_number(glucose_value(value, unit))} {unit.value}"


def weight_to_kg(value: float, weight_unit: str) -> float:
    if weight_unit == "lb":
        return value * LB_TO_KG
    return value


def format_number(value: float | int | None) -> str:
    """Format numbers without a trailing ``.0`` (120.0 -> "120")."""
    if value is None:
        return ""
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        text = format(value, "f").rstrip("0").rstrip(".")
        return text if text else "0"
    return str(value)
