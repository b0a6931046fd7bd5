"""Motor de estadísticas: funciones puras sobre registros ya leídos del store.

Every function accepts an empty input and returns a zeroed result instead of
raising. Averages, percentages and standard deviations are rounded half away
from zero on the final value only.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import tzinfo

from salud_log.model import (
    FoodEntry,
    GlucoseReading,
    InsulinDose,
    MealContext,
)
from salud_log.timeutils import local_day, local_hour
from salud_log.units import round_half_up, round_int

DEFAULT_TARGET_LOW = 70.0
DEFAULT_TARGET_HIGH = 180.0

# Minimum readings before the time-of-day / meal-context sentences are computed.
MIN_READINGS_FOR_BUCKET_INSIGHT = 5

TIME_OF_DAY_BUCKETS: tuple[str, ...] = ("morning", "afternoon", "evening", "night")
MEAL_CONTEXT_BUCKETS: tuple[str, ...] = (
    "before_meal",
    "after_meal",
    "fasting",
    "bedtime",
    "other",
)
_MEAL_CONTEXT_LABELS: dict[str, str] = {
    "before_meal": "before meals",
    "after_meal": "after meals",
    "fasting": "fasting",
    "bedtime": "bedtime",
}


@dataclass(frozen=True)
class GlucoseSummary:
    """Summary statistics for a set of glucose readings."""

    average: int = 0
    min: float = 0
    max: float = 0
    std_dev: int = 0
    in_range_count: int = 0
    below_count: int = 0
    above_count: int = 0
    time_in_range_percent: int = 0
    count: int = 0

    @property
    def in_range_pct(self) -> float:
        return _pct(self.in_range_count, self.count)

    @property
    def low_pct(self) -> float:
        return _pct(self.below_count, self.count)

    @property
    def high_pct(self) -> float:
        return _pct(self.above_count, self.count)


@dataclass(frozen=True)
class BucketStat:
    avg: int = 0
    count: int = 0


@dataclass(frozen=True)
class InsulinStats:
    total_units: float = 0.0
    average_per_day: float = 0.0
    doses_count: int = 0


@dataclass(frozen=True)
class FoodStats:
    total_carbs: float = 0.0
    average_carbs_per_day: float = 0.0
    entries_count: int = 0


def _pct(part: int, total: int) -> float:
    if total == 0:
        return 0.0
    return round_half_up(100 * part / total, 1)


def summary_stats(
    readings: Sequence[GlucoseReading],
    range_min: float = DEFAULT_TARGET_LOW,
    range_max: float = DEFAULT_TARGET_HIGH,
) -> GlucoseSummary:
    """Compute average, extremes, population std-dev and time in range.

    Args:
        readings: Glucose readings (any order).
        range_min: Lower bound of the target range (inclusive).
        range_max: Upper bound of the target range (inclusive).

    Returns:
        A zeroed ``GlucoseSummary`` when ``readings`` is empty.
    """
    n = len(readings)
    if n == 0:
        return GlucoseSummary()

    values = [r.value for r in readings]
    average = round_int(sum(values) / n)
    # Population variance around the rounded average.
    variance = sum((v - average) ** 2 for v in values) / n
    in_range = sum(1 for v in values if range_min <= v <= range_max)
    below = sum(1 for v in values if v < range_min)
    above = sum(1 for v in values if v > range_max)
    return GlucoseSummary(
        average=average,
        min=min(values),
        max=max(values),
        std_dev=round_int(math.sqrt(variance)),
        in_range_count=in_range,
        below_count=below,
        above_count=above,
        time_in_range_percent=round_int(100 * in_range / n),
        count=n,
    )


def time_of_day_bucket(hour: int) -> str:
    """Bucket for a local hour.

    Morning is [6,12), afternoon [12,18), evening [18,22) and the rest is night.
    """
    if 6 <= hour < 12:
        return "morning"
    if 12 <= hour < 18:
        return "afternoon"
    if 18 <= hour < 22:
        return "evening"
    return "night"


def _bucket_stats(grouped: dict[str, list[float]]) -> dict[str, BucketStat]:
    return {
        name: BucketStat(avg=round_int(sum(vals) / len(vals)), count=len(vals))
        if vals
        else BucketStat()
        for name, vals in grouped.items()
    }


def bucket_by_time_of_day(
    readings: Iterable[GlucoseReading], zone: tzinfo | None = None
) -> dict[str, BucketStat]:
    """Average and count per time-of-day bucket (local hour).

    Readings whose timestamp cannot be converted are skipped.
    """
    grouped: dict[str, list[float]] = {name: [] for name in TIME_OF_DAY_BUCKETS}
    for reading in readings:
        hour = local_hour(reading.timestamp, zone)
        if hour is None:
            continue
        grouped[time_of_day_bucket(hour)].append(reading.value)
    return _bucket_stats(grouped)


def bucket_by_meal_context(readings: Iterable[GlucoseReading]) -> dict[str, BucketStat]:
    """Average and count per meal context; unset or unknown contexts go to ``other``."""
    grouped: dict[str, list[float]] = {name: [] for name in MEAL_CONTEXT_BUCKETS}
    for reading in readings:
        try:
            context = MealContext(reading.context).value
        except ValueError:
            context = MealContext.OTHER.value
        grouped[context].append(reading.value)
    return _bucket_stats(grouped)


def _extremes(
    periods: list[tuple[str, BucketStat]],
) -> tuple[tuple[str, BucketStat], ...]:
    # max()/min() keep the first element on ties, which is enumeration order.
    highest = max(periods, key=lambda p: p[1].avg)
    lowest = min(periods, key=lambda p: p[1].avg)
    return highest, lowest


def time_of_day_insight(
    buckets: dict[str, BucketStat],
    readings_count: int,
    min_readings: int = MIN_READINGS_FOR_BUCKET_INSIGHT,
) -> str:
    """One sentence comparing the highest and lowest time-of-day averages."""
    if readings_count < min_readings:
        return (
            "Add more readings to get insights about your glucose levels "
            "throughout the day."
        )

    periods = [
        (name, buckets[name])
        for name in TIME_OF_DAY_BUCKETS
        if buckets[name].count > 0
    ]
    if len(periods) < 2:
        return "Try to log your glucose at different times of day to get more insights."

    (high_name, high), (low_name, low) = _extremes(periods)
    spread = high.avg - low.avg
    if spread > 30:
        return (
            f"Your glucose tends to be highest during the {high_name} "
            f"({high.avg} mg/dL) and lowest during the {low_name} "
            f"({low.avg} mg/dL). A difference of {spread} mg/dL suggests you may "
            f"want to adjust your routine during the {high_name}."
        )
    return (
        "Your glucose levels are relatively stable throughout the day, with a "
        f"difference of just {spread} mg/dL between your highest ({high_name}) and "
        f"lowest ({low_name}) periods."
    )


def meal_context_insight(
    buckets: dict[str, BucketStat],
    readings_count: int,
    min_readings: int = MIN_READINGS_FOR_BUCKET_INSIGHT,
) -> str:
    """One sentence about meal impact (after vs before meals when both exist)."""
    if readings_count < min_readings:
        return (
            "Add more readings with meal context to get insights about how food "
            "affects your glucose."
        )

    contexts = [
        (_MEAL_CONTEXT_LABELS[name], buckets[name])
        for name in MEAL_CONTEXT_BUCKETS
        if name in _MEAL_CONTEXT_LABELS and buckets[name].count > 0
    ]
    if len(contexts) < 2:
        return (
            "Try to log your glucose in different meal contexts to get more "
            "insights."
        )

    before = buckets["before_meal"]
    after = buckets["after_meal"]
    if before.count > 0 and after.count > 0:
        difference = after.avg - before.avg
        if difference > 50:
            return (
                f"Your glucose rises significantly after meals ({difference} mg/dL on "
                "average). Consider adjusting your meal composition to include more "
                "protein and fiber, which can help reduce post-meal spikes."
            )
        if difference > 30:
            return (
                f"Your glucose rises moderately after meals ({difference} mg/dL on "
                "average), which is typical for many people with diabetes."
            )
        return (
            f"Your glucose shows minimal change after meals ({difference} mg/dL on "
            "average), which is excellent metabolic control."
        )

    (high_name, high), (low_name, low) = _extremes(contexts)
    return (
        f"Your {high_name} readings ({high.avg} mg/dL) tend to be higher than your "
        f"{low_name} readings ({low.avg} mg/dL)."
    )


def insulin_stats(
    doses: Sequence[InsulinDose], zone: tzinfo | None = None
) -> InsulinStats:
    """Total units and average units per distinct local calendar day."""
    if not doses:
        return InsulinStats()
    total = sum(d.units for d in doses)
    days = {local_day(d.timestamp, zone) for d in doses}
    return InsulinStats(
        total_units=round_half_up(total, 1),
        average_per_day=round_half_up(total / len(days), 1),
        doses_count=len(doses),
    )


def food_stats(entries: Sequence[FoodEntry], zone: tzinfo | None = None) -> FoodStats:
    """Total carbs and average carbs per distinct local calendar day.

    Entries without carbs count as entries but add nothing to the total.
    """
    if not entries:
        return FoodStats()
    with_carbs = [e.carbs for e in entries if e.carbs is not None]
    if not with_carbs:
        return FoodStats(entries_count=len(entries))
    total = sum(with_carbs)
    days = {local_day(e.timestamp, zone) for e in entries}
    return FoodStats(
        total_carbs=round_half_up(total, 1),
        average_carbs_per_day=round_half_up(total / len(days), 1),
        entries_count=len(entries),
    )


def calculate_bmi(weight_kg: float | None, height_cm: float | None) -> float | None:
    """BMI rounded to one decimal, ``None`` if weight or height is missing."""
    if not weight_kg or not height_cm or weight_kg <= 0 or height_cm <= 0:
        return None
    height_m = height_cm / 100
    return round_half_up(weight_kg / (height_m * height_m), 1)


def bmi_category(bmi: float) -> str:
    if bmi < 18.5:
        return "Underweight"
    if bmi < 25:
        return "Normal"
    if bmi < 30:
        return "Overweight"
    return "Obese"
