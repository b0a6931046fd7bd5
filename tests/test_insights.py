from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from dateutil import tz

from salud_log.insights import (
    NO_DATA_MESSAGE,
    InsightStrategy,
    RuleBasedInsights,
    generate_insights,
)
from salud_log.model import (
    FoodEntry,
    GlucoseReading,
    InsulinDose,
    MealType,
    UserSettings,
)

UTC = tz.UTC


def _ts(day: int, hour: int) -> int:
    return int(datetime(2025, 1, day, hour, tzinfo=UTC).timestamp() * 1000)


def _series(values: list[float], hour: int = 13) -> list[GlucoseReading]:
    """Readings on consecutive days, ``values[0]`` being the most recent."""
    days = range(len(values) + 1, 1, -1)
    return [
        GlucoseReading(value=v, timestamp=_ts(d, hour))
        for v, d in zip(values, days)
    ]


def _rules() -> RuleBasedInsights:
    return RuleBasedInsights(70, 180, zone=UTC)


def test_no_readings() -> None:
    assert _rules().generate([]) == [NO_DATA_MESSAGE]
    assert generate_insights([]) == [NO_DATA_MESSAGE]


def test_latest_reading_templates() -> None:
    assert _rules().generate(_series([120])) == [
        "Your latest reading of 120 mg/dL is within the target range. Great job!"
    ]
    assert _rules().generate(_series([62.5]))[0].startswith(
        "Your latest reading of 62.5 mg/dL is below the target range."
    )
    assert _rules().generate(_series([240]))[0].startswith(
        "Your latest reading of 240 mg/dL is above the target range."
    )


def test_latest_uses_most_recent_timestamp_not_input_order() -> None:
    readings = list(reversed(_series([100, 250])))
    assert "100 mg/dL" in _rules().generate(readings)[0]


def test_time_in_range_tiers() -> None:
    excellent = _rules().generate(_series([110, 100, 105, 100, 110]))
    assert excellent[1] == (
        "100% of your recent readings are in range. Excellent blood sugar management!"
    )

    on_track = _rules().generate(_series([110, 100, 105, 190, 60]))
    assert on_track[1] == (
        "60% of your recent readings are in range. You're on the right track!"
    )

    needs_work = _rules().generate(_series([110, 100, 200, 190, 60]))
    assert needs_work[1].startswith(
        "40% of your recent readings are in range. Let's work"
    )


def test_time_in_range_needs_five_readings() -> None:
    insights = _rules().generate(_series([110, 100, 105, 100]))
    assert not any("recent readings are in range" in i for i in insights)


def test_upward_trend_only_above_range() -> None:
    insights = _rules().generate(_series([250, 200, 150]))
    assert any("upward trend" in i for i in insights)

    in_range = _rules().generate(_series([150, 140, 130]))
    assert not any("trend" in i for i in in_range)


def test_downward_trend_only_below_range() -> None:
    insights = _rules().generate(_series([60, 80, 100]))
    assert any("downward trend" in i for i in insights)

    not_strict = _rules().generate(_series([60, 60, 100]))
    assert not any("trend" in i for i in not_strict)


def test_variability_warning() -> None:
    insights = _rules().generate(_series([100, 200, 60, 120, 110]))
    expected = "Your blood sugar has varied by 140 mg/dL recently."
    assert any(i.startswith(expected) for i in insights)

    calm = _rules().generate(_series([100, 150, 60, 120, 110]))
    assert not any("varied by" in i for i in calm)


def test_food_correlation_lists_food_after_previous_reading() -> None:
    readings = [
        GlucoseReading(value=110.0, timestamp=_ts(2, 8)),
        GlucoseReading(value=220.0, timestamp=_ts(2, 12)),
    ]
    food = [
        FoodEntry(name="Soda", timestamp=_ts(2, 11), meal_type=MealType.SNACK),
        FoodEntry(name="Pizza", timestamp=_ts(2, 10), meal_type=MealType.LUNCH),
        FoodEntry(name="Tostadas", timestamp=_ts(2, 7), meal_type=MealType.BREAKFAST),
    ]

    insights = _rules().generate(readings, food)

    assert (
        "You recently consumed Pizza, Soda, which might be contributing to your "
        "elevated sugar level."
    ) in insights


def test_food_correlation_skipped_when_in_range() -> None:
    readings = _series([150, 110])
    food = [FoodEntry(name="Pizza", timestamp=_ts(3, 12), meal_type=MealType.LUNCH)]
    assert not any("recently consumed" in i for i in _rules().generate(readings, food))


def test_morning_pattern() -> None:
    insights = _rules().generate(_series([200, 200, 200], hour=7))
    assert insights[0].startswith("Your latest reading of 200 mg/dL is above")
    assert insights[1].startswith("Your morning sugar readings tend to be higher.")
    assert len(insights) == 2


def test_evening_pattern_needs_three_matching_readings() -> None:
    late = GlucoseReading(value=200.0, timestamp=_ts(1, 23))
    readings = _series([200, 200], hour=22) + [late]
    assert not any("evening" in i for i in _rules().generate(readings))

    readings = _series([200, 200, 200], hour=22)
    insights = _rules().generate(readings)
    assert any(i.startswith("Your evening sugar readings") for i in insights)


def test_only_recent_window_is_considered() -> None:
    # 20 recent in-range readings, then older high ones that fall outside the window
    readings = _series([100.0] * 20 + [300.0] * 5)
    insights = _rules().generate(readings)
    assert insights[1].startswith("100% of your recent readings are in range.")


def test_from_settings_uses_target_range() -> None:
    settings = UserSettings(target_low=80, target_high=140)
    rules = RuleBasedInsights.from_settings(settings, zone=UTC)
    assert "above the target range" in rules.generate(_series([150]))[0]


def test_generate_insights_accepts_other_strategies() -> None:
    class _Constant(InsightStrategy):
        def generate(
            self,
            readings: Sequence[GlucoseReading],
            food_entries: Sequence[FoodEntry] = (),
            insulin_doses: Sequence[InsulinDose] = (),
        ) -> list[str]:
            return [f"{len(readings)} readings"]

    insights = generate_insights(_series([100, 110]), strategy=_Constant())
    assert insights == ["2 readings"]
