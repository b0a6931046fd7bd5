"""Heurísticas de insights: observaciones en texto a partir de las lecturas."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import tzinfo

from salud_log.model import FoodEntry, GlucoseReading, InsulinDose, UserSettings
from salud_log.stats import DEFAULT_TARGET_HIGH, DEFAULT_TARGET_LOW
from salud_log.timeutils import local_hour
from salud_log.units import format_number, round_int

RECENT_WINDOW = 20
MIN_READINGS_FOR_TIME_IN_RANGE = 5
MIN_READINGS_FOR_TREND = 3
MIN_READINGS_FOR_VARIABILITY = 5
MIN_READINGS_FOR_PATTERN = 3
VARIABILITY_THRESHOLD = 100

NO_DATA_MESSAGE = (
    "Start logging your blood sugar readings to get personalized insights."
)


class InsightStrategy(ABC):
    """Turns records into human-readable insights, in generation order."""

    @abstractmethod
    def generate(
        self,
        readings: Sequence[GlucoseReading],
        food_entries: Sequence[FoodEntry] = (),
        insulin_doses: Sequence[InsulinDose] = (),
    ) -> list[str]:
        """Return insight sentences for the given records."""


class RuleBasedInsights(InsightStrategy):
    """Deterministic rules over the most recent readings."""

    def __init__(
        self,
        target_low: float = DEFAULT_TARGET_LOW,
        target_high: float = DEFAULT_TARGET_HIGH,
        zone: tzinfo | None = None,
        window: int = RECENT_WINDOW,
    ) -> None:
        self.target_low = target_low
        self.target_high = target_high
        self.zone = zone
        self.window = window

    @classmethod
    def from_settings(
        cls, settings: UserSettings, zone: tzinfo | None = None
    ) -> RuleBasedInsights:
        return cls(settings.target_low, settings.target_high, zone=zone)

    def generate(
        self,
        readings: Sequence[GlucoseReading],
        food_entries: Sequence[FoodEntry] = (),
        insulin_doses: Sequence[InsulinDose] = (),
    ) -> list[str]:
        ordered = sorted(readings, key=lambda r: r.timestamp, reverse=True)
        if not ordered:
            return [NO_DATA_MESSAGE]

        recent = ordered[: self.window]
        values = [r.value for r in recent]
        insights = [self._latest(recent[0])]

        if len(recent) >= MIN_READINGS_FOR_TIME_IN_RANGE:
            insights.append(self._time_in_range(values))

        if len(recent) >= MIN_READINGS_FOR_TREND:
            trend = self._trend(values)
            if trend:
                insights.append(trend)

        if len(recent) >= MIN_READINGS_FOR_VARIABILITY:
            spread = max(values) - min(values)
            if spread > VARIABILITY_THRESHOLD:
                insights.append(
                    f"Your blood sugar has varied by {format_number(spread)} mg/dL "
                    "recently. High variability can be reduced with consistent meal "
                    "timing and medication."
                )

        food = self._food_correlation(recent, food_entries)
        if food:
            insights.append(food)

        insights.extend(self._daily_patterns(recent))
        return insights

    def _latest(self, latest: GlucoseReading) -> str:
        value = format_number(latest.value)
        if latest.value < self.target_low:
            return (
                f"Your latest reading of {value} mg/dL is below the target range. "
                "Consider having a small snack with fast-acting carbs."
            )
        if latest.value > self.target_high:
            return (
                f"Your latest reading of {value} mg/dL is above the target range. "
                "Stay hydrated and monitor closely over the next few hours."
            )
        return (
            f"Your latest reading of {value} mg/dL is within the target range. "
            "Great job!"
        )

    def _time_in_range(self, values: list[float]) -> str:
        in_range = sum(1 for v in values if self.target_low <= v <= self.target_high)
        pct = round_int(100 * in_range / len(values))
        if pct >= 80:
            return (
                f"{pct}% of your recent readings are in range. "
                "Excellent blood sugar management!"
            )
        if pct >= 60:
            return (
                f"{pct}% of your recent readings are in range. "
                "You're on the right track!"
            )
        return (
            f"{pct}% of your recent readings are in range. Let's work on improving "
            "this with consistent monitoring and management."
        )

    def _trend(self, values: list[float]) -> str | None:
        # values are most recent first
        v0, v1, v2 = values[0], values[1], values[2]
        if v0 > v1 > v2 and v0 > self.target_high:
            return (
                "Your blood sugar levels show an upward trend. Consider checking for "
                "factors that might be causing this rise."
            )
        if v0 < v1 < v2 and v0 < self.target_low:
            return (
                "Your blood sugar levels show a downward trend. Be cautious about "
                "potential low blood sugar."
            )
        return None

    def _food_correlation(
        self, recent: list[GlucoseReading], food_entries: Sequence[FoodEntry]
    ) -> str | None:
        if not food_entries or len(recent) < 2 or recent[0].value <= self.target_high:
            return None
        since = recent[1].timestamp
        names = [
            f.name
            for f in sorted(food_entries, key=lambda f: f.timestamp)
            if f.timestamp > since
        ]
        if not names:
            return None
        return (
            f"You recently consumed {', '.join(names)}, which might be contributing "
            "to your elevated sugar level."
        )

    def _above_target(self, values: list[float]) -> bool:
        if len(values) < MIN_READINGS_FOR_PATTERN:
            return False
        return sum(values) / len(values) > self.target_high

    def _daily_patterns(self, recent: list[GlucoseReading]) -> list[str]:
        morning: list[float] = []
        evening: list[float] = []
        for reading in recent:
            hour = local_hour(reading.timestamp, self.zone)
            if hour is None:
                continue
            if 6 <= hour <= 9:
                morning.append(reading.value)
            elif 18 <= hour <= 22:
                evening.append(reading.value)

        out: list[str] = []
        if self._above_target(morning):
            out.append(
                "Your morning sugar readings tend to be higher. This could be due "
                "to the dawn phenomenon, where hormones released in the early "
                "morning increase blood sugar."
            )
        if self._above_target(evening):
            out.append(
                "Your evening sugar readings tend to be higher. Consider reviewing "
                "your dinner choices or the timing of your evening medication."
            )
        return out


def generate_insights(
    readings: Sequence[GlucoseReading],
    food_entries: Sequence[FoodEntry] = (),
    insulin_doses: Sequence[InsulinDose] = (),
    strategy: InsightStrategy | None = None,
) -> list[str]:
    """Run ``strategy`` (rule-based by default) over the records."""
    strategy = strategy or RuleBasedInsights()
    return strategy.generate(readings, food_entries, insulin_doses)
