"""Rule-based insights over a set of sessions.

Thresholds:
- average sleep outside 7-9 hours → warning
- average quality < 70 → negative, > 90 → positive
- average heart rate > 80 bpm → warning
- average movement magnitude > 0.5 m/s² → warning
A closing general recommendation is always included.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

from sleeptracker.domain.models import SleepSession
from sleeptracker.scoring import AggregateMetrics, aggregate_metrics

MIN_RECOMMENDED_HOURS = 7
MAX_RECOMMENDED_HOURS = 9
LOW_QUALITY = 70
HIGH_QUALITY = 90
HIGH_HEART_RATE_BPM = 80
RESTLESS_MOVEMENT = 0.5


class InsightKind(StrEnum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class Insight:
    kind: InsightKind
    message: str


def insights_from_metrics(metrics: AggregateMetrics) -> list[Insight]:
    insights: list[Insight] = []

    if metrics.session_count:
        if metrics.average_duration_hours < MIN_RECOMMENDED_HOURS:
            insights.append(
                Insight(
                    InsightKind.WARNING,
                    "Your average sleep duration is below the recommended 7-9 hours.",
                )
            )
        elif metrics.average_duration_hours > MAX_RECOMMENDED_HOURS:
            insights.append(
                Insight(
                    InsightKind.WARNING,
                    "Your average sleep duration is above the recommended 7-9 hours.",
                )
            )

        if metrics.average_quality < LOW_QUALITY:
            insights.append(
                Insight(
                    InsightKind.NEGATIVE,
                    "Your sleep quality is below optimal levels. "
                    "Consider improving your sleep hygiene.",
                )
            )
        elif metrics.average_quality > HIGH_QUALITY:
            insights.append(
                Insight(InsightKind.POSITIVE, "Excellent sleep quality! Keep up the good habits.")
            )

    if metrics.average_heart_rate > HIGH_HEART_RATE_BPM:
        insights.append(
            Insight(
                InsightKind.WARNING,
                "Your average heart rate during sleep is higher than normal. "
                "Consider stress management techniques.",
            )
        )

    if metrics.average_movement > RESTLESS_MOVEMENT:
        insights.append(
            Insight(
                InsightKind.WARNING,
                "You tend to move more during sleep. "
                "This might indicate restlessness or discomfort.",
            )
        )

    insights.append(
        Insight(
            InsightKind.INFO,
            "Maintain a consistent sleep schedule and create a relaxing bedtime routine.",
        )
    )
    return insights


def generate_insights(sessions: Iterable[SleepSession]) -> list[Insight]:
    return insights_from_metrics(aggregate_metrics(sessions))
