"""
Insight Generator

Rule engine that turns power, pacing and plan-comparison results into a
ranked list of human-readable findings.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from .pacing_analyzer import PacingAnalysis, PacingErrorType
from .power_metrics import PowerMetrics
from .segment_comparator import PlanComparison


class Priority(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort order, high first"""
        return {"high": 0, "medium": 1, "low": 2}[self.value]


class Category(Enum):
    PACING = "pacing"
    POWER = "power"
    FATIGUE = "fatigue"
    EFFICIENCY = "efficiency"
    PERFORMANCE = "performance"
    STRATEGY = "strategy"


@dataclass(frozen=True)
class RideInsight:
    category: Category
    title: str
    description: str
    recommendation: str
    priority: Priority

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "title": self.title,
            "description": self.description,
            "recommendation": self.recommendation,
            "priority": self.priority.value,
        }


class InsightGenerator:
    """Applies the insight rules to one ride's results"""

    HIGH_CONSISTENCY = 85.0
    LOW_CONSISTENCY = 70.0
    HIGH_VARIABILITY_INDEX = 1.10
    MAX_SURGES = 5
    HIGH_INTENSITY_FACTOR = 1.05
    LOW_INTENSITY_FACTOR = 0.70
    LARGE_SEGMENT_DEVIATION = 15.0

    def generate(
        self,
        power_metrics: Optional[PowerMetrics],
        pacing: Optional[PacingAnalysis],
        comparison: Optional[PlanComparison] = None,
    ) -> List[RideInsight]:
        """
        Generate insights.

        Each rule is evaluated independently; any input may be None when the
        ride lacks the data for it.

        Returns:
            Insights ordered high, medium, low priority (stable within a
            priority)
        """
        insights: List[RideInsight] = []

        if pacing is not None:
            insights.extend(self._pacing_insights(pacing))
        if power_metrics is not None:
            insights.extend(self._power_insights(power_metrics))
        if comparison is not None:
            insights.extend(self._comparison_insights(comparison))

        return sorted(insights, key=lambda i: i.priority.rank)

    def _pacing_insights(self, pacing: PacingAnalysis) -> List[RideInsight]:
        insights = []
        consistency = pacing.consistency_score

        if consistency is not None and consistency > self.HIGH_CONSISTENCY:
            insights.append(
                RideInsight(
                    category=Category.PACING,
                    title="Excellent Pacing Discipline",
                    description=(
                        f"You maintained {int(consistency)}% pacing consistency. "
                        "This shows great discipline and energy management."
                    ),
                    recommendation="Keep using a power target to hold this steady effort.",
                    priority=Priority.LOW,
                )
            )
        elif consistency is not None and consistency < self.LOW_CONSISTENCY:
            insights.append(
                RideInsight(
                    category=Category.PACING,
                    title="Inconsistent Pacing Detected",
                    description=(
                        f"Pacing consistency was only {int(consistency)}%, "
                        "indicating frequent power fluctuations."
                    ),
                    recommendation=(
                        "Focus on maintaining steady power output. Use a power target "
                        "and avoid responding to every terrain change."
                    ),
                    priority=Priority.HIGH,
                )
            )

        fatigue = pacing.fatigue
        if fatigue.detected and fatigue.onset_minute is not None:
            insights.append(
                RideInsight(
                    category=Category.STRATEGY,
                    title="Fatigue Detected",
                    description=(
                        f"Power declined {fatigue.decline_percent:.0f}% after "
                        f"{fatigue.onset_minute} minutes."
                    ),
                    recommendation=(
                        "Start more conservatively. The first 20% of the ride should "
                        "feel easy; review fueling and hydration for long efforts."
                    ),
                    priority=Priority.HIGH,
                )
            )

        if pacing.surge_count > self.MAX_SURGES:
            insights.append(
                RideInsight(
                    category=Category.EFFICIENCY,
                    title="Frequent Power Surges",
                    description=(
                        f"Detected {pacing.surge_count} surges above 130% of your "
                        "average power."
                    ),
                    recommendation=(
                        "Surges are metabolically costly. Let gradient and wind dictate "
                        "pace, and ease into climbs and accelerations."
                    ),
                    priority=Priority.MEDIUM,
                )
            )

        early = next(
            (e for e in pacing.pacing_errors if e.error_type == PacingErrorType.EARLY_HARD),
            None,
        )
        if early is not None:
            insights.append(
                RideInsight(
                    category=Category.PACING,
                    title="Started Too Aggressively",
                    description=early.description,
                    recommendation=(
                        "The first 15-20 minutes should feel easy. Start conservatively "
                        "and build into the effort."
                    ),
                    priority=Priority.HIGH,
                )
            )

        return insights

    def _power_insights(self, metrics: PowerMetrics) -> List[RideInsight]:
        insights = []

        if metrics.variability_index > self.HIGH_VARIABILITY_INDEX:
            insights.append(
                RideInsight(
                    category=Category.POWER,
                    title="Uneven Power Distribution",
                    description=(
                        f"Variability Index of {metrics.variability_index:.2f} indicates "
                        "an unsteady effort with frequent surges and drops."
                    ),
                    recommendation=(
                        "Smooth out your power. Aim for a VI below 1.05 on steady rides."
                    ),
                    priority=Priority.HIGH,
                )
            )

        intensity = metrics.intensity_factor
        if intensity > self.HIGH_INTENSITY_FACTOR:
            insights.append(
                RideInsight(
                    category=Category.PERFORMANCE,
                    title="Very High Intensity Effort",
                    description=(
                        f"Intensity Factor of {intensity:.2f} indicates race-level "
                        f"intensity ({metrics.training_stress_score:.0f} TSS)."
                    ),
                    recommendation="Plan extra recovery before the next hard session.",
                    priority=Priority.MEDIUM,
                )
            )
        elif 0 < intensity < self.LOW_INTENSITY_FACTOR:
            insights.append(
                RideInsight(
                    category=Category.PERFORMANCE,
                    title="Recovery-Level Intensity",
                    description=(
                        f"Intensity Factor of {intensity:.2f} is an easy, aerobic effort."
                    ),
                    recommendation="Good for recovery and base endurance.",
                    priority=Priority.LOW,
                )
            )

        return insights

    def _comparison_insights(self, comparison: PlanComparison) -> List[RideInsight]:
        if not comparison.opportunities:
            return []

        worst = max(comparison.opportunities, key=lambda o: abs(o.deviation_percent))
        if abs(worst.deviation_percent) <= self.LARGE_SEGMENT_DEVIATION:
            return []

        direction = "above" if worst.deviation_percent > 0 else "below"
        return [
            RideInsight(
                category=Category.PACING,
                title="Largest Deviation From Plan",
                description=(
                    f"{worst.label}: {abs(worst.deviation_percent):.0f}% {direction} "
                    f"target power ({worst.actual_power:.0f}W vs "
                    f"{worst.planned_power:.0f}W)."
                ),
                recommendation=(
                    "Rehearse this section's target power; it moved your time by "
                    f"{abs(worst.estimated_time_delta):.0f}s against the plan."
                ),
                priority=Priority.MEDIUM,
            )
        ]


def generate_insights(
    power_metrics: Optional[PowerMetrics],
    pacing: Optional[PacingAnalysis],
    comparison: Optional[PlanComparison] = None,
) -> List[RideInsight]:
    """Convenience function to generate ride insights"""
    return InsightGenerator().generate(power_metrics, pacing, comparison)
