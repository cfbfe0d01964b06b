"""
Ride Report

Runs the complete analysis of one ride file:
decode -> timeline -> power metrics, pacing, plan comparison -> insights.

Every call builds fresh analyzers; nothing is kept between rides.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .fit_decoder import FitRecordDecoder
from .insight_generator import InsightGenerator, RideInsight
from .pacing_analyzer import calculate_performance_score, PacingAnalysis, PacingAnalyzer
from .power_metrics import PowerMetrics, PowerMetricsEngine
from .segment_comparator import (
    ActualSegment,
    PlanComparison,
    PlannedSegment,
    SegmentComparator,
    TerrainType,
)
from .timeline import RideTimeline

logger = logging.getLogger(__name__)


@dataclass
class RideReport:
    """Everything derived from one ride"""

    timeline: RideTimeline
    power_metrics: Optional[PowerMetrics]
    pacing: PacingAnalysis
    comparison: Optional[PlanComparison] = None
    insights: List[RideInsight] = field(default_factory=list)
    performance_score: Optional[float] = None  # 0-100, None without power data

    def to_dict(self, include_samples: bool = False) -> Dict[str, Any]:
        """JSON-safe representation for task results"""
        return {
            "timeline": self.timeline.to_dict(include_samples=include_samples),
            "power_metrics": self.power_metrics.to_dict() if self.power_metrics else None,
            "pacing": self.pacing.to_dict(),
            "comparison": self.comparison.to_dict() if self.comparison else None,
            "insights": [i.to_dict() for i in self.insights],
            "performance_score": (
                round(self.performance_score, 1) if self.performance_score is not None else None
            ),
        }


def planned_segments_from_dicts(items: Iterable[Mapping[str, Any]]) -> List[PlannedSegment]:
    """
    Parse planned segments from task payload dicts.

    Each dict needs `target_power`; `target_time`, `distance`, `strategy`
    and `name` are optional.
    """
    return [
        PlannedSegment(
            target_power=float(item["target_power"]),
            target_time=_optional_float(item.get("target_time")),
            distance=_optional_float(item.get("distance")),
            strategy=item.get("strategy") or "",
            name=item.get("name"),
        )
        for item in items
    ]


def actual_segments_from_dicts(items: Iterable[Mapping[str, Any]]) -> List[ActualSegment]:
    """
    Parse externally classified terrain segments from task payload dicts.

    Each dict needs `terrain_type` (climb, flat, rolling or descent),
    `gradient`, `distance`, `duration` and `average_power`; `label` is
    optional.
    """
    return [
        ActualSegment(
            terrain_type=TerrainType(str(item["terrain_type"]).lower()),
            gradient=float(item["gradient"]),
            distance=float(item["distance"]),
            duration=float(item["duration"]),
            average_power=float(item["average_power"]),
            label=item.get("label"),
        )
        for item in items
    ]


def _optional_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)


def analyze_ride(
    data: bytes,
    ftp: float,
    rider_weight_kg: Optional[float] = None,
    planned_segments: Optional[Sequence[PlannedSegment]] = None,
    terrain_segments: Optional[Sequence[ActualSegment]] = None,
) -> RideReport:
    """
    Decode and analyze a ride file.

    Args:
        data: Raw FIT file content
        ftp: Rider's functional threshold power
        rider_weight_kg: Optional rider weight for watts/kg
        planned_segments: Optional pacing plan; without one no comparison
            is made
        terrain_segments: Optional externally classified segments; when
            missing the ride is cut into 1 km distance windows

    Returns:
        RideReport

    Raises:
        FitDecodeError: The file could not be decoded
    """
    samples = FitRecordDecoder().decode(data)
    timeline = RideTimeline(samples)
    logger.info(
        f"Timeline: {len(timeline)} samples, "
        f"{timeline.total_duration:.0f}s elapsed, {timeline.moving_time:.0f}s moving, "
        f"{timeline.total_distance / 1000:.2f}km"
    )

    power_metrics = None
    if timeline.has_power_data:
        power_metrics = PowerMetricsEngine(
            ftp=ftp, rider_weight_kg=rider_weight_kg
        ).calculate(timeline.power_series(), timeline.moving_time)
        logger.info(
            f"Power: avg {power_metrics.average_power:.0f}W, "
            f"NP {power_metrics.normalized_power:.0f}W, "
            f"TSS {power_metrics.training_stress_score:.0f}"
        )
    else:
        logger.info("No power data, skipping power metrics")

    pacing = PacingAnalyzer().analyze(timeline)

    comparison = None
    if planned_segments:
        comparator = SegmentComparator(ftp=ftp)
        if terrain_segments:
            comparison = comparator.compare(planned_segments, terrain_segments)
        else:
            comparison = comparator.compare_timeline(planned_segments, timeline)
        logger.info(
            f"Plan comparison: {len(comparison.results)} segments, "
            f"{len(comparison.opportunities)} opportunities, "
            f"grade {comparison.performance_grade.value}"
        )

    performance_score = calculate_performance_score(
        pacing, comparison.overall_deviation if comparison else 0.0
    )
    if performance_score is not None:
        logger.info(f"Performance score: {performance_score:.0f}/100")

    insights = InsightGenerator().generate(power_metrics, pacing, comparison)

    return RideReport(
        timeline=timeline,
        power_metrics=power_metrics,
        pacing=pacing,
        comparison=comparison,
        insights=insights,
        performance_score=performance_score,
    )
