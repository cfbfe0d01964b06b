"""
Analysis Module

Provides FIT ride decoding and power/pacing/plan analysis.
"""

# Decoding has no external dependencies
from .records import RecordField, RecordFields, Sample
from .sample_assembler import SampleAssembler
from .fit_decoder import (
    CorruptedDataError,
    decode_fit_samples,
    FitDecodeError,
    FitRecordDecoder,
    InvalidFormatError,
    NoActivityDataError,
    UnsupportedVersionError,
)

from .timeline import build_timeline, RideTimeline
from .power_metrics import (
    calculate_power_metrics,
    PowerMetrics,
    PowerMetricsEngine,
    PowerZoneDistribution,
)
from .pacing_analyzer import (
    analyze_pacing,
    calculate_performance_score,
    FatigueAnalysis,
    PacingAnalysis,
    PacingAnalyzer,
    PacingError,
    PacingErrorType,
    PacingRating,
    PacingSegment,
    PacingTrend,
)
from .segment_comparator import (
    ActualSegment,
    AnomalyFlag,
    compare_plan,
    DistanceWindower,
    PerformanceGrade,
    PlanComparison,
    PlannedSegment,
    SegmentComparator,
    SegmentGrade,
    SegmentResult,
    TerrainType,
)
from .insight_generator import (
    Category,
    generate_insights,
    InsightGenerator,
    Priority,
    RideInsight,
)
from .ride_report import (
    actual_segments_from_dicts,
    analyze_ride,
    planned_segments_from_dicts,
    RideReport,
)

__all__ = [
    "RecordField",
    "RecordFields",
    "Sample",
    "SampleAssembler",
    "FitRecordDecoder",
    "FitDecodeError",
    "InvalidFormatError",
    "UnsupportedVersionError",
    "CorruptedDataError",
    "NoActivityDataError",
    "decode_fit_samples",
    "RideTimeline",
    "build_timeline",
    "PowerMetricsEngine",
    "PowerMetrics",
    "PowerZoneDistribution",
    "calculate_power_metrics",
    "PacingAnalyzer",
    "PacingAnalysis",
    "PacingSegment",
    "PacingTrend",
    "PacingRating",
    "FatigueAnalysis",
    "PacingError",
    "PacingErrorType",
    "analyze_pacing",
    "calculate_performance_score",
    "SegmentComparator",
    "DistanceWindower",
    "PlannedSegment",
    "ActualSegment",
    "SegmentResult",
    "SegmentGrade",
    "PerformanceGrade",
    "PlanComparison",
    "AnomalyFlag",
    "TerrainType",
    "compare_plan",
    "InsightGenerator",
    "RideInsight",
    "Priority",
    "Category",
    "generate_insights",
    "RideReport",
    "analyze_ride",
    "planned_segments_from_dicts",
    "actual_segments_from_dicts",
]
