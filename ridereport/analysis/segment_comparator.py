"""
Segment Comparator

Compares a pacing plan against what was actually ridden:
- Matches each actual segment to the planned segment at the same distance
- Power deviation and terrain-aware estimate of time lost/gained
- Per-segment grade and anomaly flags (stops, coasting, unsustainable efforts)
- Overall grade, power efficiency, strengths and improvements

Actual segments come either from an external terrain classification or from
distance windows of the ride timeline (DistanceWindower).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .timeline import RideTimeline


class TerrainType(Enum):
    CLIMB = "climb"
    FLAT = "flat"
    ROLLING = "rolling"
    DESCENT = "descent"


class SegmentGrade(Enum):
    """Execution grade of a single segment"""

    EXCELLENT = "A+"
    GOOD = "A"
    ACCEPTABLE = "B"
    NEEDS_WORK = "C"
    POOR = "D"


class PerformanceGrade(Enum):
    """Overall plan execution grade"""

    A_PLUS_PLUS = "A++"
    A_PLUS = "A+"
    A = "A"
    A_MINUS = "A-"
    B_PLUS = "B+"
    B = "B"
    B_MINUS = "B-"
    C_PLUS = "C+"
    C = "C"
    C_MINUS = "C-"
    D = "D"
    F = "F"


class AnomalyFlag(Enum):
    POSSIBLE_STOP = "possible_stop"
    MISCLASSIFIED_FLAT = "likely_misclassified_flat"
    COASTING = "normal_coasting"
    UNSUSTAINABLE_EFFORT = "unsustainable_effort"
    TERRAIN_MISMATCH = "power_mismatched_to_terrain"


@dataclass(frozen=True)
class PlannedSegment:
    """One segment of a pacing plan, supplied by the caller"""

    target_power: float
    target_time: Optional[float] = None  # seconds
    distance: Optional[float] = None  # meters
    strategy: str = ""
    name: Optional[str] = None


@dataclass(frozen=True)
class ActualSegment:
    """A ridden stretch of terrain"""

    terrain_type: TerrainType
    gradient: float  # decimal, 0.05 = 5%
    distance: float  # meters
    duration: float  # seconds
    average_power: float
    label: Optional[str] = None


@dataclass(frozen=True)
class SegmentResult:
    """Planned vs actual for one segment"""

    index: int
    label: str
    planned_power: float
    actual_power: float
    deviation_percent: float
    estimated_time_delta: float  # seconds, positive = time lost
    grade: SegmentGrade
    anomaly_flags: Tuple[AnomalyFlag, ...] = ()
    anomaly_reason: Optional[str] = None
    terrain_type: TerrainType = TerrainType.FLAT
    location_km: float = 0.0

    @property
    def has_anomalies(self) -> bool:
        return len(self.anomaly_flags) > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "label": self.label,
            "planned_power": round(self.planned_power, 1),
            "actual_power": round(self.actual_power, 1),
            "deviation_percent": round(self.deviation_percent, 1),
            "estimated_time_delta": round(self.estimated_time_delta, 1),
            "grade": self.grade.value,
            "anomaly_flags": [f.value for f in self.anomaly_flags],
            "anomaly_reason": self.anomaly_reason,
            "terrain_type": self.terrain_type.value,
            "location_km": round(self.location_km, 2),
        }


@dataclass
class PlanComparison:
    """Result of comparing a plan to a ride"""

    # Every matched segment, in ride order
    results: List[SegmentResult]

    # Segments with a meaningful time impact, biggest first
    opportunities: List[SegmentResult]

    total_potential_time_savings: float
    power_efficiency: float
    performance_grade: PerformanceGrade
    strengths: List[str] = field(default_factory=list)
    improvements: List[str] = field(default_factory=list)

    @property
    def overall_deviation(self) -> float:
        """Mean absolute power deviation (%) over every matched segment"""
        if not self.results:
            return 0.0
        return sum(abs(r.deviation_percent) for r in self.results) / len(self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "opportunities": [r.to_dict() for r in self.opportunities],
            "overall_deviation": round(self.overall_deviation, 1),
            "total_potential_time_savings": round(self.total_potential_time_savings, 1),
            "power_efficiency": round(self.power_efficiency, 1),
            "performance_grade": self.performance_grade.value,
            "strengths": self.strengths,
            "improvements": self.improvements,
        }


def classify_terrain(gradient: float) -> TerrainType:
    """Terrain type from a decimal gradient"""
    grade_percent = gradient * 100
    if abs(grade_percent) < 1.5:
        return TerrainType.FLAT
    if abs(grade_percent) < 3.0:
        return TerrainType.ROLLING
    return TerrainType.CLIMB if grade_percent > 0 else TerrainType.DESCENT


class DistanceWindower:
    """Cuts a timeline into consecutive fixed-distance actual segments"""

    def __init__(self, window_meters: float = 1000):
        self.window_meters = window_meters

    def windows(self, timeline: RideTimeline) -> List[ActualSegment]:
        """
        Build one ActualSegment per distance window.

        Each window spans from its first sample to the first sample of the
        next window (the last window ends on the last sample). Windows
        without power data or without distance are dropped.
        """
        samples = timeline.samples
        if len(samples) < 2 or self.window_meters <= 0:
            return []

        distances = timeline.cumulative_distances()

        # Start index of every window
        starts: List[int] = [0]
        current_window = int(distances[0] // self.window_meters)
        for i, distance in enumerate(distances):
            window = int(distance // self.window_meters)
            if window != current_window:
                starts.append(i)
                current_window = window

        segments: List[ActualSegment] = []
        for n, start in enumerate(starts):
            is_last = n == len(starts) - 1
            end = len(samples) - 1 if is_last else starts[n + 1]
            # Samples belonging to this window
            members = samples[start:end] if not is_last else samples[start:]

            powers = [s.power for s in members if s.power is not None]
            distance = distances[end] - distances[start]
            duration = (samples[end].timestamp - samples[start].timestamp).total_seconds()
            if not powers or distance <= 0 or duration <= 0:
                continue

            altitudes = [
                s.altitude for s in samples[start : end + 1] if s.altitude is not None
            ]
            gradient = 0.0
            if len(altitudes) >= 2:
                gradient = (altitudes[-1] - altitudes[0]) / distance

            segments.append(
                ActualSegment(
                    terrain_type=classify_terrain(gradient),
                    gradient=gradient,
                    distance=distance,
                    duration=duration,
                    average_power=sum(powers) / len(powers),
                )
            )

        return segments


class SegmentComparator:
    """Compares planned segments to actual segments"""

    # Only segments with more time impact than this are opportunities
    OPPORTUNITY_THRESHOLD_SECONDS = 3.0

    # Gradient limits for the time-delta model
    CLIMB_GRADIENT = 0.03
    DESCENT_GRADIENT = -0.03

    # Speed ~ power^exponent
    CLIMB_SPEED_EXPONENT = 0.33
    FLAT_SPEED_EXPONENT = 0.4
    DESCENT_LINEAR_FACTOR = 0.02

    def __init__(self, ftp: float, window_meters: float = 1000):
        """
        Args:
            ftp: Functional threshold power in watts
            window_meters: Window length used by compare_timeline
        """
        self.ftp = ftp
        self.window_meters = window_meters

    def compare(
        self,
        planned: Sequence[PlannedSegment],
        actual: Sequence[ActualSegment],
    ) -> PlanComparison:
        """
        Compare a plan to the ridden segments.

        Args:
            planned: Pacing plan segments in route order
            actual: Ridden segments in route order

        Returns:
            PlanComparison with every matched result and the opportunities
        """
        results: List[SegmentResult] = []
        cumulative_distance = 0.0
        cumulative_time = 0.0

        for index, segment in enumerate(actual):
            location_m = cumulative_distance
            elapsed_s = cumulative_time
            cumulative_distance += segment.distance
            cumulative_time += segment.duration

            plan = self._match_planned(location_m, elapsed_s, planned)
            if plan is None or plan.target_power <= 0:
                continue

            results.append(self._compare_segment(index, segment, plan, location_m))

        opportunities = sorted(
            (
                r
                for r in results
                if abs(r.estimated_time_delta) > self.OPPORTUNITY_THRESHOLD_SECONDS
            ),
            key=lambda r: abs(r.estimated_time_delta),
            reverse=True,
        )

        power_efficiency = self._power_efficiency(opportunities)
        strengths, improvements = self._actionable_insights(opportunities)

        return PlanComparison(
            results=results,
            opportunities=opportunities,
            total_potential_time_savings=sum(o.estimated_time_delta for o in opportunities),
            power_efficiency=power_efficiency,
            performance_grade=self._performance_grade(opportunities),
            strengths=strengths,
            improvements=improvements,
        )

    def compare_timeline(
        self, planned: Sequence[PlannedSegment], timeline: RideTimeline
    ) -> PlanComparison:
        """Compare a plan against distance windows of the timeline"""
        windows = DistanceWindower(window_meters=self.window_meters).windows(timeline)
        return self.compare(planned, windows)

    def _compare_segment(
        self,
        index: int,
        segment: ActualSegment,
        plan: PlannedSegment,
        location_m: float,
    ) -> SegmentResult:
        planned_power = plan.target_power
        actual_power = segment.average_power
        deviation = (actual_power - planned_power) / planned_power * 100

        time_delta = self.estimate_time_delta(
            actual_power=actual_power,
            planned_power=planned_power,
            distance=segment.distance,
            gradient=segment.gradient,
            duration=segment.duration,
        )

        flags, reason = self._detect_anomalies(segment, planned_power)

        return SegmentResult(
            index=index,
            label=segment.label or self._format_label(segment, location_m),
            planned_power=planned_power,
            actual_power=actual_power,
            deviation_percent=deviation,
            estimated_time_delta=time_delta,
            grade=self.grade_segment(deviation, segment.terrain_type, time_delta),
            anomaly_flags=flags,
            anomaly_reason=reason,
            terrain_type=segment.terrain_type,
            location_km=location_m / 1000,
        )

    @staticmethod
    def _match_planned(
        distance: float, elapsed: float, planned: Sequence[PlannedSegment]
    ) -> Optional[PlannedSegment]:
        """
        Planned segment whose range contains the segment start.

        Plans are laid out by distance; a plan without any distances but
        with target times is laid out by time instead.
        """
        if not planned:
            return None

        by_time = all(not p.distance for p in planned) and any(p.target_time for p in planned)
        offset = elapsed if by_time else distance

        cumulative = 0.0
        for segment in planned:
            length = (segment.target_time if by_time else segment.distance) or 0.0
            if cumulative <= offset < cumulative + length:
                return segment
            cumulative += length

        # Past the end of the plan
        return planned[-1]

    def estimate_time_delta(
        self,
        actual_power: float,
        planned_power: float,
        distance: float,
        gradient: float,
        duration: float,
    ) -> float:
        """
        Seconds lost (positive) or gained (negative) versus riding at the
        planned power.

        On climbs speed scales with power^0.33; on descents power matters
        little so a small linear correction is used; on flat and rolling
        terrain aerodynamic drag gives power^0.4.
        """
        if actual_power <= 0 or planned_power <= 0 or duration <= 0:
            return 0.0

        if gradient < self.DESCENT_GRADIENT:
            return (
                duration
                * self.DESCENT_LINEAR_FACTOR
                * (actual_power - planned_power)
                / planned_power
            )

        if distance <= 0:
            return 0.0

        exponent = (
            self.CLIMB_SPEED_EXPONENT
            if gradient > self.CLIMB_GRADIENT
            else self.FLAT_SPEED_EXPONENT
        )
        actual_speed = distance / duration
        planned_speed = actual_speed * (planned_power / actual_power) ** exponent
        planned_time = distance / planned_speed
        return duration - planned_time

    @staticmethod
    def grade_segment(
        deviation: float, terrain_type: TerrainType, time_delta: float
    ) -> SegmentGrade:
        """Grade a segment; under-powering a climb is penalized harder"""
        if terrain_type == TerrainType.CLIMB:
            if deviation > -5 and abs(time_delta) < 5:
                return SegmentGrade.EXCELLENT
            if deviation > -10 and abs(time_delta) < 10:
                return SegmentGrade.GOOD
            if deviation > -20:
                return SegmentGrade.ACCEPTABLE
            if deviation > -30:
                return SegmentGrade.NEEDS_WORK
            return SegmentGrade.POOR

        if abs(deviation) < 5:
            return SegmentGrade.EXCELLENT
        if abs(deviation) < 10:
            return SegmentGrade.GOOD
        if abs(deviation) < 15:
            return SegmentGrade.ACCEPTABLE
        if abs(deviation) < 25:
            return SegmentGrade.NEEDS_WORK
        return SegmentGrade.POOR

    def expected_power(self, terrain_type: TerrainType, gradient: float) -> float:
        """Typical power for the terrain, as a share of FTP"""
        if terrain_type == TerrainType.CLIMB:
            if gradient > 0.08:
                return self.ftp * 0.95
            if gradient > 0.05:
                return self.ftp * 0.85
            return self.ftp * 0.80
        if terrain_type == TerrainType.DESCENT:
            return self.ftp * 0.40
        return self.ftp * 0.75

    def _detect_anomalies(
        self, segment: ActualSegment, planned_power: float
    ) -> Tuple[Tuple[AnomalyFlag, ...], Optional[str]]:
        """Context flags for a segment; the last matching rule gives the reason"""
        power = segment.average_power
        duration = segment.duration
        flags: List[AnomalyFlag] = []
        reason: Optional[str] = None

        if power < planned_power * 0.5 and duration > 20:
            flags.append(AnomalyFlag.POSSIBLE_STOP)
            reason = "Possible traffic stop, intersection, or mechanical issue"

        if segment.terrain_type == TerrainType.FLAT and power > self.ftp * 0.95 and duration > 30:
            flags.append(AnomalyFlag.MISCLASSIFIED_FLAT)
            reason = "This may actually be a climb - check the route profile"

        if segment.terrain_type == TerrainType.DESCENT and power < 50:
            flags.append(AnomalyFlag.COASTING)
            reason = "Normal for descents - focus on aero position"

        if power > self.ftp * 1.20 and duration > 60:
            flags.append(AnomalyFlag.UNSUSTAINABLE_EFFORT)
            reason = "This hard effort will cause fatigue later"

        expected = self.expected_power(segment.terrain_type, segment.gradient)
        if expected > 0 and abs(power - expected) / expected > 0.4 and duration > 30:
            flags.append(AnomalyFlag.TERRAIN_MISMATCH)
            if power > expected:
                reason = "Terrain may be steeper than classified"
            else:
                reason = "Check for traffic, stops, or route obstacles"

        return tuple(flags), reason

    @staticmethod
    def _format_label(segment: ActualSegment, location_m: float) -> str:
        if segment.distance >= 1000:
            distance = f"{segment.distance / 1000:.1f}km"
        else:
            distance = f"{int(segment.distance)}m"

        minutes, seconds = divmod(int(segment.duration), 60)
        duration = f"{minutes}:{seconds:02d} min" if minutes else f"{seconds}s"

        return (
            f"Km {location_m / 1000:.1f} - {segment.terrain_type.value} - "
            f"{distance} at {abs(segment.gradient) * 100:.1f}% - {duration}"
        )

    @staticmethod
    def _power_efficiency(opportunities: Sequence[SegmentResult]) -> float:
        """Actual vs planned power, weighted by each segment's time impact"""
        if not opportunities:
            return 100.0

        planned = sum(o.planned_power * abs(o.estimated_time_delta) for o in opportunities)
        actual = sum(o.actual_power * abs(o.estimated_time_delta) for o in opportunities)
        if planned <= 0:
            return 100.0
        return actual / planned * 100

    @staticmethod
    def _performance_grade(opportunities: Sequence[SegmentResult]) -> PerformanceGrade:
        total = len(opportunities)
        if total == 0:
            return PerformanceGrade.A

        excellent = sum(1 for o in opportunities if o.grade == SegmentGrade.EXCELLENT)
        poor = sum(
            1
            for o in opportunities
            if o.grade in (SegmentGrade.POOR, SegmentGrade.NEEDS_WORK)
        )
        excellent_ratio = excellent / total
        poor_ratio = poor / total

        if excellent_ratio > 0.8 and poor_ratio < 0.1:
            return PerformanceGrade.A_PLUS_PLUS
        if excellent_ratio > 0.7 and poor_ratio < 0.15:
            return PerformanceGrade.A_PLUS
        if excellent_ratio > 0.6 and poor_ratio < 0.2:
            return PerformanceGrade.A
        if excellent_ratio > 0.5:
            return PerformanceGrade.A_MINUS
        if excellent_ratio > 0.4:
            return PerformanceGrade.B_PLUS
        if excellent_ratio > 0.3:
            return PerformanceGrade.B
        if poor_ratio < 0.5:
            return PerformanceGrade.B_MINUS
        if poor_ratio < 0.6:
            return PerformanceGrade.C_PLUS
        if poor_ratio < 0.7:
            return PerformanceGrade.C
        if poor_ratio < 0.8:
            return PerformanceGrade.C_MINUS
        if poor_ratio < 0.9:
            return PerformanceGrade.D
        return PerformanceGrade.F

    def _actionable_insights(
        self, opportunities: Sequence[SegmentResult]
    ) -> Tuple[List[str], List[str]]:
        """Strength and improvement lines for the comparison summary"""
        strengths: List[str] = []
        improvements: List[str] = []

        well_executed = [
            o for o in opportunities if o.grade in (SegmentGrade.EXCELLENT, SegmentGrade.GOOD)
        ]
        if well_executed:
            strengths.append(f"Executed {len(well_executed)} segments close to target power")
            best = well_executed[0]
            strengths.append(
                f"Best segment: {best.label} - only "
                f"{abs(best.deviation_percent):.1f}% off target"
            )

        biggest = [o for o in opportunities if abs(o.estimated_time_delta) > 5][:5]
        if not biggest:
            strengths.append("Nearly perfect execution - minimal time left on the table!")
            return strengths, improvements

        for o in biggest:
            power_diff = abs(int(o.planned_power - o.actual_power))
            if o.estimated_time_delta > 0:
                improvements.append(
                    f"{o.label}: Push {power_diff}W harder to save "
                    f"{format_time_savings(o.estimated_time_delta)}"
                )
            else:
                improvements.append(
                    f"{o.label}: Ease off by {power_diff}W - you wasted energy here"
                )

        total_savings = sum(max(0.0, o.estimated_time_delta) for o in opportunities)
        if total_savings > 10:
            improvements.append(
                f"Total potential time savings: {format_time_savings(total_savings)}"
            )

        return strengths, improvements


def format_time_savings(seconds: float) -> str:
    """Format seconds as m:ss, or Ns under a minute"""
    seconds = abs(seconds)
    if seconds >= 60:
        minutes, secs = divmod(int(seconds), 60)
        return f"{minutes}:{secs:02d}"
    return f"{int(seconds)}s"


def compare_plan(
    planned: Sequence[PlannedSegment],
    actual: Sequence[ActualSegment],
    ftp: float,
) -> PlanComparison:
    """Convenience function to compare a plan against actual segments"""
    return SegmentComparator(ftp=ftp).compare(planned, actual)
