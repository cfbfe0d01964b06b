"""
Tests for Segment Comparator

Tests for plan matching, time-delta estimates, grading, anomaly flags,
opportunity ordering and distance windowing.
"""

from datetime import datetime, timedelta, timezone

import pytest
from ridereport.analysis.records import Sample
from ridereport.analysis.segment_comparator import (
    ActualSegment,
    AnomalyFlag,
    classify_terrain,
    compare_plan,
    DistanceWindower,
    format_time_savings,
    PerformanceGrade,
    PlannedSegment,
    SegmentComparator,
    SegmentGrade,
    TerrainType,
)
from ridereport.analysis.timeline import RideTimeline


FTP = 250
T0 = datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)

PLAN_200W = [PlannedSegment(target_power=200, distance=100000, strategy="steady")]

# 200W plan vs 180W on a 5% climb: 300s over 1000m
CLIMB_180W = ActualSegment(
    terrain_type=TerrainType.CLIMB,
    gradient=0.05,
    distance=1000,
    duration=300,
    average_power=180,
)


def flat(power, duration=600, distance=6000, gradient=0.0):
    return ActualSegment(
        terrain_type=TerrainType.FLAT,
        gradient=gradient,
        distance=distance,
        duration=duration,
        average_power=power,
    )


class TestTimeDelta:
    """Tests for the terrain-aware time estimate"""

    def test_underpowered_climb_loses_time(self):
        """180W against a 200W plan on a 5% climb loses about 10 s"""
        comparator = SegmentComparator(ftp=FTP)

        delta = comparator.estimate_time_delta(180, 200, 1000, 0.05, 300)

        assert delta > 0
        assert delta == pytest.approx(10.25, abs=0.05)

    def test_overpowered_flat_gains_time(self):
        """Riding above plan on the flat is negative (time gained)"""
        comparator = SegmentComparator(ftp=FTP)

        delta = comparator.estimate_time_delta(250, 200, 6000, 0.0, 600)

        # planned time = 600 / (200/250)^0.4
        assert delta == pytest.approx(600 - 600 / (0.8**0.4))
        assert delta < 0

    def test_descent_linear_correction(self):
        """Descents use duration x 0.02 x relative power difference"""
        comparator = SegmentComparator(ftp=FTP)

        delta = comparator.estimate_time_delta(220, 200, 2000, -0.05, 100)

        assert delta == pytest.approx(0.2)

    def test_zero_power_or_duration(self):
        """No estimate without power or duration"""
        comparator = SegmentComparator(ftp=FTP)

        assert comparator.estimate_time_delta(0, 200, 1000, 0.05, 300) == 0.0
        assert comparator.estimate_time_delta(180, 0, 1000, 0.05, 300) == 0.0
        assert comparator.estimate_time_delta(180, 200, 1000, 0.05, 0) == 0.0


class TestGrading:
    """Tests for segment grades"""

    def test_plan_example_climb_is_not_good(self):
        """-10% on a climb losing ~10 s grades below good"""
        comparison = compare_plan(PLAN_200W, [CLIMB_180W], FTP)
        result = comparison.results[0]

        assert result.deviation_percent == pytest.approx(-10.0)
        assert result.estimated_time_delta > 0
        assert result.grade not in (SegmentGrade.EXCELLENT, SegmentGrade.GOOD)

    def test_climb_thresholds(self):
        """Climb grades penalize under-powering"""
        grade = SegmentComparator.grade_segment

        assert grade(-2, TerrainType.CLIMB, 2) == SegmentGrade.EXCELLENT
        assert grade(-7, TerrainType.CLIMB, 8) == SegmentGrade.GOOD
        assert grade(-7, TerrainType.CLIMB, 12) == SegmentGrade.ACCEPTABLE
        assert grade(-25, TerrainType.CLIMB, 30) == SegmentGrade.NEEDS_WORK
        assert grade(-35, TerrainType.CLIMB, 40) == SegmentGrade.POOR
        assert grade(40, TerrainType.CLIMB, 2) == SegmentGrade.EXCELLENT

    def test_flat_thresholds_are_symmetric(self):
        """Flat grades use absolute deviation"""
        grade = SegmentComparator.grade_segment

        assert grade(4, TerrainType.FLAT, 50) == SegmentGrade.EXCELLENT
        assert grade(-8, TerrainType.FLAT, 0) == SegmentGrade.GOOD
        assert grade(12, TerrainType.DESCENT, 0) == SegmentGrade.ACCEPTABLE
        assert grade(-20, TerrainType.ROLLING, 0) == SegmentGrade.NEEDS_WORK
        assert grade(30, TerrainType.FLAT, 0) == SegmentGrade.POOR


class TestMatching:
    """Tests for matching actual segments to the plan"""

    def test_match_by_cumulative_distance(self):
        """Each segment uses the planned segment at its start distance"""
        plan = [
            PlannedSegment(target_power=200, distance=1000),
            PlannedSegment(target_power=300, distance=1000),
        ]
        actual = [flat(250, distance=1000, duration=120) for _ in range(3)]

        comparison = compare_plan(plan, actual, FTP)

        # The third segment is past the plan and uses the last planned segment
        assert [r.planned_power for r in comparison.results] == [200, 300, 300]
        assert [r.location_km for r in comparison.results] == [0.0, 1.0, 2.0]

    def test_match_by_cumulative_time_without_distances(self):
        """Plans with only target times are laid out by ride time"""
        plan = [
            PlannedSegment(target_power=200, target_time=600),
            PlannedSegment(target_power=300, target_time=600),
        ]
        actual = [flat(250, distance=3000, duration=300) for _ in range(5)]

        comparison = compare_plan(plan, actual, FTP)

        # Starts at 0, 300, 600, 900 and 1200 seconds
        assert [r.planned_power for r in comparison.results] == [200, 200, 300, 300, 300]

    def test_distances_take_precedence_over_times(self):
        """When distances are given, target times do not change the matching"""
        plan = [
            PlannedSegment(target_power=200, distance=1000, target_time=10000),
            PlannedSegment(target_power=300, distance=1000, target_time=10000),
        ]
        actual = [flat(250, distance=1000, duration=120) for _ in range(2)]

        comparison = compare_plan(plan, actual, FTP)

        assert [r.planned_power for r in comparison.results] == [200, 300]

    def test_overall_deviation(self):
        """Overall deviation is the mean absolute deviation of every result"""
        comparison = compare_plan(PLAN_200W, [flat(180), flat(220), flat(200)], FTP)

        assert comparison.overall_deviation == pytest.approx(20 / 3)
        assert comparison.to_dict()["overall_deviation"] == pytest.approx(6.7)

    def test_empty_plan_skips_everything(self):
        """Without a plan nothing is compared"""
        comparison = compare_plan([], [flat(200)], FTP)

        assert comparison.results == []
        assert comparison.opportunities == []
        assert comparison.performance_grade == PerformanceGrade.A
        assert comparison.power_efficiency == 100.0

    def test_zero_planned_power_is_skipped(self):
        """Planned segments without a power target are skipped"""
        comparison = compare_plan([PlannedSegment(target_power=0)], [flat(200)], FTP)

        assert comparison.results == []

    def test_caller_label_is_kept(self):
        """Supplied labels are used as-is"""
        segment = ActualSegment(
            terrain_type=TerrainType.FLAT,
            gradient=0.0,
            distance=1000,
            duration=120,
            average_power=200,
            label="Harbour road",
        )

        comparison = compare_plan(PLAN_200W, [segment], FTP)

        assert comparison.results[0].label == "Harbour road"


class TestOpportunities:
    """Tests for opportunity selection and order"""

    def test_sorted_by_time_delta_and_filtered(self):
        """Opportunities exclude |delta| <= 3 s and sort by |delta| descending"""
        actual = [
            flat(198),  # tiny loss, filtered out
            flat(150),  # large loss
            flat(240),  # gain
            flat(185),  # moderate loss
        ]

        comparison = compare_plan(PLAN_200W, actual, FTP)
        deltas = [abs(o.estimated_time_delta) for o in comparison.opportunities]

        assert len(comparison.results) == 4
        assert len(comparison.opportunities) == 3
        assert deltas == sorted(deltas, reverse=True)
        assert all(d > 3 for d in deltas)
        assert comparison.opportunities[0].index == 1

    def test_excellent_execution_grade(self):
        """All excellent opportunities grade A++"""
        actual = [flat(195, duration=3600, distance=36000) for _ in range(5)]

        comparison = compare_plan(PLAN_200W, actual, FTP)

        assert len(comparison.opportunities) == 5
        assert comparison.performance_grade == PerformanceGrade.A_PLUS_PLUS
        assert comparison.power_efficiency == pytest.approx(97.5)

    def test_poor_execution_grade(self):
        """All poor opportunities grade F"""
        actual = [flat(100) for _ in range(4)]

        comparison = compare_plan(PLAN_200W, actual, FTP)

        assert comparison.performance_grade == PerformanceGrade.F

    def test_summary_lines(self):
        """Improvements name time savings for lost segments"""
        comparison = compare_plan(PLAN_200W, [flat(150), flat(195, 3600, 36000)], FTP)

        assert any("Push 50W harder" in line for line in comparison.improvements)
        assert any(line.startswith("Total potential time savings") for line in comparison.improvements)
        assert any(line.startswith("Executed 1 segments") for line in comparison.strengths)
        assert comparison.total_potential_time_savings == pytest.approx(
            sum(o.estimated_time_delta for o in comparison.opportunities)
        )


class TestAnomalies:
    """Tests for segment context flags"""

    def test_possible_stop(self):
        """Less than half the planned power for over 20 s"""
        comparison = compare_plan(PLAN_200W, [flat(80, duration=60, distance=300)], FTP)
        result = comparison.results[0]

        assert AnomalyFlag.POSSIBLE_STOP in result.anomaly_flags
        assert AnomalyFlag.TERRAIN_MISMATCH in result.anomaly_flags
        # The last matching rule gives the reason
        assert result.anomaly_reason == "Check for traffic, stops, or route obstacles"

    def test_misclassified_flat(self):
        """High power on a flat suggests a climb"""
        comparison = compare_plan(PLAN_200W, [flat(245, duration=60, distance=500)], FTP)
        result = comparison.results[0]

        assert result.anomaly_flags == (AnomalyFlag.MISCLASSIFIED_FLAT,)
        assert result.anomaly_reason == "This may actually be a climb - check the route profile"

    def test_coasting_on_descent(self):
        """Very low power on a descent is normal coasting"""
        descent = ActualSegment(
            terrain_type=TerrainType.DESCENT,
            gradient=-0.06,
            distance=1000,
            duration=15,
            average_power=20,
        )

        result = compare_plan(PLAN_200W, [descent], FTP).results[0]

        assert AnomalyFlag.COASTING in result.anomaly_flags
        assert result.anomaly_reason == "Normal for descents - focus on aero position"

    def test_unsustainable_effort(self):
        """Over 120% FTP for more than a minute"""
        climb = ActualSegment(
            terrain_type=TerrainType.CLIMB,
            gradient=0.09,
            distance=800,
            duration=120,
            average_power=320,
        )

        result = compare_plan(PLAN_200W, [climb], FTP).results[0]

        assert result.anomaly_flags == (AnomalyFlag.UNSUSTAINABLE_EFFORT,)
        assert result.anomaly_reason == "This hard effort will cause fatigue later"

    def test_terrain_mismatch_above_expected(self):
        """Far above the expected terrain power suggests steeper terrain"""
        comparator = SegmentComparator(ftp=FTP)
        rolling = ActualSegment(
            terrain_type=TerrainType.ROLLING,
            gradient=0.02,
            distance=1000,
            duration=40,
            average_power=290,
        )

        result = comparator.compare(PLAN_200W, [rolling]).results[0]

        assert result.anomaly_flags == (AnomalyFlag.TERRAIN_MISMATCH,)
        assert result.anomaly_reason == "Terrain may be steeper than classified"

    def test_expected_power_by_terrain(self):
        """Expected power depends on terrain and gradient"""
        comparator = SegmentComparator(ftp=200)

        assert comparator.expected_power(TerrainType.CLIMB, 0.10) == pytest.approx(190)
        assert comparator.expected_power(TerrainType.CLIMB, 0.06) == pytest.approx(170)
        assert comparator.expected_power(TerrainType.CLIMB, 0.04) == pytest.approx(160)
        assert comparator.expected_power(TerrainType.ROLLING, 0.02) == pytest.approx(150)
        assert comparator.expected_power(TerrainType.DESCENT, -0.05) == pytest.approx(80)

    def test_no_flags_on_plan(self):
        """A segment ridden as planned has no anomalies"""
        result = compare_plan(PLAN_200W, [flat(200)], FTP).results[0]

        assert result.anomaly_flags == ()
        assert result.anomaly_reason is None
        assert not result.has_anomalies


class TestDistanceWindower:
    """Tests for distance windows of a timeline"""

    def climbing_timeline(self, seconds=250, with_power=True):
        # 10 m/s with 0.5 m of climbing per second (5%)
        return RideTimeline(
            [
                Sample(
                    timestamp=T0 + timedelta(seconds=t),
                    distance=10.0 * t,
                    altitude=100.0 + 0.5 * t,
                    power=220 if with_power else None,
                    speed=10.0,
                )
                for t in range(seconds)
            ]
        )

    def test_windows_by_distance(self):
        """Windows are cut every 1000 m"""
        windows = DistanceWindower().windows(self.climbing_timeline())

        assert len(windows) == 3
        assert windows[0].distance == pytest.approx(1000)
        assert windows[0].duration == pytest.approx(100)
        assert windows[0].gradient == pytest.approx(0.05)
        assert windows[0].terrain_type == TerrainType.CLIMB
        assert windows[0].average_power == pytest.approx(220)
        assert windows[2].distance == pytest.approx(490)

    def test_windows_without_power_dropped(self):
        """Windows with no power data are dropped"""
        windows = DistanceWindower().windows(self.climbing_timeline(with_power=False))

        assert windows == []

    def test_compare_timeline(self):
        """compare_timeline compares against distance windows"""
        comparator = SegmentComparator(ftp=FTP)

        comparison = comparator.compare_timeline(PLAN_200W, self.climbing_timeline())

        assert len(comparison.results) == 3
        assert comparison.results[0].terrain_type == TerrainType.CLIMB

    def test_classify_terrain(self):
        """Terrain bands at 1.5% and 3%"""
        assert classify_terrain(0.01) == TerrainType.FLAT
        assert classify_terrain(-0.02) == TerrainType.ROLLING
        assert classify_terrain(0.05) == TerrainType.CLIMB
        assert classify_terrain(-0.05) == TerrainType.DESCENT


class TestFormatting:
    """Tests for time formatting"""

    def test_format_time_savings(self):
        """Seconds under a minute and m:ss above"""
        assert format_time_savings(42.7) == "42s"
        assert format_time_savings(-75) == "1:15"
