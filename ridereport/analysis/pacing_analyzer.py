"""
Pacing Analyzer

Windows a ride timeline into fixed-duration buckets of moving time and
derives:
- Average power/speed and trend per bucket
- Pacing consistency (coefficient of variation of bucket power)
- Fatigue onset (late-ride power decline)
- Power surges above the ride's mean power
- Pacing errors (surges, a too-hard start, late fade) and an overall
  0-100 performance score
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .timeline import RideTimeline


class PacingTrend(Enum):
    """Power change relative to the previous bucket"""

    STEADY = "steady"
    INCREASING = "increasing"
    DECREASING = "decreasing"


class PacingRating(Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class PacingErrorType(Enum):
    SURGE = "surge"
    EARLY_HARD = "early_hard"
    FADE = "fade"


@dataclass
class PacingSegment:
    """One fixed-duration bucket of moving time"""

    index: int
    start_offset: float  # moving seconds from ride start
    duration: float
    average_power: Optional[float]
    average_speed: float  # m/s
    trend: PacingTrend
    sample_count: int = 0
    elapsed_offset: Optional[float] = None  # elapsed seconds of the first sample

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["trend"] = self.trend.value
        return result


@dataclass
class PacingError:
    """A single pacing mistake located in the ride"""

    error_type: PacingErrorType
    offset_seconds: float  # elapsed seconds from ride start
    magnitude: float  # watts above (+) or below (-) the ride's mean power
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.error_type.value,
            "offset_seconds": self.offset_seconds,
            "magnitude": round(self.magnitude, 1),
            "description": self.description,
        }


@dataclass
class FatigueAnalysis:
    """Late-ride power decline"""

    detected: bool
    onset_offset_seconds: Optional[float] = None
    decline_percent: float = 0.0
    decline_rate_watts_per_hour: Optional[float] = None
    decline_watts: float = 0.0  # first-third minus last-third mean power

    @property
    def onset_minute(self) -> Optional[int]:
        if self.onset_offset_seconds is None:
            return None
        return int(self.onset_offset_seconds // 60)


@dataclass
class PacingAnalysis:
    """Complete pacing result for a ride"""

    segments: List[PacingSegment]
    consistency_score: Optional[float]  # 0-100, None without power data
    coefficient_of_variation: Optional[float]  # percent
    pacing_rating: Optional[PacingRating]
    fatigue: FatigueAnalysis = field(default_factory=lambda: FatigueAnalysis(detected=False))
    surge_count: int = 0
    # Coefficient of variation (%) of the raw power samples
    power_variability: Optional[float] = None
    pacing_errors: List[PacingError] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "segments": [s.to_dict() for s in self.segments],
            "consistency_score": self.consistency_score,
            "coefficient_of_variation": self.coefficient_of_variation,
            "pacing_rating": self.pacing_rating.value if self.pacing_rating else None,
            "fatigue": asdict(self.fatigue),
            "surge_count": self.surge_count,
            "power_variability": self.power_variability,
            "pacing_errors": [e.to_dict() for e in self.pacing_errors],
        }


class PacingAnalyzer:
    """Analyzes pacing over fixed-duration buckets of a ride"""

    # Relative change between buckets below this is "steady"
    TREND_THRESHOLD = 0.05

    # Fatigue: last third must be this much (%) below the first third
    FATIGUE_DECLINE_THRESHOLD = 15.0
    # Onset is the first bucket below this fraction of the first-third mean
    FATIGUE_ONSET_FRACTION = 0.90
    MIN_BUCKETS_FOR_FATIGUE = 3

    # Surge: at least 10 consecutive samples above 130% of mean power
    SURGE_POWER_FRACTION = 1.30
    SURGE_MIN_SAMPLES = 10

    # Too hard early: first quarter of samples above 110% of mean power
    EARLY_FRACTION = 0.25
    EARLY_HARD_FRACTION = 1.10

    # Performance score penalties
    CONSISTENCY_WEIGHT = 0.4
    VARIABILITY_ALLOWANCE = 15.0
    VARIABILITY_WEIGHT = 0.5
    DEVIATION_WEIGHT = 0.5
    SURGE_PENALTY = 2.0
    FATIGUE_PENALTY = 15.0

    def __init__(self, bucket_seconds: float = 600):
        """
        Args:
            bucket_seconds: Bucket length in seconds of moving time
                (default 10 minutes)
        """
        self.bucket_seconds = bucket_seconds

    def analyze(self, timeline: RideTimeline) -> PacingAnalysis:
        """
        Analyze pacing of a ride.

        Args:
            timeline: Ride timeline

        Returns:
            PacingAnalysis; power-derived values are None when the ride has
            no power data
        """
        segments = self._build_segments(timeline)

        powered = [s.average_power for s in segments if s.average_power is not None]
        consistency, cv_percent = self._consistency(powered)
        fatigue = self._detect_fatigue(segments)

        surges = self._detect_surges(timeline)
        errors = list(surges)
        early = self._detect_early_hard(timeline)
        if early is not None:
            errors.append(early)
        if fatigue.detected:
            errors.append(self._fade_error(fatigue, segments))
        errors.sort(key=lambda e: e.offset_seconds)

        return PacingAnalysis(
            segments=segments,
            consistency_score=consistency,
            coefficient_of_variation=cv_percent,
            pacing_rating=self._rating(consistency, cv_percent),
            fatigue=fatigue,
            surge_count=len(surges),
            power_variability=self._power_variability(timeline.power_series()),
            pacing_errors=errors,
        )

    def _build_segments(self, timeline: RideTimeline) -> List[PacingSegment]:
        """
        Split the moving part of the ride into whole buckets.

        Stopped samples are left out and stops do not advance the bucket
        clock, so the buckets hold exactly the ridden samples.
        """
        bucket_count = int(timeline.moving_time // self.bucket_seconds)
        if bucket_count <= 0:
            return []

        powers: List[List[int]] = [[] for _ in range(bucket_count)]
        speeds: List[List[float]] = [[] for _ in range(bucket_count)]
        counts = [0] * bucket_count
        first_elapsed: List[Optional[float]] = [None] * bucket_count

        for sample, moving_offset in timeline.moving_offsets():
            index = int(moving_offset // self.bucket_seconds)
            if index >= bucket_count:
                break
            counts[index] += 1
            if first_elapsed[index] is None:
                first_elapsed[index] = timeline.offset_seconds(sample)
            if sample.power is not None:
                powers[index].append(sample.power)
            speeds[index].append(sample.speed)

        segments: List[PacingSegment] = []
        previous_power: Optional[float] = None

        for index in range(bucket_count):
            average_power = sum(powers[index]) / len(powers[index]) if powers[index] else None
            average_speed = sum(speeds[index]) / len(speeds[index]) if speeds[index] else 0.0

            trend = PacingTrend.STEADY
            if index > 0:
                trend = self._trend(previous_power, average_power)

            segments.append(
                PacingSegment(
                    index=index,
                    start_offset=index * self.bucket_seconds,
                    duration=self.bucket_seconds,
                    average_power=average_power,
                    average_speed=average_speed,
                    trend=trend,
                    sample_count=counts[index],
                    elapsed_offset=first_elapsed[index],
                )
            )
            previous_power = average_power

        return segments

    def _trend(self, previous: Optional[float], current: Optional[float]) -> PacingTrend:
        if not previous or not current:
            return PacingTrend.STEADY

        change = (current - previous) / previous
        if abs(change) < self.TREND_THRESHOLD:
            return PacingTrend.STEADY
        return PacingTrend.INCREASING if change > 0 else PacingTrend.DECREASING

    @staticmethod
    def _consistency(
        bucket_powers: Sequence[float],
    ) -> Tuple[Optional[float], Optional[float]]:
        """Return (consistency score, CV in percent) or (None, None)"""
        if not bucket_powers:
            return None, None

        values = np.asarray(bucket_powers, dtype=float)
        mean = float(values.mean())
        if mean <= 0:
            return None, None

        cv = float(values.std()) / mean
        return max(0.0, 100.0 - 100.0 * cv), cv * 100.0

    @staticmethod
    def _rating(
        consistency: Optional[float], cv_percent: Optional[float]
    ) -> Optional[PacingRating]:
        if consistency is None or cv_percent is None:
            return None
        if consistency >= 85 and cv_percent < 15:
            return PacingRating.EXCELLENT
        if consistency >= 70 and cv_percent < 25:
            return PacingRating.GOOD
        if consistency >= 50 and cv_percent < 35:
            return PacingRating.FAIR
        return PacingRating.POOR

    def _detect_fatigue(self, segments: Sequence[PacingSegment]) -> FatigueAnalysis:
        """
        Compare the first third of powered buckets with the last third.

        A decline above 15% counts as fatigue; the onset is the first
        bucket whose power drops below 90% of the first-third mean.
        """
        powered = [s for s in segments if s.average_power is not None]
        if len(powered) < self.MIN_BUCKETS_FOR_FATIGUE:
            return FatigueAnalysis(detected=False)

        third = len(powered) // 3
        first_mean = sum(s.average_power for s in powered[:third]) / third
        last_mean = sum(s.average_power for s in powered[-third:]) / third

        if first_mean <= 0:
            return FatigueAnalysis(detected=False)

        decline_percent = (first_mean - last_mean) / first_mean * 100
        if decline_percent <= self.FATIGUE_DECLINE_THRESHOLD:
            return FatigueAnalysis(detected=False, decline_percent=decline_percent)

        onset = next(
            (
                s
                for s in powered
                if s.average_power < first_mean * self.FATIGUE_ONSET_FRACTION
            ),
            None,
        )
        if onset is None:
            return FatigueAnalysis(detected=False, decline_percent=decline_percent)

        decline_rate = None
        if onset.start_offset > 0:
            decline_rate = (first_mean - last_mean) * 3600 / onset.start_offset

        return FatigueAnalysis(
            detected=True,
            onset_offset_seconds=onset.start_offset,
            decline_percent=decline_percent,
            decline_rate_watts_per_hour=decline_rate,
            decline_watts=first_mean - last_mean,
        )

    def _powered_offsets(self, timeline: RideTimeline) -> List[Tuple[float, int]]:
        """(elapsed offset, power) for every sample with power"""
        return [
            (timeline.offset_seconds(s), s.power) for s in timeline if s.power is not None
        ]

    def _detect_surges(self, timeline: RideTimeline) -> List[PacingError]:
        """
        Find runs of consecutive samples above 130% of mean power.

        Runs of at least 10 samples are surges; each is located at its first
        sample and sized by its mean power above the ride's mean.
        """
        powered = self._powered_offsets(timeline)
        if not powered:
            return []

        mean_power = sum(p for _, p in powered) / len(powered)
        threshold = mean_power * self.SURGE_POWER_FRACTION
        surges: List[PacingError] = []
        run: List[Tuple[float, int]] = []

        # Sentinel closes a run still open at the end of the ride
        for offset, power in powered + [(0.0, None)]:
            if power is not None and power > threshold:
                run.append((offset, power))
                continue
            if len(run) >= self.SURGE_MIN_SAMPLES:
                magnitude = sum(p for _, p in run) / len(run) - mean_power
                surges.append(
                    PacingError(
                        error_type=PacingErrorType.SURGE,
                        offset_seconds=run[0][0],
                        magnitude=magnitude,
                        description=f"Power surge of {magnitude:.0f}W above average",
                    )
                )
            run = []

        return surges

    def _detect_early_hard(self, timeline: RideTimeline) -> Optional[PacingError]:
        """The first quarter of powered samples averaging over 110% of the ride's mean"""
        powers = timeline.power_series()
        early_count = int(len(powers) * self.EARLY_FRACTION)
        if early_count <= 0:
            return None

        mean_power = sum(powers) / len(powers)
        early_mean = sum(powers[:early_count]) / early_count
        if mean_power <= 0 or early_mean <= mean_power * self.EARLY_HARD_FRACTION:
            return None

        percent = (early_mean - mean_power) / mean_power * 100
        return PacingError(
            error_type=PacingErrorType.EARLY_HARD,
            offset_seconds=0.0,
            magnitude=early_mean - mean_power,
            description=f"Started {percent:.0f}% too hard",
        )

    @staticmethod
    def _fade_error(
        fatigue: FatigueAnalysis, segments: Sequence[PacingSegment]
    ) -> PacingError:
        """Pacing error at the bucket where fatigue set in"""
        onset = next(
            (s for s in segments if s.start_offset == fatigue.onset_offset_seconds), None
        )
        offset = fatigue.onset_offset_seconds
        if onset is not None and onset.elapsed_offset is not None:
            offset = onset.elapsed_offset

        return PacingError(
            error_type=PacingErrorType.FADE,
            offset_seconds=offset,
            magnitude=-fatigue.decline_watts,
            description=(
                f"Power faded {fatigue.decline_percent:.0f}% "
                f"after {fatigue.onset_minute} minutes"
            ),
        )

    @staticmethod
    def _power_variability(powers: Sequence[int]) -> Optional[float]:
        """Coefficient of variation (%) of the power samples"""
        if not powers:
            return None
        values = np.asarray(powers, dtype=float)
        mean = float(values.mean())
        if mean <= 0:
            return None
        return float(values.std()) / mean * 100.0

    @classmethod
    def performance_score(
        cls, pacing: PacingAnalysis, plan_deviation: float = 0.0
    ) -> Optional[float]:
        """
        Overall 0-100 score for how well the ride was paced.

        Starts at 100 and subtracts penalties for inconsistent buckets,
        sample variability above 15%, deviation from the plan, surges and
        fatigue.

        Args:
            pacing: Pacing analysis of the ride
            plan_deviation: Mean absolute deviation (%) from planned power,
                0 without a plan

        Returns:
            Score, or None when the ride has no power data
        """
        if pacing.consistency_score is None:
            return None

        score = 100.0
        score -= (100.0 - pacing.consistency_score) * cls.CONSISTENCY_WEIGHT

        variability = pacing.power_variability or 0.0
        if variability > cls.VARIABILITY_ALLOWANCE:
            score -= (variability - cls.VARIABILITY_ALLOWANCE) * cls.VARIABILITY_WEIGHT

        score -= plan_deviation * cls.DEVIATION_WEIGHT
        score -= pacing.surge_count * cls.SURGE_PENALTY
        if pacing.fatigue.detected:
            score -= cls.FATIGUE_PENALTY

        return max(0.0, min(100.0, score))


def analyze_pacing(timeline: RideTimeline, bucket_seconds: float = 600) -> PacingAnalysis:
    """Convenience function to analyze pacing of a timeline"""
    return PacingAnalyzer(bucket_seconds=bucket_seconds).analyze(timeline)


def calculate_performance_score(
    pacing: PacingAnalysis, plan_deviation: float = 0.0
) -> Optional[float]:
    """Convenience function for the overall ride performance score"""
    return PacingAnalyzer.performance_score(pacing, plan_deviation)
