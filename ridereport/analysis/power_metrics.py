"""
Power Metrics Engine

Derives the standard power-based training metrics from a ride's power
series:
- Average and Normalized Power (NP)
- Intensity Factor (IF), Training Stress Score (TSS), Variability Index (VI)
- Peak power for 5s, 1min, 5min and 20min
- Time in each of seven FTP-relative power zones

The input is the ordered list of recorded power values. Gaps are omitted
rather than interpolated, and one value is assumed per recording tick.
"""

import math
from bisect import bisect_right
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

PEAK_POWER_DURATIONS = (5, 60, 300, 1200)

PEAK_POWER_LABELS = {5: "5s", 60: "1min", 300: "5min", 1200: "20min"}

ZONE_NAMES = (
    "Active Recovery",
    "Endurance",
    "Tempo",
    "Threshold",
    "Threshold+",
    "VO2 Max",
    "Anaerobic",
)


@dataclass
class PowerZoneDistribution:
    """Seconds and share of moving time spent in each power zone"""

    zone_seconds: List[float]
    zone_percentages: List[float]
    # Upper zone bounds as % of FTP; the last zone is open-ended
    upper_bounds_percent_ftp: List[float] = field(default_factory=list)

    def seconds_in_zone(self, zone: int) -> float:
        """Seconds in zone 1-7"""
        if not 1 <= zone <= len(self.zone_seconds):
            return 0.0
        return self.zone_seconds[zone - 1]

    def percentage(self, zone: int) -> float:
        """Share of moving time in zone 1-7"""
        if not 1 <= zone <= len(self.zone_percentages):
            return 0.0
        return self.zone_percentages[zone - 1]


@dataclass
class PowerMetrics:
    """Scalar power metrics for one ride"""

    average_power: float
    normalized_power: float
    max_power: float
    intensity_factor: float
    training_stress_score: float
    variability_index: float

    # Keyed by duration in seconds; None when the ride is shorter
    peak_powers: Dict[int, Optional[float]]

    zone_distribution: Optional[PowerZoneDistribution]

    sample_count: int
    moving_time_seconds: float

    average_watts_per_kg: Optional[float] = None
    normalized_watts_per_kg: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["peak_powers"] = {
            PEAK_POWER_LABELS.get(duration, f"{duration}s"): power
            for duration, power in self.peak_powers.items()
        }
        return result


class PowerMetricsEngine:
    """Computes PowerMetrics from a power series"""

    # NP rolling window (samples)
    NORMALIZED_POWER_WINDOW = 30

    # Zone upper bounds as % of FTP (Coggan-style 7 zones)
    ZONE_UPPER_BOUNDS = (55.0, 75.0, 88.0, 94.0, 105.0, 120.0)

    def __init__(
        self,
        ftp: float,
        rider_weight_kg: Optional[float] = None,
        sample_interval_seconds: float = 1.0,
    ):
        """
        Args:
            ftp: Functional threshold power in watts
            rider_weight_kg: Optional rider weight for watts/kg
            sample_interval_seconds: Seconds between power samples
        """
        self.ftp = ftp
        self.rider_weight_kg = rider_weight_kg
        self.sample_interval_seconds = sample_interval_seconds

    def calculate(
        self, powers: Sequence[float], moving_time_seconds: float
    ) -> Optional[PowerMetrics]:
        """
        Calculate all power metrics.

        Args:
            powers: Ordered power values in watts
            moving_time_seconds: Moving time of the ride, used for TSS and
                zone percentages

        Returns:
            PowerMetrics, or None when there is no power data
        """
        if len(powers) == 0:
            return None

        average_power = self.average_power(powers)
        normalized_power = self.normalized_power(powers)
        intensity_factor = self.intensity_factor(normalized_power)

        weight = self.rider_weight_kg
        has_weight = weight is not None and weight > 0

        return PowerMetrics(
            average_power=average_power,
            normalized_power=normalized_power,
            max_power=float(max(powers)),
            intensity_factor=intensity_factor,
            training_stress_score=self.training_stress_score(
                intensity_factor, moving_time_seconds
            ),
            variability_index=self.variability_index(normalized_power, average_power),
            peak_powers=self.peak_powers(powers),
            zone_distribution=self.zone_distribution(powers, moving_time_seconds),
            sample_count=len(powers),
            moving_time_seconds=moving_time_seconds,
            average_watts_per_kg=average_power / weight if has_weight else None,
            normalized_watts_per_kg=normalized_power / weight if has_weight else None,
        )

    @staticmethod
    def average_power(powers: Sequence[float]) -> float:
        if len(powers) == 0:
            return 0.0
        return sum(powers) / len(powers)

    def normalized_power(self, powers: Sequence[float]) -> float:
        """
        Normalized Power.

        Take the mean of every full 30-sample rolling window, raise each
        mean to the 4th power, average those values and take the 4th root.
        Series shorter than one window fall back to average power.
        """
        n = len(powers)
        window = self.NORMALIZED_POWER_WINDOW
        if n < window:
            return self.average_power(powers)

        values = np.asarray(powers, dtype=float)
        cumulative = np.concatenate(([0.0], np.cumsum(values)))
        rolling_means = (cumulative[window:] - cumulative[:-window]) / window

        mean_fourth_power = float(np.mean(rolling_means**4))
        # Two square roots are exact for perfect fourth powers
        return math.sqrt(math.sqrt(mean_fourth_power))

    def intensity_factor(self, normalized_power: float) -> float:
        if self.ftp <= 0:
            return 0.0
        return normalized_power / self.ftp

    @staticmethod
    def training_stress_score(intensity_factor: float, moving_time_seconds: float) -> float:
        """TSS = hours x IF^2 x 100"""
        hours = moving_time_seconds / 3600.0
        return hours * intensity_factor**2 * 100

    @staticmethod
    def variability_index(normalized_power: float, average_power: float) -> float:
        if average_power <= 0:
            return 1.0
        return normalized_power / average_power

    def peak_powers(self, powers: Sequence[float]) -> Dict[int, Optional[float]]:
        """Best average power for each standard duration"""
        return {
            duration: self.peak_power(powers, duration)
            for duration in PEAK_POWER_DURATIONS
        }

    def peak_power(self, powers: Sequence[float], duration_seconds: float) -> Optional[float]:
        """
        Highest mean power over any contiguous window of the given duration.

        Returns:
            Peak power, or None if the series is shorter than the window
        """
        window = max(1, int(round(duration_seconds / self.sample_interval_seconds)))
        if len(powers) < window:
            return None

        values = np.asarray(powers, dtype=float)
        cumulative = np.concatenate(([0.0], np.cumsum(values)))
        window_sums = cumulative[window:] - cumulative[:-window]
        return float(window_sums.max() / window)

    def zone_distribution(
        self, powers: Sequence[float], moving_time_seconds: float
    ) -> Optional[PowerZoneDistribution]:
        """Seconds and % of moving time in each FTP-relative zone"""
        if self.ftp <= 0 or len(powers) == 0:
            return None

        zone_count = len(self.ZONE_UPPER_BOUNDS) + 1
        zone_seconds = [0.0] * zone_count

        for power in powers:
            percent_ftp = power / self.ftp * 100
            zone_index = bisect_right(self.ZONE_UPPER_BOUNDS, percent_ftp)
            zone_seconds[zone_index] += self.sample_interval_seconds

        if moving_time_seconds > 0:
            zone_percentages = [s / moving_time_seconds * 100 for s in zone_seconds]
        else:
            zone_percentages = [0.0] * zone_count

        return PowerZoneDistribution(
            zone_seconds=zone_seconds,
            zone_percentages=zone_percentages,
            upper_bounds_percent_ftp=list(self.ZONE_UPPER_BOUNDS),
        )


def calculate_power_metrics(
    powers: Sequence[float],
    ftp: float,
    moving_time_seconds: float,
    rider_weight_kg: Optional[float] = None,
    sample_interval_seconds: float = 1.0,
) -> Optional[PowerMetrics]:
    """
    Convenience function to calculate power metrics.

    Args:
        powers: Ordered power values in watts
        ftp: Functional threshold power
        moving_time_seconds: Moving time used for TSS
        rider_weight_kg: Optional rider weight
        sample_interval_seconds: Seconds between samples

    Returns:
        PowerMetrics or None when the series is empty
    """
    engine = PowerMetricsEngine(
        ftp=ftp,
        rider_weight_kg=rider_weight_kg,
        sample_interval_seconds=sample_interval_seconds,
    )
    return engine.calculate(powers, moving_time_seconds)
