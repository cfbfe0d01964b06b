"""
Ride Timeline

The finished, immutable sequence of ride samples with the summary values
the analyzers need:
- start/end time, elapsed, moving and stopped time
- total distance (recorded, or derived from GPS fixes)
- elevation gain/loss from smoothed altitude
- capability flags for power, heart rate and GPS
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from gpxpy.geo import haversine_distance
from scipy import signal

from .records import Sample


class RideTimeline:
    """Immutable, timestamp-ordered ride samples"""

    # Consider moving if speed > 1 m/s (3.6 km/h)
    MOVING_SPEED_THRESHOLD = 1.0

    # Altitude smoothing for elevation totals
    ELEVATION_SMOOTHING_WINDOW = 11
    ELEVATION_SMOOTHING_POLYORDER = 2
    ELEVATION_THRESHOLD_M = 1.0

    def __init__(self, samples: Iterable[Sample]):
        # Stable sort keeps file order for equal timestamps
        self._samples: Tuple[Sample, ...] = tuple(
            sorted(samples, key=lambda s: s.timestamp)
        )

    @property
    def samples(self) -> Tuple[Sample, ...]:
        return self._samples

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self):
        return iter(self._samples)

    @property
    def start_time(self) -> Optional[datetime]:
        return self._samples[0].timestamp if self._samples else None

    @property
    def end_time(self) -> Optional[datetime]:
        return self._samples[-1].timestamp if self._samples else None

    @property
    def total_duration(self) -> float:
        """Elapsed seconds from first to last sample"""
        if not self._samples:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def moving_time(self) -> float:
        """Sum of sample intervals that end on a sample moving faster than 1 m/s"""
        moving = 0.0
        for prev, current in zip(self._samples, self._samples[1:]):
            if self._is_moving(current):
                moving += (current.timestamp - prev.timestamp).total_seconds()
        return moving

    def moving_offsets(self) -> List[Tuple[Sample, float]]:
        """
        Moving samples paired with their moving-time offset.

        The offset is the moving time accumulated up to the sample, so
        stopped periods do not advance it and stopped samples are left out.
        """
        offsets: List[Tuple[Sample, float]] = []
        moving = 0.0
        previous: Optional[Sample] = None

        for sample in self._samples:
            if self._is_moving(sample):
                if previous is not None:
                    moving += (sample.timestamp - previous.timestamp).total_seconds()
                offsets.append((sample, moving))
            previous = sample

        return offsets

    def _is_moving(self, sample: Sample) -> bool:
        return sample.speed is not None and sample.speed > self.MOVING_SPEED_THRESHOLD

    @property
    def stopped_time(self) -> float:
        return max(0.0, self.total_duration - self.moving_time)

    @property
    def has_power_data(self) -> bool:
        return any(s.power is not None for s in self._samples)

    @property
    def has_heart_rate_data(self) -> bool:
        return any(s.heart_rate is not None for s in self._samples)

    @property
    def has_gps_data(self) -> bool:
        return any(s.has_position for s in self._samples)

    def offset_seconds(self, sample: Sample) -> float:
        """Seconds between the first sample and the given sample"""
        return (sample.timestamp - self.start_time).total_seconds()

    def power_series(self) -> List[int]:
        """Power values in order, samples without power omitted"""
        return [s.power for s in self._samples if s.power is not None]

    def cumulative_distances(self) -> List[float]:
        """
        Cumulative distance in meters for every sample.

        Uses the recorded distance where the sample has one. Between
        recorded values, GPS fixes extend the last known distance with the
        great-circle distance travelled; samples with neither keep the
        previous value.
        """
        distances: List[float] = []
        current = 0.0
        prev_fix: Optional[Sample] = None

        for sample in self._samples:
            if sample.distance is not None:
                current = sample.distance
            elif sample.has_position and prev_fix is not None:
                current += haversine_distance(
                    prev_fix.latitude,
                    prev_fix.longitude,
                    sample.latitude,
                    sample.longitude,
                )

            if sample.has_position:
                prev_fix = sample
            distances.append(current)

        return distances

    @property
    def total_distance(self) -> float:
        """Last recorded distance, else distance travelled between GPS fixes"""
        for sample in reversed(self._samples):
            if sample.distance is not None:
                return sample.distance

        if self.has_gps_data:
            return self.cumulative_distances()[-1]
        return 0.0

    @property
    def average_speed(self) -> float:
        """Average moving speed in m/s"""
        moving_time = self.moving_time
        if moving_time <= 0:
            return 0.0
        return self.total_distance / moving_time

    def _smoothed_altitudes(self) -> List[float]:
        altitudes = [s.altitude for s in self._samples if s.altitude is not None]
        if len(altitudes) < self.ELEVATION_SMOOTHING_WINDOW:
            return altitudes

        smoothed = signal.savgol_filter(
            altitudes,
            window_length=self.ELEVATION_SMOOTHING_WINDOW,
            polyorder=self.ELEVATION_SMOOTHING_POLYORDER,
        )
        return smoothed.tolist()

    def elevation_totals(self) -> Tuple[float, float]:
        """
        Total climbing and descending in meters.

        Changes are accumulated until they reach 1 m so GPS/barometer noise
        does not add up to phantom climbing.

        Returns:
            Tuple of (gain, loss)
        """
        altitudes = self._smoothed_altitudes()
        gain = 0.0
        loss = 0.0
        pending_gain = 0.0
        pending_loss = 0.0

        for prev, current in zip(altitudes, altitudes[1:]):
            change = current - prev
            if change > 0:
                pending_gain += change
                if pending_gain >= self.ELEVATION_THRESHOLD_M:
                    gain += pending_gain
                    pending_gain = 0.0
            elif change < 0:
                pending_loss += -change
                if pending_loss >= self.ELEVATION_THRESHOLD_M:
                    loss += pending_loss
                    pending_loss = 0.0

        return gain, loss

    def to_dict(self, include_samples: bool = False) -> Dict[str, Any]:
        """Export timeline summary as dictionary"""
        elevation_gain, elevation_loss = self.elevation_totals()
        result = {
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "sample_count": len(self._samples),
            "total_duration_seconds": round(self.total_duration, 0),
            "moving_time_seconds": round(self.moving_time, 0),
            "stopped_time_seconds": round(self.stopped_time, 0),
            "total_distance_m": round(self.total_distance, 1),
            "average_speed_mps": round(self.average_speed, 2),
            "elevation_gain_m": round(elevation_gain, 0),
            "elevation_loss_m": round(elevation_loss, 0),
            "has_power_data": self.has_power_data,
            "has_heart_rate_data": self.has_heart_rate_data,
            "has_gps_data": self.has_gps_data,
        }
        if include_samples:
            result["samples"] = [s.to_dict() for s in self._samples]
        return result


def build_timeline(samples: Iterable[Sample]) -> RideTimeline:
    """Convenience function to build a RideTimeline from decoded samples"""
    return RideTimeline(samples)
