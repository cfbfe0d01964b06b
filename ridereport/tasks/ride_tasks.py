"""
Ride Analysis Tasks

Celery tasks for decoding FIT ride files and analyzing them against a
pacing plan.
"""

import base64
import logging
from typing import Any, Dict, List, Optional

from ..analysis import (
    actual_segments_from_dicts,
    analyze_ride,
    decode_fit_samples,
    FitDecodeError,
    planned_segments_from_dicts,
    PowerMetricsEngine,
)
from . import app

logger = logging.getLogger(__name__)


def _error_result(e: Exception, **extra: Any) -> Dict[str, Any]:
    result = {
        "success": False,
        "error": str(e),
        "error_type": e.error_type if isinstance(e, FitDecodeError) else "analysis_error",
    }
    result.update(extra)
    return result


@app.task(name="analyze_ride_file", bind=True)
def analyze_ride_file(
    self,
    ride_id: str,
    file_content: str,
    ftp: float,
    rider_weight_kg: Optional[float] = None,
    planned_segments: Optional[List[Dict[str, Any]]] = None,
    terrain_segments: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """
    Decode a FIT ride file and produce the full ride report.

    Args:
        ride_id: Unique ID for the ride
        file_content: FIT file content as base64-encoded string
        ftp: Rider's functional threshold power in watts
        rider_weight_kg: Optional rider weight
        planned_segments: Optional pacing plan, list of dicts with
            target_power, and optionally target_time, distance, strategy, name
        terrain_segments: Optional classified terrain, list of dicts with
            terrain_type, gradient, distance, duration, average_power

    Returns:
        Dict containing the report, or error and error_type on failure
    """
    logger.info(
        f"[Task {self.request.id}] Starting analyze_ride_file for ride_id={ride_id}"
    )
    logger.info(
        f"[Task {self.request.id}] File content length: {len(file_content)} chars, ftp={ftp}"
    )

    try:
        fit_bytes = base64.b64decode(file_content)

        planned = planned_segments_from_dicts(planned_segments or [])
        terrain = actual_segments_from_dicts(terrain_segments or []) or None

        logger.info(f"[Task {self.request.id}] Running analysis...")
        report = analyze_ride(
            fit_bytes,
            ftp=ftp,
            rider_weight_kg=rider_weight_kg,
            planned_segments=planned or None,
            terrain_segments=terrain,
        )

        logger.info(
            f"[Task {self.request.id}] Analysis complete. "
            f"Samples: {len(report.timeline)}, "
            f"Distance: {report.timeline.total_distance / 1000:.2f}km, "
            f"Insights: {len(report.insights)}"
        )

        return {
            "success": True,
            "ride_id": ride_id,
            "report": report.to_dict(),
        }

    except Exception as e:
        logger.error(
            f"[Task {self.request.id}] Error analyzing ride {ride_id}: {e}",
            exc_info=True,
        )
        return _error_result(e, ride_id=ride_id)


@app.task(name="decode_ride_file", bind=True)
def decode_ride_file(self, file_content: str) -> Dict[str, Any]:
    """
    Decode a FIT ride file into samples only.

    Args:
        file_content: FIT file content as base64-encoded string

    Returns:
        Dict containing the samples, or error and error_type on failure
    """
    try:
        samples = decode_fit_samples(base64.b64decode(file_content))
        logger.info(f"[Task {self.request.id}] Decoded {len(samples)} samples")

        return {
            "success": True,
            "sample_count": len(samples),
            "samples": [s.to_dict() for s in samples],
        }

    except Exception as e:
        logger.error(f"[Task {self.request.id}] Error decoding ride file: {e}", exc_info=True)
        return _error_result(e)


@app.task(name="calculate_power_metrics")
def calculate_power_metrics(
    powers: List[float],
    ftp: float,
    moving_time_seconds: float,
    rider_weight_kg: Optional[float] = None,
    sample_interval_seconds: float = 1.0,
) -> Dict[str, Any]:
    """
    Calculate power metrics for an already-decoded power series.

    Args:
        powers: Ordered power values in watts
        ftp: Functional threshold power
        moving_time_seconds: Moving time used for TSS
        rider_weight_kg: Optional rider weight
        sample_interval_seconds: Seconds between samples

    Returns:
        Dict with the power metrics
    """
    if not powers:
        return {"success": False, "error": "No power data"}

    engine = PowerMetricsEngine(
        ftp=ftp,
        rider_weight_kg=rider_weight_kg,
        sample_interval_seconds=sample_interval_seconds,
    )
    metrics = engine.calculate(powers, moving_time_seconds)

    return {
        "success": True,
        "power_metrics": metrics.to_dict(),
    }
