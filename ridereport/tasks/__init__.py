"""
RideReport Worker Tasks Package
"""

from ..celery_app import app

# Import all tasks to ensure they're registered with Celery
from .ride_tasks import (
    analyze_ride_file,
    calculate_power_metrics,
    decode_ride_file,
)

__all__ = [
    "app",
    "analyze_ride_file",
    "calculate_power_metrics",
    "decode_ride_file",
]
