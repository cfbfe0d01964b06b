"""
Ride Record Types

Typed values shared by the decoder, the sample assembler and the timeline:
- RecordField: the closed set of `record` message fields this package reads
- RecordFields: one decoded `record` message, unit-converted
- Sample: one instant of the ride
"""

from dataclasses import asdict, dataclass, fields
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Any, Dict, Mapping, Optional

# FIT timestamps count seconds from 1989-12-31T00:00:00Z (Unix 631065600)
FIT_EPOCH = datetime(1989, 12, 31, tzinfo=timezone.utc)
FIT_EPOCH_UNIX_SECONDS = 631065600

SEMICIRCLES_TO_DEGREES = 180.0 / 2**31


class RecordField(IntEnum):
    """Field numbers of the `record` message (global message 20)"""

    POSITION_LAT = 0
    POSITION_LONG = 1
    ALTITUDE = 2
    HEART_RATE = 3
    CADENCE = 4
    DISTANCE = 5
    SPEED = 6
    POWER = 7
    TEMPERATURE = 13
    TIMESTAMP = 253


def fit_timestamp_to_datetime(raw_seconds: int) -> datetime:
    """Convert FIT seconds-since-epoch to an aware UTC datetime"""
    return FIT_EPOCH + timedelta(seconds=raw_seconds)


def semicircles_to_degrees(semicircles: int) -> float:
    """Convert a semicircle coordinate (2^31 units = 180 degrees) to degrees"""
    return semicircles * SEMICIRCLES_TO_DEGREES


@dataclass(frozen=True)
class RecordFields:
    """Values decoded from one `record` data message, in physical units"""

    timestamp: Optional[datetime] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude: Optional[float] = None  # meters
    heart_rate: Optional[int] = None  # bpm
    cadence: Optional[int] = None  # rpm
    distance: Optional[float] = None  # meters, cumulative
    speed: Optional[float] = None  # m/s
    power: Optional[int] = None  # watts
    temperature: Optional[float] = None  # degrees C

    @classmethod
    def from_raw(cls, raw_values: Mapping[int, Any]) -> "RecordFields":
        """
        Build from raw field values keyed by field number.

        Unknown field numbers and non-integer values are ignored.

        Args:
            raw_values: Mapping of field number to decoded wire value

        Returns:
            RecordFields with unit conversions applied
        """
        values: Dict[str, Any] = {}

        for field_number, raw in raw_values.items():
            if not isinstance(raw, int):
                continue
            try:
                field = RecordField(field_number)
            except ValueError:
                continue

            if field == RecordField.TIMESTAMP:
                values["timestamp"] = fit_timestamp_to_datetime(raw)
            elif field == RecordField.POSITION_LAT:
                values["latitude"] = semicircles_to_degrees(raw)
            elif field == RecordField.POSITION_LONG:
                values["longitude"] = semicircles_to_degrees(raw)
            elif field == RecordField.ALTITUDE:
                values["altitude"] = raw / 5.0 - 500.0
            elif field == RecordField.HEART_RATE:
                values["heart_rate"] = raw
            elif field == RecordField.CADENCE:
                values["cadence"] = raw
            elif field == RecordField.DISTANCE:
                values["distance"] = raw / 100.0
            elif field == RecordField.SPEED:
                values["speed"] = raw / 1000.0
            elif field == RecordField.POWER:
                values["power"] = raw
            elif field == RecordField.TEMPERATURE:
                values["temperature"] = float(raw)

        return cls(**values)

    def present(self) -> Dict[str, Any]:
        """Fields that were decoded, excluding the timestamp"""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "timestamp" and getattr(self, f.name) is not None
        }


@dataclass(frozen=True)
class Sample:
    """One point in time of a ride"""

    timestamp: datetime
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    altitude: Optional[float] = None
    power: Optional[int] = None
    heart_rate: Optional[int] = None
    cadence: Optional[int] = None
    speed: Optional[float] = None
    temperature: Optional[float] = None
    distance: Optional[float] = None

    @property
    def has_position(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["timestamp"] = self.timestamp.isoformat()
        return result
