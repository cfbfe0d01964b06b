"""
Shared fixtures for ride analysis tests.

FIT content is built byte by byte with FitFileBuilder so every test states
exactly which definitions and data records the decoder sees.
"""

import pytest

# Base type codes as written in files
ENUM = 0x00
SINT8 = 0x01
UINT8 = 0x02
SINT16 = 0x83
UINT16 = 0x84
SINT32 = 0x85
UINT32 = 0x86
STRING = 0x07

_SIGNED = {SINT8, SINT16, SINT32}

# Layout of each `record` field: (field number, size, base type)
RECORD_FIELD_LAYOUT = {
    "timestamp": (253, 4, UINT32),
    "latitude": (0, 4, SINT32),
    "longitude": (1, 4, SINT32),
    "altitude": (2, 2, UINT16),
    "heart_rate": (3, 1, UINT8),
    "cadence": (4, 1, UINT8),
    "distance": (5, 4, UINT32),
    "speed": (6, 2, UINT16),
    "power": (7, 2, UINT16),
    "temperature": (13, 1, SINT8),
}

# Seconds since the FIT epoch used as ride start in tests
BASE_TIMESTAMP = 1_000_000_000


def to_raw(name, value):
    """Convert a physical value to its wire value"""
    if name in ("latitude", "longitude"):
        return int(round(value * 2**31 / 180))
    if name == "altitude":
        return int(round((value + 500) * 5))
    if name == "distance":
        return int(round(value * 100))
    if name == "speed":
        return int(round(value * 1000))
    return int(value)


class FitFileBuilder:
    """Assembles FIT content from definition and data records"""

    def __init__(self, header_length=14, protocol_version=1):
        self.header_length = header_length
        self.protocol_version = protocol_version
        self.body = bytearray()
        self._layouts = {}
        self._record_layout = None

    def define(self, local_id, global_number, fields, little_endian=True):
        """Add a definition record; fields are (number, size, base type)"""
        byteorder = "little" if little_endian else "big"
        self.body.append(0x40 | local_id)
        self.body.append(0)  # reserved
        self.body.append(0 if little_endian else 1)
        self.body += global_number.to_bytes(2, byteorder)
        self.body.append(len(fields))
        for number, size, base_type in fields:
            self.body += bytes([number, size, base_type])
        self._layouts[local_id] = (list(fields), byteorder)
        return self

    def data(self, local_id, *values):
        """Add a data record with one raw value per defined field"""
        fields, byteorder = self._layouts[local_id]
        self.body.append(local_id)
        for (_, size, base_type), value in zip(fields, values):
            if base_type == STRING:
                self.body += value.encode("utf-8").ljust(size, b"\x00")
            else:
                self.body += value.to_bytes(
                    size, byteorder, signed=base_type in _SIGNED
                )
        return self

    def raw(self, data):
        self.body += data
        return self

    def record(self, local_id=0, **values):
        """
        Add a `record` message from physical values, redefining the local
        message when the set of fields changes.
        """
        names = [n for n in RECORD_FIELD_LAYOUT if values.get(n) is not None]
        if self._record_layout != (local_id, names):
            self.define(local_id, 20, [RECORD_FIELD_LAYOUT[n] for n in names])
            self._record_layout = (local_id, names)
        return self.data(local_id, *[to_raw(n, values[n]) for n in names])

    def header(self):
        header = bytearray([self.header_length, self.protocol_version])
        header += (2132).to_bytes(2, "little")  # profile version
        header += len(self.body).to_bytes(4, "little")
        header += b".FIT"
        header += bytes(max(0, self.header_length - len(header)))
        return bytes(header[: self.header_length])

    def build(self):
        return self.header() + bytes(self.body)


def build_ride(points):
    """FIT content for a list of physical-value dicts, one record each"""
    builder = FitFileBuilder()
    for point in points:
        builder.record(**point)
    return builder.build()


def steady_ride_points(seconds, power=200, speed=8.0, climb_rate=0.0):
    """One point per second of a steady ride"""
    return [
        {
            "timestamp": BASE_TIMESTAMP + t,
            "distance": speed * t,
            "speed": speed,
            "power": power,
            "altitude": 100.0 + climb_rate * t,
            "heart_rate": 140,
        }
        for t in range(seconds + 1)
    ]


@pytest.fixture
def fit_builder():
    """A fresh FitFileBuilder"""
    return FitFileBuilder()


@pytest.fixture
def steady_ride_bytes():
    """FIT content for a 25 minute ride at 200W and 8 m/s"""
    return build_ride(steady_ride_points(1500))


@pytest.fixture
def ride_factory():
    """Builds FIT content from a list of physical-value dicts"""
    return build_ride


@pytest.fixture
def steady_points():
    """Generates per-second points of a steady ride"""
    return steady_ride_points
