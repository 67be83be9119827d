"""Typed records produced by the log parsers.

Measurements and timestamps are kept in separate fields: a firing sequence
holds one azimuth, one base timestamp and 16 channel measurements. The exact
time of a channel is derived from the base timestamp, never stored in the
measurement arrays.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Generic, Iterator, List, Optional, Sequence, TypeVar

from .errors import BufferExhausted

CHANNEL_COUNT = 16

# Centidegrees in a full turn
FULL_CIRCLE = 36000

# VLP-16 vertical angles (degrees) indexed by channel
DEFAULT_ELEVATION_DEG = (15, -1, 13, 3, 11, -5, 9, -7, 7, -9, 5, -11, 3, -13, 1, -15)


@dataclass
class RangeSample:
    """One laser return, as seen by the synchronizer."""
    timestamp: float  # microseconds past the hour
    azimuth_centidegrees: float
    channel_index: int
    distance: float
    reflectivity: Optional[float] = None

    @property
    def is_return(self) -> bool:
        """A distance of exactly zero means the laser saw nothing."""
        return self.distance != 0


@dataclass
class FiringSequence:
    """One synchronized pulse across all 16 channels."""
    distances: List[float]
    reflectivities: List[float]
    azimuth: Optional[float] = None  # centidegrees; None until observed or interpolated
    timestamp: Optional[float] = None  # base time of the sequence, microseconds
    observed: bool = False  # True when the azimuth came straight from the log
    interpolated: bool = False
    line_number: Optional[int] = None

    def __post_init__(self):
        if len(self.distances) != CHANNEL_COUNT or len(self.reflectivities) != CHANNEL_COUNT:
            raise ValueError(
                f"firing sequence needs {CHANNEL_COUNT} channels, got "
                f"{len(self.distances)} distances / {len(self.reflectivities)} reflectivities"
            )

    def channel_time(self, channel: int, channel_interval_us: float = 2.304) -> Optional[float]:
        """Exact firing time of one channel."""
        if self.timestamp is None:
            return None
        return self.timestamp + channel_interval_us * channel

    def sample(self, channel: int, channel_interval_us: float = 2.304) -> RangeSample:
        """Build the RangeSample for one channel of this sequence."""
        azimuth = self.azimuth if self.azimuth is not None else math.nan
        timestamp = self.channel_time(channel, channel_interval_us)
        return RangeSample(
            timestamp=timestamp if timestamp is not None else math.nan,
            azimuth_centidegrees=azimuth,
            channel_index=channel,
            distance=self.distances[channel],
            reflectivity=self.reflectivities[channel],
        )

    def samples(self, channel_interval_us: float = 2.304) -> Iterator[RangeSample]:
        for channel in range(CHANNEL_COUNT):
            yield self.sample(channel, channel_interval_us)


@dataclass
class GpsSentence:
    """Fixed-field GPRMC-like sentence embedded in the rangefinder log."""
    utc_time: str
    valid: bool
    lat: float
    lat_hemi: str
    lon: float
    lon_hemi: str
    speed_knots: float
    true_course: float
    date_stamp: str
    variation: Optional[float]
    variation_hemi: str
    checksum: str
    source_timestamp: Optional[float] = None  # last rangefinder base time

    @staticmethod
    def _ddmm_to_degrees(value: float) -> float:
        degrees = int(value // 100)
        minutes = value - degrees * 100
        return degrees + minutes / 60.0

    @property
    def latitude_deg(self) -> float:
        """Latitude in signed decimal degrees."""
        deg = self._ddmm_to_degrees(self.lat)
        return -deg if self.lat_hemi == "S" else deg

    @property
    def longitude_deg(self) -> float:
        """Longitude in signed decimal degrees."""
        deg = self._ddmm_to_degrees(self.lon)
        return -deg if self.lon_hemi == "W" else deg


@dataclass
class PoseSample:
    """IMU/GPS navigation sample. Angles are degrees as logged."""
    lat: float
    lon: float
    alt: float
    qw: float
    qx: float
    qy: float
    qz: float
    roll: float
    pitch: float
    yaw: float
    timestamp: float  # milliseconds since the Unix epoch

    @property
    def quaternion(self) -> tuple:
        return (self.qw, self.qx, self.qy, self.qz)


@dataclass
class Point:
    """Georeferenced output point."""
    x: float
    y: float
    z: float
    flag: int


@dataclass
class LaserGeometry:
    """Fixed channel-to-elevation table, in radians."""
    elevations_rad: List[float] = field(
        default_factory=lambda: [math.radians(a) for a in DEFAULT_ELEVATION_DEG]
    )

    @classmethod
    def from_degrees(cls, elevation_deg: Sequence[float]) -> "LaserGeometry":
        if len(elevation_deg) != CHANNEL_COUNT:
            raise ValueError(
                f"elevation table needs {CHANNEL_COUNT} entries, got {len(elevation_deg)}"
            )
        return cls(elevations_rad=[math.radians(a) for a in elevation_deg])

    def elevation(self, channel: int) -> float:
        return self.elevations_rad[channel]


T = TypeVar("T")


class SampleBuffer(Generic[T]):
    """Pre-sized, append-only buffer with bounds-checked access.

    Capacity comes from a line-count pre-scan of the input file; writes past
    it raise BufferExhausted instead of growing.
    """

    def __init__(self, capacity: int):
        if capacity < 0:
            raise ValueError("capacity must be non-negative")
        self.capacity = capacity
        self._items: List[T] = []

    def append(self, item: T) -> int:
        """Store an item and return its index."""
        if len(self._items) >= self.capacity:
            raise BufferExhausted(f"buffer full at capacity {self.capacity}")
        self._items.append(item)
        return len(self._items) - 1

    def __getitem__(self, index: int) -> T:
        if not 0 <= index < len(self._items):
            raise BufferExhausted(f"index {index} outside buffer of {len(self._items)}")
        return self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def tail(self, count: int) -> List[T]:
        """Return the last `count` items, oldest first."""
        if count <= 0:
            return []
        return self._items[-count:]

    def to_list(self) -> List[T]:
        return list(self._items)
