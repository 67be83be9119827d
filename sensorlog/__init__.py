"""Sensor log package.

Parses the rangefinder and IMU logs into typed records.

Modules:
- config: Run configuration
- records: Data model (firing sequences, poses, points)
- errors: Error taxonomy
- lidar_log: Rangefinder log parser
- imu_log: IMU log parser
"""

from .config import RunConfig, load_config
from .errors import GeorefError, MalformedRecord, BufferExhausted, NonFiniteMeasurement
from .records import (
    RangeSample, FiringSequence, GpsSentence, PoseSample, Point, LaserGeometry, SampleBuffer
)
from .lidar_log import RangefinderLogReader, LidarLog, ErrorPolicy
from .imu_log import ImuLogReader, ImuLog

__all__ = [
    # Config
    "RunConfig",
    "load_config",
    # Errors
    "GeorefError",
    "MalformedRecord",
    "BufferExhausted",
    "NonFiniteMeasurement",
    # Records
    "RangeSample",
    "FiringSequence",
    "GpsSentence",
    "PoseSample",
    "Point",
    "LaserGeometry",
    "SampleBuffer",
    # Parsers
    "RangefinderLogReader",
    "LidarLog",
    "ErrorPolicy",
    "ImuLogReader",
    "ImuLog",
]
