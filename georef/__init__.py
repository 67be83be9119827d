"""Georeferencing pipeline package.

This package turns parsed rangefinder and IMU logs into a world-frame
point cloud.

Modules:
- pipeline: Main processing orchestration
- azimuth: Missing-azimuth interpolation
- synchronizer: Rangefinder/IMU clock pairing
- transformer: Range/bearing to world-frame transform
- point_sink: Point cloud and GPS diagnostics output
"""

from .pipeline import GeorefPipeline, PipelineResult, run
from .azimuth import AzimuthInterpolator, interpolate_azimuth
from .synchronizer import ClockSynchronizer, HourUnwrapper, SampleCursor, Pairing, SyncStats
from .transformer import Georeferencer, BatchResult, sensor_frame
from .point_sink import PointSink, PointFileSink, format_point, write_gps_csv

__all__ = [
    # Pipeline
    "GeorefPipeline",
    "PipelineResult",
    "run",
    # Azimuth
    "AzimuthInterpolator",
    "interpolate_azimuth",
    # Synchronization
    "ClockSynchronizer",
    "SampleCursor",
    "Pairing",
    "SyncStats",
    "HourUnwrapper",
    # Transform
    "Georeferencer",
    "BatchResult",
    "sensor_frame",
    # Output
    "PointSink",
    "PointFileSink",
    "format_point",
    "write_gps_csv",
]
