"""Georeferencing transform from range/bearing to world coordinates.

Chain applied to every accepted (sample, pose) pairing:

1. Sensor frame: X = d sin(az) cos(el), Y = d cos(el) cos(az), Z = -d sin(el)
2. Pitch about X, then roll about Y, then yaw about Z (right-handed,
   angles from the IMU in degrees)
3. Position offsets: +lon on X, -lat on Y, +alt on Z

The rotation order is fixed; reordering changes the result.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Sequence

import numpy as np

from sensorlog.config import ClassificationConfig, OffsetConfig
from sensorlog.errors import NonFiniteMeasurement
from sensorlog.records import LaserGeometry, Point, PoseSample, RangeSample

from .synchronizer import Pairing


def rotation_x(angle: float) -> np.ndarray:
    """Rotation about X (pitch)."""
    c, s = np.cos(angle), np.sin(angle)
    return np.array([
        [1, 0, 0],
        [0, c, -s],
        [0, s, c],
    ])


def rotation_y(angle: float) -> np.ndarray:
    """Rotation about Y (roll)."""
    c, s = np.cos(angle), np.sin(angle)
    return np.array([
        [c, 0, s],
        [0, 1, 0],
        [-s, 0, c],
    ])


def rotation_z(angle: float) -> np.ndarray:
    """Rotation about Z (yaw)."""
    c, s = np.cos(angle), np.sin(angle)
    return np.array([
        [c, -s, 0],
        [s, c, 0],
        [0, 0, 1],
    ])


def sensor_frame(distances: np.ndarray, azimuth_rad: np.ndarray,
                 elevation_rad: np.ndarray) -> np.ndarray:
    """Range/bearing/elevation to sensor-frame Cartesian, shape (N, 3)."""
    distances = np.asarray(distances, dtype=float)
    cos_el = np.cos(elevation_rad)
    x = distances * np.sin(azimuth_rad) * cos_el
    y = distances * cos_el * np.cos(azimuth_rad)
    z = -distances * np.sin(elevation_rad)
    return np.column_stack([x, y, z])


def _axis_stack(angles: np.ndarray, axis: int) -> np.ndarray:
    """Rotations about one axis for every angle, shape (N, 3, 3)."""
    c, s = np.cos(angles), np.sin(angles)
    i, j = [k for k in range(3) if k != axis]
    # cyclic order about Y is (z, x)
    if axis == 1:
        i, j = j, i
    stack = np.zeros((len(angles), 3, 3))
    stack[:, axis, axis] = 1.0
    stack[:, i, i] = c
    stack[:, i, j] = -s
    stack[:, j, i] = s
    stack[:, j, j] = c
    return stack


def rotation_stack(pitch: np.ndarray, roll: np.ndarray, yaw: np.ndarray) -> np.ndarray:
    """Per-point Rz(yaw) @ Ry(roll) @ Rx(pitch), shape (N, 3, 3)."""
    pitch, roll, yaw = (np.asarray(a, dtype=float).reshape(-1) for a in (pitch, roll, yaw))
    return _axis_stack(yaw, 2) @ _axis_stack(roll, 1) @ _axis_stack(pitch, 0)


@dataclass
class BatchResult:
    """Output of a batch transform."""
    xyz: np.ndarray  # (N, 3)
    flags: np.ndarray  # (N,)
    skipped_non_finite: int = 0


@dataclass
class Georeferencer:
    """Turns synchronized pairings into world-frame points."""

    geometry: LaserGeometry = field(default_factory=LaserGeometry)
    offsets: OffsetConfig = field(default_factory=OffsetConfig)
    classification: ClassificationConfig = field(default_factory=ClassificationConfig)

    def classify(self, yaw_deg: float) -> int:
        """Flag points taken while the heading is above the threshold."""
        if yaw_deg > self.classification.yaw_flag_threshold_deg:
            return self.classification.flag_above
        return self.classification.flag_below

    def rotation(self, pose: PoseSample) -> np.ndarray:
        """World-from-sensor rotation for one pose."""
        return (
            rotation_z(math.radians(pose.yaw))
            @ rotation_y(math.radians(pose.roll))
            @ rotation_x(math.radians(pose.pitch))
        )

    def offset_vector(self) -> np.ndarray:
        """Position correction in world axes."""
        return np.array([self.offsets.lon_offset, -self.offsets.lat_offset, self.offsets.alt_offset])

    def transform(self, sample: RangeSample, pose: PoseSample) -> Point:
        """Georeference a single sample.

        Raises:
            NonFiniteMeasurement: if the distance, azimuth or any pose angle is NaN/inf
        """
        values = (sample.distance, sample.azimuth_centidegrees, pose.roll, pose.pitch, pose.yaw)
        if not all(math.isfinite(v) for v in values):
            raise NonFiniteMeasurement(
                f"channel {sample.channel_index} at {sample.timestamp}: non-finite input {values}"
            )

        d = sample.distance
        az = math.radians(sample.azimuth_centidegrees / 100.0)
        el = self.geometry.elevation(sample.channel_index)
        local = np.array([
            d * math.sin(az) * math.cos(el),
            d * math.cos(el) * math.cos(az),
            -d * math.sin(el),
        ])
        x, y, z = self.rotation(pose) @ local + self.offset_vector()
        return Point(x=float(x), y=float(y), z=float(z), flag=self.classify(pose.yaw))

    def transform_pairings(self, pairings: Sequence[Pairing]) -> BatchResult:
        """Georeference many pairings at once, dropping non-finite rows."""
        if not pairings:
            return BatchResult(xyz=np.zeros((0, 3)), flags=np.zeros(0, dtype=int))

        distances = np.array([p.sample.distance for p in pairings], dtype=float)
        azimuths = np.array([p.sample.azimuth_centidegrees for p in pairings], dtype=float)
        channels = np.array([p.sample.channel_index for p in pairings], dtype=int)
        angles = np.array([[p.pose.roll, p.pose.pitch, p.pose.yaw] for p in pairings], dtype=float)

        finite = np.isfinite(distances) & np.isfinite(azimuths) & np.all(np.isfinite(angles), axis=1)
        poses = [p.pose for p, ok in zip(pairings, finite) if ok]
        batch = self._transform_arrays(distances[finite], azimuths[finite], channels[finite], poses)
        batch.skipped_non_finite = int(np.count_nonzero(~finite))
        return batch

    def points(self, batch: BatchResult) -> List[Point]:
        return [
            Point(x=float(x), y=float(y), z=float(z), flag=int(f))
            for (x, y, z), f in zip(batch.xyz, batch.flags)
        ]

    def _transform_arrays(self, distances: np.ndarray, azimuths_cdeg: np.ndarray,
                          channels: np.ndarray, poses: Sequence[PoseSample]) -> BatchResult:
        if len(poses) == 0:
            return BatchResult(xyz=np.zeros((0, 3)), flags=np.zeros(0, dtype=int))

        azimuth_rad = np.radians(azimuths_cdeg / 100.0)
        elevation_rad = np.asarray(self.geometry.elevations_rad)[channels.astype(int)]
        local = sensor_frame(distances, azimuth_rad, elevation_rad)

        yaw_deg = np.array([p.yaw for p in poses], dtype=float)
        rotations = rotation_stack(
            np.radians([p.pitch for p in poses]),
            np.radians([p.roll for p in poses]),
            np.radians(yaw_deg),
        )
        world = np.einsum("nij,nj->ni", rotations, local) + self.offset_vector()

        rule = self.classification
        flags = np.where(yaw_deg > rule.yaw_flag_threshold_deg, rule.flag_above, rule.flag_below).astype(int)
        return BatchResult(xyz=world, flags=flags)
