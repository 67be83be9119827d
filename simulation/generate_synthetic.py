"""Synthetic survey generator.

This module writes a rangefinder log and an IMU log in the capture tool's
text formats, for development, testing and CI. A VLP-16 spins at the centre
of a rectangular room while the IMU reports a slowly turning heading.

Features:
- Ray-cast ranges against room walls for all 16 lasers
- Dual-sequence data blocks, 24-sequence packets with time lines
- Periodic GPRMC sentences
- IMU poses on epoch milliseconds, offset from the rangefinder clock

Usage:
    python -m simulation.generate_synthetic --out surveys/synthetic --packets 50
"""
from __future__ import annotations

import argparse
import json
import math
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, List, Optional, Sequence, Tuple

from sensorlog.records import CHANNEL_COUNT, DEFAULT_ELEVATION_DEG, FULL_CIRCLE

MS_PER_HOUR = 3_600_000

# An hour boundary, in epoch milliseconds
DEFAULT_EPOCH_HOUR_MS = 472_222 * MS_PER_HOUR


@dataclass
class Wall:
    """A wall segment defined by two endpoints."""
    x1: float
    y1: float
    x2: float
    y2: float

    def ray_intersection(self, ox: float, oy: float, dx: float, dy: float) -> Optional[float]:
        """Distance from ray origin to this wall, or None if the ray misses."""
        wx = self.x2 - self.x1
        wy = self.y2 - self.y1

        denom = dx * wy - dy * wx
        if abs(denom) < 1e-9:
            return None  # Parallel

        t = ((self.x1 - ox) * wy - (self.y1 - oy) * wx) / denom
        s = ((self.x1 - ox) * dy - (self.y1 - oy) * dx) / denom

        if t > 0 and 0 <= s <= 1:
            return t
        return None


@dataclass
class Room:
    """Room geometry for simulation."""
    walls: List[Wall] = field(default_factory=list)

    @classmethod
    def rectangle(cls, width: float = 20.0, height: float = 12.0) -> "Room":
        """Rectangular room centred on the sensor."""
        hw, hh = width / 2, height / 2
        return cls(walls=[
            Wall(-hw, -hh, hw, -hh),
            Wall(hw, -hh, hw, hh),
            Wall(hw, hh, -hw, hh),
            Wall(-hw, hh, -hw, -hh),
        ])

    def cast_ray(self, bearing_rad: float, max_range: float = 100.0) -> float:
        """Horizontal distance to the nearest wall along a compass bearing.

        Bearings are clockwise from +Y, matching the rangefinder azimuth.
        """
        dx = math.sin(bearing_rad)
        dy = math.cos(bearing_rad)
        min_dist = max_range
        for wall in self.walls:
            dist = wall.ray_intersection(0.0, 0.0, dx, dy)
            if dist is not None and dist < min_dist:
                min_dist = dist
        return min_dist


@dataclass
class RangefinderSim:
    """VLP-16 simulation parameters."""
    rotation_hz: float = 10.0
    firing_interval_us: float = 55.296
    blocks_per_packet: int = 12
    range_noise_stddev: float = 0.01
    dropout_rate: float = 0.05
    max_range: float = 100.0
    gps_every_packets: int = 10


@dataclass
class ImuSim:
    """IMU simulation parameters."""
    sample_rate_hz: float = 50.0
    yaw_rate_deg_s: float = 5.0
    start_yaw_deg: float = 25.0
    roll_deg: float = 0.5
    pitch_deg: float = -0.3
    lat: float = 49.2742
    lon: float = -123.1853
    alt: float = 70.0


def nmea_checksum(body: str) -> int:
    """XOR of the characters between '$' and '*'."""
    cs = 0
    for ch in body:
        cs ^= ord(ch)
    return cs


def format_angle_line(azimuth: float,
                      sequences: Sequence[Tuple[Sequence[float], Sequence[float]]]) -> str:
    """Format an ``angle=`` line from (distances, reflectivities) per sequence."""
    values = []
    for distances, reflectivities in sequences:
        for d, r in zip(distances, reflectivities):
            values.append(d)
            values.append(r)
    return f"angle={azimuth:11.2f} " + "".join(f"{v:11.3f}" for v in values)


def format_time_line(timestamp_us: float) -> str:
    return f"time={timestamp_us:11.0f}"


def format_gps_line(utc: str = "120000", valid: bool = True, lat: float = 4916.4452,
                    lat_hemi: str = "N", lon: float = 12311.1180, lon_hemi: str = "W",
                    speed: float = 0.0, course: float = 0.0, date: str = "191026",
                    variation: float = 16.4, variation_hemi: str = "E") -> str:
    """Format a fixed-column GPRMC sentence as logged by the capture tool."""
    body = (
        f"GPRMC,{utc},{'A' if valid else 'V'},{lat:09.4f},{lat_hemi},{lon:010.4f},{lon_hemi},"
        f"{speed:05.1f},{course:05.1f},{date},{variation:05.1f},{variation_hemi},A"
    )
    return f"GPS= ${body}*{nmea_checksum(body):02X}"


def format_imu_line(lat: float, lon: float, alt: float,
                    quaternion: Tuple[float, float, float, float],
                    roll: float, pitch: float, yaw: float, timestamp_ms: float) -> str:
    """Format one fixed-width IMU line."""
    middle = [lon, alt, *quaternion, roll, pitch, yaw]
    return f"{lat:15.8f} " + "".join(f"{v:15.6f}" for v in middle) + f"{timestamp_ms:21.3f}"


def euler_to_quaternion(roll_deg: float, pitch_deg: float, yaw_deg: float) -> Tuple[float, ...]:
    r, p, y = (math.radians(a) / 2 for a in (roll_deg, pitch_deg, yaw_deg))
    cr, sr = math.cos(r), math.sin(r)
    cp, sp = math.cos(p), math.sin(p)
    cy, sy = math.cos(y), math.sin(y)
    return (
        cr * cp * cy + sr * sp * sy,
        sr * cp * cy - cr * sp * sy,
        cr * sp * cy + sr * cp * sy,
        cr * cp * sy - sr * sp * cy,
    )


@dataclass
class SyntheticSurvey:
    """Generator for synthetic rangefinder/IMU log pairs."""

    room: Room = field(default_factory=Room.rectangle)
    rangefinder: RangefinderSim = field(default_factory=RangefinderSim)
    imu: ImuSim = field(default_factory=ImuSim)
    elevation_deg: Sequence[float] = DEFAULT_ELEVATION_DEG

    # Clocks
    epoch_hour_ms: int = DEFAULT_EPOCH_HOUR_MS
    start_ms_into_hour: float = 600_000.0
    epoch_alignment_offset_us: float = 20_000_000.0

    seed: Optional[int] = None

    def __post_init__(self):
        self._rng = random.Random(self.seed)

    def firing_ranges(self, azimuth_cdeg: float) -> Tuple[List[float], List[float]]:
        """Distances and reflectivities for one firing sequence."""
        cfg = self.rangefinder
        horizontal = self.room.cast_ray(math.radians(azimuth_cdeg / 100.0), cfg.max_range)
        distances, reflectivities = [], []
        for channel in range(CHANNEL_COUNT):
            elevation = math.radians(self.elevation_deg[channel])
            distance = horizontal / math.cos(elevation)
            if distance > cfg.max_range or self._rng.random() < cfg.dropout_rate:
                distances.append(0.0)
                reflectivities.append(0.0)
                continue
            distance += self._rng.gauss(0, cfg.range_noise_stddev)
            distances.append(max(0.0, distance))
            reflectivities.append(float(max(1, min(255, int(120 - distance * 4)))))
        return distances, reflectivities

    def lidar_lines(self, n_packets: int) -> List[str]:
        """Rangefinder log lines for `n_packets` packets."""
        cfg = self.rangefinder
        sequences_per_packet = cfg.blocks_per_packet * 2
        packet_us = sequences_per_packet * cfg.firing_interval_us
        azimuth_step = FULL_CIRCLE * cfg.rotation_hz * cfg.firing_interval_us * 1e-6

        start_us = self.start_ms_into_hour * 1000.0 - self.epoch_alignment_offset_us
        lines = []
        sequence = 0
        for packet in range(n_packets):
            packet_time = start_us + packet * packet_us
            for _ in range(cfg.blocks_per_packet):
                az_first = (sequence * azimuth_step) % FULL_CIRCLE
                az_second = ((sequence + 1) * azimuth_step) % FULL_CIRCLE
                lines.append(format_angle_line(
                    round(az_first) % FULL_CIRCLE,
                    [self.firing_ranges(az_first), self.firing_ranges(az_second)],
                ))
                sequence += 2
            lines.append(format_time_line(packet_time))
            if cfg.gps_every_packets and (packet + 1) % cfg.gps_every_packets == 0:
                seconds = int((packet_time + self.epoch_alignment_offset_us) / 1e6) % 3600
                lines.append(format_gps_line(utc=f"12{seconds // 60:02d}{seconds % 60:02d}"))
        return lines

    def imu_lines(self, duration_ms: float) -> List[str]:
        """IMU log lines covering `duration_ms` from the survey start, with margin."""
        cfg = self.imu
        dt_ms = 1000.0 / cfg.sample_rate_hz
        margin = 2 * dt_ms
        n_samples = int((duration_ms + 2 * margin) / dt_ms) + 1

        lines = []
        for i in range(n_samples):
            t_rel = -margin + i * dt_ms
            yaw = cfg.start_yaw_deg + cfg.yaw_rate_deg_s * t_rel / 1000.0
            q = euler_to_quaternion(cfg.roll_deg, cfg.pitch_deg, yaw)
            timestamp = self.epoch_hour_ms + self.start_ms_into_hour + t_rel
            lines.append(format_imu_line(
                cfg.lat, cfg.lon, cfg.alt, q, cfg.roll_deg, cfg.pitch_deg, yaw, timestamp
            ))
        return lines

    def generate_survey(self, output_dir: Path | str, n_packets: int = 50) -> Dict[str, Any]:
        """Write ``lidarData.txt`` and ``IMU.txt`` into a directory.

        Returns:
            Summary dictionary
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        lidar = self.lidar_lines(n_packets)
        packet_us = self.rangefinder.blocks_per_packet * 2 * self.rangefinder.firing_interval_us
        imu = self.imu_lines(n_packets * packet_us / 1000.0)

        lidar_path = output_dir / "lidarData.txt"
        imu_path = output_dir / "IMU.txt"
        lidar_path.write_text("\n".join(lidar) + "\n")
        imu_path.write_text("\n".join(imu) + "\n")

        summary = {
            "status": "ok",
            "lidar_log": str(lidar_path),
            "imu_log": str(imu_path),
            "packets": n_packets,
            "lidar_lines": len(lidar),
            "imu_samples": len(imu),
        }
        print(json.dumps(summary))
        return summary


def make_survey(outdir: str, n_packets: int = 50, seed: Optional[int] = None) -> Dict[str, Any]:
    """Generate a survey with default settings."""
    return SyntheticSurvey(seed=seed).generate_survey(outdir, n_packets)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Generate synthetic rangefinder and IMU logs for testing"
    )
    parser.add_argument("--out", required=True, help="Output directory")
    parser.add_argument("--packets", type=int, default=50, help="Rangefinder packets (default: 50)")
    parser.add_argument("--seed", type=int, help="Random seed")
    parser.add_argument("--noise", type=float, default=0.01,
                        help="Range noise stddev in meters (default: 0.01)")
    parser.add_argument("--yaw-rate", type=float, default=5.0,
                        help="IMU heading rate in deg/s (default: 5.0)")

    args = parser.parse_args()

    survey = SyntheticSurvey(seed=args.seed)
    survey.rangefinder.range_noise_stddev = args.noise
    survey.imu.yaw_rate_deg_s = args.yaw_rate
    survey.generate_survey(args.out, args.packets)
