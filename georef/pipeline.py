"""Georeferencing pipeline.

This module runs the complete batch conversion:
1. Parse the rangefinder log (firing sequences, packet times, GPS sentences)
2. Parse the IMU log (poses)
3. Interpolate the azimuths the rangefinder does not transmit
4. Pair each rangefinder sample with its nearest pose in time
5. Transform each pairing into a world-frame point
6. Write the point cloud

Usage:
    python -m georef.pipeline --lidar lidarData.txt --imu IMU.txt --out trial_.txt

Each stage records counts, warnings and errors in a PipelineResult.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import IO, Dict, List, Optional

from sensorlog.config import RunConfig, load_config
from sensorlog.imu_log import ImuLog, ImuLogReader
from sensorlog.lidar_log import LidarLog, RangefinderLogReader
from sensorlog.records import LaserGeometry, Point

from .azimuth import AzimuthInterpolator
from .point_sink import open_sink, write_gps_csv
from .synchronizer import ClockSynchronizer, Pairing
from .transformer import Georeferencer

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Result of a georeferencing run."""

    success: bool
    lidar_log: str
    imu_log: str
    output_path: str

    # Parsing stats
    lidar_lines: int = 0
    firing_sequences: int = 0
    untimed_sequences: int = 0
    gps_sentences: int = 0
    lidar_aborted: bool = False
    imu_lines: int = 0
    poses: int = 0

    # Processing stats
    interpolated_azimuths: int = 0
    pairings: int = 0
    points_emitted: int = 0
    skipped: Dict[str, int] = field(default_factory=dict)

    # Issues and warnings
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    # Timing
    processing_time_sec: float = 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


@dataclass
class GeorefPipeline:
    """Rangefinder + IMU logs to a georeferenced point cloud."""

    config: RunConfig = field(default_factory=RunConfig)

    # Data
    lidar: Optional[LidarLog] = None
    imu: Optional[ImuLog] = None
    pairings: List[Pairing] = field(default_factory=list)
    points: List[Point] = field(default_factory=list)

    # Result tracking
    result: PipelineResult = field(default_factory=lambda: PipelineResult(
        success=False, lidar_log="", imu_log="", output_path=""
    ))

    def load_lidar_log(self, path: Path | str) -> bool:
        """Parse the rangefinder log.

        Returns:
            True if at least one firing sequence was read
        """
        path = Path(path)
        self.result.lidar_log = str(path)
        if not path.exists():
            self.result.errors.append(f"Rangefinder log not found: {path}")
            return False

        reader = RangefinderLogReader(self.config.laser, self.config.parser)
        self.lidar = reader.read(path)

        self.result.lidar_lines = self.lidar.line_count
        self.result.firing_sequences = len(self.lidar.sequences)
        self.result.untimed_sequences = self.lidar.untimed_sequences
        self.result.gps_sentences = len(self.lidar.gps)
        self.result.lidar_aborted = self.lidar.aborted

        for e in self.lidar.errors:
            self.result.warnings.append(f"{path.name}: {e}")
        if self.lidar.aborted:
            self.result.warnings.append(
                f"{path.name}: parsing stopped after line {self.lidar.line_count}"
            )
        if self.lidar.untimed_sequences:
            self.result.warnings.append(
                f"{self.lidar.untimed_sequences} firing sequences have no packet timestamp"
            )

        if not self.lidar.sequences:
            self.result.errors.append("No firing sequences in rangefinder log")
            return False
        return True

    def load_imu_log(self, path: Path | str) -> bool:
        """Parse the IMU log.

        Returns:
            True if at least two poses were read
        """
        path = Path(path)
        self.result.imu_log = str(path)
        if not path.exists():
            self.result.errors.append(f"IMU log not found: {path}")
            return False

        self.imu = ImuLogReader(self.config.parser).read(path)
        self.result.imu_lines = self.imu.line_count
        self.result.poses = len(self.imu.poses)

        for e in self.imu.errors:
            self.result.warnings.append(f"{path.name}: {e}")

        if len(self.imu.poses) < 2:
            self.result.errors.append(
                f"Need at least 2 IMU poses to synchronize, found {len(self.imu.poses)}"
            )
            return False
        return True

    def interpolate_azimuths(self) -> bool:
        """Fill the missing azimuths in place."""
        interpolator = AzimuthInterpolator()
        self.result.interpolated_azimuths = interpolator.fill(self.lidar.sequences)
        missing = interpolator.missing(self.lidar.sequences)
        if missing:
            self.result.warnings.append(
                f"{missing} firing sequences could not be interpolated and will be skipped"
            )
        return True

    def synchronize(self) -> bool:
        """Pair rangefinder samples with poses."""
        synchronizer = ClockSynchronizer(
            self.config.sync, channel_interval_us=self.config.laser.channel_interval_us
        )
        self.pairings = synchronizer.synchronize(self.lidar.sequences, self.imu.poses)
        stats = synchronizer.stats

        self.result.pairings = len(self.pairings)
        self.result.skipped.update({
            "zero_distance": stats.zero_distance,
            "outside_tolerance": stats.outside_tolerance,
            "before_first_pose": stats.before_first_pose,
            "untimed": stats.untimed,
        })

        if not self.pairings:
            self.result.warnings.append("No rangefinder samples fell within tolerance of a pose")
        return True

    def georeference(self) -> bool:
        """Transform every pairing into a world-frame point."""
        georeferencer = Georeferencer(
            geometry=LaserGeometry.from_degrees(self.config.laser.elevation_deg),
            offsets=self.config.offsets,
            classification=self.config.classification,
        )
        batch = georeferencer.transform_pairings(self.pairings)
        self.points = georeferencer.points(batch)
        self.result.skipped["non_finite"] = batch.skipped_non_finite
        return True

    def export_points(self, output: Optional[Path | str], stream: Optional[IO[str]] = None) -> bool:
        """Write the point cloud to a file or an open stream."""
        if output is not None:
            self.result.output_path = str(output)
        sink = open_sink(output, stream)
        try:
            self.result.points_emitted = sink.write_all(self.points)
        finally:
            if stream is None:
                sink.close()
        return True

    def export_gps(self, path: Path | str) -> bool:
        """Write parsed GPS sentences to CSV."""
        write_gps_csv(self.lidar.gps, path)
        return True

    def run(
        self,
        lidar_path: Optional[Path | str] = None,
        imu_path: Optional[Path | str] = None,
        output_path: Optional[Path | str] = None,
        stream: Optional[IO[str]] = None,
    ) -> PipelineResult:
        """Run the complete pipeline.

        Paths default to the ones in the run configuration. Passing a stream
        writes points to it instead of to ``output_path``.

        Returns:
            PipelineResult with processing outcomes
        """
        start_time = time.time()
        paths = self.config.paths
        lidar_path = lidar_path or paths.lidar_log
        imu_path = imu_path or paths.imu_log
        if stream is None:
            output_path = output_path or paths.output

        self.result = PipelineResult(
            success=False,
            lidar_log=str(lidar_path),
            imu_log=str(imu_path),
            output_path=str(output_path) if output_path else "",
        )

        logger.info(f"Processing rangefinder log {lidar_path}...")
        if not self.load_lidar_log(lidar_path):
            return self.result
        logger.info(
            f"  {self.result.firing_sequences} firing sequences, "
            f"{self.result.gps_sentences} GPS sentences"
        )

        logger.info(f"Processing IMU log {imu_path}...")
        if not self.load_imu_log(imu_path):
            return self.result
        logger.info(f"  {self.result.poses} poses")

        logger.info("Interpolating azimuths...")
        self.interpolate_azimuths()
        logger.info(f"  Interpolated {self.result.interpolated_azimuths} azimuths")

        logger.info("Synchronizing clocks...")
        self.synchronize()
        logger.info(f"  Paired {self.result.pairings} samples")

        logger.info("Georeferencing...")
        self.georeference()

        logger.info("Writing points...")
        self.export_points(output_path, stream)
        logger.info(f"  Wrote {self.result.points_emitted} points")

        if paths.gps_output:
            self.export_gps(paths.gps_output)

        self.result.processing_time_sec = time.time() - start_time
        self.result.success = len(self.result.errors) == 0
        return self.result


def run(lidar_path: str, imu_path: str, output_path: str,
        config: Optional[RunConfig] = None) -> PipelineResult:
    """Convenience wrapper around GeorefPipeline.run."""
    pipeline = GeorefPipeline(config=config or RunConfig())
    return pipeline.run(lidar_path, imu_path, output_path)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Build a georeferenced point cloud from rangefinder and IMU logs"
    )
    parser.add_argument("--lidar", help="Rangefinder log path")
    parser.add_argument("--imu", help="IMU log path")
    parser.add_argument("--out", help="Point cloud output path")
    parser.add_argument("--gps-out", help="Optional CSV export of GPS sentences")
    parser.add_argument("--config", "-c", help="Path to JSON run configuration")
    parser.add_argument("--tolerance-ms", type=float, help="Pairing tolerance in milliseconds")
    parser.add_argument("--epoch-offset-us", type=float,
                        help="Rangefinder clock correction in microseconds")
    parser.add_argument("--yaw-threshold-deg", type=float, help="Yaw above which points are flagged")
    parser.add_argument("--gps-policy", choices=["abort", "skip"],
                        help="What to do with a malformed GPS line")
    parser.add_argument("--summary", help="Write the run summary as JSON to this path")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def apply_overrides(config: RunConfig, args: argparse.Namespace) -> RunConfig:
    """Override configuration with CLI arguments."""
    if args.lidar:
        config.paths.lidar_log = args.lidar
    if args.imu:
        config.paths.imu_log = args.imu
    if args.out:
        config.paths.output = args.out
    if args.gps_out:
        config.paths.gps_output = args.gps_out
    if args.tolerance_ms is not None:
        config.sync.tolerance_ms = args.tolerance_ms
    if args.epoch_offset_us is not None:
        config.sync.epoch_alignment_offset_us = args.epoch_offset_us
    if args.yaw_threshold_deg is not None:
        config.classification.yaw_flag_threshold_deg = args.yaw_threshold_deg
    if args.gps_policy:
        config.parser.gps_error_policy = args.gps_policy
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    config = apply_overrides(load_config(args.config), args)
    pipeline = GeorefPipeline(config=config)
    result = pipeline.run()

    if args.summary:
        with open(args.summary, "w") as f:
            json.dump(result.to_dict(), f, indent=2)

    print("\n" + "=" * 60)
    print("GEOREFERENCING SUMMARY")
    print("=" * 60)
    print(f"Status: {'SUCCESS' if result.success else 'FAILED'}")
    print(f"Firing sequences: {result.firing_sequences}")
    print(f"Poses: {result.poses}")
    print(f"Points: {result.points_emitted}")
    print(f"Time: {result.processing_time_sec:.2f}s")

    if result.warnings:
        print(f"\nWarnings ({len(result.warnings)}):")
        for w in result.warnings[:20]:
            print(f"  - {w}")

    if result.errors:
        print(f"\nErrors ({len(result.errors)}):")
        for e in result.errors:
            print(f"  - {e}")

    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
