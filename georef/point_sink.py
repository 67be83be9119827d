"""Point output.

Each point is one line of four right-justified fields, separated by single
spaces: X, Y, Z (width 12, 5 decimals) and the integer flag (width 12).
"""
from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import IO, Iterable, Optional

from sensorlog.records import GpsSentence, Point

logger = logging.getLogger(__name__)

FIELD_WIDTH = 12
COORD_PRECISION = 5


def format_point(point: Point) -> str:
    """Format a point as one output line, without the newline."""
    return (
        f"{point.x:>{FIELD_WIDTH}.{COORD_PRECISION}f} "
        f"{point.y:>{FIELD_WIDTH}.{COORD_PRECISION}f} "
        f"{point.z:>{FIELD_WIDTH}.{COORD_PRECISION}f} "
        f"{int(point.flag):>{FIELD_WIDTH}d}"
    )


class PointSink:
    """Writes finalized points to a text stream."""

    def __init__(self, stream: IO[str]):
        self._stream = stream
        self.count = 0

    def write(self, point: Point) -> None:
        self._stream.write(format_point(point) + "\n")
        self.count += 1

    def write_all(self, points: Iterable[Point]) -> int:
        """Write every point; returns how many were written by this call."""
        before = self.count
        for point in points:
            self.write(point)
        return self.count - before

    def close(self) -> None:
        self._stream.flush()


class PointFileSink(PointSink):
    """PointSink that owns its output file."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(open(self.path, "w"))

    def close(self) -> None:
        if not self._stream.closed:
            self._stream.close()
            logger.info(f"Wrote {self.count} points to {self.path}")

    def __enter__(self) -> "PointFileSink":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


GPS_COLUMNS = [
    "utc_time", "valid", "lat", "lat_hemi", "lon", "lon_hemi", "speed_knots",
    "true_course", "date_stamp", "variation", "variation_hemi", "checksum",
    "source_timestamp", "latitude_deg", "longitude_deg",
]


def write_gps_csv(sentences: Iterable[GpsSentence], path: Path | str) -> int:
    """Export parsed GPS sentences for diagnostics."""
    path = Path(path)
    n = 0
    with open(path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(GPS_COLUMNS)
        for s in sentences:
            writer.writerow([
                s.utc_time,
                "A" if s.valid else "V",
                f"{s.lat:.4f}",
                s.lat_hemi,
                f"{s.lon:.4f}",
                s.lon_hemi,
                f"{s.speed_knots:.1f}",
                f"{s.true_course:.1f}",
                s.date_stamp,
                "" if s.variation is None else f"{s.variation:.1f}",
                s.variation_hemi,
                s.checksum,
                "" if s.source_timestamp is None else f"{s.source_timestamp:.0f}",
                f"{s.latitude_deg:.6f}",
                f"{s.longitude_deg:.6f}",
            ])
            n += 1
    logger.info(f"Wrote {n} GPS sentences to {path}")
    return n


def open_sink(path: Optional[Path | str], stream: Optional[IO[str]] = None) -> PointSink:
    """Sink for a path, or for an already open stream."""
    if stream is not None:
        return PointSink(stream)
    if path is None:
        raise ValueError("either a path or a stream is required")
    return PointFileSink(path)
