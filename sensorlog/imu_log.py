"""IMU log parser.

One pose per line in fixed-width columns: lat, lon, alt, quaternion w/x/y/z,
roll, pitch, yaw (degrees) and a timestamp in milliseconds since the epoch.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

from .config import ParserConfig
from .errors import BufferExhausted, MalformedRecord
from .lidar_log import LOG_ENCODING, LOG_ERRORS, ErrorPolicy, count_lines, parse_float
from .records import PoseSample, SampleBuffer

logger = logging.getLogger(__name__)

# (name, start, width)
IMU_FIELDS = (
    ("lat", 0, 15),
    ("lon", 16, 15),
    ("alt", 31, 15),
    ("qw", 46, 15),
    ("qx", 61, 15),
    ("qy", 76, 15),
    ("qz", 91, 15),
    ("roll", 106, 15),
    ("pitch", 121, 15),
    ("yaw", 136, 15),
    ("timestamp", 151, 21),
)


@dataclass
class ImuLog:
    """Poses read from one IMU log, in file order."""
    poses: List[PoseSample] = field(default_factory=list)
    errors: List[MalformedRecord] = field(default_factory=list)
    line_count: int = 0
    aborted: bool = False


def parse_imu_line(line: str, line_number: Optional[int] = None) -> PoseSample:
    """Parse one fixed-width IMU line."""
    values = {
        name: parse_float(line, start, width, name, line_number)
        for name, start, width in IMU_FIELDS
    }
    return PoseSample(**values)


class ImuLogReader:
    """Reads an IMU log into a time-ordered list of poses."""

    def __init__(self, parser: Optional[ParserConfig] = None):
        self.parser = parser or ParserConfig()
        self.malformed_policy = ErrorPolicy(self.parser.malformed_policy)

    def read(self, path: Path | str) -> ImuLog:
        path = Path(path)
        capacity = count_lines(path)
        logger.info(f"{path.name}: {capacity} lines")
        with open(path, encoding=LOG_ENCODING, errors=LOG_ERRORS) as f:
            return self.read_lines(f, capacity=capacity)

    def read_lines(self, lines: Iterable[str], capacity: Optional[int] = None) -> ImuLog:
        if capacity is None:
            lines = list(lines)
            capacity = len(lines)

        buffer: SampleBuffer[PoseSample] = SampleBuffer(capacity)
        log = ImuLog()

        for line_number, raw_line in enumerate(lines, start=1):
            log.line_count += 1
            line = raw_line.rstrip("\r\n")
            if not line.strip():
                continue
            try:
                pose = parse_imu_line(line, line_number)
                if len(buffer) and pose.timestamp < buffer[len(buffer) - 1].timestamp:
                    raise MalformedRecord(
                        "timestamp goes backwards", line, line_number, IMU_FIELDS[-1][1]
                    )
                buffer.append(pose)
            except MalformedRecord as e:
                log.errors.append(e)
                if self.malformed_policy is ErrorPolicy.ABORT:
                    logger.error(f"Malformed IMU record, aborting IMU log: {e}")
                    log.aborted = True
                    break
                logger.warning(f"Skipping malformed IMU record: {e}")
            except BufferExhausted as e:
                logger.error(f"Pose buffer exhausted at line {line_number}: {e}")
                log.aborted = True
                break

        log.poses = buffer.to_list()
        return log
