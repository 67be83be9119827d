"""Rangefinder log parser.

The capture tool writes the VLP-16 stream as tagged text lines:

- ``angle=`` one data block: an 11-character azimuth (centidegrees) followed,
  from column 18, by 11-character (distance, reflectivity) fields for one or
  two firing sequences. Only the first sequence's azimuth is transmitted.
- ``time=`` the packet timestamp (microseconds past the hour) for the firing
  sequences received since the previous time line.
- ``GPS=`` a fixed-column GPRMC sentence. A line that does not begin with
  ``GPS= $GP`` aborts the rest of the log unless the skip policy is chosen.

Parsing is two-pass: a pre-scan counts angle lines to size the sequence
buffer once, then the second pass fills it.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional

from .config import LaserConfig, ParserConfig
from .errors import BufferExhausted, MalformedRecord
from .records import CHANNEL_COUNT, FULL_CIRCLE, FiringSequence, GpsSentence, SampleBuffer

logger = logging.getLogger(__name__)

ANGLE_TAG = "angle="
TIME_TAG = "time="
GPS_TAG = "GPS="
GPS_SENTINEL = "GPS= $GP"

FIELD_WIDTH = 11
AZIMUTH_OFFSET = 6
TIME_OFFSET = 5
MEASUREMENT_OFFSET = 18

# distance + reflectivity per channel
VALUES_PER_SEQUENCE = 2 * CHANNEL_COUNT
MAX_SEQUENCES_PER_BLOCK = 2

# (name, start, width) of each GPS sentence column
GPS_FIELDS = (
    ("utc_time", 12, 6),
    ("valid", 19, 1),
    ("lat", 21, 9),
    ("lat_hemi", 31, 1),
    ("lon", 33, 10),
    ("lon_hemi", 44, 1),
    ("speed_knots", 46, 5),
    ("true_course", 52, 5),
    ("date_stamp", 58, 6),
    ("variation", 65, 5),
    ("variation_hemi", 71, 1),
    ("checksum", 73, 4),
)
GPS_MIN_LENGTH = 77

# Capture logs are ASCII; undecodable bytes become U+FFFD and fail the line's own checks
LOG_ENCODING = "ascii"
LOG_ERRORS = "replace"


class ErrorPolicy(Enum):
    """What a reader does when a line fails to parse."""
    ABORT = "abort"
    SKIP = "skip"


class GpsSentinelError(MalformedRecord):
    """A GPS line whose content does not start with the $GP sentinel."""


@dataclass
class LogPrescan:
    """Line counts from the sizing pass."""
    lines: int = 0
    angle_lines: int = 0
    time_lines: int = 0
    gps_lines: int = 0

    @property
    def sequence_capacity(self) -> int:
        return self.angle_lines * MAX_SEQUENCES_PER_BLOCK


@dataclass
class LidarLog:
    """Everything read from one rangefinder log."""
    sequences: List[FiringSequence] = field(default_factory=list)
    gps: List[GpsSentence] = field(default_factory=list)
    errors: List[MalformedRecord] = field(default_factory=list)
    line_count: int = 0
    ignored_lines: int = 0
    untimed_sequences: int = 0
    aborted: bool = False

    @property
    def timed_sequences(self) -> List[FiringSequence]:
        return [s for s in self.sequences if s.timestamp is not None]


def parse_float(line: str, offset: int, width: int, name: str,
                line_number: Optional[int] = None) -> float:
    """Parse one fixed-width numeric field."""
    text = line[offset:offset + width]
    if not text.strip():
        raise MalformedRecord(f"missing {name} field", line, line_number, offset)
    try:
        value = float(text)
    except ValueError:
        raise MalformedRecord(f"bad {name} value {text.strip()!r}", line, line_number, offset) from None
    if not math.isfinite(value):
        raise MalformedRecord(f"non-finite {name} value {text.strip()!r}", line, line_number, offset)
    return value


def parse_angle_line(line: str, line_number: Optional[int] = None) -> List[FiringSequence]:
    """Parse an ``angle=`` line into one or two firing sequences.

    The second sequence of a two-sequence block is returned with no azimuth.
    """
    if not line.startswith(ANGLE_TAG):
        raise MalformedRecord("not an angle line", line, line_number, 0)

    azimuth = parse_float(line, AZIMUTH_OFFSET, FIELD_WIDTH, "azimuth", line_number)
    if not 0 <= azimuth < FULL_CIRCLE:
        raise MalformedRecord(f"azimuth {azimuth} out of range", line, line_number, AZIMUTH_OFFSET)

    values = []
    for k in range(VALUES_PER_SEQUENCE * MAX_SEQUENCES_PER_BLOCK):
        start = MEASUREMENT_OFFSET + FIELD_WIDTH * k
        if not line[start:start + FIELD_WIDTH].strip():
            break
        values.append(parse_float(line, start, FIELD_WIDTH, "measurement", line_number))

    if len(values) == 0 or len(values) % VALUES_PER_SEQUENCE != 0:
        raise MalformedRecord(
            f"expected {VALUES_PER_SEQUENCE} or {VALUES_PER_SEQUENCE * 2} measurement fields, "
            f"found {len(values)}",
            line, line_number, MEASUREMENT_OFFSET + FIELD_WIDTH * len(values),
        )

    sequences = []
    for s in range(len(values) // VALUES_PER_SEQUENCE):
        chunk = values[s * VALUES_PER_SEQUENCE:(s + 1) * VALUES_PER_SEQUENCE]
        first = s == 0
        sequences.append(FiringSequence(
            distances=chunk[0::2],
            reflectivities=chunk[1::2],
            azimuth=azimuth if first else None,
            observed=first,
            line_number=line_number,
        ))
    return sequences


def parse_time_line(line: str, line_number: Optional[int] = None) -> float:
    """Parse a ``time=`` line into its base timestamp (microseconds)."""
    if not line.startswith(TIME_TAG):
        raise MalformedRecord("not a time line", line, line_number, 0)
    return parse_float(line, TIME_OFFSET, FIELD_WIDTH, "timestamp", line_number)


def parse_gps_line(line: str, line_number: Optional[int] = None,
                   source_timestamp: Optional[float] = None) -> GpsSentence:
    """Parse a ``GPS=`` line into a GpsSentence."""
    if not line.startswith(GPS_SENTINEL):
        raise GpsSentinelError("GPS line without $GP sentinel", line, line_number, len(GPS_TAG))
    if len(line) < GPS_MIN_LENGTH:
        raise MalformedRecord(
            f"GPS sentence shorter than {GPS_MIN_LENGTH} characters", line, line_number, len(line)
        )

    raw = {name: line[start:start + width] for name, start, width in GPS_FIELDS}
    offsets = {name: start for name, start, _ in GPS_FIELDS}

    def number(name: str) -> float:
        return parse_float(line, offsets[name], len(raw[name]), name, line_number)

    variation = number("variation") if raw["variation"].strip() else None

    return GpsSentence(
        utc_time=raw["utc_time"],
        valid=raw["valid"] == "A",
        lat=number("lat"),
        lat_hemi=raw["lat_hemi"],
        lon=number("lon"),
        lon_hemi=raw["lon_hemi"],
        speed_knots=number("speed_knots"),
        true_course=number("true_course"),
        date_stamp=raw["date_stamp"],
        variation=variation,
        variation_hemi=raw["variation_hemi"],
        checksum=raw["checksum"],
        source_timestamp=source_timestamp,
    )


def prescan_lines(lines: Iterable[str]) -> LogPrescan:
    """Count lines by tag."""
    scan = LogPrescan()
    for line in lines:
        scan.lines += 1
        if line.startswith(ANGLE_TAG):
            scan.angle_lines += 1
        elif line.startswith(TIME_TAG):
            scan.time_lines += 1
        elif line.startswith(GPS_TAG):
            scan.gps_lines += 1
    return scan


def count_lines(path: Path | str) -> int:
    """Count the lines of a text file."""
    with open(path, encoding=LOG_ENCODING, errors=LOG_ERRORS) as f:
        return sum(1 for _ in f)


class RangefinderLogReader:
    """Reads a rangefinder log into firing sequences and GPS sentences."""

    def __init__(
        self,
        laser: Optional[LaserConfig] = None,
        parser: Optional[ParserConfig] = None,
    ):
        self.laser = laser or LaserConfig()
        self.parser = parser or ParserConfig()
        self.gps_policy = ErrorPolicy(self.parser.gps_error_policy)
        self.malformed_policy = ErrorPolicy(self.parser.malformed_policy)

    def read(self, path: Path | str) -> LidarLog:
        """Pre-scan, then parse a log file."""
        path = Path(path)
        with open(path, encoding=LOG_ENCODING, errors=LOG_ERRORS) as f:
            scan = prescan_lines(f)
        logger.info(
            f"{path.name}: {scan.lines} lines ({scan.angle_lines} angle, "
            f"{scan.time_lines} time, {scan.gps_lines} GPS)"
        )
        with open(path, encoding=LOG_ENCODING, errors=LOG_ERRORS) as f:
            return self.read_lines(f, capacity=scan.sequence_capacity)

    def read_lines(self, lines: Iterable[str], capacity: Optional[int] = None) -> LidarLog:
        """Parse an iterable of log lines.

        Without an explicit capacity the lines are materialized and pre-scanned.
        """
        if capacity is None:
            lines = list(lines)
            capacity = prescan_lines(lines).sequence_capacity

        buffer: SampleBuffer[FiringSequence] = SampleBuffer(capacity)
        log = LidarLog()
        pending_start = 0  # first sequence not yet covered by a time line
        current_time: Optional[float] = None

        for line_number, raw_line in enumerate(lines, start=1):
            log.line_count += 1
            line = raw_line.rstrip("\r\n")
            try:
                if line.startswith(ANGLE_TAG):
                    for sequence in parse_angle_line(line, line_number):
                        buffer.append(sequence)
                elif line.startswith(TIME_TAG):
                    current_time = parse_time_line(line, line_number)
                    log.untimed_sequences += self._backfill_times(buffer, pending_start, current_time)
                    pending_start = len(buffer)
                elif line.startswith(GPS_TAG):
                    log.gps.append(parse_gps_line(line, line_number, current_time))
                else:
                    log.ignored_lines += 1
                    logger.debug(f"line {line_number}: ignoring untagged line")
            except GpsSentinelError as e:
                log.errors.append(e)
                if self.gps_policy is ErrorPolicy.ABORT:
                    logger.error(f"GPS ERROR at line {line_number}; abandoning rest of rangefinder log")
                    log.aborted = True
                    break
                logger.warning(f"Skipping malformed GPS line: {e}")
            except MalformedRecord as e:
                log.errors.append(e)
                if self.malformed_policy is ErrorPolicy.ABORT:
                    logger.error(f"Malformed record, aborting rangefinder log: {e}")
                    log.aborted = True
                    break
                logger.warning(f"Skipping malformed record: {e}")
            except BufferExhausted as e:
                logger.error(f"Sequence buffer exhausted at line {line_number}: {e}")
                log.aborted = True
                break

        unstamped = len(buffer) - pending_start
        if unstamped:
            logger.warning(f"{unstamped} firing sequences after the last time line have no timestamp")
            log.untimed_sequences += unstamped

        log.sequences = buffer.to_list()
        return log

    def _backfill_times(self, buffer: SampleBuffer[FiringSequence], pending_start: int,
                        base_time: float) -> int:
        """Stamp the sequences received since the last time line.

        Returns the number of pending sequences left without a timestamp
        because the packet held more than ``sequences_per_packet`` of them.
        """
        pending = len(buffer) - pending_start
        per_packet = self.laser.sequences_per_packet
        for index, sequence in enumerate(buffer.tail(min(pending, per_packet))):
            sequence.timestamp = base_time + self.laser.firing_interval_us * index
        overflow = max(0, pending - per_packet)
        if overflow:
            logger.warning(f"{overflow} firing sequences exceed one packet and stay unstamped")
        return overflow
