"""Clock synchronization between the rangefinder and the IMU.

Both streams are scanned forward once. For each consecutive pair of IMU
poses (A, B) the rangefinder cursor is moved past everything before A, then
every sample in [A, B) is paired with whichever pose is closer in time,
provided the gap is strictly below the tolerance.

Timestamps are compared as milliseconds past the start of the hour: the
rangefinder counts microseconds past the hour while the IMU logs epoch
milliseconds. An alignment offset corrects the rangefinder's base epoch.
Both streams are unwrapped across the top of the hour, with the rangefinder
anchored to the first pose.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

from sensorlog.config import SyncConfig
from sensorlog.errors import BufferExhausted
from sensorlog.records import CHANNEL_COUNT, FiringSequence, PoseSample, RangeSample

logger = logging.getLogger(__name__)

MS_PER_HOUR = 3_600_000


def imu_ms_past_hour(timestamp_ms: float) -> float:
    """Round an epoch-millisecond timestamp and reduce it to the hour."""
    return float(round(timestamp_ms) % MS_PER_HOUR)


def lidar_ms_past_hour(timestamp_us: float, offset_us: float = 0.0) -> float:
    """Convert a rangefinder timestamp to milliseconds past the hour."""
    return ((timestamp_us + offset_us) / 1000.0) % MS_PER_HOUR


class HourUnwrapper:
    """Keeps milliseconds-past-the-hour times continuous across the top of the hour.

    Each time is shifted by whole hours to land closest to the previous one,
    so a stream that crosses the hour keeps increasing.
    """

    def __init__(self, reference: Optional[float] = None):
        self.reference = reference

    def __call__(self, t_ms: float) -> float:
        if math.isnan(t_ms):
            return t_ms
        if self.reference is not None:
            t_ms += MS_PER_HOUR * round((self.reference - t_ms) / MS_PER_HOUR)
        self.reference = t_ms
        return t_ms


class SampleCursor:
    """Forward-only cursor over the channels of a firing-sequence buffer."""

    def __init__(self, sequences: Sequence[FiringSequence], channel_interval_us: float = 2.304):
        self._sequences = sequences
        self._channel_interval_us = channel_interval_us
        self.row = 0
        self.channel = 0

    @property
    def position(self) -> Tuple[int, int]:
        return self.row, self.channel

    def exhausted(self) -> bool:
        return self.row >= len(self._sequences)

    def peek(self) -> RangeSample:
        """Sample under the cursor."""
        if self.exhausted():
            raise BufferExhausted(f"cursor past last of {len(self._sequences)} sequences")
        return self._sequences[self.row].sample(self.channel, self._channel_interval_us)

    def advance(self) -> None:
        """Move to the next channel, wrapping to the next sequence after 16."""
        if self.exhausted():
            raise BufferExhausted(f"cursor past last of {len(self._sequences)} sequences")
        self.channel += 1
        if self.channel >= CHANNEL_COUNT:
            self.row += 1
            self.channel = 0


@dataclass
class Pairing:
    """A rangefinder sample matched to its nearest pose."""
    sample: RangeSample
    pose: PoseSample
    pose_index: int
    time_delta_ms: float


@dataclass
class SyncStats:
    """Counts from one synchronization pass."""
    paired: int = 0
    zero_distance: int = 0
    outside_tolerance: int = 0
    before_first_pose: int = 0
    untimed: int = 0


class ClockSynchronizer:
    """Pairs rangefinder samples with IMU poses in a single forward scan."""

    def __init__(self, config: Optional[SyncConfig] = None, channel_interval_us: float = 2.304):
        self.config = config or SyncConfig()
        self.channel_interval_us = channel_interval_us
        self.stats = SyncStats()

    def sample_time(self, sample: RangeSample) -> float:
        return lidar_ms_past_hour(sample.timestamp, self.config.epoch_alignment_offset_us)

    @staticmethod
    def pose_time(pose: PoseSample) -> float:
        return imu_ms_past_hour(pose.timestamp)

    @staticmethod
    def nearest(t: float, t_a: float, t_b: float) -> Tuple[int, float]:
        """Pick the closer of two pose times; ties go to A.

        Returns:
            Tuple of (0 for A or 1 for B, absolute gap in ms)
        """
        gap_a = abs(t_a - t)
        gap_b = abs(t_b - t)
        if gap_a <= gap_b:
            return 0, gap_a
        return 1, gap_b

    def pose_times(self, poses: Sequence[PoseSample]) -> List[float]:
        """Pose times past the hour, unwrapped so they keep increasing."""
        clock = HourUnwrapper()
        return [clock(self.pose_time(pose)) for pose in poses]

    def accepts(self, gap_ms: float) -> bool:
        return gap_ms < self.config.tolerance_ms

    def pairs(self, sequences: Sequence[FiringSequence],
              poses: Sequence[PoseSample]) -> Iterator[Pairing]:
        """Yield each accepted pairing in rangefinder order.

        Zero-distance samples and samples outside the tolerance produce
        nothing. The scan stops when either stream runs out.
        """
        self.stats = SyncStats()
        cursor = SampleCursor(sequences, self.channel_interval_us)
        pose_times = self.pose_times(poses)
        sample_clock = HourUnwrapper(pose_times[0] if pose_times else None)

        try:
            for imu_row in range(len(poses) - 1):
                t_a = pose_times[imu_row]
                t_b = pose_times[imu_row + 1]

                sample = cursor.peek()
                t = sample_clock(self.sample_time(sample))
                while math.isnan(t) or t < t_a:
                    if math.isnan(t):
                        self.stats.untimed += 1
                    elif imu_row == 0:
                        self.stats.before_first_pose += 1
                    cursor.advance()
                    sample = cursor.peek()
                    t = sample_clock(self.sample_time(sample))

                while t_a <= t < t_b:
                    if not sample.is_return:
                        self.stats.zero_distance += 1
                    else:
                        choice, gap = self.nearest(t, t_a, t_b)
                        if self.accepts(gap):
                            self.stats.paired += 1
                            yield Pairing(
                                sample=sample,
                                pose=poses[imu_row + choice],
                                pose_index=imu_row + choice,
                                time_delta_ms=gap,
                            )
                        else:
                            self.stats.outside_tolerance += 1
                            logger.debug(
                                f"sample at {t:.3f} ms is {gap:.3f} ms from nearest pose; skipped"
                            )
                    cursor.advance()
                    sample = cursor.peek()
                    t = sample_clock(self.sample_time(sample))
        except BufferExhausted:
            logger.debug(f"rangefinder cursor exhausted at {cursor.position}")

        logger.info(
            f"Synchronized {self.stats.paired} samples "
            f"({self.stats.zero_distance} zero-distance, "
            f"{self.stats.outside_tolerance} outside tolerance)"
        )

    def synchronize(self, sequences: Sequence[FiringSequence],
                    poses: Sequence[PoseSample]) -> List[Pairing]:
        """Run a full pass and return every pairing."""
        return list(self.pairs(sequences, poses))
