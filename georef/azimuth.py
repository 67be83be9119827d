"""Azimuth interpolation for firing sequences without a transmitted bearing.

The VLP-16 reports one azimuth per data block of two firing sequences. The
second sequence's azimuth is the midpoint of the observed azimuths on either
side of it, taking the 0/360 degree rollover into account.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from sensorlog.records import FULL_CIRCLE, FiringSequence

logger = logging.getLogger(__name__)


def interpolate_azimuth(a1: float, a3: float) -> float:
    """Midpoint of two observed azimuths, in centidegrees.

    Args:
        a1: Azimuth two sequences back
        a3: Azimuth of the previous sequence

    Returns:
        Azimuth in [0, 36000)
    """
    if a3 < a1:
        a3 += FULL_CIRCLE
    a2 = (a1 + a3) / 2
    if a2 >= FULL_CIRCLE:
        a2 -= FULL_CIRCLE
    return a2


@dataclass
class AzimuthInterpolator:
    """Fills missing azimuths in a buffer of firing sequences, in place."""

    min_sequences: int = 3

    def fill(self, sequences: Sequence[FiringSequence]) -> int:
        """Interpolate every gap bracketed by two observed azimuths.

        Observed azimuths are never overwritten. Fewer than three sequences
        leaves the buffer unchanged.

        Returns:
            Number of sequences that received an interpolated azimuth
        """
        if len(sequences) < self.min_sequences:
            return 0

        filled = 0
        for k in range(1, len(sequences) - 1):
            target = sequences[k]
            if target.observed or target.azimuth is not None:
                continue
            before, after = sequences[k - 1], sequences[k + 1]
            if not (before.observed and after.observed):
                continue
            target.azimuth = interpolate_azimuth(before.azimuth, after.azimuth)
            target.interpolated = True
            filled += 1

        missing = self.missing(sequences)
        if missing:
            logger.debug(f"{missing} firing sequences have no bracketing azimuths")
        return filled

    def missing(self, sequences: Sequence[FiringSequence]) -> int:
        """Count sequences still lacking an azimuth."""
        return sum(1 for s in sequences if s.azimuth is None)
