"""Record builders shared by the test modules."""

from sensorlog.records import FiringSequence, PoseSample

# An hour boundary in epoch milliseconds
HOUR_MS = 472_222 * 3_600_000


def make_sequence(timestamp_us, distances=None, azimuth=0.0, observed=True):
    """Build a firing sequence; unspecified channels get zero distance."""
    distances = list(distances or [])
    distances += [0.0] * (16 - len(distances))
    return FiringSequence(
        distances=distances,
        reflectivities=[50.0] * 16,
        azimuth=azimuth if observed else None,
        timestamp=timestamp_us,
        observed=observed,
    )


def make_pose(ms_into_hour, roll=0.0, pitch=0.0, yaw=0.0):
    """Build a pose whose timestamp falls `ms_into_hour` past HOUR_MS."""
    return PoseSample(
        lat=49.0, lon=-123.0, alt=70.0,
        qw=1.0, qx=0.0, qy=0.0, qz=0.0,
        roll=roll, pitch=pitch, yaw=yaw,
        timestamp=HOUR_MS + ms_into_hour,
    )
