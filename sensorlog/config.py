"""Configuration settings for a georeferencing run."""

from dataclasses import dataclass, field, asdict
from typing import List, Optional
import json
import os

from .records import DEFAULT_ELEVATION_DEG


@dataclass
class SyncConfig:
    """Clock synchronization settings."""
    tolerance_ms: float = 500.0  # accept a pairing only if strictly closer than this
    epoch_alignment_offset_us: float = 20_000_000.0  # rangefinder clock runs ~20 s behind the IMU


@dataclass
class OffsetConfig:
    """Position correction added after rotation."""
    lon_offset: float = 0.0
    lat_offset: float = 0.0
    alt_offset: float = 0.0


@dataclass
class ClassificationConfig:
    """Yaw-based point flag."""
    yaw_flag_threshold_deg: float = 30.0
    flag_above: int = 100
    flag_below: int = 0


@dataclass
class LaserConfig:
    """VLP-16 geometry and firing timing."""
    elevation_deg: List[float] = field(default_factory=lambda: list(DEFAULT_ELEVATION_DEG))
    firing_interval_us: float = 55.296  # between firing sequences
    channel_interval_us: float = 2.304  # between channels within a sequence
    sequences_per_packet: int = 24


@dataclass
class ParserConfig:
    """Malformed-line policies: "abort" or "skip"."""
    gps_error_policy: str = "abort"
    malformed_policy: str = "skip"


@dataclass
class PathConfig:
    """Input and output locations."""
    lidar_log: str = "lidarData.txt"
    imu_log: str = "IMU.txt"
    output: str = "trial_.txt"
    gps_output: Optional[str] = None


@dataclass
class RunConfig:
    """Main run configuration."""
    sync: SyncConfig = field(default_factory=SyncConfig)
    offsets: OffsetConfig = field(default_factory=OffsetConfig)
    classification: ClassificationConfig = field(default_factory=ClassificationConfig)
    laser: LaserConfig = field(default_factory=LaserConfig)
    parser: ParserConfig = field(default_factory=ParserConfig)
    paths: PathConfig = field(default_factory=PathConfig)

    SECTIONS = ("sync", "offsets", "classification", "laser", "parser", "paths")

    @classmethod
    def from_dict(cls, data: dict) -> "RunConfig":
        """Build a config from a (possibly partial) dictionary."""
        config = cls()
        for section in cls.SECTIONS:
            if section not in data:
                continue
            target = getattr(config, section)
            for k, v in data[section].items():
                if hasattr(target, k):
                    setattr(target, k, v)
        return config

    @classmethod
    def from_file(cls, path: str) -> "RunConfig":
        """Load configuration from JSON file."""
        with open(path) as f:
            data = json.load(f)
        return cls.from_dict(data)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {section: asdict(getattr(self, section)) for section in self.SECTIONS}

    def save(self, path: str):
        """Save configuration to JSON file."""
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)


# Default config file locations
DEFAULT_CONFIG_PATHS = [
    "/etc/georef/run.json",
    os.path.expanduser("~/.config/georef/run.json"),
    "./georef_config.json",
]


def load_config(path: Optional[str] = None) -> RunConfig:
    """Load configuration from file or return defaults."""
    if path and os.path.exists(path):
        return RunConfig.from_file(path)

    for p in DEFAULT_CONFIG_PATHS:
        if os.path.exists(p):
            return RunConfig.from_file(p)

    return RunConfig()
