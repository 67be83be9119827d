"""Pytest configuration and shared fixtures."""

import pytest
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


@pytest.fixture
def sample_config():
    """Create a default RunConfig."""
    from sensorlog.config import RunConfig
    return RunConfig()


@pytest.fixture
def aligned_config():
    """RunConfig with no clock offset, so rangefinder µs map straight to ms."""
    from sensorlog.config import RunConfig
    config = RunConfig()
    config.sync.epoch_alignment_offset_us = 0.0
    return config


@pytest.fixture
def sample_config_dict():
    """Sample configuration as dictionary."""
    return {
        "sync": {
            "tolerance_ms": 250.0,
            "epoch_alignment_offset_us": 0.0,
        },
        "offsets": {
            "lon_offset": 1.0,
            "lat_offset": 2.0,
            "alt_offset": 3.0,
        },
        "classification": {
            "yaw_flag_threshold_deg": 45.0,
        },
        "parser": {
            "gps_error_policy": "skip",
        },
    }


@pytest.fixture
def returns_a():
    """Distances/reflectivities for one firing sequence."""
    distances = [1.0 + 0.5 * i for i in range(16)]
    reflectivities = [float(10 + i) for i in range(16)]
    return distances, reflectivities


@pytest.fixture
def returns_b():
    distances = [20.0 - 0.25 * i for i in range(16)]
    reflectivities = [float(100 - i) for i in range(16)]
    return distances, reflectivities
