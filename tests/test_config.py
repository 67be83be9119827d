"""Tests for run configuration module."""

import json
import math
import os
import tempfile
import pytest

from sensorlog.config import (
    RunConfig,
    SyncConfig,
    OffsetConfig,
    ClassificationConfig,
    LaserConfig,
    ParserConfig,
    load_config,
)
from sensorlog.records import LaserGeometry


class TestSectionDefaults:
    """Defaults match the reference behaviour."""

    def test_sync_defaults(self):
        config = SyncConfig()
        assert config.tolerance_ms == 500.0
        assert config.epoch_alignment_offset_us == 20_000_000.0

    def test_offsets_default_to_zero(self):
        config = OffsetConfig()
        assert (config.lon_offset, config.lat_offset, config.alt_offset) == (0.0, 0.0, 0.0)

    def test_classification_defaults(self):
        config = ClassificationConfig()
        assert config.yaw_flag_threshold_deg == 30.0
        assert config.flag_above == 100
        assert config.flag_below == 0

    def test_laser_defaults(self):
        config = LaserConfig()
        assert config.elevation_deg == [15, -1, 13, 3, 11, -5, 9, -7, 7, -9, 5, -11, 3, -13, 1, -15]
        assert config.firing_interval_us == 55.296
        assert config.channel_interval_us == 2.304
        assert config.sequences_per_packet == 24

    def test_parser_defaults(self):
        config = ParserConfig()
        assert config.gps_error_policy == "abort"
        assert config.malformed_policy == "skip"

    def test_laser_config_lists_are_independent(self):
        a, b = LaserConfig(), LaserConfig()
        a.elevation_deg[0] = 99
        assert b.elevation_deg[0] == 15


class TestRunConfig:
    """Tests for RunConfig."""

    def test_default_nested_configs(self):
        config = RunConfig()
        assert isinstance(config.sync, SyncConfig)
        assert isinstance(config.offsets, OffsetConfig)
        assert isinstance(config.classification, ClassificationConfig)
        assert isinstance(config.laser, LaserConfig)
        assert isinstance(config.parser, ParserConfig)

    def test_to_dict(self):
        d = RunConfig().to_dict()
        assert set(d) == {"sync", "offsets", "classification", "laser", "parser", "paths"}
        assert d["sync"]["tolerance_ms"] == 500.0
        assert d["paths"]["lidar_log"] == "lidarData.txt"

    def test_from_dict_partial(self, sample_config_dict):
        config = RunConfig.from_dict(sample_config_dict)
        assert config.sync.tolerance_ms == 250.0
        assert config.sync.epoch_alignment_offset_us == 0.0
        assert config.offsets.alt_offset == 3.0
        assert config.classification.yaw_flag_threshold_deg == 45.0
        assert config.parser.gps_error_policy == "skip"
        # Defaults should still be set for unspecified values
        assert config.classification.flag_above == 100
        assert config.parser.malformed_policy == "skip"

    def test_unknown_keys_ignored(self):
        config = RunConfig.from_dict({"sync": {"bogus": 1}, "nonsense": {}})
        assert not hasattr(config.sync, "bogus")

    def test_from_file(self, sample_config_dict):
        with tempfile.NamedTemporaryFile(mode="w", suffix=".json", delete=False) as f:
            json.dump(sample_config_dict, f)
            f.flush()

            config = RunConfig.from_file(f.name)
            assert config.offsets.lon_offset == 1.0
            assert config.offsets.lat_offset == 2.0

            os.unlink(f.name)

    def test_save_and_load_roundtrip(self, tmp_path):
        config_path = tmp_path / "nested" / "run.json"

        original = RunConfig()
        original.sync.tolerance_ms = 125.0
        original.paths.output = "cloud.txt"
        original.save(str(config_path))

        loaded = RunConfig.from_file(str(config_path))
        assert loaded.sync.tolerance_ms == 125.0
        assert loaded.paths.output == "cloud.txt"

    def test_geometry_from_config(self):
        geometry = LaserGeometry.from_degrees(RunConfig().laser.elevation_deg)
        assert geometry.elevation(0) == pytest.approx(math.radians(15))
        assert geometry.elevation(15) == pytest.approx(math.radians(-15))

    def test_geometry_needs_sixteen_entries(self):
        with pytest.raises(ValueError):
            LaserGeometry.from_degrees([0.0] * 8)


class TestLoadConfig:
    """Tests for load_config function."""

    def test_load_nonexistent_returns_defaults(self):
        config = load_config("/nonexistent/path.json")
        assert isinstance(config, RunConfig)
        assert config.sync.tolerance_ms == 500.0

    def test_load_existing_file(self, tmp_path):
        path = tmp_path / "run.json"
        path.write_text(json.dumps({"sync": {"tolerance_ms": 42.0}}))
        config = load_config(str(path))
        assert config.sync.tolerance_ms == 42.0
