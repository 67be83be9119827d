"""Tests for the rangefinder log parser."""

import pytest

from sensorlog.config import LaserConfig, ParserConfig
from sensorlog.errors import BufferExhausted, MalformedRecord
from sensorlog.lidar_log import (
    RangefinderLogReader,
    GpsSentinelError,
    parse_angle_line,
    parse_time_line,
    parse_gps_line,
    prescan_lines,
    MEASUREMENT_OFFSET,
    FIELD_WIDTH,
)
from sensorlog.records import SampleBuffer
from simulation.generate_synthetic import format_angle_line, format_time_line, format_gps_line


def block_lines(count, azimuth_start=1000, step=40, returns=None):
    """`count` dual-sequence angle lines with increasing azimuth."""
    returns = returns or ([2.0] * 16, [30.0] * 16)
    return [
        format_angle_line(azimuth_start + step * i, [returns, returns])
        for i in range(count)
    ]


class TestAngleLine:
    """Tests for angle= lines."""

    def test_layout_offsets(self, returns_a):
        line = format_angle_line(12345, [returns_a])
        assert line.startswith("angle=")
        assert float(line[6:17]) == 12345
        assert float(line[MEASUREMENT_OFFSET:MEASUREMENT_OFFSET + FIELD_WIDTH]) == returns_a[0][0]

    def test_single_sequence_block(self, returns_a):
        sequences = parse_angle_line(format_angle_line(12345, [returns_a]))
        assert len(sequences) == 1
        seq = sequences[0]
        assert seq.azimuth == 12345
        assert seq.observed is True
        assert seq.distances == returns_a[0]
        assert seq.reflectivities == returns_a[1]
        assert seq.timestamp is None

    def test_dual_sequence_block(self, returns_a, returns_b):
        first, second = parse_angle_line(format_angle_line(200, [returns_a, returns_b]), 7)
        assert first.azimuth == 200 and first.observed
        assert second.azimuth is None and not second.observed
        assert second.distances == returns_b[0]
        assert second.reflectivities == returns_b[1]
        assert first.line_number == second.line_number == 7

    def test_partial_block_is_malformed(self, returns_a):
        line = format_angle_line(100, [returns_a])[:MEASUREMENT_OFFSET + FIELD_WIDTH * 10]
        with pytest.raises(MalformedRecord) as exc:
            parse_angle_line(line, 3)
        assert exc.value.line_number == 3
        assert exc.value.offset == MEASUREMENT_OFFSET + FIELD_WIDTH * 10

    def test_bad_number_reports_field_offset(self, returns_a):
        line = format_angle_line(100, [returns_a])
        start = MEASUREMENT_OFFSET + FIELD_WIDTH * 4
        line = line[:start] + "   garbage!" + line[start + FIELD_WIDTH:]
        with pytest.raises(MalformedRecord) as exc:
            parse_angle_line(line)
        assert exc.value.offset == start
        assert exc.value.line == line

    def test_azimuth_out_of_range(self, returns_a):
        with pytest.raises(MalformedRecord):
            parse_angle_line(format_angle_line(36000, [returns_a]))

    def test_missing_azimuth(self):
        with pytest.raises(MalformedRecord):
            parse_angle_line("angle=")


class TestTimeLine:

    def test_parse(self):
        assert parse_time_line(format_time_line(580000000)) == 580000000.0

    def test_bad_time(self):
        with pytest.raises(MalformedRecord):
            parse_time_line("time=   notanumber")


class TestGpsLine:

    def test_fields(self):
        sentence = parse_gps_line(format_gps_line(), 12, source_timestamp=42.0)
        assert sentence.utc_time == "120000"
        assert sentence.valid is True
        assert sentence.lat == pytest.approx(4916.4452)
        assert sentence.lat_hemi == "N"
        assert sentence.lon == pytest.approx(12311.118)
        assert sentence.lon_hemi == "W"
        assert sentence.speed_knots == 0.0
        assert sentence.true_course == 0.0
        assert sentence.date_stamp == "191026"
        assert sentence.variation == pytest.approx(16.4)
        assert sentence.variation_hemi == "E"
        assert sentence.checksum.startswith("A*")
        assert sentence.source_timestamp == 42.0

    def test_decimal_degrees(self):
        sentence = parse_gps_line(format_gps_line())
        assert sentence.latitude_deg == pytest.approx(49 + 16.4452 / 60)
        assert sentence.longitude_deg == pytest.approx(-(123 + 11.118 / 60))

    def test_void_fix(self):
        assert parse_gps_line(format_gps_line(valid=False)).valid is False

    def test_missing_sentinel(self):
        with pytest.raises(GpsSentinelError):
            parse_gps_line("GPS= garbage after the tag")

    def test_short_sentence(self):
        with pytest.raises(MalformedRecord) as exc:
            parse_gps_line(format_gps_line()[:40])
        assert not isinstance(exc.value, GpsSentinelError)


class TestTimestampBackfill:
    """Time lines stamp the sequences received since the previous one."""

    def test_full_packet(self):
        lines = block_lines(12) + [format_time_line(1_000_000)]
        log = RangefinderLogReader().read_lines(lines)
        assert len(log.sequences) == 24
        assert log.untimed_sequences == 0
        for i, seq in enumerate(log.sequences):
            assert seq.timestamp == pytest.approx(1_000_000 + 55.296 * i)

    def test_channel_times(self):
        lines = block_lines(12) + [format_time_line(1_000_000)]
        last = RangefinderLogReader().read_lines(lines).sequences[23]
        assert last.channel_time(15) == pytest.approx(1_000_000 + 55.296 * 23 + 2.304 * 15)
        assert last.sample(15).timestamp == pytest.approx(last.channel_time(15))

    def test_second_packet_starts_from_zero(self):
        lines = (block_lines(12) + [format_time_line(1_000_000)]
                 + block_lines(12) + [format_time_line(1_001_327)])
        log = RangefinderLogReader().read_lines(lines)
        assert log.sequences[24].timestamp == 1_001_327
        assert log.sequences[47].timestamp == pytest.approx(1_001_327 + 55.296 * 23)

    def test_overfull_packet_leaves_oldest_unstamped(self):
        lines = block_lines(13) + [format_time_line(1_000_000)]
        log = RangefinderLogReader().read_lines(lines)
        assert log.untimed_sequences == 2
        assert log.sequences[0].timestamp is None
        assert log.sequences[1].timestamp is None
        assert log.sequences[2].timestamp == 1_000_000

    def test_short_packet(self):
        lines = block_lines(2) + [format_time_line(500)]
        log = RangefinderLogReader().read_lines(lines)
        assert [s.timestamp for s in log.sequences] == pytest.approx(
            [500, 500 + 55.296, 500 + 2 * 55.296, 500 + 3 * 55.296]
        )

    def test_trailing_sequences_counted_untimed(self):
        lines = block_lines(12) + [format_time_line(0)] + block_lines(3)
        log = RangefinderLogReader().read_lines(lines)
        assert log.untimed_sequences == 6
        assert len(log.timed_sequences) == 24

    def test_custom_intervals(self):
        laser = LaserConfig(firing_interval_us=100.0, sequences_per_packet=4)
        lines = block_lines(2) + [format_time_line(0)]
        log = RangefinderLogReader(laser=laser).read_lines(lines)
        assert [s.timestamp for s in log.sequences] == [0.0, 100.0, 200.0, 300.0]


class TestErrorPolicies:

    def test_gps_error_aborts_by_default(self):
        lines = block_lines(1) + ["GPS= not a sentence"] + block_lines(1)
        log = RangefinderLogReader().read_lines(lines)
        assert log.aborted is True
        assert len(log.sequences) == 2
        assert len(log.errors) == 1
        assert log.errors[0].line_number == 2

    def test_gps_error_skip_policy(self):
        lines = block_lines(1) + ["GPS= not a sentence"] + block_lines(1)
        log = RangefinderLogReader(parser=ParserConfig(gps_error_policy="skip")).read_lines(lines)
        assert log.aborted is False
        assert len(log.sequences) == 4
        assert len(log.errors) == 1

    def test_gps_sentence_gets_latest_time(self):
        lines = block_lines(1) + [format_time_line(777), format_gps_line()]
        log = RangefinderLogReader().read_lines(lines)
        assert len(log.gps) == 1
        assert log.gps[0].source_timestamp == 777

    def test_malformed_angle_line_skipped(self):
        lines = block_lines(1) + ["angle=   oops"] + block_lines(1)
        log = RangefinderLogReader().read_lines(lines)
        assert log.aborted is False
        assert len(log.sequences) == 4
        assert len(log.errors) == 1

    def test_malformed_abort_policy(self):
        lines = block_lines(1) + ["angle=   oops"] + block_lines(1)
        log = RangefinderLogReader(parser=ParserConfig(malformed_policy="abort")).read_lines(lines)
        assert log.aborted is True
        assert len(log.sequences) == 2

    def test_unknown_policy_rejected(self):
        with pytest.raises(ValueError):
            RangefinderLogReader(parser=ParserConfig(gps_error_policy="ignore"))

    def test_untagged_lines_ignored(self):
        lines = ["# comment"] + block_lines(1) + [""]
        log = RangefinderLogReader().read_lines(lines)
        assert log.ignored_lines == 2
        assert len(log.sequences) == 2
        assert log.line_count == 3


class TestPrescanAndBuffer:

    def test_prescan_counts(self):
        lines = block_lines(3) + [format_time_line(0), format_gps_line(), "junk"]
        scan = prescan_lines(lines)
        assert scan.lines == 6
        assert scan.angle_lines == 3
        assert scan.time_lines == 1
        assert scan.gps_lines == 1
        assert scan.sequence_capacity == 6

    def test_undersized_buffer_aborts(self):
        log = RangefinderLogReader().read_lines(block_lines(3), capacity=4)
        assert log.aborted is True
        assert len(log.sequences) == 4

    def test_buffer_bounds(self):
        buffer = SampleBuffer(2)
        assert buffer.append("a") == 0
        assert buffer.append("b") == 1
        with pytest.raises(BufferExhausted):
            buffer.append("c")
        with pytest.raises(BufferExhausted):
            buffer[2]
        assert buffer.tail(5) == ["a", "b"]
        assert buffer.tail(0) == []

    def test_read_from_file(self, tmp_path):
        path = tmp_path / "lidarData.txt"
        path.write_text("\n".join(block_lines(12) + [format_time_line(10)]) + "\n")
        log = RangefinderLogReader().read(path)
        assert len(log.sequences) == 24
        assert log.line_count == 13
        assert log.untimed_sequences == 0

    def test_windows_line_endings(self, tmp_path):
        path = tmp_path / "lidarData.txt"
        path.write_bytes(("\r\n".join(block_lines(1) + [format_time_line(10)]) + "\r\n").encode())
        log = RangefinderLogReader().read(path)
        assert len(log.sequences) == 2
        assert log.errors == []


class TestDamagedInput:

    def test_non_finite_distance_rejected(self, returns_a):
        line = format_angle_line(100, [returns_a])
        start = MEASUREMENT_OFFSET + FIELD_WIDTH * 2
        line = line[:start] + "nan".rjust(FIELD_WIDTH) + line[start + FIELD_WIDTH:]
        with pytest.raises(MalformedRecord) as exc:
            parse_angle_line(line)
        assert exc.value.offset == start

    def test_non_finite_time_rejected(self):
        with pytest.raises(MalformedRecord):
            parse_time_line("time=        inf")

    def test_undecodable_line_ignored(self, tmp_path):
        path = tmp_path / "lidarData.txt"
        body = "\n".join(block_lines(1) + [format_time_line(10)]).encode()
        path.write_bytes(b"\xff\xfe junk line\n" + body + b"\n")
        log = RangefinderLogReader().read(path)
        assert len(log.sequences) == 2
        assert log.ignored_lines == 1
        assert log.errors == []

    def test_undecodable_byte_inside_measurement(self, tmp_path):
        path = tmp_path / "lidarData.txt"
        damaged = bytearray(block_lines(1)[0].encode())
        damaged[MEASUREMENT_OFFSET + FIELD_WIDTH - 1] = 0xFF
        body = [bytes(damaged)] + [line.encode() for line in block_lines(1, azimuth_start=2000)]
        path.write_bytes(b"\n".join(body + [format_time_line(10).encode()]) + b"\n")
        log = RangefinderLogReader().read(path)
        assert len(log.errors) == 1
        assert log.errors[0].line_number == 1
        assert len(log.sequences) == 2
