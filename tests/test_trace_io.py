"""Unit tests for trace_io.py module."""

import pytest

from maybenot_defenses.config import SynthesisConfig
from maybenot_defenses.trace_io import (
    ReferenceTrace,
    TraceFormatError,
    load_reference_trace,
    parse_trace_lines,
)


class TestReferenceTrace:
    """Test burst extraction and sending roles."""

    def test_direction_switch(self):
        trace = ReferenceTrace.from_values([3, 2, 0, 4, 0])
        assert trace.values == (3, 2, 0, 4, 0)
        assert [burst.cells for burst in trace.bursts] == [3, 2, 4]
        assert [burst.position for burst in trace.bursts] == [0, 1, 3]
        assert [burst.relay_sending for burst in trace.bursts] == [False, True, True]
        assert trace.direction_switches == (2,)
        assert trace.num_bursts == 3
        assert trace.role_alternations == 2

    def test_client_sends_first(self):
        trace = ReferenceTrace.from_values([5, 5, 5])
        assert [burst.relay_sending for burst in trace.bursts] == [False, True, False]
        assert trace.direction_switches == ()

    def test_leading_zero(self):
        trace = ReferenceTrace.from_values([0, 5])
        assert trace.bursts[0].relay_sending is True
        assert trace.direction_switches == (0,)

    def test_consecutive_zeros_cancel(self):
        trace = ReferenceTrace.from_values([1, 0, 0, 1])
        assert [burst.relay_sending for burst in trace.bursts] == [False, True]
        assert trace.direction_switches == (1, 2)

    def test_no_bursts(self):
        trace = ReferenceTrace.from_values([0, 0])
        assert trace.num_bursts == 0
        assert trace.role_alternations == 0
        assert trace.direction_switches == ()

    def test_negative_value(self):
        with pytest.raises(ValueError, match="non-negative"):
            ReferenceTrace.from_values([1, -2])


class TestParseTraceLines:
    """Test line parsing and the burst cutoff."""

    def test_parses_integers(self):
        trace = parse_trace_lines(["3\n", "2\n", "0\n", "4\n"])
        assert trace.values == (3, 2, 0, 4)

    def test_blank_lines_skipped(self):
        trace = parse_trace_lines(["3", "", "   ", "2"])
        assert trace.values == (3, 2)

    def test_cutoff_counts_nonzero_bursts(self):
        trace = parse_trace_lines(["1", "0", "2", "3"], cutoff=2)
        assert trace.values == (1, 0, 2)
        assert trace.num_bursts == 2

    def test_default_cutoff(self):
        trace = parse_trace_lines(["1"] * 8005)
        assert trace.num_bursts == 8000

    def test_malformed_line(self):
        with pytest.raises(TraceFormatError, match="Line 2 is not formatted properly"):
            parse_trace_lines(["3", "abc"])
        with pytest.raises(TraceFormatError, match="Line 1 is not formatted properly"):
            parse_trace_lines(["1.5"])

    @pytest.mark.parametrize("text", ["1_000", "+5", "٣", "²", "4294967296", "0x10", "5 cells"])
    def test_only_plain_unsigned_32_bit_counts(self, text):
        with pytest.raises(TraceFormatError, match="Line 2 is not formatted properly"):
            parse_trace_lines(["3", text])

    def test_largest_count_accepted(self):
        assert parse_trace_lines(["4294967295"]).values == (4294967295,)

    def test_negative_line(self):
        with pytest.raises(TraceFormatError, match="negative cell count"):
            parse_trace_lines(["3", "-1"])

    @pytest.mark.parametrize("lines", [[], [""], ["0", "0"]])
    def test_no_bursts(self, lines):
        with pytest.raises(TraceFormatError, match="no non-zero bursts"):
            parse_trace_lines(lines)

    def test_error_is_value_error(self):
        assert issubclass(TraceFormatError, ValueError)


class TestLoadReferenceTrace:
    """Test reading trace files."""

    def test_load(self, write_trace):
        path = write_trace([3, 2, 0, 4, 0])
        trace = load_reference_trace(path)
        assert trace.num_bursts == 3

    def test_accepts_string_path(self, write_trace):
        path = write_trace([7])
        assert load_reference_trace(str(path)).values == (7,)

    def test_config_cutoff(self, write_trace):
        path = write_trace([1, 2, 3, 4])
        trace = load_reference_trace(path, SynthesisConfig(trace_cutoff=3))
        assert trace.values == (1, 2, 3)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Reference trace not found"):
            load_reference_trace(tmp_path / "missing.txt")

    def test_directory(self, tmp_path):
        with pytest.raises(ValueError, match="not a file"):
            load_reference_trace(tmp_path)
