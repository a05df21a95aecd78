#!/usr/bin/env python
"""
Unit tests for the peak model, configuration and chromosome partitioner.

Run with pytest: pytest tests/test_peaks.py
"""

from fractions import Fraction

import pytest

from gipfelkreuzer.errors import InvalidConfigurationError
from gipfelkreuzer.peaks import (
    DEFAULT_MAX_MERGE_ITERATIONS,
    DEFAULT_OUTPUT_COLUMNS,
    ConsensusAlgorithm,
    ConsensusConfig,
    ConsensusPeak,
    RawPeak,
    midpoint,
    partition_peaks,
    round_half_down,
)


class TestRounding:
    """Tests for the rounding helpers."""

    def test_round_half_down(self):
        """Exact halves round down, everything else to the nearest integer."""
        assert round_half_down(Fraction(5, 2)) == 2
        assert round_half_down(Fraction(7, 2)) == 3
        assert round_half_down(Fraction(13, 5)) == 3
        assert round_half_down(Fraction(12, 5)) == 2
        assert round_half_down(4) == 4

    def test_midpoint_stays_inside_interval(self):
        """The midpoint of [start, end) is always smaller than end."""
        assert midpoint(0, 50) == 25
        assert midpoint(100, 201) == 150
        assert midpoint(10, 11) == 10
        for start in range(0, 20):
            for end in range(start + 1, start + 6):
                assert start <= midpoint(start, end) < end


class TestRawPeak:
    """Tests for RawPeak construction and validation."""

    def test_summit_from_offset(self):
        peak = RawPeak.from_interval("chr1", 100, 200, summit_offset=20)
        assert peak.summit == 120
        assert peak.weight == 1.0
        assert peak.length == 100

    def test_summit_fallback_to_midpoint(self):
        peak = RawPeak.from_interval("chr1", 100, 200)
        assert peak.summit == 150

    @pytest.mark.parametrize("start, end, summit", [
        (-1, 10, 5),   # negative start
        (10, 10, 10),  # empty interval
        (20, 10, 15),  # end before start
        (10, 20, 20),  # summit at the exclusive end
        (10, 20, 9),   # summit before start
    ])
    def test_invalid_coordinates(self, start, end, summit):
        with pytest.raises(ValueError):
            RawPeak("chr1", start, end, summit)

    def test_invalid_weight(self):
        with pytest.raises(ValueError):
            RawPeak("chr1", 10, 20, 15, weight=-1.0)
        with pytest.raises(ValueError):
            RawPeak("chr1", 10, 20, 15, weight=float("nan"))

    def test_peaks_are_immutable(self):
        peak = RawPeak("chr1", 10, 20, 15)
        with pytest.raises(AttributeError):
            peak.start = 0


class TestConsensusPeak:
    """Tests for ConsensusPeak validation and conversion."""

    def test_to_raw_peak_uses_member_count_as_weight(self):
        consensus = ConsensusPeak("chr2", 100, 250, 175, member_count=3, weight=3.0)
        raw = consensus.to_raw_peak()
        assert raw == RawPeak("chr2", 100, 250, 175, 3.0)

    def test_invalid_member_count(self):
        with pytest.raises(ValueError):
            ConsensusPeak("chr1", 0, 10, 5, member_count=0)

    def test_summit_outside_region(self):
        with pytest.raises(ValueError):
            ConsensusPeak("chr1", 0, 10, 10)


class TestConsensusConfig:
    """Tests for configuration defaults and validation."""

    def test_defaults(self):
        config = ConsensusConfig()
        assert config.algorithm is ConsensusAlgorithm.GIPFELKREUZER
        assert config.max_merge_iterations == DEFAULT_MAX_MERGE_ITERATIONS
        assert config.output_columns == DEFAULT_OUTPUT_COLUMNS
        assert config.merge_adjacent is True
        assert config.min_peaks_per_consensus == 1
        assert config.threads == 1

    def test_algorithm_names_are_case_insensitive(self):
        assert ConsensusConfig(algorithm="NAIVE").algorithm is ConsensusAlgorithm.NAIVE
        assert ConsensusConfig(algorithm="gipfelkreuzer").algorithm is ConsensusAlgorithm.GIPFELKREUZER

    def test_unknown_algorithm(self):
        with pytest.raises(InvalidConfigurationError, match="Unknown consensus algorithm"):
            ConsensusConfig(algorithm="median")

    @pytest.mark.parametrize("field, value", [
        ("max_merge_iterations", 0),
        ("max_merge_iterations", -3),
        ("max_merge_iterations", 1.5),
        ("output_columns", 2),
        ("min_peaks_per_consensus", 0),
        ("threads", 0),
    ])
    def test_out_of_range_values(self, field, value):
        with pytest.raises(InvalidConfigurationError):
            ConsensusConfig(**{field: value})

    def test_configuration_errors_are_value_errors(self):
        with pytest.raises(ValueError):
            ConsensusConfig(max_merge_iterations=0)


class TestPartitionPeaks:
    """Tests for the chromosome partitioner."""

    def test_groups_and_sorts(self):
        peaks = [
            RawPeak("chr2", 50, 60, 55),
            RawPeak("chr1", 100, 200, 150),
            RawPeak("chr1", 100, 150, 120),
            RawPeak("chr10", 0, 10, 5),
            RawPeak("chr1", 100, 150, 110),
            RawPeak("chr1", 10, 20, 15),
        ]
        partitions = partition_peaks(peaks)

        assert list(partitions) == ["chr1", "chr10", "chr2"]
        assert [(p.start, p.end, p.summit) for p in partitions["chr1"]] == [
            (10, 20, 15),
            (100, 150, 110),
            (100, 150, 120),
            (100, 200, 150),
        ]
        assert len(partitions["chr2"]) == 1

    def test_order_independent(self):
        peaks = [RawPeak("chr1", start, start + 30, start + 10) for start in (90, 10, 50, 10)]
        assert partition_peaks(peaks) == partition_peaks(list(reversed(peaks)))

    def test_empty_input(self):
        assert partition_peaks([]) == {}


if __name__ == "__main__":
    pytest.main()
