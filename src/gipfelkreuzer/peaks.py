#!/usr/bin/env python
"""
Peak model for consensus peak generation.

This module defines the value types shared by the loader, the consensus
algorithms and the writer:

- RawPeak: a single peak call of one sample, read-only once loaded
- ConsensusPeak: a representative region aggregated from one or more raw peaks
- ConsensusConfig: the immutable run configuration threaded through every call

It also provides the chromosome partitioner, which establishes the
(start, end, summit) total order that all later tie-breaking relies on.

Coordinates are 0-based and half-open ([start, end)), as in BED files.
"""

import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from fractions import Fraction
from typing import Dict, Iterable, List, Optional, Tuple, Union

from gipfelkreuzer.errors import InvalidConfigurationError

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_MAX_MERGE_ITERATIONS = 20
DEFAULT_OUTPUT_COLUMNS = 10
MIN_OUTPUT_COLUMNS = 3

_HALF = Fraction(1, 2)


class ConsensusAlgorithm(str, Enum):
    """The closed set of consensus peak strategies."""
    GIPFELKREUZER = "gipfelkreuzer"
    NAIVE = "naive"

    @classmethod
    def parse(cls, value: Union[str, "ConsensusAlgorithm"]) -> "ConsensusAlgorithm":
        """Resolve an algorithm name (case-insensitive) to its enum member."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(member.value for member in cls)
            raise InvalidConfigurationError(
                f"Unknown consensus algorithm \"{value}\"; expected one of: {choices}"
            ) from None


def round_half_down(value: Union[int, Fraction]) -> int:
    """
    Round to the nearest integer, resolving exact halves towards minus infinity.

    Exact for int and Fraction input. Applied to the mean position of a
    half-open interval the result always stays below the end coordinate.
    """
    return math.ceil(value - _HALF)


def midpoint(start: int, end: int) -> int:
    """Mean position of [start, end), rounded half down."""
    return round_half_down(Fraction(start + end, 2))


@dataclass(frozen=True)
class RawPeak:
    """
    A single peak call.

    Args:
        chromosome: Name of the chromosome / contig
        start: 0-based inclusive start coordinate
        end: Exclusive end coordinate
        summit: Absolute coordinate of the summit, start <= summit < end
        weight: Non-negative weight used for the summit centroid

    Raises:
        ValueError: If the coordinates violate the interval invariants
    """
    chromosome: str
    start: int
    end: int
    summit: int
    weight: float = 1.0

    def __post_init__(self):
        if self.start < 0:
            raise ValueError(f"The start coordinate {self.start} is negative.")
        if self.end <= self.start:
            raise ValueError(
                f"The end coordinate {self.end} is not greater than the start coordinate {self.start}."
            )
        if not self.start <= self.summit < self.end:
            raise ValueError(
                f"The summit {self.summit} is not within the peak region [{self.start}, {self.end})."
            )
        if not math.isfinite(self.weight) or self.weight < 0:
            raise ValueError(f"The weight {self.weight} is not a finite non-negative number.")

    @classmethod
    def from_interval(cls, chromosome: str, start: int, end: int,
                      summit_offset: Optional[int] = None, weight: float = 1.0) -> "RawPeak":
        """
        Create a peak from interval coordinates and an optional summit offset.

        Without an offset the summit falls back to the mean position of the
        interval.
        """
        summit = start + summit_offset if summit_offset is not None else midpoint(start, end)
        return cls(chromosome, start, end, summit, weight)

    @property
    def length(self) -> int:
        return self.end - self.start

    @property
    def sort_key(self) -> Tuple[int, int, int, float]:
        return (self.start, self.end, self.summit, self.weight)


@dataclass(frozen=True)
class ConsensusPeak:
    """
    A consensus region aggregated from one or more raw peaks.

    member_count is the number of raw peaks that contributed to the region,
    weight their summed weight.
    """
    chromosome: str
    start: int
    end: int
    summit: int
    member_count: int = 1
    weight: float = 1.0

    def __post_init__(self):
        if self.end <= self.start:
            raise ValueError(
                f"The end coordinate {self.end} is not greater than the start coordinate {self.start}."
            )
        if not self.start <= self.summit < self.end:
            raise ValueError(
                f"The summit {self.summit} is not within the peak region [{self.start}, {self.end})."
            )
        if self.member_count < 1:
            raise ValueError(f"A consensus peak needs at least one member, got {self.member_count}.")

    @property
    def length(self) -> int:
        return self.end - self.start

    @property
    def sort_key(self) -> Tuple[int, int, int, int, float]:
        return (self.start, self.end, self.summit, self.member_count, self.weight)

    def to_raw_peak(self) -> RawPeak:
        """Re-express this consensus peak as a raw peak weighted by its member count."""
        return RawPeak(self.chromosome, self.start, self.end, self.summit, float(self.member_count))


@dataclass(frozen=True)
class ConsensusConfig:
    """
    Immutable configuration of a consensus run.

    Args:
        algorithm: Consensus strategy, an enum member or its name
        max_merge_iterations: Upper bound on consolidation rounds of the iterative merger
        output_columns: Number of columns written per output record
        merge_adjacent: Whether abutting intervals (a.end == b.start) are merged
        min_peaks_per_consensus: Consensus peaks with fewer raw peaks are dropped
        threads: Number of worker threads used to process chromosomes

    Raises:
        InvalidConfigurationError: If any value is unknown or out of range
    """
    algorithm: ConsensusAlgorithm = ConsensusAlgorithm.GIPFELKREUZER
    max_merge_iterations: int = DEFAULT_MAX_MERGE_ITERATIONS
    output_columns: int = DEFAULT_OUTPUT_COLUMNS
    merge_adjacent: bool = True
    min_peaks_per_consensus: int = 1
    threads: int = 1

    def __post_init__(self):
        object.__setattr__(self, "algorithm", ConsensusAlgorithm.parse(self.algorithm))
        _require_integer("max_merge_iterations", self.max_merge_iterations, 1)
        _require_integer("output_columns", self.output_columns, MIN_OUTPUT_COLUMNS)
        _require_integer("min_peaks_per_consensus", self.min_peaks_per_consensus, 1)
        _require_integer("threads", self.threads, 1)


def _require_integer(name: str, value, minimum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidConfigurationError(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        raise InvalidConfigurationError(f"{name} must be at least {minimum}, got {value}")


def partition_peaks(peaks: Iterable[RawPeak]) -> Dict[str, List[RawPeak]]:
    """
    Group peaks by chromosome and sort each group deterministically.

    Within a chromosome peaks are ordered by (start, end, summit), with the
    weight as a last tie-breaker, so the result does not depend on the order
    in which the peaks were loaded. Chromosomes are returned in lexicographic
    order and only chromosomes with at least one peak appear.

    Args:
        peaks: Raw peaks of any number of chromosomes

    Returns:
        dict: Chromosome name -> sorted list of its peaks
    """
    partitions: Dict[str, List[RawPeak]] = defaultdict(list)
    for peak in peaks:
        partitions[peak.chromosome].append(peak)

    sorted_partitions = {}
    for chromosome in sorted(partitions):
        sorted_partitions[chromosome] = sorted(partitions[chromosome], key=lambda peak: peak.sort_key)
        logger.debug("Partition %s holds %d peaks", chromosome, len(sorted_partitions[chromosome]))

    logger.info("Partitioned peaks into %d chromosome(s)", len(sorted_partitions))
    return sorted_partitions
