"""
Gipfelkreuzer: consensus peak generation for ChIP-/ATAC-Seq peak calls.

This package collapses overlapping peak calls of one or more samples into a
single set of non-overlapping consensus peaks. Each consensus summit is the
weighted centroid of the contributing summits; regions are re-merged
iteratively until no two consensus peaks touch or an iteration cap is hit.
"""

__version__ = "0.1.0"

# Import main functionality to expose at package level
from gipfelkreuzer.algorithms import (
    ConsensusResult,
    MergeState,
    PartitionResult,
    cluster_partition,
    gipfelkreuzer_consensus,
    naive_consensus,
    run_consensus,
)
from gipfelkreuzer.bed_io import (
    consensus_to_frame,
    load_peak_files,
    parse_bed_records,
    peaks_to_frame,
    read_peak_file,
    write_consensus_peaks,
)
from gipfelkreuzer.errors import (
    ConsensusError,
    InvalidConfigurationError,
    IterationLimitWarning,
    MalformedRecordError,
    OutputWriteError,
    SourceUnavailableError,
)
from gipfelkreuzer.peaks import (
    ConsensusAlgorithm,
    ConsensusConfig,
    ConsensusPeak,
    RawPeak,
    partition_peaks,
)

__all__ = [
    "ConsensusResult",
    "MergeState",
    "PartitionResult",
    "cluster_partition",
    "gipfelkreuzer_consensus",
    "naive_consensus",
    "run_consensus",
    "consensus_to_frame",
    "load_peak_files",
    "parse_bed_records",
    "peaks_to_frame",
    "read_peak_file",
    "write_consensus_peaks",
    "ConsensusError",
    "InvalidConfigurationError",
    "IterationLimitWarning",
    "MalformedRecordError",
    "OutputWriteError",
    "SourceUnavailableError",
    "ConsensusAlgorithm",
    "ConsensusConfig",
    "ConsensusPeak",
    "RawPeak",
    "partition_peaks",
]
