#!/usr/bin/env python
"""
Consensus peak algorithms.

Two strategies turn the sorted peaks of one chromosome into consensus peaks:

- Gipfelkreuzer (default): clusters touching peaks, collapses every cluster
  into its union extent with a weight-averaged summit, and re-merges the
  resulting regions until no two of them touch any more or the iteration
  cap is hit.
- Naive: a single interval-union sweep whose summit is the midpoint of each
  merged region. It always finishes in one pass and serves as a fast baseline.

The strategy is chosen once per run through ConsensusConfig.algorithm and
applied to every chromosome. Chromosomes never interact, so run_consensus can
process them on a thread pool; the output order is fixed by chromosome name and
start coordinate and does not depend on the number of threads.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from enum import Enum
from fractions import Fraction
from itertools import chain
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from gipfelkreuzer.errors import IterationLimitWarning
from gipfelkreuzer.peaks import (
    ConsensusAlgorithm,
    ConsensusConfig,
    ConsensusPeak,
    RawPeak,
    midpoint,
    partition_peaks,
    round_half_down,
)

# Configure logging
logger = logging.getLogger(__name__)


class MergeState(str, Enum):
    """States of the iterative merger."""
    CLUSTERING = "clustering"
    CONSOLIDATING = "consolidating"
    CONVERGED = "converged"
    ITERATION_LIMIT_REACHED = "iteration_limit_reached"


@dataclass(frozen=True)
class PartitionResult:
    """Consensus peaks of a single chromosome and how the merge loop ended."""
    chromosome: str
    peaks: Tuple[ConsensusPeak, ...]
    iterations: int
    state: MergeState
    pending_merges: int = 0


@dataclass
class ConsensusResult:
    """
    Outcome of a consensus run over all chromosomes.

    Attributes:
        peaks: Consensus peaks ordered by chromosome name, then start
        warnings: Non-fatal warnings raised while merging
        iterations: Number of merge iterations per chromosome
    """
    peaks: List[ConsensusPeak]
    warnings: List[IterationLimitWarning] = field(default_factory=list)
    iterations: Dict[str, int] = field(default_factory=dict)

    @property
    def converged(self) -> bool:
        return not self.warnings


def peaks_touch(previous, current, merge_adjacent: bool = True) -> bool:
    """
    Check whether two intervals overlap or, optionally, abut.

    Args:
        previous: Interval with start/end attributes
        current: Interval with start/end attributes
        merge_adjacent: Treat [a, b) and [b, c) as touching

    Returns:
        bool: True if the intervals belong to the same region
    """
    if previous.start < current.end and current.start < previous.end:
        return True
    return merge_adjacent and (previous.end == current.start or current.end == previous.start)


def sweep_clusters(peaks: Sequence, merge_adjacent: bool = True) -> List[List[int]]:
    """
    Group sorted intervals into clusters of touching sweep neighbours.

    Each interval is compared with the interval directly before it in the
    sorted order, not with the extent of the cluster built so far. A short
    interval nested inside a long one can therefore close a cluster that the
    next interval would have overlapped; such clusters are joined again when
    their consolidated extents are re-swept.

    Args:
        peaks: Intervals sorted by (start, end, summit)
        merge_adjacent: Treat abutting intervals as touching

    Returns:
        list: Lists of indices into peaks, one per cluster, in sweep order
    """
    clusters: List[List[int]] = []
    for index, peak in enumerate(peaks):
        if clusters and peaks_touch(peaks[index - 1], peak, merge_adjacent):
            clusters[-1].append(index)
        else:
            clusters.append([index])
    return clusters


def consolidate_cluster(members: Sequence[RawPeak]) -> ConsensusPeak:
    """
    Collapse a cluster of raw peaks into its provisional consensus peak.

    The region is the union extent of all members. The summit is the
    weight-averaged member summit, rounded half down; if every member has
    weight 0 the plain mean is used instead. Arithmetic is exact, so the
    result does not depend on floating point summation order.

    Args:
        members: Raw peaks of one chromosome, at least one

    Returns:
        ConsensusPeak: The consolidated peak
    """
    weights = [Fraction(member.weight) for member in members]
    total_weight = sum(weights)
    if total_weight > 0:
        centroid = sum(member.summit * weight for member, weight in zip(members, weights)) / total_weight
    else:
        centroid = Fraction(sum(member.summit for member in members), len(members))

    return ConsensusPeak(
        chromosome=members[0].chromosome,
        start=min(member.start for member in members),
        end=max(member.end for member in members),
        summit=round_half_down(centroid),
        member_count=len(members),
        weight=float(total_weight),
    )


def gipfelkreuzer_consensus(partition: Sequence[RawPeak], config: ConsensusConfig) -> PartitionResult:
    """
    Iteratively merge the peaks of one chromosome into consensus peaks.

    The merger runs as a bounded state machine:

    1. CLUSTERING: sweep the sorted raw peaks into clusters of touching peaks.
    2. CONSOLIDATING: collapse every cluster into a provisional consensus peak
       (union extent, weighted summit), sort them and sweep them again.
    3. If the sweep joined nothing the state is CONVERGED. Otherwise the joined
       clusters are consolidated again, up to config.max_merge_iterations
       rounds, after which the state is ITERATION_LIMIT_REACHED and the last
       consolidated generation is returned as is.

    Consolidation always works on the raw member peaks of a cluster, so
    member counts add up across rounds without double counting.

    Args:
        partition: Raw peaks of a single chromosome sorted by (start, end, summit)
        config: Run configuration

    Returns:
        PartitionResult: Consensus peaks sorted by start, with the loop outcome
    """
    if not partition:
        return PartitionResult("", (), 0, MergeState.CONVERGED)

    chromosome = partition[0].chromosome
    state = MergeState.CLUSTERING
    clusters = [tuple(partition[index] for index in group)
                for group in sweep_clusters(partition, config.merge_adjacent)]
    logger.debug("%s: initial sweep formed %d clusters from %d peaks",
                 chromosome, len(clusters), len(partition))

    iteration = 0
    pending_merges = 0
    while state in (MergeState.CLUSTERING, MergeState.CONSOLIDATING):
        state = MergeState.CONSOLIDATING
        iteration += 1
        generation = sorted(
            ((consolidate_cluster(members), members) for members in clusters),
            key=lambda pair: pair[0].sort_key,
        )
        provisional = [peak for peak, _ in generation]
        groups = sweep_clusters(provisional, config.merge_adjacent)
        logger.debug("%s: iteration %d consolidated %d clusters, re-sweep left %d",
                     chromosome, iteration, len(provisional), len(groups))

        if len(groups) == len(provisional):
            state = MergeState.CONVERGED
        elif iteration >= config.max_merge_iterations:
            state = MergeState.ITERATION_LIMIT_REACHED
            pending_merges = len(provisional) - len(groups)
        else:
            clusters = [
                tuple(sorted(chain.from_iterable(generation[index][1] for index in group),
                             key=lambda peak: peak.sort_key))
                for group in groups
            ]

    return PartitionResult(chromosome, tuple(provisional), iteration, state, pending_merges)


def naive_consensus(partition: Sequence[RawPeak], config: ConsensusConfig) -> PartitionResult:
    """
    Merge the peaks of one chromosome with a single interval-union sweep.

    A peak extends the current region while its start does not exceed the
    region's end. The summit of each region is its midpoint.

    Args:
        partition: Raw peaks of a single chromosome sorted by (start, end, summit)
        config: Run configuration (unused by this strategy)

    Returns:
        PartitionResult: Consensus peaks sorted by start, always converged
    """
    if not partition:
        return PartitionResult("", (), 0, MergeState.CONVERGED)

    chromosome = partition[0].chromosome
    regions: List[List] = []
    for peak in partition:
        if regions and peak.start <= regions[-1][1]:
            region = regions[-1]
            region[1] = max(region[1], peak.end)
            region[2] += 1
            region[3] += Fraction(peak.weight)
        else:
            regions.append([peak.start, peak.end, 1, Fraction(peak.weight)])

    consensus = tuple(
        ConsensusPeak(chromosome, start, end, midpoint(start, end), count, float(weight))
        for start, end, count, weight in regions
    )
    logger.debug("%s: naive sweep merged %d peaks into %d regions",
                 chromosome, len(partition), len(consensus))
    return PartitionResult(chromosome, consensus, 1, MergeState.CONVERGED)


ConsensusStrategy = Callable[[Sequence[RawPeak], ConsensusConfig], PartitionResult]

# One entry per ConsensusAlgorithm member
CONSENSUS_STRATEGIES: Dict[ConsensusAlgorithm, ConsensusStrategy] = {
    ConsensusAlgorithm.GIPFELKREUZER: gipfelkreuzer_consensus,
    ConsensusAlgorithm.NAIVE: naive_consensus,
}


def cluster_partition(partition: Sequence[RawPeak], config: ConsensusConfig) -> PartitionResult:
    """
    Build the consensus peaks of one chromosome with the configured strategy.

    Args:
        partition: Raw peaks of a single chromosome sorted by (start, end, summit)
        config: Run configuration

    Returns:
        PartitionResult: Consensus peaks of the chromosome

    Raises:
        ValueError: If the partition mixes chromosomes
    """
    chromosomes = {peak.chromosome for peak in partition}
    if len(chromosomes) > 1:
        raise ValueError(f"A partition must hold a single chromosome, got {sorted(chromosomes)}")

    strategy = CONSENSUS_STRATEGIES[config.algorithm]
    result = strategy(partition, config)

    if config.min_peaks_per_consensus > 1:
        kept = tuple(peak for peak in result.peaks
                     if peak.member_count >= config.min_peaks_per_consensus)
        logger.debug("%s: dropped %d consensus peaks with fewer than %d members",
                     result.chromosome, len(result.peaks) - len(kept), config.min_peaks_per_consensus)
        result = replace(result, peaks=kept)
    return result


def run_consensus(peaks: Iterable[RawPeak], config: Optional[ConsensusConfig] = None) -> ConsensusResult:
    """
    Generate consensus peaks for all chromosomes.

    Peaks are partitioned by chromosome and every partition is processed
    independently, sequentially or on config.threads worker threads. The
    per-chromosome results are concatenated in lexicographic chromosome order.

    Args:
        peaks: Raw peaks from any number of sources and chromosomes
        config: Run configuration, defaults to ConsensusConfig()

    Returns:
        ConsensusResult: Ordered consensus peaks plus any iteration-limit warnings
    """
    config = config if config is not None else ConsensusConfig()
    partitions = partition_peaks(peaks)
    logger.info("Generating consensus peaks with the %s algorithm", config.algorithm.value)

    results: Dict[str, PartitionResult] = {}
    if config.threads == 1 or len(partitions) <= 1:
        for chromosome, partition in partitions.items():
            results[chromosome] = cluster_partition(partition, config)
    else:
        with ThreadPoolExecutor(max_workers=config.threads) as executor:
            future_to_chromosome = {
                executor.submit(cluster_partition, partition, config): chromosome
                for chromosome, partition in partitions.items()
            }
            for future in as_completed(future_to_chromosome):
                chromosome = future_to_chromosome[future]
                results[chromosome] = future.result()
                logger.debug("Finished chromosome %s", chromosome)

    consensus = ConsensusResult(peaks=[])
    for chromosome in sorted(results):
        result = results[chromosome]
        consensus.peaks.extend(result.peaks)
        consensus.iterations[chromosome] = result.iterations
        if result.state is MergeState.ITERATION_LIMIT_REACHED:
            warning = IterationLimitWarning(chromosome, result.iterations, result.pending_merges)
            logger.warning("%s", warning)
            consensus.warnings.append(warning)

    logger.info("Generated %d consensus peaks on %d chromosome(s)",
                len(consensus.peaks), len(results))
    return consensus
