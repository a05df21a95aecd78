#!/usr/bin/env python
"""
Command-line interface for Gipfelkreuzer consensus peak generation.

This module wires the loader, the consensus algorithms and the writer
together. It handles argument parsing, logging configuration and the mapping
of errors to exit codes.

Usage:
    gipfelkreuzer sample1.narrowPeak sample2.narrowPeak --output consensus.narrowPeak
    gipfelkreuzer peaks/*.bed -o consensus.bed --algorithm naive --output-columns 3 --verbose
"""

import logging
import sys
from typing import Optional, Tuple

import click

from gipfelkreuzer.algorithms import run_consensus
from gipfelkreuzer.bed_io import load_peak_files, peaks_to_frame, summarize_peaks, write_consensus_peaks
from gipfelkreuzer.errors import ConsensusError
from gipfelkreuzer.peaks import (
    DEFAULT_MAX_MERGE_ITERATIONS,
    DEFAULT_OUTPUT_COLUMNS,
    ConsensusAlgorithm,
    ConsensusConfig,
)

# Configure root logger
logger = logging.getLogger()

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def setup_logging(log_level: str, verbose: bool = False) -> None:
    """Configure logging based on the requested level; verbose forces DEBUG."""
    # Clear any existing handlers
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    # Set up console handler
    console_handler = logging.StreamHandler(sys.stdout)

    # Define format
    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    console_handler.setFormatter(formatter)

    level = logging.DEBUG if verbose else getattr(logging, log_level.upper())
    logger.setLevel(level)
    console_handler.setLevel(level)

    # Add handler to logger
    logger.addHandler(console_handler)


@click.command()
@click.argument('inputs', nargs=-1, required=True, type=click.Path(dir_okay=False))
@click.option('--output', '-o', type=click.Path(dir_okay=False), required=True,
              help="Path of the consensus peak file to write.")
@click.option('--algorithm', type=click.Choice([member.value for member in ConsensusAlgorithm],
                                               case_sensitive=False),
              default=ConsensusAlgorithm.GIPFELKREUZER.value, show_default=True,
              help="Consensus peak algorithm applied to every chromosome.")
@click.option('--max-merge-iterations', type=int, default=DEFAULT_MAX_MERGE_ITERATIONS, show_default=True,
              help="Maximum number of re-merge iterations of the gipfelkreuzer algorithm.")
@click.option('--output-columns', type=int, default=DEFAULT_OUTPUT_COLUMNS, show_default=True,
              help="Number of columns per output record (>= 3); 10 or more include the summit.")
@click.option('--weight-column', type=click.IntRange(min=1), default=None,
              help="1-based input column used as peak weight for the summit centroid. "
                   "Every peak has weight 1 if omitted.")
@click.option('--merge-adjacent/--no-merge-adjacent', default=True, show_default=True,
              help="Merge abutting peaks in addition to overlapping ones.")
@click.option('--min-peaks-per-consensus', type=int, default=1, show_default=True,
              help="Drop consensus peaks supported by fewer raw peaks.")
@click.option('--threads', type=int, default=1, show_default=True,
              help="Number of chromosomes processed in parallel.")
@click.option('--log-level', type=click.Choice(LOG_LEVELS, case_sensitive=False), default='WARNING',
              show_default=True, help="Logging level.")
@click.option('--verbose', is_flag=True, default=False,
              help="Enable verbose (debug) logging.")
def construct_consensus_peaks(inputs: Tuple[str, ...],
                              output: str,
                              algorithm: str,
                              max_merge_iterations: int,
                              output_columns: int,
                              weight_column: Optional[int],
                              merge_adjacent: bool,
                              min_peaks_per_consensus: int,
                              threads: int,
                              log_level: str,
                              verbose: bool) -> None:
    """
    Construct consensus peaks from one or more BED / narrowPeak files.

    All INPUTS are concatenated, grouped by chromosome and merged into a
    single set of non-overlapping consensus peaks. The default gipfelkreuzer
    algorithm places each consensus summit at the weighted centroid of the
    contributing summits; the naive algorithm merges overlapping peaks in a
    single pass and uses the region midpoint.

    Examples:
        gipfelkreuzer a.narrowPeak b.narrowPeak -o consensus.narrowPeak
        gipfelkreuzer a.bed b.bed -o consensus.bed --algorithm naive --output-columns 3
    """
    # Configure logging
    setup_logging(log_level, verbose)

    try:
        config = ConsensusConfig(
            algorithm=algorithm,
            max_merge_iterations=max_merge_iterations,
            output_columns=output_columns,
            merge_adjacent=merge_adjacent,
            min_peaks_per_consensus=min_peaks_per_consensus,
            threads=threads,
        )
        logger.debug("Run configuration: %s", config)

        # Load data
        raw_peaks = load_peak_files(inputs, weight_column)
        if raw_peaks and logger.isEnabledFor(logging.DEBUG):
            logger.debug("Input peak summary:\n%s", summarize_peaks(peaks_to_frame(raw_peaks)))

        # Build consensus peaks
        result = run_consensus(raw_peaks, config)

        # Save consensus peaks
        write_consensus_peaks(output, result.peaks, config.output_columns)
    except ConsensusError as e:
        logger.error("Error during consensus computation: %s", e)
        raise click.ClickException(str(e)) from e

    logger.info("Wrote %d consensus peaks from %d raw peaks", len(result.peaks), len(raw_peaks))


if __name__ == "__main__":
    construct_consensus_peaks()
