#!/usr/bin/env python
"""
Reading raw peaks from and writing consensus peaks to BED files.

Input records follow the BED / narrowPeak layout: at least chromosome, start
and end; a 10th column, if present and valid, holds the summit offset from
the start coordinate. Output records are narrowPeak compatible, so consensus
files written with at least SUMMIT_COLUMNS columns can be read back in.
"""

import csv
import io
import logging
import os
import tempfile
import zlib
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from gipfelkreuzer.errors import MalformedRecordError, OutputWriteError, SourceUnavailableError
from gipfelkreuzer.peaks import MIN_OUTPUT_COLUMNS, ConsensusPeak, RawPeak

# Configure logging
logger = logging.getLogger(__name__)

MIN_INPUT_FIELDS = 3
SUMMIT_FIELD_INDEX = 9
SUMMIT_COLUMNS = SUMMIT_FIELD_INDEX + 1
MAX_BED_SCORE = 1000

PEAK_COLUMNS = ["chromosome", "start", "end", "summit", "weight"]
NARROW_PEAK_COLUMNS = [
    "chromosome", "start", "end", "name", "score", "strand",
    "signal_value", "p_value", "q_value", "summit_offset",
]

# Lines starting with these tokens carry no peak record
_HEADER_PATTERN = r"\s*(?:#|track|browser)"
_COORDINATE_PATTERN = r"-?[0-9]+"
_OFFSET_PATTERN = r"[0-9]+"

# Errors a (possibly compressed) source can raise while being read
_READ_ERRORS = (OSError, UnicodeDecodeError, EOFError, zlib.error, csv.Error, pd.errors.ParserError)


def read_bed_frame(source, weight_column: Optional[int] = None) -> pd.DataFrame:
    """
    Read BED / narrowPeak text into a DataFrame of raw fields, one row per line.

    Every physical line, including blank and header lines, becomes a row so
    that row index + 1 is the line number. Missing trailing fields are NA and
    fields beyond the last one needed (the summit offset or the weight
    column) are dropped.

    Args:
        source: Path or text buffer; compression is inferred from the file suffix
        weight_column: 1-based weight column that has to be kept

    Returns:
        pandas.DataFrame: Columns 0..n-1 holding the raw field strings
    """
    n_fields = max(SUMMIT_COLUMNS, weight_column or 0)
    try:
        return pd.read_csv(
            source,
            sep="\t",
            header=None,
            names=range(n_fields),
            index_col=False,
            dtype=object,
            keep_default_na=False,
            skip_blank_lines=False,
            quoting=csv.QUOTE_NONE,
            compression="infer",
            engine="python",
            on_bad_lines=lambda fields: fields[:n_fields],
        )
    except pd.errors.EmptyDataError:
        return pd.DataFrame(columns=range(n_fields), dtype=object)


def _first_invalid_record(frame: pd.DataFrame, checks, source: str) -> None:
    """Raise MalformedRecordError for the first row failing any of the checks."""
    failing = pd.concat([mask for mask, _ in checks], axis=1).any(axis=1)
    if not failing.any():
        return
    index = failing.idxmax()
    row = frame.loc[index]
    for mask, describe in checks:
        if mask.loc[index]:
            raise MalformedRecordError(source, int(index) + 1, describe(row))


def frame_to_peaks(frame: pd.DataFrame, source: str = "<records>",
                   weight_column: Optional[int] = None) -> List[RawPeak]:
    """
    Validate the rows of read_bed_frame output and convert them into raw peaks.

    Blank lines, comments and UCSC track/browser lines are skipped. Records
    are never merged or deduplicated here. A 10th field that is not a
    non-negative integer smaller than the peak length is ignored and the
    summit falls back to the peak midpoint.

    Args:
        frame: Raw field strings as returned by read_bed_frame
        source: Identifier of the records' origin used in error messages
        weight_column: 1-based column holding the peak weight; weight 1.0 if None

    Returns:
        list: RawPeak objects in record order

    Raises:
        MalformedRecordError: For the first record with fewer than 3 fields,
            an empty chromosome, non-integer coordinates, a negative start,
            start >= end or an invalid weight
    """
    first_field = frame[0].fillna("")
    blank = first_field.str.strip().eq("") & frame.iloc[:, 1:].isna().all(axis=1)
    header = first_field.str.match(_HEADER_PATTERN)
    skipped = (blank | header).astype(bool)
    if skipped.any():
        logger.debug("Skipping %d blank or header line(s) in %s", int(skipped.sum()), source)
    records = frame[~skipped]

    chromosomes = records[0].fillna("").str.strip()
    start_fields = records[1].str.strip()
    end_fields = records[2].str.strip()
    n_present = records.iloc[:, :MIN_INPUT_FIELDS].notna().sum(axis=1)

    too_short = records[2].isna()
    start_valid = start_fields.str.fullmatch(_COORDINATE_PATTERN).fillna(False).astype(bool)
    end_valid = end_fields.str.fullmatch(_COORDINATE_PATTERN).fillna(False).astype(bool)
    starts = pd.to_numeric(start_fields.where(start_valid), errors="coerce")
    ends = pd.to_numeric(end_fields.where(end_valid), errors="coerce")

    checks = [
        (too_short, lambda row: (f"expected at least {MIN_INPUT_FIELDS} tab separated fields, "
                                 f"found {n_present.loc[row.name]}")),
        (chromosomes.eq(""), lambda row: "the chromosome name is empty"),
        (~start_valid, lambda row: f"value \"{row[1]}\" is not an integer start coordinate"),
        (~end_valid, lambda row: f"value \"{row[2]}\" is not an integer end coordinate"),
        (starts < 0, lambda row: f"start coordinate {row[1].strip()} is negative"),
        (starts >= ends, lambda row: (f"start coordinate {row[1].strip()} is not smaller "
                                      f"than end coordinate {row[2].strip()}")),
    ]

    weights = pd.Series(1.0, index=records.index)
    if weight_column is not None:
        weight_fields = records[weight_column - 1]
        weights = pd.to_numeric(weight_fields.str.strip(), errors="coerce")
        weight_valid = np.isfinite(weights) & (weights >= 0)
        checks.append((weight_fields.isna(), lambda row: f"weight column {weight_column} is missing"))
        checks.append((~weight_valid, lambda row: (f"weight \"{row[weight_column - 1]}\" is not "
                                                   f"a finite non-negative number")))

    _first_invalid_record(records, checks, source)

    offset_fields = records[SUMMIT_FIELD_INDEX].str.strip()
    offsets = pd.to_numeric(
        offset_fields.where(offset_fields.str.fullmatch(_OFFSET_PATTERN).fillna(False).astype(bool)),
        errors="coerce",
    )
    usable_offsets = offsets < (ends - starts)
    unusable = offset_fields.notna() & ~usable_offsets
    if unusable.any():
        logger.debug("%d record(s) in %s have an unusable summit offset; using the peak midpoint",
                     int(unusable.sum()), source)

    return [
        RawPeak.from_interval(chromosome, int(start), int(end),
                              int(offset) if usable else None, float(weight))
        for chromosome, start, end, offset, usable, weight in zip(
            chromosomes, starts, ends, offsets, usable_offsets, weights)
    ]


def parse_bed_records(lines: Iterable[str], source: str = "<records>",
                      weight_column: Optional[int] = None) -> List[RawPeak]:
    """
    Parse BED / narrowPeak text records into raw peaks.

    Args:
        lines: Text records, one per line, tab separated
        source: Identifier of the records' origin used in error messages
        weight_column: 1-based column holding the peak weight; weight 1.0 if None

    Returns:
        list: RawPeak objects in record order

    Raises:
        MalformedRecordError: If any record is invalid (see frame_to_peaks)
    """
    text = "\n".join(line.rstrip("\r\n") for line in lines)
    frame = read_bed_frame(io.StringIO(text), weight_column)
    return frame_to_peaks(frame, source, weight_column)


def read_peak_file(path: Union[str, Path], weight_column: Optional[int] = None) -> List[RawPeak]:
    """
    Read all raw peaks of a single BED / narrowPeak file (optionally compressed).

    Raises:
        SourceUnavailableError: If the file cannot be opened, decompressed or decoded
        MalformedRecordError: If any record is invalid
    """
    path = Path(path)
    logger.info("Loading peaks from: %s", path)
    try:
        frame = read_bed_frame(path, weight_column)
    except _READ_ERRORS as e:
        raise SourceUnavailableError(str(path), str(e) or type(e).__name__) from e

    peaks = frame_to_peaks(frame, str(path), weight_column)
    logger.debug("Loaded %d peaks from %s", len(peaks), path)
    return peaks


def load_peak_files(paths: Iterable[Union[str, Path]],
                    weight_column: Optional[int] = None) -> List[RawPeak]:
    """
    Load and concatenate the raw peaks of several files.

    Every file is read completely before anything is returned, so an
    unreadable or malformed source aborts the run before clustering starts.

    Args:
        paths: Input files, read in the given order
        weight_column: 1-based column holding the peak weight; weight 1.0 if None

    Returns:
        list: All raw peaks of all files
    """
    peaks: List[RawPeak] = []
    n_sources = 0
    for path in paths:
        peaks.extend(read_peak_file(path, weight_column))
        n_sources += 1
    logger.info("Loaded %d peaks from %d source(s)", len(peaks), n_sources)
    return peaks


def peaks_to_frame(peaks: Sequence[RawPeak]) -> pd.DataFrame:
    """Tabulate raw peaks as a DataFrame with PEAK_COLUMNS."""
    frame = pd.DataFrame(
        [(peak.chromosome, peak.start, peak.end, peak.summit, peak.weight) for peak in peaks],
        columns=PEAK_COLUMNS,
    )
    return frame.astype({"start": np.int64, "end": np.int64, "summit": np.int64, "weight": float})


def summarize_peaks(frame: pd.DataFrame) -> pd.DataFrame:
    """
    Per-chromosome summary of a peak table.

    Returns:
        pandas.DataFrame: One row per chromosome with peak count, median
            width and total covered span, sorted by chromosome
    """
    widths = frame["end"] - frame["start"]
    summary = (
        frame.assign(width=widths)
        .groupby("chromosome", sort=True)
        .agg(peaks=("width", "size"), median_width=("width", "median"), total_width=("width", "sum"))
        .reset_index()
    )
    return summary


def consensus_to_frame(peaks: Sequence[ConsensusPeak]) -> pd.DataFrame:
    """
    Tabulate consensus peaks with the narrowPeak columns.

    Peaks are named consensus_<n> by their 0-based position. The score is the
    member count capped at the BED maximum of 1000, the signal value the
    uncapped member count; p- and q-values are not computed and set to -1.
    """
    member_counts = np.array([peak.member_count for peak in peaks], dtype=np.int64)
    starts = np.array([peak.start for peak in peaks], dtype=np.int64)
    summits = np.array([peak.summit for peak in peaks], dtype=np.int64)
    return pd.DataFrame({
        "chromosome": [peak.chromosome for peak in peaks],
        "start": starts,
        "end": np.array([peak.end for peak in peaks], dtype=np.int64),
        "name": [f"consensus_{index}" for index in range(len(peaks))],
        "score": np.minimum(member_counts, MAX_BED_SCORE),
        "strand": ".",
        "signal_value": member_counts,
        "p_value": -1,
        "q_value": -1,
        "summit_offset": summits - starts,
    }, columns=NARROW_PEAK_COLUMNS)


def format_consensus_frame(peaks: Sequence[ConsensusPeak], output_columns: int) -> pd.DataFrame:
    """
    Shape consensus peaks into exactly output_columns output columns.

    The narrowPeak columns are truncated to the requested width; widths
    beyond SUMMIT_COLUMNS are padded with zero columns.

    Raises:
        ValueError: If fewer than 3 columns are requested
    """
    if output_columns < MIN_OUTPUT_COLUMNS:
        raise ValueError(f"At least {MIN_OUTPUT_COLUMNS} output columns are required, got {output_columns}")

    frame = consensus_to_frame(peaks).iloc[:, :output_columns].copy()
    for extra_index in range(SUMMIT_COLUMNS, output_columns):
        frame[f"extra_{extra_index + 1}"] = 0
    return frame


def write_consensus_peaks(path: Union[str, Path], peaks: Sequence[ConsensusPeak],
                          output_columns: int) -> None:
    """
    Write consensus peaks as a tab separated file without header.

    The records are written to a temporary file next to the destination which
    is moved into place once complete, so a failed write never leaves a
    partial output file behind.

    Args:
        path: Destination file; parent directories are created as needed
        peaks: Consensus peaks in output order
        output_columns: Number of columns per record (>= 3)

    Raises:
        OutputWriteError: If the destination cannot be written
    """
    path = Path(path)
    frame = format_consensus_frame(peaks, output_columns)

    temp_name = None
    try:
        path.parent.mkdir(exist_ok=True, parents=True)
        with tempfile.NamedTemporaryFile("w", dir=path.parent, prefix=f".{path.name}.",
                                         suffix=".tmp", delete=False, encoding="utf-8",
                                         newline="") as handle:
            temp_name = handle.name
            frame.to_csv(handle, sep="\t", header=False, index=False, lineterminator="\n")
        os.replace(temp_name, path)
    except OSError as e:
        if temp_name is not None and os.path.exists(temp_name):
            os.remove(temp_name)
        raise OutputWriteError(str(path), str(e)) from e

    logger.info("Consensus peaks saved to %s", path)
