#!/usr/bin/env python
"""
Exception and warning types raised while building consensus peaks.

Every fatal condition derives from ConsensusError so that callers (and the
command-line interface) can handle the whole family at once. The concrete
classes also derive from the closest built-in exception type, which keeps
them compatible with code that already catches ValueError or OSError.
"""

from typing import Optional


class ConsensusError(Exception):
    """Base class for all fatal consensus peak errors."""


class MalformedRecordError(ConsensusError, ValueError):
    """
    A peak record could not be parsed or violates the interval invariants.

    Args:
        source: Identifier of the input source (usually a file path)
        line_number: 1-based position of the offending record in the source
        reason: Human readable description of the problem
    """

    def __init__(self, source: str, line_number: int, reason: str):
        self.source = source
        self.line_number = line_number
        self.reason = reason
        super().__init__(f"Line {line_number} of \"{source}\": {reason}")


class SourceUnavailableError(ConsensusError, OSError):
    """An input source could not be opened or read."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"The input source \"{source}\" could not be read: {reason}")


class InvalidConfigurationError(ConsensusError, ValueError):
    """The run configuration contains an unknown or out-of-range value."""


class OutputWriteError(ConsensusError, OSError):
    """The consensus peaks could not be written to their destination."""

    def __init__(self, destination: str, reason: str):
        self.destination = destination
        self.reason = reason
        super().__init__(f"The output file \"{destination}\" could not be written: {reason}")


class IterationLimitWarning(UserWarning):
    """
    Non-fatal: the iterative merger stopped at its iteration cap.

    The emitted peaks are still valid and deterministic but are not a verified
    fixed point of the merge procedure.
    """

    def __init__(self, chromosome: str, iterations: int, remaining_merges: Optional[int] = None):
        self.chromosome = chromosome
        self.iterations = iterations
        self.remaining_merges = remaining_merges
        message = (f"Consensus peaks on {chromosome} did not converge within "
                   f"{iterations} merge iteration(s)")
        if remaining_merges:
            message += f"; {remaining_merges} further merge(s) were pending"
        super().__init__(message)
