"""
Custom exceptions with actionable guidance.

Every error raised by micrite carries an ErrorKind so the command-line
driver can report failures uniformly, plus a suggestion for resolution.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path


class ErrorKind(str, Enum):
    """Category of a fatal micrite failure."""

    MISSING_INPUT = "missing_input"
    MALFORMED_INPUT = "malformed_input"
    UNWRITABLE_OUTPUT = "unwritable_output"
    MISSING_TOOL = "missing_tool"
    TOOL_FAILED = "tool_failed"
    CONFIGURATION = "configuration"


class MicriteError(Exception):
    """Base exception for micrite errors."""

    kind: ErrorKind = ErrorKind.CONFIGURATION

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        kind: ErrorKind | None = None,
    ):
        self.message = message
        self.suggestion = suggestion
        if kind is not None:
            self.kind = kind
        super().__init__(self.full_message)

    @property
    def full_message(self) -> str:
        if self.suggestion:
            return f"{self.message}\n\nSuggestion: {self.suggestion}"
        return self.message


class InputNotFoundError(MicriteError):
    """Raised when a required input file, index or database is missing."""

    kind = ErrorKind.MISSING_INPUT

    def __init__(self, path: Path | str, what: str = "Input file"):
        super().__init__(
            message=f"{what} not found: {path}",
            suggestion="Check the path exists and is readable.",
        )
        self.path = Path(path)


class MalformedReportError(MicriteError):
    """Raised when a Kraken2 report row cannot be parsed."""

    kind = ErrorKind.MALFORMED_INPUT

    def __init__(self, path: Path | str, line_num: int, reason: str):
        super().__init__(
            message=f"Malformed kraken report '{path}' at line {line_num}: {reason}",
            suggestion=(
                "Kraken reports must have 6 tab-separated columns:\n"
                "  clade_percent clade_reads taxon_reads rank taxid name\n\n"
                "Regenerate the report with 'kraken2 --report' and do not pass "
                "--report-minimizer-data or --use-mpa-style."
            ),
        )
        self.path = Path(path)
        self.line_num = line_num


class MalformedRecordError(MicriteError):
    """Raised when an alignment record cannot be parsed."""

    kind = ErrorKind.MALFORMED_INPUT

    def __init__(self, source: str, record_num: int, reason: str):
        super().__init__(
            message=f"Failed to read alignment record {record_num} from {source}: {reason}",
            suggestion="Check the BAM file is not truncated (samtools quickcheck).",
        )
        self.source = source
        self.record_num = record_num


class OutputWriteError(MicriteError):
    """Raised when an output file or directory cannot be created."""

    kind = ErrorKind.UNWRITABLE_OUTPUT

    def __init__(self, path: Path | str, reason: str = ""):
        detail = f": {reason}" if reason else ""
        super().__init__(
            message=f"Could not write output {path}{detail}",
            suggestion="Check the output directory exists and is writable.",
        )
        self.path = Path(path)


class ConfigurationError(MicriteError):
    """Raised when configuration is invalid."""

    kind = ErrorKind.CONFIGURATION
