"""
Kraken2 wrapper and report parser.

Provides Python interfaces for:
- Kraken2: Taxonomic classification of triaged reads
- KrakenReport: Streaming parser for Kraken2 hierarchical reports
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple

from micrite.core.constants import KOUT_SUFFIX, KREPORT_COLUMNS, KREPORT_SUFFIX
from micrite.core.exceptions import InputNotFoundError, MalformedReportError
from micrite.external.base import ExternalTool, ToolResult

logger = logging.getLogger(__name__)


def expand_path(path: Path) -> Path:
    """Expand ``~`` and environment variables in a database path."""
    return Path(os.path.expandvars(os.path.expanduser(str(path))))


@dataclass(frozen=True)
class KrakenOutputPaths:
    """Files produced by one Kraken2 run.

    Attributes:
        kout: Per-read classification output, None if not kept.
        kreport: Hierarchical report.
        input_fasta: Sequences that were classified.
        prefix: Output prefix shared by the report and per-read output.
    """

    kout: Path | None
    kreport: Path
    input_fasta: Path
    prefix: Path


class Kraken2(ExternalTool):
    """Wrapper for Kraken2 taxonomic classifier.

    Kraken2 assigns taxonomic labels to short DNA sequences using
    exact k-mer matches to a database of reference genomes.

    Example:
        >>> kraken = Kraken2()
        >>> paths = kraken.classify(
        ...     fasta=Path("out/sample.fasta"),
        ...     database=Path("~/databases/k2_standard_08gb"),
        ...     outdir=Path("out"),
        ... )
        >>> paths.kreport
        PosixPath('out/sample.kreport')
    """

    TOOL_NAME = "kraken2"
    INSTALL_HINT = "conda install -c bioconda kraken2"

    def build_command(
        self,
        *,
        fasta: Path,
        database: Path,
        report: Path,
        output: Path | None = None,
        threads: int = 8,
        confidence: float = 0.01,
        report_zero_counts: bool = False,
    ) -> list[str]:
        """Build Kraken2 command.

        Args:
            fasta: Sequences to classify (FASTA/FASTQ).
            database: Path to Kraken2 database directory.
            report: Output file for the hierarchical report.
            output: Output file for per-read classification. None sends
                per-read output to ``-`` (discarded).
            threads: Number of threads to use.
            confidence: Confidence threshold (0-1).
            report_zero_counts: Include taxa with zero counts in report.

        Returns:
            Command as list of strings.
        """
        exe = str(self.get_executable())
        cmd = [exe]

        cmd.extend(["--db", str(expand_path(database))])
        cmd.extend(["--threads", str(threads)])
        cmd.extend(["--confidence", str(confidence)])

        cmd.extend(["--output", str(output) if output is not None else "-"])
        cmd.extend(["--report", str(report)])

        if report_zero_counts:
            cmd.append("--report-zero-counts")

        cmd.append(str(fasta))

        return cmd

    def classify(
        self,
        *,
        fasta: Path,
        database: Path,
        outdir: Path,
        threads: int = 8,
        confidence: float = 0.01,
        keep_classification_output: bool = False,
        report_zero_counts: bool = False,
        prefix: Path | None = None,
        timeout: float | None = None,
    ) -> KrakenOutputPaths:
        """Classify a FASTA and return the paths of the produced files.

        Outputs are named from ``prefix`` (default: {outdir}/{fasta_stem}).

        Raises:
            InputNotFoundError: If the database directory does not exist.
            ToolNotFoundError: If kraken2 is not installed.
            ToolExecutionError: If kraken2 exits non-zero.
        """
        db = expand_path(database)
        if not db.exists():
            raise InputNotFoundError(db, what="Kraken2 database")

        outdir.mkdir(parents=True, exist_ok=True)
        if prefix is None:
            prefix = outdir / fasta.stem
        report = prefix.with_name(prefix.name + KREPORT_SUFFIX)
        kout = prefix.with_name(prefix.name + KOUT_SUFFIX) if keep_classification_output else None

        logger.info("Running Kraken2 on %s", fasta)
        result: ToolResult = self.run_or_raise(
            fasta=fasta,
            database=db,
            report=report,
            output=kout,
            threads=threads,
            confidence=confidence,
            report_zero_counts=report_zero_counts,
            timeout=timeout,
        )
        logger.debug("Kraken2 command: %s", result.command_string)
        logger.info(
            "Kraken2 report saved to %s (%.1fs)", report, result.elapsed_seconds
        )

        return KrakenOutputPaths(
            kout=kout,
            kreport=report,
            input_fasta=fasta,
            prefix=prefix,
        )


class ReportRow(NamedTuple):
    """One line of a Kraken2 report.

    Attributes:
        clade_percent: Percent of reads classified at or below this taxon.
        clade_reads: Reads classified at or below this taxon.
        taxon_reads: Reads assigned directly to this taxon.
        rank: Rank code: (U)nclassified, (R)oot, (D)omain, (K)ingdom,
            (P)hylum, (C)lass, (O)rder, (F)amily, (G)enus, (S)pecies, or a
            code plus the distance from that rank (e.g. G2).
        taxid: NCBI taxonomic ID.
        name: Scientific name.
    """

    clade_percent: float
    clade_reads: int
    taxon_reads: int
    rank: str
    taxid: str
    name: str


def parse_report_line(line: str) -> ReportRow:
    """Parse one tab-separated report line.

    Raises:
        ValueError: If the line does not have six fields or a numeric
            field cannot be converted.
    """
    parts = [p.strip() for p in line.rstrip("\n").split("\t")]
    if len(parts) != KREPORT_COLUMNS:
        msg = f"expected {KREPORT_COLUMNS} columns, got {len(parts)}"
        raise ValueError(msg)

    return ReportRow(
        clade_percent=float(parts[0]),
        clade_reads=int(parts[1]),
        taxon_reads=int(parts[2]),
        rank=parts[3],
        taxid=parts[4],
        name=parts[5],
    )


class KrakenReport:
    """Streaming parser for Kraken2 report files (.kreport).

    Rows are parsed lazily in file order and not retained.
    """

    def __init__(self, report_path: Path):
        self.report_path = report_path

    def rows(self) -> Iterator[ReportRow]:
        """Yield report rows in file order.

        Raises:
            InputNotFoundError: If the report does not exist.
            MalformedReportError: On the first row that cannot be parsed.
        """
        if not self.report_path.exists():
            raise InputNotFoundError(self.report_path, what="Kraken report")

        with self.report_path.open() as f:
            for line_num, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    yield parse_report_line(line)
                except ValueError as e:
                    raise MalformedReportError(self.report_path, line_num, str(e)) from e

    def __iter__(self) -> Iterator[ReportRow]:
        return self.rows()

