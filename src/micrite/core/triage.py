"""
Read triage: select reads from a BAM worth classifying.

Scans an alignment source in three passes, writing every accepted read
to one FASTA file and run statistics to one summary file:

    Pass 0  Index summary: total, mapped and unmapped read counts from the
            BAM index, written before any record is read.
    Pass 1  Unmapped reads: every good quality sequence in the unmapped
            partition is written to the FASTA.
    Pass 2  Microbial contigs: for each header contig on the microbial
            contig table, mapped good quality sequences are written to the
            FASTA and good quality alignments are counted.

A read is treated as unmapped solely from its own unmapped flag. Some
aligners leave the flag unset on reads whose mate maps; those reads are
not recovered, since doing so would require inspecting every record.
"""

from __future__ import annotations

import logging
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import TextIO

from micrite.core.alignment import AlignmentSource
from micrite.core.annotations import MicrobialContigTable, common_microbial_contigs
from micrite.core.constants import FASTA_SUFFIX, SUMMARY_SUFFIX
from micrite.core.exceptions import OutputWriteError
from micrite.models.config import ReadQualityConfig

logger = logging.getLogger(__name__)


@dataclass
class ContigStats:
    """Read counts for one microbial contig."""

    contig: str
    species: str | None = None
    n_reads: int = 0
    n_mapped: int = 0
    n_good_sequence: int = 0
    n_good_alignment: int = 0


@dataclass
class SummaryStats:
    """Counts accumulated over one triage scan."""

    total_reads: int = 0
    total_mapped: int = 0
    total_unmapped: int = 0
    unmapped_seen: int = 0
    unmapped_good_sequence: int = 0
    contigs: list[ContigStats] = field(default_factory=list)

    @property
    def n_sequences_written(self) -> int:
        """Number of FASTA entries written across both read passes."""
        return self.unmapped_good_sequence + sum(c.n_good_sequence for c in self.contigs)


@dataclass(frozen=True)
class TriageResult:
    """Output paths and statistics of a triage scan."""

    fasta_path: Path
    summary_path: Path
    stats: SummaryStats


def summary_path_for(fasta_path: Path) -> Path:
    """Summary file written alongside a triage FASTA."""
    return fasta_path.with_name(fasta_path.stem + SUMMARY_SUFFIX)


def fasta_path_for(bam_path: Path, outdir: Path) -> Path:
    """Triage FASTA path for a BAM file in an output directory."""
    return outdir / f"{bam_path.stem}{FASTA_SUFFIX}"


class TriageScanner:
    """
    Three-pass read triage over one alignment source.

    Both output files are opened once and stay open across all passes;
    they are closed on every exit path, including a failure mid-scan.

    Example:
        >>> source = SamtoolsAlignmentSource(Path("sample.bam"))
        >>> scanner = TriageScanner(ReadQualityConfig())
        >>> result = scanner.scan(source, Path("out/sample.fasta"))
        >>> result.stats.unmapped_good_sequence
        1532
    """

    def __init__(
        self,
        quality: ReadQualityConfig | None = None,
        contig_table: MicrobialContigTable | None = None,
    ):
        self.quality = quality or ReadQualityConfig()
        self.contig_table = (
            contig_table if contig_table is not None else common_microbial_contigs()
        )

    def scan(
        self,
        source: AlignmentSource,
        fasta_path: Path,
        summary_path: Path | None = None,
    ) -> TriageResult:
        """
        Run all three passes and write the FASTA and summary files.

        Args:
            source: Alignment source to scan.
            fasta_path: FASTA output for accepted reads.
            summary_path: Summary output (default: {fasta_stem}.bam_summary.txt).

        Returns:
            TriageResult with paths and accumulated statistics.

        Raises:
            OutputWriteError: If an output file cannot be opened.
            MicriteError: Propagated from the alignment source.
        """
        if summary_path is None:
            summary_path = summary_path_for(fasta_path)

        stats = SummaryStats()

        with ExitStack() as stack:
            summary = self._open(stack, summary_path)
            fasta = self._open(stack, fasta_path)

            self._write_index_summary(source, summary, stats)
            self._scan_unmapped(source, fasta, stats)
            self._scan_microbial_contigs(source, fasta, summary, stats)

        logger.info("Wrote %d sequences to %s", stats.n_sequences_written, fasta_path)
        return TriageResult(fasta_path=fasta_path, summary_path=summary_path, stats=stats)

    @staticmethod
    def _open(stack: ExitStack, path: Path) -> TextIO:
        try:
            return stack.enter_context(path.open("w"))
        except OSError as e:
            raise OutputWriteError(path, e.strerror or str(e)) from e

    def _write_index_summary(
        self,
        source: AlignmentSource,
        summary: TextIO,
        stats: SummaryStats,
    ) -> None:
        idxstats = source.index_stats()
        stats.total_mapped = sum(s.mapped for s in idxstats)
        stats.total_unmapped = sum(s.unmapped for s in idxstats)
        stats.total_reads = stats.total_mapped + stats.total_unmapped

        logger.info("BAM-level summary:")
        logger.info("\ttotal depth (number of reads): [%d]", stats.total_reads)
        logger.info("\ttotal mapped reads: [%d]", stats.total_mapped)
        logger.info("\ttotal unmapped reads: [%d]", stats.total_unmapped)

        summary.write(f"total depth (number of reads)\t{stats.total_reads}\n")
        summary.write(f"total mapped reads\t{stats.total_mapped}\n")
        summary.write(f"total unmapped reads\t{stats.total_unmapped}\n")

    def _scan_unmapped(
        self,
        source: AlignmentSource,
        fasta: TextIO,
        stats: SummaryStats,
    ) -> None:
        for record in source.fetch_unmapped():
            stats.unmapped_seen += 1
            if self.quality.passes_sequence(record):
                stats.unmapped_good_sequence += 1
                fasta.write(record.to_fasta())

        logger.info("Unmapped read summary:")
        logger.info("\ttotal unmapped reads: [%d]", stats.unmapped_seen)
        logger.info("\tgood quality sequences: [%d]", stats.unmapped_good_sequence)

    def _scan_microbial_contigs(
        self,
        source: AlignmentSource,
        fasta: TextIO,
        summary: TextIO,
        stats: SummaryStats,
    ) -> None:
        observed = self.contig_table.observed_in(source.reference_names())
        if not observed:
            logger.info("No microbial contigs found in %s", source.name)
            return

        logger.info(
            "Found %d contigs in bam that are probably microbial: [%s]",
            len(observed),
            ",".join(observed),
        )

        for contig in observed:
            contig_stats = ContigStats(
                contig=contig,
                species=self.contig_table.contig_to_species(contig),
            )

            for record in source.fetch(contig):
                contig_stats.n_reads += 1
                if not record.is_unmapped:
                    contig_stats.n_mapped += 1
                    if self.quality.passes_sequence(record):
                        contig_stats.n_good_sequence += 1
                        fasta.write(record.to_fasta())

                if self.quality.passes_alignment(record):
                    contig_stats.n_good_alignment += 1

            stats.contigs.append(contig_stats)

            logger.info("Microbial contig stats: %s (%s)", contig, contig_stats.species)
            logger.info("\ttotal reads mapped: [%d]", contig_stats.n_mapped)
            logger.info(
                "\tgood quality alignments mapped: [%d]", contig_stats.n_good_alignment
            )
            logger.info(
                "\tgood quality sequences mapped: [%d]", contig_stats.n_good_sequence
            )

            summary.write(
                f"Contig [{contig}] good quality alignments\t"
                f"{contig_stats.n_good_alignment}\n"
            )
