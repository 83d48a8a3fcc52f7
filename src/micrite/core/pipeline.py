"""
End-to-end screening of one BAM file.

Runs read triage, optional host depletion, Kraken2 classification and hit
calling in sequence. Each stage must complete before the next starts; any
failure aborts the run and propagates to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from micrite.core.alignment import AlignmentSource, SamtoolsAlignmentSource
from micrite.core.annotations import (
    MicrobialContigTable,
    OncogenicMicrobeTable,
    common_microbial_contigs,
    oncogenic_microbes,
)
from micrite.core.constants import HOST_DEPLETED_SUFFIX
from micrite.core.exceptions import InputNotFoundError, OutputWriteError
from micrite.core.hits import HitCaller, HitCallResult, hits_path_for
from micrite.core.triage import TriageResult, TriageScanner, fasta_path_for
from micrite.external.deacon import Deacon
from micrite.external.kraken import Kraken2, KrakenOutputPaths
from micrite.models.config import ScreenConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScreenResult:
    """Outputs of screening one BAM file."""

    triage: TriageResult
    kraken: KrakenOutputPaths
    hits: HitCallResult
    classified_fasta: Path


def screen_bam(
    bam_path: Path,
    outdir: Path,
    config: ScreenConfig,
    *,
    source: AlignmentSource | None = None,
    contig_table: MicrobialContigTable | None = None,
    oncogenic_table: OncogenicMicrobeTable | None = None,
) -> ScreenResult:
    """
    Screen a BAM file for microbial reads.

    Args:
        bam_path: Indexed BAM file.
        outdir: Output directory (created if missing).
        config: Screening configuration.
        source: Alignment source to scan (default: samtools over bam_path).
        contig_table: Microbial contig table (default: built-in table).
        oncogenic_table: Oncogenic allow-list (default: built-in table).

    Returns:
        ScreenResult with triage statistics, Kraken2 outputs and hits.

    Raises:
        MicriteError: Any fatal condition in any stage.
    """
    if source is None and not bam_path.exists():
        raise InputNotFoundError(bam_path, what="BAM file")

    try:
        outdir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise OutputWriteError(outdir, e.strerror or str(e)) from e

    if source is None:
        source = SamtoolsAlignmentSource(bam_path, threads=config.samtools_threads)

    if contig_table is None:
        contig_table = common_microbial_contigs()
    if oncogenic_table is None:
        oncogenic_table = oncogenic_microbes()

    fasta_path = fasta_path_for(bam_path, outdir)
    triage = TriageScanner(config.quality, contig_table).scan(source, fasta_path)
    logger.info("Created fasta file of candidate reads at %s", fasta_path)

    classified_fasta = fasta_path
    if config.deacon is not None:
        classified_fasta = Deacon().deplete(
            fasta=fasta_path,
            output=outdir / f"{bam_path.stem}{HOST_DEPLETED_SUFFIX}",
            database=config.deacon.database,
            relative_threshold=config.deacon.relative_threshold,
            absolute_threshold=config.deacon.absolute_threshold,
        )

    kraken_paths = Kraken2().classify(
        fasta=classified_fasta,
        database=config.kraken.database,
        outdir=outdir,
        threads=config.kraken.threads,
        confidence=config.kraken.confidence,
        keep_classification_output=config.kraken.keep_classification_output,
        report_zero_counts=config.kraken.report_zero_counts,
        prefix=outdir / bam_path.stem,
    )

    hits = HitCaller(config.hits, oncogenic_table).call_report(
        kraken_paths.kreport,
        hits_path_for(kraken_paths.prefix),
    )

    if not config.keep_unmapped:
        _remove_intermediate(fasta_path, classified_fasta)

    return ScreenResult(
        triage=triage,
        kraken=kraken_paths,
        hits=hits,
        classified_fasta=classified_fasta,
    )


def _remove_intermediate(*paths: Path) -> None:
    logger.info("Removing candidate read files")
    for path in dict.fromkeys(paths):
        path.unlink(missing_ok=True)
