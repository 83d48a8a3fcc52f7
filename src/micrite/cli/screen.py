"""
Screen command for microbial read detection in BAM files.

Provides four subcommands:
- run: Full pipeline (triage, host depletion, Kraken2, hit calling)
- triage: Extract good quality candidate reads from a BAM
- hits: Call microbial hits from an existing Kraken2 report
- contigs: Show the microbial contig and oncogenic microbe tables
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from micrite.cli.utils import QuietConsole, exit_with_error, setup_logging, spinner_progress
from micrite.core.alignment import SamtoolsAlignmentSource
from micrite.core.annotations import common_microbial_contigs, oncogenic_microbes
from micrite.core.exceptions import ConfigurationError, MicriteError, OutputWriteError
from micrite.core.hits import HitCaller, HitCallResult, hits_path_for
from micrite.core.pipeline import screen_bam
from micrite.core.triage import SummaryStats, TriageScanner, fasta_path_for
from micrite.external import Kraken2, Samtools
from micrite.models.config import (
    DeaconConfig,
    HitThresholds,
    KrakenConfig,
    ReadQualityConfig,
    ScreenConfig,
)

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="screen",
    help="Screen BAM files for microbial reads",
    no_args_is_help=True,
)

console = Console()


def _drop_unset(**options: Any) -> dict[str, Any]:
    """Keep only options given on the command line."""
    return {k: v for k, v in options.items() if v is not None}


def _build_quality(base: ReadQualityConfig, **options: Any) -> ReadQualityConfig:
    return ReadQualityConfig(**{**base.model_dump(), **_drop_unset(**options)})


def _build_thresholds(base: HitThresholds, **options: Any) -> HitThresholds:
    return HitThresholds(**{**base.model_dump(), **_drop_unset(**options)})


def _print_triage_summary(out: QuietConsole, stats: SummaryStats) -> None:
    table = Table(title="Read triage", show_header=True, header_style="bold")
    table.add_column("Metric")
    table.add_column("Reads", justify="right")
    table.add_row("Total reads (index)", f"{stats.total_reads:,}")
    table.add_row("Mapped reads (index)", f"{stats.total_mapped:,}")
    table.add_row("Unmapped reads (index)", f"{stats.total_unmapped:,}")
    table.add_row("Unmapped reads scanned", f"{stats.unmapped_seen:,}")
    table.add_row("Good quality unmapped sequences", f"{stats.unmapped_good_sequence:,}")
    for contig in stats.contigs:
        table.add_row(
            f"{contig.contig} ({contig.species}) good alignments",
            f"{contig.n_good_alignment:,}",
        )
    out.print(table)


def _print_hits(out: QuietConsole, result: HitCallResult) -> None:
    if not result.hits:
        out.print("\n[yellow]No microbial hits passed thresholds[/yellow]")
    else:
        table = Table(title="Microbial hits", show_header=True, header_style="bold")
        table.add_column("TaxID")
        table.add_column("Rank")
        table.add_column("Name")
        table.add_column("Clade %", justify="right")
        table.add_column("Clade reads", justify="right")
        table.add_column("Oncogenic")
        for hit in result.hits:
            table.add_row(
                hit.taxid,
                hit.rank,
                escape(hit.name),
                f"{hit.clade_percent_classified:.2f}",
                f"{hit.clade_nreads_classified:,}",
                "[red]yes[/red]" if hit.oncogenic else "no",
            )
        out.print(table)

    if result.thresholds.oncogenic_only and result.n_non_oncogenic_excluded:
        out.print(
            f"[dim]{result.n_non_oncogenic_excluded} non-oncogenic microbes "
            f"passed thresholds but were excluded[/dim]"
        )


@app.command(name="run")
def run_screen(
    bam: Path = typer.Option(
        ...,
        "--bam", "-b",
        help="Indexed BAM file to screen",
        exists=True,
        dir_okay=False,
    ),
    output: Path = typer.Option(
        ...,
        "--output", "-o",
        help="Output directory",
    ),
    kraken_db: Path | None = typer.Option(
        None,
        "--kraken-db", "-k",
        help="Path to Kraken2 database directory (required unless set in --config)",
    ),
    config_file: Path | None = typer.Option(
        None,
        "--config", "-c",
        help="YAML configuration file (CLI options override it)",
        exists=True,
        dir_okay=False,
    ),
    deacon_db: Path | None = typer.Option(
        None,
        "--deacon-db",
        help="Deacon minimizer index; enables host read depletion",
    ),
    min_length: int | None = typer.Option(None, "--min-length", help="Minimum read length [50]", min=0),
    min_phred: float | None = typer.Option(None, "--min-phred", help="Minimum mean phred [17.0]", min=0),
    max_n: int | None = typer.Option(None, "--max-n", help="Maximum ambiguous bases [2]", min=0),
    min_mapq: int | None = typer.Option(None, "--min-mapq", help="Mapping quality must exceed [10]", min=0),
    min_alignment_score: int | None = typer.Option(
        None, "--min-alignment-score", help="AS tag must exceed [130]"
    ),
    min_reads: int | None = typer.Option(
        None, "--min-reads", help="Clade reads must exceed [50]", min=0
    ),
    min_percent: float | None = typer.Option(
        None, "--min-percent", help="Minimum clade percent of classified reads [0.01]", min=0, max=100
    ),
    oncogenic_only: bool | None = typer.Option(
        None,
        "--oncogenic-only/--all-microbes",
        help="Only report microbes on the oncogenic list [all microbes]",
    ),
    threads: int | None = typer.Option(None, "--threads", "-p", help="Kraken2 threads [8]", min=1),
    confidence: float | None = typer.Option(
        None, "--confidence", help="Kraken2 confidence threshold [0.01]", min=0.0, max=1.0
    ),
    keep_unmapped: bool = typer.Option(
        False,
        "--keep-unmapped",
        help="Keep the candidate read FASTA after classification",
    ),
    keep_kraken_output: bool = typer.Option(
        False,
        "--keep-kraken-output",
        help="Keep per-read Kraken2 output ({sample}.kout.tsv)",
    ),
    log_file: Path | None = typer.Option(None, "--log-file", help="Write a debug log here"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress progress output"),
) -> None:
    """
    Screen a BAM file for microbial reads.

    Extracts good quality unmapped reads and reads on known microbial
    contigs, optionally removes host reads with Deacon, classifies them
    with Kraken2 and reports microbes passing read-count thresholds.

    Example:

        micrite screen run \\
            --bam sample.bam \\
            --kraken-db ~/databases/k2_standard_08gb \\
            --output ./micrite_out/ \\
            --oncogenic-only

    Output files:
        - {sample}.bam_summary.txt: Read counts
        - {sample}.kreport: Kraken2 report
        - {sample}.krakenhits.csv: Microbial hits
    """
    setup_logging(verbose=verbose, quiet=quiet, log_file=log_file)
    out = QuietConsole(console, quiet=quiet)

    out.print("\n[bold blue]micrite BAM screening[/bold blue]\n")

    missing = [t.TOOL_NAME for t in (Samtools, Kraken2) if not t.check_available()]
    if missing:
        console.print(f"[red]Error: required tools not found: {', '.join(missing)}[/red]")
        console.print("\n[dim]Install with: conda install -c bioconda samtools kraken2[/dim]")
        raise typer.Exit(code=1) from None

    try:
        config = _build_screen_config(
            config_file=config_file,
            kraken_db=kraken_db,
            deacon_db=deacon_db,
            quality_options={
                "min_length": min_length,
                "min_phred": min_phred,
                "max_n": max_n,
                "min_mapq": min_mapq,
                "min_alignment_score": min_alignment_score,
            },
            hit_options={
                "min_reads": min_reads,
                "min_percent": min_percent,
                "oncogenic_only": oncogenic_only,
            },
            kraken_options={
                "threads": threads,
                "confidence": confidence,
                "keep_classification_output": keep_kraken_output or None,
            },
            keep_unmapped=keep_unmapped,
        )
    except MicriteError as e:
        raise exit_with_error(console, e) from None

    logger.debug("Screen configuration:\n%s", config.to_yaml_str())

    out.print("[bold]Input:[/bold]")
    out.print(f"  BAM:          {bam}")
    out.print(f"  Kraken2 DB:   {config.kraken.database}")
    if config.deacon is not None:
        out.print(f"  Deacon index: {config.deacon.database}")

    try:
        with spinner_progress("Screening reads...", console, quiet):
            result = screen_bam(bam, output, config)
    except MicriteError as e:
        raise exit_with_error(console, e) from None

    _print_triage_summary(out, result.triage.stats)
    _print_hits(out, result.hits)

    out.print("\n[bold green]Screening complete![/bold green]")
    out.print("\n[bold]Output files:[/bold]")
    out.print(f"  Summary:       {result.triage.summary_path}")
    out.print(f"  Kraken report: {result.kraken.kreport}")
    out.print(f"  Hits:          {result.hits.output_path}")
    out.print()


def _build_screen_config(
    *,
    config_file: Path | None,
    kraken_db: Path | None,
    deacon_db: Path | None,
    quality_options: dict[str, Any],
    hit_options: dict[str, Any],
    kraken_options: dict[str, Any],
    keep_unmapped: bool,
) -> ScreenConfig:
    """Merge a YAML config (if any) with options given on the command line."""
    base: ScreenConfig | None = None
    if config_file is not None:
        if kraken_db is None:
            base = ScreenConfig.from_yaml(config_file)
        else:
            base = ScreenConfig.from_yaml(config_file, kraken={"database": kraken_db})

    if base is None and kraken_db is None:
        raise ConfigurationError(
            message="No Kraken2 database given",
            suggestion="Pass --kraken-db or set kraken.database in --config.",
        )

    try:
        kraken_base = base.kraken.model_dump() if base is not None else {}
        if kraken_db is not None:
            kraken_base["database"] = kraken_db
        kraken = KrakenConfig(**{**kraken_base, **_drop_unset(**kraken_options)})

        deacon = base.deacon if base is not None else None
        if deacon_db is not None:
            deacon = DeaconConfig(database=deacon_db)

        return ScreenConfig(
            quality=_build_quality(
                base.quality if base is not None else ReadQualityConfig(),
                **quality_options,
            ),
            hits=_build_thresholds(
                base.hits if base is not None else HitThresholds(),
                **hit_options,
            ),
            kraken=kraken,
            deacon=deacon,
            keep_unmapped=keep_unmapped or (base.keep_unmapped if base is not None else False),
            samtools_threads=base.samtools_threads if base is not None else 1,
        )
    except ValidationError as e:
        raise ConfigurationError(
            message=f"Invalid option values:\n{e}",
            suggestion="Check the threshold options are within range.",
        ) from e


@app.command(name="triage")
def triage_reads(
    bam: Path = typer.Option(
        ...,
        "--bam", "-b",
        help="Indexed BAM file to triage",
        exists=True,
        dir_okay=False,
    ),
    output: Path = typer.Option(
        ...,
        "--output", "-o",
        help="Output directory for the FASTA and summary files",
    ),
    min_length: int = typer.Option(50, "--min-length", help="Minimum read length", min=0),
    min_phred: float = typer.Option(17.0, "--min-phred", help="Minimum mean phred", min=0),
    max_n: int = typer.Option(2, "--max-n", help="Maximum ambiguous bases", min=0),
    min_mapq: int = typer.Option(10, "--min-mapq", help="Mapping quality must exceed", min=0),
    min_alignment_score: int = typer.Option(
        130, "--min-alignment-score", help="AS tag must exceed"
    ),
    threads: int = typer.Option(1, "--threads", "-p", help="samtools decompression threads", min=1),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress progress output"),
) -> None:
    """
    Extract good quality candidate reads from a BAM file.

    Writes unmapped reads and reads mapped to known microbial contigs that
    pass sequence quality thresholds to {sample}.fasta, and read counts to
    {sample}.bam_summary.txt.

    Example:

        micrite screen triage --bam sample.bam --output ./triage/
    """
    setup_logging(verbose=verbose, quiet=quiet)
    out = QuietConsole(console, quiet=quiet)

    out.print("\n[bold blue]micrite read triage[/bold blue]\n")

    if not Samtools.check_available():
        console.print("[red]Error: samtools not found[/red]")
        console.print("\n[dim]Install with: conda install -c bioconda samtools[/dim]")
        raise typer.Exit(code=1) from None

    quality = ReadQualityConfig(
        min_length=min_length,
        min_phred=min_phred,
        max_n=max_n,
        min_mapq=min_mapq,
        min_alignment_score=min_alignment_score,
    )

    try:
        try:
            output.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise OutputWriteError(output, e.strerror or str(e)) from e
        source = SamtoolsAlignmentSource(bam, threads=threads)
        with spinner_progress("Scanning reads...", console, quiet):
            result = TriageScanner(quality).scan(source, fasta_path_for(bam, output))
    except MicriteError as e:
        raise exit_with_error(console, e) from None

    _print_triage_summary(out, result.stats)

    out.print("\n[bold green]Triage complete![/bold green]")
    out.print(f"  FASTA:   {result.fasta_path}")
    out.print(f"  Summary: {result.summary_path}")
    out.print()


@app.command(name="hits")
def call_hits(
    report: Path = typer.Option(
        ...,
        "--report", "-r",
        help="Kraken2 report (.kreport)",
        exists=True,
        dir_okay=False,
    ),
    output: Path | None = typer.Option(
        None,
        "--output", "-o",
        help="Hit table CSV (default: {report_stem}.krakenhits.csv next to the report)",
    ),
    min_reads: int = typer.Option(50, "--min-reads", help="Clade reads must exceed", min=0),
    min_percent: float = typer.Option(
        0.01, "--min-percent", help="Minimum clade percent of classified reads", min=0, max=100
    ),
    oncogenic_only: bool = typer.Option(
        False,
        "--oncogenic-only/--all-microbes",
        help="Only report microbes on the oncogenic list",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress progress output"),
) -> None:
    """
    Call microbial hits from an existing Kraken2 report.

    Example:

        micrite screen hits --report sample.kreport --min-reads 5 --oncogenic-only
    """
    setup_logging(verbose=verbose, quiet=quiet)
    out = QuietConsole(console, quiet=quiet)

    if output is None:
        output = hits_path_for(report.with_suffix(""))

    thresholds = HitThresholds(
        min_reads=min_reads,
        min_percent=min_percent,
        oncogenic_only=oncogenic_only,
    )

    try:
        result = HitCaller(thresholds).call_report(report, output)
    except MicriteError as e:
        raise exit_with_error(console, e) from None

    _print_hits(out, result)
    out.print(f"\n[bold green]Found {result.n_hits} hits[/bold green] -> {output}")


@app.command(name="contigs")
def show_tables() -> None:
    """Show the built-in microbial contig and oncogenic microbe tables."""
    contigs = Table(title="Microbial contigs", show_header=True, header_style="bold")
    contigs.add_column("Contig")
    contigs.add_column("TaxID")
    contigs.add_column("Species")
    for entry in common_microbial_contigs():
        contigs.add_row(entry.contig, entry.taxid, entry.species)
    console.print(contigs)

    microbes = Table(title="Oncogenic microbes", show_header=True, header_style="bold")
    microbes.add_column("TaxID")
    microbes.add_column("Name")
    for entry in oncogenic_microbes():
        microbes.add_row(entry.taxid, entry.name)
    console.print(microbes)
