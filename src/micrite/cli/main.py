"""
Main CLI entry point for micrite.

Provides the screen command group:
- screen run: Full BAM screening pipeline
- screen triage: Read-quality triage only
- screen hits: Hit calling from a Kraken2 report
- screen contigs: Built-in annotation tables
"""

from __future__ import annotations

import typer
from rich import print as rprint

from micrite import __version__

app = typer.Typer(
    name="micrite",
    help="Screen BAM files for microbial reads with Kraken2",
    add_completion=False,
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        rprint(f"micrite version {__version__}")
        raise typer.Exit


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """
    micrite: detect microbial reads in sequencing alignments.

    Pulls good quality unmapped reads and reads aligned to known microbial
    contigs out of a BAM file, classifies them with Kraken2 and reports
    microbes with enough supporting reads.
    """


from micrite.cli import screen  # noqa: E402

app.add_typer(screen.app, name="screen")


if __name__ == "__main__":
    app()
