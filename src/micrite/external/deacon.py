"""
Deacon wrapper for host read depletion.

Deacon (https://github.com/bede/deacon) filters sequences against a
minimizer index of the host genome. micrite runs it in deplete mode so
host-matching reads are discarded and non-host reads are kept.
"""

from __future__ import annotations

import logging
from pathlib import Path

from micrite.core.exceptions import InputNotFoundError
from micrite.external.base import ExternalTool
from micrite.external.kraken import expand_path

logger = logging.getLogger(__name__)


class Deacon(ExternalTool):
    """Wrapper for ``deacon filter -d``.

    Equivalent to::

        deacon filter -d -a <ABS_THRESHOLD> -r <REL_THRESHOLD> -o <OUTPUT> <DB> <FASTA>

    Only single-end input is supported (``-O/--output2`` is not wired).

    Example:
        >>> deacon = Deacon()
        >>> nonhost = deacon.deplete(
        ...     fasta=Path("out/sample.fasta"),
        ...     output=Path("out/sample.nonhost.fasta"),
        ...     database=Path("~/databases/panhuman-1.k31w15.idx"),
        ... )
    """

    TOOL_NAME = "deacon"
    INSTALL_HINT = "conda install -c bioconda deacon  # or: cargo install deacon"

    def build_command(
        self,
        *,
        fasta: Path,
        output: Path,
        database: Path,
        relative_threshold: float = 0.01,
        absolute_threshold: int = 2,
    ) -> list[str]:
        """Build deacon filter command.

        Args:
            fasta: Input FASTA/FASTQ to deplete.
            output: Destination for non-host reads. Compression is
                detected by deacon from the extension.
            database: Deacon minimizer index.
            relative_threshold: ``-r`` minimum proportion (0-1) of minimizer hits.
            absolute_threshold: ``-a`` minimum absolute number of minimizer hits.

        Returns:
            Command as list of strings.
        """
        exe = str(self.get_executable())
        return [
            exe,
            "filter",
            "-d",
            "-a", str(absolute_threshold),
            "-r", str(relative_threshold),
            "-o", str(output),
            str(expand_path(database)),
            str(fasta),
        ]

    def deplete(
        self,
        *,
        fasta: Path,
        output: Path,
        database: Path,
        relative_threshold: float = 0.01,
        absolute_threshold: int = 2,
        timeout: float | None = None,
    ) -> Path:
        """Remove host reads from a FASTA.

        Returns:
            Path to the non-host output.

        Raises:
            InputNotFoundError: If the minimizer index does not exist.
            ToolNotFoundError: If deacon is not installed.
            ToolExecutionError: If deacon exits non-zero (stderr included).
        """
        db = expand_path(database)
        if not db.exists():
            raise InputNotFoundError(db, what="Deacon minimizer index")

        logger.info("Running Deacon host depletion on %s", fasta)
        result = self.run_or_raise(
            fasta=fasta,
            output=output,
            database=db,
            relative_threshold=relative_threshold,
            absolute_threshold=absolute_threshold,
            timeout=timeout,
        )
        logger.debug("Deacon command: %s", result.command_string)

        if result.stdout.strip():
            logger.debug("Deacon stdout:\n%s", result.stdout)

        logger.info("Deacon non-host reads written to %s", output)
        return output
