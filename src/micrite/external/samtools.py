"""
Samtools wrapper class.

Provides the read-only samtools operations micrite needs to treat an
indexed BAM as a random-access record source:
- idxstats: per-reference mapped/unmapped counts from the index
- view -H: header text (reference names)
- view <region>: SAM records for one reference or the unmapped partition
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

from micrite.external.base import ExternalTool, ToolResult


class Samtools(ExternalTool):
    """Wrapper for samtools utilities.

    Example:
        >>> samtools = Samtools()
        >>> stats = samtools.idxstats(bam_file=Path("sample.bam"))
        >>> for line in samtools.view_records(bam_file=Path("sample.bam"), region="*"):
        ...     ...
    """

    TOOL_NAME = "samtools"
    INSTALL_HINT = "conda install -c bioconda samtools"

    def build_command(self, **kwargs: object) -> list[str]:
        """Not used directly. Use idxstats(), header() or view_records()."""
        raise NotImplementedError(
            "Use idxstats(), header(), or view_records() methods instead"
        )

    def _build_idxstats_command(self, *, bam_file: Path) -> list[str]:
        exe = str(self.get_executable())
        return [exe, "idxstats", str(bam_file)]

    def idxstats(
        self,
        *,
        bam_file: Path,
        timeout: float | None = None,
        dry_run: bool = False,
    ) -> ToolResult:
        """Report per-reference read counts from the BAM index.

        Output has four tab-separated columns per reference: name, length,
        mapped reads, unmapped reads. The final row (name ``*``) counts
        reads without a reference.

        Raises:
            ToolExecutionError: If samtools exits non-zero (e.g. missing index).
        """
        result = self._execute(
            self._build_idxstats_command(bam_file=bam_file),
            timeout=timeout,
            dry_run=dry_run,
        )
        self._check(result, dry_run=dry_run)
        return result

    def _build_header_command(self, *, bam_file: Path) -> list[str]:
        exe = str(self.get_executable())
        return [exe, "view", "-H", str(bam_file)]

    def header(
        self,
        *,
        bam_file: Path,
        timeout: float | None = None,
        dry_run: bool = False,
    ) -> ToolResult:
        """Return the SAM header of a BAM file."""
        result = self._execute(
            self._build_header_command(bam_file=bam_file),
            timeout=timeout,
            dry_run=dry_run,
        )
        self._check(result, dry_run=dry_run)
        return result

    def _build_view_command(
        self,
        *,
        bam_file: Path,
        region: str | None = None,
        threads: int = 1,
    ) -> list[str]:
        exe = str(self.get_executable())
        cmd = [exe, "view"]

        if threads > 1:
            cmd.extend(["--threads", str(threads)])

        cmd.append(str(bam_file))

        if region is not None:
            cmd.append(region)

        return cmd

    def view_records(
        self,
        *,
        bam_file: Path,
        region: str | None = None,
        threads: int = 1,
    ) -> Iterator[str]:
        """Stream SAM record lines (no header) in file order.

        Args:
            bam_file: Indexed BAM file.
            region: Reference name to fetch, ``*`` for the unmapped
                partition, or None for the whole file.
            threads: Decompression threads.

        Yields:
            One SAM line per alignment record.
        """
        cmd = self._build_view_command(
            bam_file=bam_file,
            region=region,
            threads=threads,
        )
        yield from self.stream_lines(cmd)
