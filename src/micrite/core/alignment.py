"""
Alignment records and record sources.

Defines the AlignmentRecord model consumed by read-quality triage, the
AlignmentSource protocol that triage scans against, and a samtools-backed
implementation that streams SAM text from an indexed BAM without
requiring pysam as a dependency.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple, Protocol

from micrite.core.constants import (
    FLAG_DUPLICATE,
    FLAG_QC_FAILED,
    FLAG_SECONDARY,
    FLAG_UNMAPPED,
    MISSING_QUALITY,
    PHRED_OFFSET,
    UNMAPPED_REGION,
)
from micrite.core.exceptions import InputNotFoundError, MalformedRecordError
from micrite.external.base import validate_path_safe
from micrite.external.samtools import Samtools

logger = logging.getLogger(__name__)

# SAM optional-field types holding integers. samtools prints all of
# htslib's integer subtypes (c/C/s/S/i/I) as 'i'.
_INTEGER_TAG_TYPES = frozenset({"i"})

_SAM_MANDATORY_FIELDS = 11


@dataclass(frozen=True)
class AlignmentRecord:
    """Single alignment record from a BAM file.

    Attributes:
        qname: Query (read) name.
        sequence: Read bases, empty if not stored.
        qualities: Per-base phred scores, 0xFF per base if not stored.
        flag: SAM flag bits.
        mapq: Mapping quality.
        alignment_score: Value of the integer ``AS`` tag, None if absent.
    """

    qname: str
    sequence: str
    qualities: tuple[int, ...]
    flag: int
    mapq: int
    alignment_score: int | None = None

    @property
    def is_unmapped(self) -> bool:
        return bool(self.flag & FLAG_UNMAPPED)

    @property
    def is_secondary(self) -> bool:
        return bool(self.flag & FLAG_SECONDARY)

    @property
    def is_quality_check_failed(self) -> bool:
        return bool(self.flag & FLAG_QC_FAILED)

    @property
    def is_duplicate(self) -> bool:
        return bool(self.flag & FLAG_DUPLICATE)

    def to_fasta(self) -> str:
        """Format the record as a two-line FASTA entry."""
        return f">{self.qname}\n{self.sequence}\n"


class IndexStat(NamedTuple):
    """Per-reference counts from a BAM index."""

    contig: str
    length: int
    mapped: int
    unmapped: int


class AlignmentSource(Protocol):
    """Random-access source of alignment records.

    Records are yielded in file order. Implementations must support
    header and index queries without a full scan.
    """

    @property
    def name(self) -> str: ...

    def reference_names(self) -> list[str]: ...

    def index_stats(self) -> list[IndexStat]: ...

    def fetch_unmapped(self) -> Iterator[AlignmentRecord]: ...

    def fetch(self, contig: str) -> Iterator[AlignmentRecord]: ...


def parse_alignment_score(tags: list[str]) -> int | None:
    """Extract the ``AS`` tag from SAM optional fields.

    Returns None when the tag is absent or is not integer-typed.
    """
    for tag in tags:
        if not tag.startswith("AS:"):
            continue
        parts = tag.split(":", 2)
        if len(parts) != 3 or parts[1] not in _INTEGER_TAG_TYPES:
            logger.debug("Ignoring AS tag with unexpected type: %s", tag)
            return None
        try:
            return int(parts[2])
        except ValueError:
            logger.debug("Ignoring AS tag with non-integer value: %s", tag)
            return None
    return None


def parse_sam_line(line: str) -> AlignmentRecord:
    """Parse a single SAM record line into an AlignmentRecord.

    Raises:
        ValueError: If the line has too few fields or non-numeric FLAG/MAPQ.
    """
    fields = line.rstrip("\n").split("\t")
    if len(fields) < _SAM_MANDATORY_FIELDS:
        msg = f"expected at least {_SAM_MANDATORY_FIELDS} fields, got {len(fields)}"
        raise ValueError(msg)

    sequence = fields[9] if fields[9] != "*" else ""
    qual = fields[10]
    if qual == "*":
        qualities = (MISSING_QUALITY,) * len(sequence)
    else:
        qualities = tuple(ord(c) - PHRED_OFFSET for c in qual)

    return AlignmentRecord(
        qname=fields[0],
        sequence=sequence,
        qualities=qualities,
        flag=int(fields[1]),
        mapq=int(fields[4]),
        alignment_score=parse_alignment_score(fields[11:]),
    )


def find_bam_index(bam_path: Path) -> Path | None:
    """Locate the .bai/.csi index next to a BAM file."""
    candidates = (
        bam_path.with_name(bam_path.name + ".bai"),
        bam_path.with_name(bam_path.name + ".csi"),
        bam_path.with_suffix(".bai"),
    )
    return next((c for c in candidates if c.exists()), None)


class SamtoolsAlignmentSource:
    """AlignmentSource reading an indexed BAM through samtools.

    Example:
        >>> source = SamtoolsAlignmentSource(Path("sample.bam"))
        >>> source.reference_names()[:2]
        ['chr1', 'chr2']
        >>> n_unmapped = sum(1 for _ in source.fetch_unmapped())
    """

    def __init__(
        self,
        bam_path: Path,
        samtools: Samtools | None = None,
        threads: int = 1,
    ):
        self.bam_path = validate_path_safe(bam_path, must_exist=True)
        if find_bam_index(self.bam_path) is None:
            raise InputNotFoundError(self.bam_path.name + ".bai", what="BAM index")
        self.samtools = samtools or Samtools()
        self.threads = threads

    @property
    def name(self) -> str:
        return str(self.bam_path)

    def reference_names(self) -> list[str]:
        """Reference names from the @SQ header lines, in header order."""
        result = self.samtools.header(bam_file=self.bam_path)
        names = []
        for line in result.stdout.splitlines():
            if not line.startswith("@SQ"):
                continue
            tags = dict(p.split(":", 1) for p in line.split("\t")[1:] if ":" in p)
            if "SN" in tags:
                names.append(tags["SN"])
        return names

    def index_stats(self) -> list[IndexStat]:
        """Per-reference mapped/unmapped counts, including the ``*`` row."""
        result = self.samtools.idxstats(bam_file=self.bam_path)
        stats = []
        for line_num, line in enumerate(result.stdout.splitlines(), start=1):
            if not line.strip():
                continue
            parts = line.split("\t")
            try:
                stats.append(
                    IndexStat(parts[0], int(parts[1]), int(parts[2]), int(parts[3]))
                )
            except (IndexError, ValueError) as e:
                raise MalformedRecordError(
                    f"samtools idxstats {self.bam_path}", line_num, str(e)
                ) from e
        return stats

    def _records(self, region: str) -> Iterator[AlignmentRecord]:
        lines = self.samtools.view_records(
            bam_file=self.bam_path,
            region=region,
            threads=self.threads,
        )
        for record_num, line in enumerate(lines, start=1):
            try:
                yield parse_sam_line(line)
            except ValueError as e:
                raise MalformedRecordError(
                    f"{self.bam_path} [{region}]", record_num, str(e)
                ) from e

    def fetch_unmapped(self) -> Iterator[AlignmentRecord]:
        """Records in the unmapped partition (reads without a reference)."""
        return self._records(UNMAPPED_REGION)

    def fetch(self, contig: str) -> Iterator[AlignmentRecord]:
        """Records on one reference contig."""
        return self._records(contig)
