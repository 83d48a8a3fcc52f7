"""
Shared pytest fixtures for micrite tests.

Provides alignment record factories, an in-memory alignment source and
Kraken2 report files for unit and integration testing.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from micrite.core.alignment import AlignmentRecord, IndexStat
from micrite.external.base import ExternalTool

# =============================================================================
# Alignment Records
# =============================================================================


def make_record(
    qname: str = "read_001",
    sequence: str = "A" * 100,
    qualities: tuple[int, ...] | None = None,
    flag: int = 0,
    mapq: int = 60,
    alignment_score: int | None = 150,
) -> AlignmentRecord:
    """Build an AlignmentRecord, defaulting to a clean Q30 mapped read."""
    if qualities is None:
        qualities = (30,) * len(sequence)
    return AlignmentRecord(
        qname=qname,
        sequence=sequence,
        qualities=qualities,
        flag=flag,
        mapq=mapq,
        alignment_score=alignment_score,
    )


@pytest.fixture
def record_factory() -> Callable[..., AlignmentRecord]:
    """Factory for AlignmentRecord objects with sensible defaults."""
    return make_record


class FakeAlignmentSource:
    """In-memory AlignmentSource for triage tests.

    Counts fetch calls per region so tests can check which contigs were
    scanned.
    """

    def __init__(
        self,
        references: list[str],
        index_stats: list[IndexStat],
        unmapped: list[AlignmentRecord],
        by_contig: dict[str, list[AlignmentRecord]] | None = None,
    ):
        self._references = references
        self._index_stats = index_stats
        self._unmapped = unmapped
        self._by_contig = by_contig or {}
        self.fetched: list[str] = []

    @property
    def name(self) -> str:
        return "fake.bam"

    def reference_names(self) -> list[str]:
        return list(self._references)

    def index_stats(self) -> list[IndexStat]:
        return list(self._index_stats)

    def fetch_unmapped(self) -> Iterator[AlignmentRecord]:
        self.fetched.append("*")
        return iter(self._unmapped)

    def fetch(self, contig: str) -> Iterator[AlignmentRecord]:
        self.fetched.append(contig)
        return iter(self._by_contig.get(contig, []))


@pytest.fixture
def source_factory() -> type[FakeAlignmentSource]:
    """The in-memory AlignmentSource class, for tests building their own."""
    return FakeAlignmentSource


@pytest.fixture
def ebv_source() -> FakeAlignmentSource:
    """Source with chrEBV plus two non-microbial contigs.

    Unmapped partition: 3 records, 2 good quality sequences.
    chrEBV: 2 mapped records, 1 good alignment and 2 good sequences.
    """
    unmapped = [
        make_record("u1", "ACGT" * 25, flag=4, mapq=0, alignment_score=None),
        make_record("u2", "A" * 40, flag=4, mapq=0, alignment_score=None),
        make_record("u3", "T" * 60, flag=4, mapq=0, alignment_score=None),
    ]
    ebv = [
        make_record("e1", "G" * 100, mapq=60, alignment_score=200),
        make_record("e2", "C" * 100, mapq=5, alignment_score=200),
    ]
    return FakeAlignmentSource(
        references=["chr1", "chr2", "chrEBV"],
        index_stats=[
            IndexStat("chr1", 248956422, 1000, 2),
            IndexStat("chr2", 242193529, 500, 1),
            IndexStat("chrEBV", 171823, 2, 0),
            IndexStat("*", 0, 0, 3),
        ],
        unmapped=unmapped,
        by_contig={"chrEBV": ebv},
    )


@pytest.fixture
def human_only_source() -> FakeAlignmentSource:
    """Source with no microbial contigs in the header."""
    return FakeAlignmentSource(
        references=["chr1", "chr2"],
        index_stats=[
            IndexStat("chr1", 248956422, 10, 0),
            IndexStat("chr2", 242193529, 5, 0),
            IndexStat("*", 0, 0, 1),
        ],
        unmapped=[make_record("u1", "ACGT" * 25, flag=4, mapq=0)],
    )


# =============================================================================
# Kraken2 Reports
# =============================================================================


KRAKEN_REPORT_TEXT = (
    " 40.00\t400\t400\tU\t0\tunclassified\n"
    " 60.00\t600\t5\tR\t1\troot\n"
    " 20.00\t200\t0\tD\t10239\t  Viruses\n"
    " 12.00\t120\t120\tS\t10376\t        Human gammaherpesvirus 4\n"
    "  6.00\t60\t60\tS\t10566\t        Human papillomavirus\n"
    "  2.00\t20\t20\tS\t12345\t        Some phage\n"
    " 30.00\t300\t300\tS\t562\t        Escherichia coli\n"
)


@pytest.fixture
def kraken_report(tmp_path: Path) -> Path:
    """Kraken2 report with two oncogenic and two non-oncogenic species."""
    path = tmp_path / "sample.kreport"
    path.write_text(KRAKEN_REPORT_TEXT)
    return path


# =============================================================================
# External Tools
# =============================================================================


@pytest.fixture
def fake_executables():
    """Resolve every external tool to /usr/bin/<name> without touching PATH."""
    ExternalTool.set_executable_resolver(lambda name: f"/usr/bin/{name}")
    yield
    ExternalTool.reset_executable_resolver()


@pytest.fixture(autouse=True)
def _clear_executable_cache():
    """Ensure the executable cache is empty before and after each test."""
    ExternalTool._executable_cache.clear()
    yield
    ExternalTool._executable_cache.clear()
