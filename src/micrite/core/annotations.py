"""
Reference annotation tables.

Two static lookup tables used during screening:

- MicrobialContigTable: reference contig names that carry microbial
  genomes in common human reference builds (e.g. the chrEBV decoy).
- OncogenicMicrobeTable: a curated allow-list of microbes with an
  established association with human cancers, keyed by NCBI taxid.

Both tables are immutable and built once from literal data. Lookups return
the first matching entry; uniqueness of keys is not enforced, so a key that
appears twice in the data resolves to its first occurrence.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass


@dataclass(frozen=True)
class ContigEntry:
    """A reference contig known to represent a microbial genome."""

    contig: str
    taxid: str
    species: str


@dataclass(frozen=True)
class OncogenicMicrobeEntry:
    """A microbe on the oncogenic allow-list."""

    name: str
    taxid: str


class MicrobialContigTable:
    """Lookup of microbial contig names to taxid and species label."""

    def __init__(self, entries: Iterable[ContigEntry]):
        self._entries: tuple[ContigEntry, ...] = tuple(entries)

    def __contains__(self, contig_name: object) -> bool:
        return any(entry.contig == contig_name for entry in self._entries)

    def __iter__(self) -> Iterator[ContigEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def contains(self, contig_name: str) -> bool:
        """Return True if contig_name is a known microbial contig."""
        return contig_name in self

    def _first(self, contig_name: str) -> ContigEntry | None:
        return next((e for e in self._entries if e.contig == contig_name), None)

    def contig_to_species(self, contig_name: str) -> str | None:
        """Species label of the first entry matching contig_name."""
        entry = self._first(contig_name)
        return entry.species if entry is not None else None

    def contig_to_taxid(self, contig_name: str) -> str | None:
        """Taxid of the first entry matching contig_name."""
        entry = self._first(contig_name)
        return entry.taxid if entry is not None else None

    def observed_in(self, contig_names: Iterable[str]) -> list[str]:
        """Contigs from contig_names present in this table, in input order."""
        return [name for name in contig_names if name in self]


class OncogenicMicrobeTable:
    """Lookup of oncogenic microbes by NCBI taxid."""

    def __init__(self, entries: Iterable[OncogenicMicrobeEntry]):
        self._entries: tuple[OncogenicMicrobeEntry, ...] = tuple(entries)

    def __contains__(self, taxid: object) -> bool:
        return any(entry.taxid == taxid for entry in self._entries)

    def __iter__(self) -> Iterator[OncogenicMicrobeEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def contains(self, taxid: str) -> bool:
        """Return True if taxid is on the oncogenic allow-list."""
        return taxid in self

    def taxid_to_name(self, taxid: str) -> str | None:
        """Name of the first entry matching taxid."""
        return next((e.name for e in self._entries if e.taxid == taxid), None)


# NC_000898 (HHV-6B) is recorded under the EBV taxid in the source data.
# It is kept as-is since hit calling never joins on contig taxids.
_MICROBIAL_CONTIGS: tuple[tuple[str, str, str], ...] = (
    # EBV
    ("chrEBV", "10376", "EBV"),
    ("NC_009334", "10376", "EBV"),
    ("NC_007605", "10376", "EBV"),
    # HHV6B
    ("NC_000898", "10376", "HHV6B"),
)

_ONCOGENIC_MICROBES: tuple[tuple[str, str], ...] = (
    ("Human gammaherpesvirus 8", "37296"),
    ("Human gammaherpesvirus 4 (EBV)", "10376"),
    ("Human betaherpesvirus 6A", "32603"),
    ("Human betaherpesvirus 6B", "32604"),
    ("Human betaherpesvirus 7", "10372"),
    ("Primate T-lymphotropic virus 1", "194440"),
    ("Primate T-lymphotropic virus 2", "194441"),
    ("Human papillomavirus", "10566"),
    ("Hepatitis B virus", "10407"),
    ("Hepacivirus C", "11103"),
    ("Merkel cell polyomavirus", "493803"),
    ("Betapolyomavirus macacae", "1891767"),
    ("Betapolyomavirus secuhominis", "1891763"),
    ("Betapolyomavirus hominis", "1891762"),
    ("Cytolomegalovirus", "10358"),
    ("Alphatorquevirus", "687331"),
)


def common_microbial_contigs() -> MicrobialContigTable:
    """Build the table of microbial contigs found in common reference builds."""
    return MicrobialContigTable(
        ContigEntry(contig=contig, taxid=taxid, species=species)
        for contig, taxid, species in _MICROBIAL_CONTIGS
    )


def oncogenic_microbes() -> OncogenicMicrobeTable:
    """Build the oncogenic microbe allow-list."""
    return OncogenicMicrobeTable(
        OncogenicMicrobeEntry(name=name, taxid=taxid)
        for name, taxid in _ONCOGENIC_MICROBES
    )
